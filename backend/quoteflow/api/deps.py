from typing import Callable, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from quoteflow.config import settings
from quoteflow.core.permissions import has_permission
from quoteflow.core.security import decode_access_token_subject
from quoteflow.database import get_db
from quoteflow.models import EmailOutbox, User, UserRole
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache, MemoryCache, invalidate_workflow_lists
from quoteflow.services.email import EmailSender, LoggingEmailSender
from quoteflow.services.notifications import dispatch_after_commit


def _token_url() -> str:
    if settings.api_prefix:
        prefix = settings.api_prefix.rstrip("/")
        return f"{prefix}/auth/token"
    return "/auth/token"


oauth2_optional = OAuth2PasswordBearer(tokenUrl=_token_url(), auto_error=False)

_DB_DEP = Depends(get_db)
_TOKEN_OPT_DEP = Depends(oauth2_optional)


def get_current_user(
    db: Session = _DB_DEP,
    token: Optional[str] = _TOKEN_OPT_DEP,
) -> User:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    subject = decode_access_token_subject(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user = db.query(User).filter(User.email == subject, User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_current_user_optional(
    db: Session = _DB_DEP,
    token: Optional[str] = _TOKEN_OPT_DEP,
) -> Optional[User]:
    if not token:
        return None
    try:
        return get_current_user(db=db, token=token)
    except HTTPException:
        return None


_CURRENT_USER_DEP = Depends(get_current_user)


def require_roles(*roles: UserRole) -> Callable:
    """Allow only the given roles. SUPERUSER passes every role check."""

    allowed = {UserRole(r) for r in roles}

    def dependency(user: User = _CURRENT_USER_DEP) -> User:
        if user.role == UserRole.SUPERUSER:
            return user
        if allowed and user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return dependency


def require_permission(resource: str, action: str) -> Callable:
    """403 unless ROLE_PERMISSIONS grants `action` on `resource` to the caller's role."""

    def dependency(user: User = _CURRENT_USER_DEP) -> User:
        if not has_permission(user.role, resource, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return dependency


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)


def get_cache(request: Request) -> Cache:
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        cache = MemoryCache()
        request.app.state.cache = cache
    return cache


def get_email_sender(request: Request) -> EmailSender:
    sender = getattr(request.app.state, "email_sender", None)
    if sender is None:
        sender = LoggingEmailSender()
        request.app.state.email_sender = sender
    return sender


def commit_and_publish(
    db: Session,
    *,
    sender: EmailSender,
    cache: Cache,
    emails: Iterable[Optional[EmailOutbox]] = (),
) -> None:
    """Commit the request's unit of work, then run its side effects.

    E-mail dispatch and cache invalidation happen only after the commit succeeded.
    """

    db.commit()
    dispatch_after_commit(db, sender, emails, max_attempts=settings.email_max_attempts)
    invalidate_workflow_lists(cache)
