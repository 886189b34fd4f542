from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import (
    get_current_user,
    get_current_user_optional,
    get_request_context,
    require_permission,
)
from quoteflow.core.permissions import has_permission
from quoteflow.core.security import hash_password
from quoteflow.database import get_db
from quoteflow.models.domain import AuditAction, UserRole
from quoteflow.schemas import (
    LanguageUpdate,
    PageParams,
    Pagination,
    UserCreate,
    UserRead,
    UserUpdate,
    ok,
)
from quoteflow.services.audit import RequestContext, record_audit, snapshot

router = APIRouter(prefix="/users", tags=["users"])

_SNAPSHOT_FIELDS = ("email", "name", "role", "is_active", "preferred_language")


def _get(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    current_user: Optional[models.User] = Depends(get_current_user_optional),
):
    # The very first account may be created anonymously to bootstrap a fresh database.
    existing_users = db.query(models.User).count()
    if existing_users > 0:
        if not current_user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
        if not has_permission(current_user.role, "users", "write"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Admin required to create users"
            )
        if payload.role == UserRole.SUPERUSER and current_user.role != UserRole.SUPERUSER:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only a superuser can create superusers",
            )

    email = payload.email.strip().lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered"
        )

    user = models.User(
        email=email,
        name=payload.name,
        hashed_password=hash_password(payload.password),
        role=payload.role,
        preferred_language=payload.preferred_language,
        is_active=True,
    )
    db.add(user)
    db.flush()
    record_audit(
        db,
        AuditAction.CREATE,
        "User",
        user.id,
        user_id=current_user.id if current_user else None,
        new_data=snapshot(user, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.commit()
    db.refresh(user)
    return ok(UserRead.model_validate(user), message="User created")


@router.get("")
def list_users(
    q: Optional[str] = Query(None, description="Search on name and e-mail."),
    role: Optional[UserRole] = Query(None),
    active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("users", "read")),
):
    paging = PageParams(page=page, limit=limit)
    query = db.query(models.User)
    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(or_(models.User.name.ilike(like), models.User.email.ilike(like)))
    if role is not None:
        query = query.filter(models.User.role == role)
    if active is not None:
        query = query.filter(models.User.is_active.is_(active))

    total = query.count()
    rows = (
        query.order_by(models.User.name.asc(), models.User.id.asc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    return ok(
        [UserRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.put("/me/language")
def update_my_language(
    payload: LanguageUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    current_user.preferred_language = payload.preferred_language
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return ok(UserRead.model_validate(current_user), message="Language updated")


@router.get("/{user_id}")
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if user_id != current_user.id and not has_permission(current_user.role, "users", "read"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return ok(UserRead.model_validate(_get(db, user_id)))


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_permission("users", "write")),
):
    user = _get(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    if current_user.role != UserRole.SUPERUSER and (
        user.role == UserRole.SUPERUSER or data.get("role") == UserRole.SUPERUSER
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a superuser can manage superusers",
        )

    old = snapshot(user, *_SNAPSHOT_FIELDS)
    password = data.pop("password", None)
    if password:
        user.hashed_password = hash_password(password)
    for field, value in data.items():
        if value is not None:
            setattr(user, field, value)
    db.add(user)
    db.flush()
    record_audit(
        db,
        AuditAction.UPDATE,
        "User",
        user.id,
        user_id=current_user.id,
        old_data=old,
        new_data=snapshot(user, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.commit()
    db.refresh(user)
    return ok(UserRead.model_validate(user), message="User updated")
