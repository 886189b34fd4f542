"""Password hashing and bearer tokens for quoteflow users.

Tokens carry the user's e-mail as `sub`; `api.deps.get_current_user` resolves it
back to an active user.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from quoteflow.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Not a bcrypt hash.
        return False


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    claims = dict(data)
    claims["iat"] = now
    claims["exp"] = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_access_token_for_subject(email: str, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes or settings.access_token_expire_minutes
    return create_access_token({"sub": email.strip().lower()}, expires_delta=timedelta(minutes=minutes))


def decode_access_token(token: str) -> Optional[dict]:
    """Payload of a valid, unexpired token signed with our key; None otherwise."""

    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def decode_access_token_subject(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    if not payload:
        return None
    subject = payload.get("sub")
    return str(subject).strip().lower() if subject else None
