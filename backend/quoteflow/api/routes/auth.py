import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import get_current_user
from quoteflow.core.security import create_access_token_for_subject, verify_password
from quoteflow.database import get_db
from quoteflow.schemas import Token, UserRead, ok

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("quoteflow.auth")


def _client(request: Request) -> dict:
    return {
        "request_id": request.headers.get("x-request-id"),
        "ip": request.client.host if request.client else None,
    }


@router.post("/token")
def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    email = (form_data.username or "").strip().lower()
    try:
        user = db.query(models.User).filter(models.User.email == email).first()
    except SQLAlchemyError:
        logger.exception("auth_login_db_error", extra={"email": email, **_client(request)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable, try again shortly",
        )
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.info("auth_login_failed", extra={"email": email, **_client(request)})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password"
        )
    if not user.is_active:
        logger.info("auth_login_inactive", extra={"user_id": user.id, **_client(request)})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    logger.info("auth_login_success", extra={"user_id": user.id, **_client(request)})
    token = Token(access_token=create_access_token_for_subject(user.email))
    # OAuth2 clients read access_token at the top level.
    return {**ok(token), **token.model_dump()}


@router.get("/me")
def read_current_user(current_user: models.User = Depends(get_current_user)):
    return ok(UserRead.model_validate(current_user))
