from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from quoteflow.models.domain import Language, UserRole


class UserBrief(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)  # plain str: .local domains are common
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=3)
    role: UserRole = UserRole.SALES
    preferred_language: Language = Language.en


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=3)
    preferred_language: Optional[Language] = None


class LanguageUpdate(BaseModel):
    preferred_language: Language


class UserRead(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    is_active: bool
    preferred_language: Language
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
