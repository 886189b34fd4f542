import math
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


class PageParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def ok(
    data: Any = None,
    *,
    message: Optional[str] = None,
    pagination: Optional[Pagination] = None,
) -> dict:
    """Success envelope: {"success": true, "data": ..., "message": ..., "pagination": ...}."""

    body: dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if message is not None:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination.model_dump()
    return body
