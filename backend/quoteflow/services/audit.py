from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from quoteflow import models


@dataclass(frozen=True)
class RequestContext:
    request_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Optional[Request]) -> "RequestContext":
        if request is None:
            return cls()
        return cls(
            request_id=request.headers.get("x-request-id"),
            ip=(request.client.host if request.client else None),
            user_agent=request.headers.get("user-agent"),
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def snapshot(obj: Any, *fields: str) -> Dict[str, Any]:
    """JSON-safe dict of an ORM row's column values (or just `fields` when given)."""

    if obj is None:
        return {}
    names = fields or tuple(c.key for c in inspect(obj).mapper.column_attrs)
    return {name: _jsonable(getattr(obj, name, None)) for name in names}


def record_audit(
    db: Session,
    action: models.AuditAction,
    entity: str,
    entity_id: Optional[int],
    *,
    user_id: Optional[int],
    inquiry_id: Optional[int] = None,
    old_data: Optional[Dict[str, Any]] = None,
    new_data: Optional[Dict[str, Any]] = None,
    request_context: Optional[RequestContext] = None,
) -> models.AuditLog:
    """Add an audit row to the current transaction.

    The caller owns commit/rollback so the row lands (or not) together with the
    change it describes.
    """

    ctx = request_context or RequestContext()
    log = models.AuditLog(
        action=action,
        entity=entity,
        entity_id=entity_id,
        old_data={k: _jsonable(v) for k, v in (old_data or {}).items()} or None,
        new_data={k: _jsonable(v) for k, v in (new_data or {}).items()} or None,
        user_id=user_id,
        inquiry_id=inquiry_id,
        request_id=ctx.request_id,
        ip=ctx.ip,
        user_agent=ctx.user_agent,
    )
    db.add(log)
    return log
