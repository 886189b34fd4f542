from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.database import supports_row_locks

INQUIRY_DOC_TYPE = "inquiry"
QUOTE_DOC_TYPE = "quote"


@dataclass(frozen=True)
class AllocatedNumber:
    doc_type: str
    seq: int
    formatted: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_quote_number(*, seq: int, now: datetime) -> str:
    """Format: Q-YYYY-NNNN (sequence resets each calendar year)."""

    return f"Q-{now.strftime('%Y')}-{seq:04d}"


def _next_seq(db: Session, doc_type: str, *, max_retries: int = 5) -> int:
    for _ in range(max_retries):
        q = db.query(models.DocumentSequence).filter(
            models.DocumentSequence.doc_type == str(doc_type)
        )
        if supports_row_locks(db):
            q = q.with_for_update()

        row = q.first()

        if row is None:
            row = models.DocumentSequence(doc_type=str(doc_type), last_seq=0)
            # A concurrent allocator may create the same row first; retry then.
            savepoint = db.begin_nested()
            db.add(row)
            try:
                db.flush()
            except IntegrityError:
                savepoint.rollback()
                continue
            savepoint.commit()

        row.last_seq = int(row.last_seq or 0) + 1
        db.add(row)
        db.flush()
        return int(row.last_seq)

    raise RuntimeError(f"Could not allocate number for doc_type={doc_type}")


def next_inquiry_number(db: Session) -> AllocatedNumber:
    """Monotonic, gap-tolerant sequential number for new inquiries."""

    seq = _next_seq(db, INQUIRY_DOC_TYPE)
    return AllocatedNumber(doc_type=INQUIRY_DOC_TYPE, seq=seq, formatted=str(seq))


def next_quote_number(db: Session, *, now: datetime | None = None) -> AllocatedNumber:
    now = now or _utc_now()
    doc_type = f"{QUOTE_DOC_TYPE}:{now.strftime('%Y')}"
    seq = _next_seq(db, doc_type)
    return AllocatedNumber(doc_type=doc_type, seq=seq, formatted=format_quote_number(seq=seq, now=now))
