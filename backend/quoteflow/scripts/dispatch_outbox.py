"""Retry pending outbox e-mails.

Meant for cron / a container job. Run with: python -m quoteflow.scripts.dispatch_outbox
"""

import argparse
import logging

from quoteflow.config import settings
from quoteflow.database import SessionLocal
from quoteflow.services.email import build_email_sender
from quoteflow.services.notifications import dispatch_pending_emails

logger = logging.getLogger("quoteflow.outbox")


def run(limit: int = 100) -> int:
    sender = build_email_sender(settings)
    db = SessionLocal()
    try:
        summary = dispatch_pending_emails(
            db, sender, max_attempts=settings.email_max_attempts, limit=limit
        )
    finally:
        db.close()
    logger.info(
        "outbox_run_finished",
        extra={"sent": summary.sent, "failed": summary.failed, "pending": summary.pending},
    )
    return summary.pending


def main() -> None:
    parser = argparse.ArgumentParser(description="Deliver pending outbox e-mails")
    parser.add_argument("--limit", type=int, default=100, help="max rows per run")
    args = parser.parse_args()
    run(limit=args.limit)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    main()
