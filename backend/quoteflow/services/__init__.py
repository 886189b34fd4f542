from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import record_audit
from quoteflow.services.notifications import enqueue_email, notify

__all__ = [
    "inquiry_workflow",
    "record_audit",
    "enqueue_email",
    "notify",
]
