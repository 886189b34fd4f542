import pytest

from quoteflow import models
from quoteflow.models.domain import AuditAction


def _submitted_inquiry_audit(workflow, db_session) -> models.AuditLog:
    inquiry = workflow.create_inquiry()
    workflow.submit(inquiry["id"])
    rows = (
        db_session.query(models.AuditLog)
        .filter(models.AuditLog.inquiry_id == inquiry["id"])
        .order_by(models.AuditLog.id)
        .all()
    )
    assert rows[0].action == AuditAction.CREATE
    assert len(rows) >= 2
    return rows[0]


def test_audit_rows_cannot_be_updated(workflow, db_session):
    row = _submitted_inquiry_audit(workflow, db_session)
    row_id = row.id

    row.entity = "Tampered"
    with pytest.raises(ValueError, match="append-only"):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(models.AuditLog, row_id).entity == "Inquiry"


def test_audit_rows_cannot_be_deleted(workflow, db_session):
    row = _submitted_inquiry_audit(workflow, db_session)
    row_id = row.id

    db_session.delete(row)
    with pytest.raises(ValueError, match="append-only"):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(models.AuditLog, row_id) is not None


def test_audit_rows_are_added_alongside_the_change(workflow, db_session):
    inquiry = workflow.create_inquiry()
    workflow.submit(inquiry["id"])

    rows = (
        db_session.query(models.AuditLog)
        .filter(models.AuditLog.entity == "Inquiry", models.AuditLog.entity_id == inquiry["id"])
        .order_by(models.AuditLog.id)
        .all()
    )
    assert rows[0].new_data["status"] == "DRAFT"
    assert rows[-1].user_id == workflow.users.sales.id
