from quoteflow import models
from quoteflow.models.domain import ApprovalStatus


def test_approve_marks_calculation_and_item(client, workflow, db_session):
    inquiry, calc_ids = workflow.costed_inquiry()

    r = workflow.decide(calc_ids[0], "APPROVED", "Looks right")
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "Cost calculation approved"
    assert body["data"]["approval"]["status"] == "APPROVED"
    assert body["data"]["approval"]["approver_id"] == workflow.users.manager.id
    assert body["data"]["inquiry_ready_for_quote"] is False

    calc = db_session.get(models.CostCalculation, calc_ids[0])
    assert calc.is_approved is True
    assert calc.approved_at is not None
    assert calc.inquiry_item.status.value == "APPROVED"


def test_last_approval_makes_inquiry_ready_for_quote(workflow, email_sender):
    inquiry, calc_ids = workflow.costed_inquiry()

    workflow.decide(calc_ids[0], "APPROVED")
    r = workflow.decide(calc_ids[1], "APPROVED")
    assert r.json()["data"]["inquiry_ready_for_quote"] is True

    data = workflow.get_inquiry(inquiry["id"])
    assert data["status"] == "COSTING"
    assert {i["status"] for i in data["items"]} == {"APPROVED"}

    ready = [n for n in workflow.notifications(workflow.users.sales) if n["type"] == "QUOTE_GENERATED"]
    assert len(ready) == 1
    assert ready[0]["title"] == "Inquiry ready for quote generation"
    assert "quote_ready" in email_sender.templates()


def test_duplicate_active_approval_is_rejected(workflow, db_session):
    _, calc_ids = workflow.costed_inquiry()

    assert workflow.decide(calc_ids[0], "APPROVED").status_code == 201
    r = workflow.decide(calc_ids[0], "APPROVED")
    assert r.status_code == 400
    assert r.json()["error"] == "Cost calculation already has an active approval"

    assert (
        db_session.query(models.Approval)
        .filter(models.Approval.cost_calculation_id == calc_ids[0])
        .count()
        == 1
    )


def test_second_pending_request_is_rejected(workflow):
    _, calc_ids = workflow.costed_inquiry()

    assert workflow.decide(calc_ids[0], "PENDING").status_code == 201
    r = workflow.decide(calc_ids[0], "PENDING")
    assert r.status_code == 400
    assert r.json()["error"] == "Cost calculation already has an active approval"


def test_pending_approval_is_resolved_by_a_later_decision(workflow, db_session):
    inquiry, calc_ids = workflow.costed_inquiry()
    r = workflow.decide(calc_ids[0], "PENDING", "Check supplier quote")
    pending_id = r.json()["data"]["approval"]["id"]

    r = workflow.decide(calc_ids[0], "APPROVED")
    assert r.status_code == 201, r.text
    assert r.json()["data"]["approval"]["id"] == pending_id
    assert r.json()["data"]["approval"]["status"] == "APPROVED"
    assert r.json()["data"]["approval"]["comments"] == "Check supplier quote"

    rows = (
        db_session.query(models.Approval)
        .filter(models.Approval.cost_calculation_id == calc_ids[0])
        .all()
    )
    assert [row.status for row in rows] == [ApprovalStatus.APPROVED]
    assert rows[0].approved_at is not None

    statuses = [i["status"] for i in workflow.get_inquiry(inquiry["id"])["items"]]
    assert statuses == ["APPROVED", "COSTED"]


def test_pending_approval_does_not_touch_statuses(workflow):
    inquiry, calc_ids = workflow.costed_inquiry()
    r = workflow.decide(calc_ids[0], "PENDING")
    assert r.json()["message"] == "Approval recorded as pending"

    data = workflow.get_inquiry(inquiry["id"])
    assert data["status"] == "COSTING"
    assert [i["status"] for i in data["items"]] == ["COSTED", "COSTED"]


def test_rejection_reverts_item_and_notifies_calculator_once(workflow, email_sender):
    inquiry, calc_ids = workflow.costed_inquiry()

    r = workflow.decide(calc_ids[0], "REJECTED", "Material price outdated")
    assert r.status_code == 201
    assert r.json()["message"] == "Cost calculation rejected"

    data = workflow.get_inquiry(inquiry["id"])
    assert data["status"] == "ASSIGNED"
    assert [i["status"] for i in data["items"]] == ["ASSIGNED", "COSTED"]
    assert data["items"][0]["cost_calculation"]["is_approved"] is False

    updates = [n for n in workflow.notifications(workflow.users.vp) if n["type"] == "STATUS_UPDATE"]
    assert len(updates) == 1
    assert updates[0]["title"] == "Cost calculation rejected"
    assert "Material price outdated" in updates[0]["message"]
    assert updates[0]["data"]["comments"] == "Material price outdated"

    status_mails = [m for m in email_sender.sent if m["template"] == "approval_status"]
    assert len(status_mails) == 1
    assert status_mails[0]["recipients"] == [workflow.users.vp.email]
    assert status_mails[0]["subject"].startswith("Cost Calculation Rejected")


def test_rejected_calculation_can_be_approved_after_rework(workflow):
    inquiry, calc_ids = workflow.costed_inquiry()
    workflow.decide(calc_ids[0], "REJECTED", "Too high")

    item_id = inquiry["items"][0]["id"]
    assert workflow.cost(item_id, material=90).status_code == 201
    assert workflow.get_inquiry(inquiry["id"])["status"] == "COSTING"

    r = workflow.decide(calc_ids[0], "APPROVED")
    assert r.status_code == 201


def test_only_managers_decide(workflow):
    _, calc_ids = workflow.costed_inquiry()
    for user in (workflow.users.vp, workflow.users.sales, workflow.users.vpp):
        r = workflow.decide(calc_ids[0], "APPROVED", user=user)
        assert r.status_code == 403


def test_unknown_calculation_is_404(workflow, users):
    r = workflow.decide(999, "APPROVED", user=users.manager)
    assert r.status_code == 404


def test_list_approvals_filters_by_status(client, workflow):
    _, calc_ids = workflow.costed_inquiry()
    workflow.decide(calc_ids[0], "APPROVED")
    workflow.decide(calc_ids[1], "REJECTED", "redo")

    headers = workflow.users.manager.headers
    r = client.get("/api/approvals", headers=headers)
    assert r.json()["pagination"]["total"] == 2

    r = client.get("/api/approvals", params={"status": ApprovalStatus.REJECTED.value}, headers=headers)
    rows = r.json()["data"]
    assert [a["cost_calculation_id"] for a in rows] == [calc_ids[1]]
    assert rows[0]["comments"] == "redo"
