"""
End-to-end workflow: Steel Beams inquiry with two items, from draft to quote-ready.

Each step asserts the inquiry status, item statuses and the notifications the
step is supposed to produce.
"""

import pytest


@pytest.fixture
def steel_beams(workflow):
    """Steps 1-3: create + submit, assign both items to the VP, cost both."""
    users = workflow.users

    # 1. SALES creates and submits.
    inquiry = workflow.create_inquiry(title="Steel Beams")
    assert inquiry["status"] == "DRAFT"
    assert [i["status"] for i in inquiry["items"]] == ["PENDING", "PENDING"]
    assert workflow.submit(inquiry["id"])["status"] == "SUBMITTED"

    # 2. VPP assigns both items to the VP.
    item_ids = [i["id"] for i in inquiry["items"]]
    assigned = workflow.assign(item_ids, assignee=users.vp)
    assert [i["status"] for i in assigned["items"]] == ["ASSIGNED", "ASSIGNED"]
    assert workflow.get_inquiry(inquiry["id"])["status"] == "ASSIGNED"
    requested = [n for n in workflow.notifications(users.vp) if n["type"] == "COST_CALCULATION_REQUESTED"]
    assert len(requested) == 1

    # 3. VP costs both items: 100 + 50 + 20.
    calc_ids = []
    for n, item_id in enumerate(item_ids):
        r = workflow.cost(item_id, material=100, labor=50, overhead=20)
        assert r.status_code == 201, r.text
        assert r.json()["data"]["total_cost"] == 170.0
        calc_ids.append(r.json()["data"]["id"])
        expected = "ASSIGNED" if n == 0 else "COSTING"
        assert workflow.get_inquiry(inquiry["id"])["status"] == expected

    approvals_needed = [n for n in workflow.notifications(users.manager) if n["type"] == "APPROVAL_REQUIRED"]
    assert len(approvals_needed) == 2

    return {"inquiry_id": inquiry["id"], "item_ids": item_ids, "calc_ids": calc_ids}


def test_steel_beams_happy_path(workflow, steel_beams, email_sender):
    users = workflow.users

    # 4. MANAGER approves both calculations.
    first = workflow.decide(steel_beams["calc_ids"][0], "APPROVED")
    assert first.json()["data"]["inquiry_ready_for_quote"] is False
    second = workflow.decide(steel_beams["calc_ids"][1], "APPROVED")
    assert second.json()["data"]["inquiry_ready_for_quote"] is True

    data = workflow.get_inquiry(steel_beams["inquiry_id"])
    assert data["status"] == "COSTING"
    assert [i["status"] for i in data["items"]] == ["APPROVED", "APPROVED"]
    assert all(i["cost_calculation"]["is_approved"] for i in data["items"])

    ready = [n for n in workflow.notifications(users.sales) if n["type"] == "QUOTE_GENERATED"]
    assert len(ready) == 1

    approved_mails = [m for m in email_sender.sent if m["template"] == "approval_status"]
    assert len(approved_mails) == 2
    assert email_sender.templates().count("quote_ready") == 1

    # And on to the quote.
    r = workflow.quote(steel_beams["inquiry_id"], margin=0.1)
    assert r.status_code == 201
    assert r.json()["data"]["total"] == 2805.0
    assert workflow.get_inquiry(steel_beams["inquiry_id"])["status"] == "QUOTED"


def test_steel_beams_rejection_branch(workflow, steel_beams):
    users = workflow.users

    # 5. MANAGER rejects the first calculation with a comment.
    r = workflow.decide(steel_beams["calc_ids"][0], "REJECTED", "Material price outdated")
    assert r.status_code == 201

    data = workflow.get_inquiry(steel_beams["inquiry_id"])
    assert data["status"] == "ASSIGNED"
    assert [i["status"] for i in data["items"]] == ["ASSIGNED", "COSTED"]

    updates = [n for n in workflow.notifications(users.vp) if n["type"] == "STATUS_UPDATE"]
    assert len(updates) == 1
    assert "Material price outdated" in updates[0]["message"]

    # The VP reworks the cost and the inquiry is back in COSTING.
    assert workflow.cost(steel_beams["item_ids"][0], material=90).status_code == 201
    assert workflow.get_inquiry(steel_beams["inquiry_id"])["status"] == "COSTING"


def test_steel_beams_requires_authentication(client, steel_beams):
    # 6. Anonymous callers get the unauthorized envelope everywhere.
    inquiry_id = steel_beams["inquiry_id"]
    for method, path in [
        ("get", "/api/inquiries"),
        ("get", f"/api/inquiries/{inquiry_id}"),
        ("post", f"/api/inquiries/{inquiry_id}/submit"),
        ("get", "/api/approvals"),
        ("get", "/api/quotes"),
    ]:
        r = getattr(client, method)(path)
        assert r.status_code == 401, path
        assert r.json()["success"] is False
        assert r.json()["error"] == "Unauthorized"
