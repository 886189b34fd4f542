import pytest

from quoteflow import models
from quoteflow.models.domain import UserRole


def test_create_inquiry_returns_items_in_submitted_order(client, workflow, users, customer):
    items = [
        {"name": f"Beam {n}", "quantity": n, "unit": "pcs", "notes": f"note {n}"}
        for n in range(1, 6)
    ]
    data = workflow.create_inquiry(items=items)

    assert data["status"] == "DRAFT"
    assert data["created_by_id"] == users.sales.id
    assert data["customer"]["name"] == customer.name
    assert data["sequential_number"] == 1
    assert [i["name"] for i in data["items"]] == [i["name"] for i in items]
    for sent, got in zip(items, data["items"]):
        assert got["quantity"] == sent["quantity"]
        assert got["unit"] == sent["unit"]
        assert got["notes"] == sent["notes"]
        assert got["status"] == "PENDING"
        assert got["assigned_to_id"] is None


def test_sequential_numbers_increase(workflow):
    first = workflow.create_inquiry(title="First")
    second = workflow.create_inquiry(title="Second")
    assert second["sequential_number"] == first["sequential_number"] + 1


def test_unauthenticated_requests_get_unauthorized_envelope(client, customer):
    for method, path in [
        ("get", "/api/inquiries"),
        ("get", "/api/inquiries/1"),
        ("get", "/api/items"),
        ("get", "/api/notifications"),
    ]:
        r = getattr(client, method)(path)
        assert r.status_code == 401, path
        body = r.json()
        assert body["success"] is False
        assert body["error"] == "Unauthorized"

    r = client.post(
        "/api/inquiries",
        json={"title": "x", "customer_id": customer.id, "items": [{"name": "a"}]},
    )
    assert r.status_code == 401
    assert r.json()["error"] == "Unauthorized"


def test_invalid_token_is_unauthorized(client):
    r = client.get("/api/inquiries", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Unauthorized", "details": "Invalid credentials"}


def test_validation_errors_are_400_with_details(client, users, customer):
    r = client.post(
        "/api/inquiries",
        json={"title": "", "customer_id": customer.id, "items": [{"name": "Beam", "quantity": 0}]},
        headers=users.sales.headers,
    )
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Validation error"
    fields = {d["field"] for d in body["details"]}
    assert "title" in fields
    assert "items.0.quantity" in fields


def test_inquiry_needs_at_least_one_item(client, users, customer):
    r = client.post(
        "/api/inquiries",
        json={"title": "Empty", "customer_id": customer.id, "items": []},
        headers=users.sales.headers,
    )
    assert r.status_code == 400


def test_unknown_customer_is_404(client, users):
    r = client.post(
        "/api/inquiries",
        json={"title": "Beams", "customer_id": 999, "items": [{"name": "a"}]},
        headers=users.sales.headers,
    )
    assert r.status_code == 404
    assert r.json()["error"] == "Customer not found"


def test_sales_only_sees_own_inquiries(client, workflow, make_user):
    other_sales = make_user(UserRole.SALES, email="other-sales@test.com")
    mine = workflow.create_inquiry(title="Mine")
    theirs = workflow.create_inquiry(title="Theirs", user=other_sales)

    r = client.get("/api/inquiries", headers=workflow.users.sales.headers)
    assert r.status_code == 200
    body = r.json()
    assert [i["id"] for i in body["data"]] == [mine["id"]]
    assert body["pagination"]["total"] == 1

    r = client.get(f"/api/inquiries/{theirs['id']}", headers=workflow.users.sales.headers)
    assert r.status_code == 403


def test_vpp_sees_submitted_but_not_draft(client, workflow):
    draft = workflow.create_inquiry(title="Draft")
    submitted = workflow.create_inquiry(title="Submitted")
    workflow.submit(submitted["id"])

    r = client.get("/api/inquiries", headers=workflow.users.vpp.headers)
    assert [i["id"] for i in r.json()["data"]] == [submitted["id"]]
    assert client.get(f"/api/inquiries/{draft['id']}", headers=workflow.users.vpp.headers).status_code == 403


def test_list_filters_and_pagination(client, workflow):
    for n in range(3):
        workflow.create_inquiry(title=f"Rebar {n}", priority="LOW")
    urgent = workflow.create_inquiry(title="Girders", priority="URGENT")
    workflow.submit(urgent["id"])

    headers = workflow.users.sales.headers
    r = client.get("/api/inquiries", params={"status": "SUBMITTED"}, headers=headers)
    assert [i["id"] for i in r.json()["data"]] == [urgent["id"]]

    r = client.get("/api/inquiries", params={"priority": "LOW", "limit": 2}, headers=headers)
    body = r.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    r = client.get("/api/inquiries", params={"search": "girder"}, headers=headers)
    assert [i["title"] for i in r.json()["data"]] == ["Girders"]

    r = client.get("/api/inquiries", params={"search": "acme"}, headers=headers)
    assert r.json()["pagination"]["total"] == 4


def test_submit_moves_draft_to_submitted_and_notifies_vpp(client, workflow):
    inquiry = workflow.create_inquiry()
    data = workflow.submit(inquiry["id"])
    assert data["status"] == "SUBMITTED"

    notes = workflow.notifications(workflow.users.vpp)
    assert [n["title"] for n in notes] == ["New inquiry submitted"]

    r = client.post(f"/api/inquiries/{inquiry['id']}/submit", headers=workflow.users.sales.headers)
    assert r.status_code == 400


def test_update_inquiry_by_creator_only(client, workflow, make_user):
    inquiry = workflow.create_inquiry()
    r = client.put(
        f"/api/inquiries/{inquiry['id']}",
        json={"title": "Steel Beams (rev 2)", "priority": "URGENT"},
        headers=workflow.users.sales.headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["title"] == "Steel Beams (rev 2)"
    assert r.json()["data"]["priority"] == "URGENT"

    other = make_user(UserRole.SALES, email="intruder@test.com")
    r = client.put(f"/api/inquiries/{inquiry['id']}", json={"title": "x"}, headers=other.headers)
    assert r.status_code == 403

    r = client.put(
        f"/api/inquiries/{inquiry['id']}",
        json={"status": "QUOTED"},
        headers=workflow.users.sales.headers,
    )
    assert r.status_code == 400


@pytest.mark.parametrize("field", ["title", "customer_id", "priority", "status"])
def test_update_rejects_null_for_required_fields(client, workflow, field):
    inquiry = workflow.create_inquiry()
    r = client.put(
        f"/api/inquiries/{inquiry['id']}",
        json={field: None},
        headers=workflow.users.sales.headers,
    )
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Validation error"
    assert [d["field"] for d in body["details"]] == [field]

    # Nothing was written.
    assert workflow.get_inquiry(inquiry["id"])["title"] == inquiry["title"]


def test_update_with_unknown_assignee_is_404(client, workflow):
    inquiry = workflow.create_inquiry()
    r = client.put(
        f"/api/inquiries/{inquiry['id']}",
        json={"assigned_to_id": 999},
        headers=workflow.users.admin.headers,
    )
    assert r.status_code == 404
    assert r.json()["error"] == "Assignee not found"
    assert workflow.get_inquiry(inquiry["id"])["assigned_to_id"] is None


def test_update_can_clear_optional_fields(client, workflow):
    inquiry = workflow.create_inquiry()
    r = client.put(
        f"/api/inquiries/{inquiry['id']}",
        json={"description": None, "deadline": None},
        headers=workflow.users.sales.headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["description"] is None


def test_delete_inquiry_removes_items(client, workflow, db_session):
    inquiry = workflow.create_inquiry()
    r = client.delete(f"/api/inquiries/{inquiry['id']}", headers=workflow.users.sales.headers)
    assert r.status_code == 200
    assert r.json()["message"] == "Inquiry deleted"
    assert db_session.query(models.InquiryItem).count() == 0
    assert client.get(f"/api/inquiries/{inquiry['id']}", headers=workflow.users.sales.headers).status_code == 404


def test_attachments_are_added_by_creator(client, workflow):
    inquiry = workflow.create_inquiry()
    r = client.post(
        f"/api/inquiries/{inquiry['id']}/attachments",
        json={"file_name": "drawing.pdf", "url": "https://files.test/drawing.pdf", "size": 1024},
        headers=workflow.users.sales.headers,
    )
    assert r.status_code == 201
    assert r.json()["data"]["uploaded_by_id"] == workflow.users.sales.id

    r = client.get(f"/api/inquiries/{inquiry['id']}/attachments", headers=workflow.users.sales.headers)
    assert [a["file_name"] for a in r.json()["data"]] == ["drawing.pdf"]


def test_write_records_audit_trail(client, workflow):
    inquiry = workflow.create_inquiry()
    workflow.submit(inquiry["id"])

    r = client.get(
        "/api/audit-logs",
        params={"inquiry_id": inquiry["id"]},
        headers=workflow.users.admin.headers,
    )
    assert r.status_code == 200
    actions = [row["action"] for row in r.json()["data"]]
    assert sorted(actions) == ["CREATE", "SUBMIT"]

    assert client.get("/api/audit-logs", headers=workflow.users.sales.headers).status_code == 403
