import re
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from quoteflow.models.domain import UserRole
from quoteflow.services.document_numbering import format_quote_number
from quoteflow.services.quotes import quote_totals


def _item(total, quantity):
    return SimpleNamespace(id=1, quantity=quantity, cost_calculation=SimpleNamespace(total_cost=total))


def test_quote_totals_apply_quantity_and_margin():
    subtotal, margin, total = quote_totals([_item("170.00", 10), _item("170.00", 5)], "0.1")
    assert subtotal == Decimal("2550.00")
    assert margin == Decimal("0.1")
    assert total == Decimal("2805.00")


def test_quote_totals_reject_margin_out_of_range():
    with pytest.raises(HTTPException):
        quote_totals([_item("1", 1)], "1.5")


def test_quote_number_format():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert format_quote_number(seq=7, now=now) == "Q-2026-0007"


def test_create_quote_from_approved_inquiry(workflow):
    inquiry = workflow.approved_inquiry()

    r = workflow.quote(inquiry["id"], margin=0.1)
    assert r.status_code == 201, r.text
    quote = r.json()["data"]
    assert re.fullmatch(r"Q-\d{4}-0001", quote["quote_number"])
    assert quote["subtotal"] == 2550.0
    assert quote["total"] == 2805.0
    assert quote["status"] == "DRAFT"
    assert quote["title"] == "Quote for Steel Beams"

    data = workflow.get_inquiry(inquiry["id"])
    assert data["status"] == "QUOTED"
    assert {i["status"] for i in data["items"]} == {"QUOTED"}


def test_quote_numbers_are_sequential(workflow):
    first = workflow.approved_inquiry()
    second = workflow.approved_inquiry()
    a = workflow.quote(first["id"]).json()["data"]["quote_number"]
    b = workflow.quote(second["id"]).json()["data"]["quote_number"]
    assert a.endswith("-0001") and b.endswith("-0002")


def test_quote_requires_every_item_approved(workflow):
    inquiry, calc_ids = workflow.costed_inquiry()
    workflow.decide(calc_ids[0], "APPROVED")

    r = workflow.quote(inquiry["id"])
    assert r.status_code == 400
    assert r.json()["error"] == "All items must have approved cost calculations"


def test_quote_requires_future_validity(workflow):
    inquiry = workflow.approved_inquiry()
    r = workflow.quote(inquiry["id"], valid_days=-1)
    assert r.status_code == 400


def test_inquiry_is_quoted_once(workflow):
    inquiry = workflow.approved_inquiry()
    assert workflow.quote(inquiry["id"]).status_code == 201
    assert workflow.quote(inquiry["id"]).status_code == 400


def test_other_sales_cannot_quote_or_read(client, workflow, make_user):
    inquiry = workflow.approved_inquiry()
    other = make_user(UserRole.SALES, email="other-sales@test.com")

    assert workflow.quote(inquiry["id"], user=other).status_code == 403

    quote_id = workflow.quote(inquiry["id"]).json()["data"]["id"]
    assert client.get(f"/api/quotes/{quote_id}", headers=other.headers).status_code == 403
    assert client.get("/api/quotes", headers=other.headers).json()["pagination"]["total"] == 0


def test_send_accept_and_convert(client, workflow, email_sender, customer):
    inquiry = workflow.approved_inquiry()
    quote_id = workflow.quote(inquiry["id"]).json()["data"]["id"]
    headers = workflow.users.sales.headers

    r = client.post(f"/api/quotes/{quote_id}/send", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "SENT"
    assert r.json()["data"]["sent_at"] is not None
    sent = [m for m in email_sender.sent if m["template"] == "quote_sent"]
    assert sent[0]["recipients"] == [customer.email]

    assert client.post(f"/api/quotes/{quote_id}/send", headers=headers).status_code == 400

    r = client.post(f"/api/quotes/{quote_id}/decision", json={"decision": "ACCEPTED"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["message"] == "Quote accepted"
    assert workflow.get_inquiry(inquiry["id"])["status"] == "APPROVED"

    r = client.post(f"/api/inquiries/{inquiry['id']}/convert", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "CONVERTED"


def test_rejected_quote_rejects_inquiry(client, workflow):
    inquiry = workflow.approved_inquiry()
    quote_id = workflow.quote(inquiry["id"]).json()["data"]["id"]
    headers = workflow.users.sales.headers
    client.post(f"/api/quotes/{quote_id}/send", headers=headers)

    r = client.post(f"/api/quotes/{quote_id}/decision", json={"decision": "REJECTED"}, headers=headers)
    assert r.status_code == 200
    assert workflow.get_inquiry(inquiry["id"])["status"] == "REJECTED"

    assert client.post(f"/api/inquiries/{inquiry['id']}/convert", headers=headers).status_code == 400


def test_decision_needs_sent_quote(client, workflow):
    inquiry = workflow.approved_inquiry()
    quote_id = workflow.quote(inquiry["id"]).json()["data"]["id"]
    headers = workflow.users.sales.headers

    r = client.post(f"/api/quotes/{quote_id}/decision", json={"decision": "ACCEPTED"}, headers=headers)
    assert r.status_code == 400

    client.post(f"/api/quotes/{quote_id}/send", headers=headers)
    r = client.post(f"/api/quotes/{quote_id}/decision", json={"decision": "EXPIRED"}, headers=headers)
    assert r.status_code == 400


def test_manager_reads_but_cannot_create_quotes(client, workflow):
    inquiry = workflow.approved_inquiry()
    assert workflow.quote(inquiry["id"], user=workflow.users.manager).status_code == 403

    workflow.quote(inquiry["id"])
    r = client.get("/api/quotes", headers=workflow.users.manager.headers)
    assert r.json()["pagination"]["total"] == 1
