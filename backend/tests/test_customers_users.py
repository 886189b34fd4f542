from quoteflow import models
from quoteflow.models.domain import UserRole


def test_sales_manages_customers(client, users):
    headers = users.sales.headers
    r = client.post(
        "/api/customers",
        json={"name": "Northwind Steel", "email": "orders@northwind.test", "phone": "555-0199"},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    customer = r.json()["data"]
    assert customer["created_by_id"] == users.sales.id
    assert customer["is_active"] is True

    r = client.post("/api/customers", json={"name": "Northwind Steel"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/customers/{customer['id']}", json={"phone": "555-0200"}, headers=headers)
    assert r.json()["data"]["phone"] == "555-0200"

    r = client.get("/api/customers", params={"q": "northwind"}, headers=headers)
    assert [c["id"] for c in r.json()["data"]] == [customer["id"]]


def test_customer_delete_is_soft(client, users, customer, db_session):
    r = client.delete(f"/api/customers/{customer.id}", headers=users.sales.headers)
    assert r.status_code == 200

    assert client.get("/api/customers", headers=users.sales.headers).json()["pagination"]["total"] == 0
    r = client.get("/api/customers", params={"include_inactive": True}, headers=users.sales.headers)
    assert r.json()["data"][0]["is_active"] is False

    audit = db_session.query(models.AuditLog).filter(models.AuditLog.entity == "Customer").one()
    assert audit.action.value == "DELETE"


def test_inactive_customer_cannot_receive_inquiries(client, users, customer):
    client.delete(f"/api/customers/{customer.id}", headers=users.sales.headers)
    r = client.post(
        "/api/inquiries",
        json={"title": "x", "customer_id": customer.id, "items": [{"name": "a"}]},
        headers=users.sales.headers,
    )
    assert r.status_code == 404


def test_vp_cannot_touch_customers(client, users, customer):
    assert client.get("/api/customers", headers=users.vp.headers).status_code == 403
    assert client.post("/api/customers", json={"name": "X"}, headers=users.vpp.headers).status_code == 403


def test_first_user_bootstraps_without_token(client):
    r = client.post(
        "/api/users",
        json={"email": "Founder@Quoteflow.Local", "name": "Founder", "password": "pw123", "role": "ADMIN"},
    )
    assert r.status_code == 201, r.text
    assert r.json()["data"]["email"] == "founder@quoteflow.local"

    r = client.post(
        "/api/users",
        json={"email": "second@quoteflow.local", "name": "Second", "password": "pw123"},
    )
    assert r.status_code == 401


def test_admin_creates_and_updates_users(client, users):
    headers = users.admin.headers
    r = client.post(
        "/api/users",
        json={"email": "new-vp@test.com", "name": "New VP", "password": "pw123", "role": "VP"},
        headers=headers,
    )
    assert r.status_code == 201
    new_id = r.json()["data"]["id"]

    r = client.post(
        "/api/users",
        json={"email": "new-vp@test.com", "name": "Dup", "password": "pw123"},
        headers=headers,
    )
    assert r.status_code == 400

    r = client.put(f"/api/users/{new_id}", json={"is_active": False}, headers=headers)
    assert r.json()["data"]["is_active"] is False

    r = client.post(
        "/api/users",
        json={"email": "root@test.com", "name": "Root", "password": "pw123", "role": "SUPERUSER"},
        headers=headers,
    )
    assert r.status_code == 403


def test_non_admin_cannot_create_users(client, users):
    r = client.post(
        "/api/users",
        json={"email": "x@test.com", "name": "X", "password": "pw123"},
        headers=users.manager.headers,
    )
    assert r.status_code == 403


def test_superuser_passes_every_role_check(client, make_user, workflow):
    root = make_user(UserRole.SUPERUSER, email="root@test.com")
    inquiry = workflow.approved_inquiry()
    r = workflow.quote(inquiry["id"], user=root)
    assert r.status_code == 201


def test_list_users_by_role(client, users):
    r = client.get("/api/users", params={"role": "VP"}, headers=users.vpp.headers)
    assert r.status_code == 200
    assert {u["id"] for u in r.json()["data"]} == {users.vp.id, users.vp2.id}

    assert client.get("/api/users", headers=users.vp.headers).status_code == 403


def test_user_reads_self_and_sets_language(client, users):
    r = client.get(f"/api/users/{users.vp.id}", headers=users.vp.headers)
    assert r.status_code == 200
    assert client.get(f"/api/users/{users.sales.id}", headers=users.vp.headers).status_code == 403

    r = client.put("/api/users/me/language", json={"preferred_language": "de"}, headers=users.vp.headers)
    assert r.json()["data"]["preferred_language"] == "de"
