import os
import tempfile

# CRITICAL: Set environment variables BEFORE any app imports
# These must be set before quoteflow.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_quoteflow.db")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["EMAIL_BACKEND"] = "console"
os.environ["REDIS_URL"] = ""
os.environ["SEED_DEV_USERS"] = "false"

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Now import app modules - they will use the test DATABASE_URL
from quoteflow import models
from quoteflow.core.security import create_access_token_for_subject, hash_password
from quoteflow.database import Base, engine as app_engine, get_db
from quoteflow.main import app
from quoteflow.services.cache import MemoryCache
from quoteflow.services.email import EmailDeliveryError, render_template

# Use the same engine that the app uses
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True)

TEST_PASSWORD = "secret123"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class RecordingEmailSender:
    """Renders like the real senders and keeps what it 'sent'.

    `fail_next` makes the next N deliveries raise EmailDeliveryError.
    """

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail_next = 0

    def send(self, template, recipients, template_data):
        rendered = render_template(template, template_data)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise EmailDeliveryError("smtp unavailable")
        self.sent.append(
            {
                "template": template,
                "recipients": list(recipients),
                "subject": rendered.subject,
                "data": dict(template_data),
            }
        )

    def templates(self) -> list[str]:
        return [m["template"] for m in self.sent]


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Fresh tables for every test; dependency overrides restored afterwards.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture(autouse=True)
def cache():
    """Per-test in-process cache so ids reused across tests never hit stale entries."""
    c = MemoryCache()
    app.state.cache = c
    return c


@pytest.fixture(autouse=True)
def email_sender():
    sender = RecordingEmailSender()
    app.state.email_sender = sender
    return sender


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token_for_subject(email)}"}


def create_user(
    db,
    role: models.UserRole,
    *,
    email: str | None = None,
    name: str | None = None,
    is_active: bool = True,
) -> SimpleNamespace:
    email = email or f"{role.value.lower()}@test.com"
    user = models.User(
        email=email,
        name=name or f"{role.value.title()} User",
        hashed_password=_PASSWORD_HASH,
        role=role,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return SimpleNamespace(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        headers=auth_headers(user.email),
    )


@pytest.fixture
def user_password():
    return TEST_PASSWORD


@pytest.fixture
def make_user(db_session):
    def _make(role: models.UserRole, **kwargs) -> SimpleNamespace:
        return create_user(db_session, role, **kwargs)

    return _make


@pytest.fixture
def users(make_user):
    """One user per workflow role, plus a second VP."""
    return SimpleNamespace(
        sales=make_user(models.UserRole.SALES, name="Sam Sales"),
        vpp=make_user(models.UserRole.VPP, name="Paula Planner"),
        vp=make_user(models.UserRole.VP, name="Victor Costing"),
        vp2=make_user(models.UserRole.VP, email="vp2@test.com", name="Vera Costing"),
        manager=make_user(models.UserRole.MANAGER, name="Mia Manager"),
        admin=make_user(models.UserRole.ADMIN, name="Ada Admin"),
    )


@pytest.fixture
def customer(db_session, users):
    c = models.Customer(
        name="Acme Construction",
        email="buyer@acme.test",
        phone="+1 555 0100",
        created_by_id=users.sales.id,
        is_active=True,
    )
    db_session.add(c)
    db_session.commit()
    db_session.refresh(c)
    return SimpleNamespace(id=c.id, name=c.name, email=c.email)


STEEL_ITEMS = [
    {"name": "Steel Beam HEB 200", "quantity": 10, "unit": "pcs", "description": "S355, 6m"},
    {"name": "Steel Beam IPE 300", "quantity": 5, "unit": "pcs", "description": "S275, 12m"},
]


class Workflow:
    """Drives the inquiry -> costing -> approval -> quote flow through the API."""

    def __init__(self, client: TestClient, users: SimpleNamespace, customer: SimpleNamespace):
        self.client = client
        self.users = users
        self.customer = customer

    def create_inquiry(self, *, user=None, items=None, title="Steel Beams", priority="HIGH") -> dict:
        user = user or self.users.sales
        resp = self.client.post(
            "/api/inquiries",
            json={
                "title": title,
                "description": "Beams for warehouse extension",
                "customer_id": self.customer.id,
                "priority": priority,
                "items": items if items is not None else STEEL_ITEMS,
            },
            headers=user.headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    def submit(self, inquiry_id: int, *, user=None) -> dict:
        user = user or self.users.sales
        resp = self.client.post(f"/api/inquiries/{inquiry_id}/submit", headers=user.headers)
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def assign(self, item_ids: list[int], assignee=None, *, user=None) -> dict:
        user = user or self.users.vpp
        assignee = assignee or self.users.vp
        resp = self.client.post(
            "/api/items/assign",
            json={"item_ids": item_ids, "assignee_id": assignee.id},
            headers=user.headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def cost(self, item_id: int, material=100, labor=50, overhead=20, *, user=None):
        user = user or self.users.vp
        return self.client.post(
            "/api/costs",
            json={
                "inquiry_item_id": item_id,
                "material_cost": material,
                "labor_cost": labor,
                "overhead_cost": overhead,
            },
            headers=user.headers,
        )

    def decide(self, calculation_id: int, status: str, comments: str | None = None, *, user=None):
        user = user or self.users.manager
        body: dict[str, Any] = {"cost_calculation_id": calculation_id, "status": status}
        if comments is not None:
            body["comments"] = comments
        return self.client.post("/api/approvals", json=body, headers=user.headers)

    def get_inquiry(self, inquiry_id: int, *, user=None) -> dict:
        user = user or self.users.sales
        resp = self.client.get(f"/api/inquiries/{inquiry_id}", headers=user.headers)
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def notifications(self, user) -> list[dict]:
        resp = self.client.get("/api/notifications", params={"limit": 100}, headers=user.headers)
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def costed_inquiry(self) -> tuple[dict, list[int]]:
        """Submitted, assigned and fully costed; returns the inquiry and its calculation ids."""
        inquiry = self.create_inquiry()
        self.submit(inquiry["id"])
        item_ids = [i["id"] for i in inquiry["items"]]
        self.assign(item_ids)
        calc_ids = []
        for item_id in item_ids:
            resp = self.cost(item_id)
            assert resp.status_code == 201, resp.text
            calc_ids.append(resp.json()["data"]["id"])
        return self.get_inquiry(inquiry["id"]), calc_ids

    def approved_inquiry(self) -> dict:
        inquiry, calc_ids = self.costed_inquiry()
        for calc_id in calc_ids:
            resp = self.decide(calc_id, "APPROVED")
            assert resp.status_code == 201, resp.text
        return self.get_inquiry(inquiry["id"])

    def quote(self, inquiry_id: int, *, margin=0.1, user=None, valid_days=30):
        user = user or self.users.sales
        valid_until = datetime.now(timezone.utc) + timedelta(days=valid_days)
        return self.client.post(
            "/api/quotes",
            json={
                "inquiry_id": inquiry_id,
                "margin": margin,
                "valid_until": valid_until.isoformat(),
                "terms": "Net 30",
            },
            headers=user.headers,
        )


@pytest.fixture
def workflow(client, users, customer):
    return Workflow(client, users, customer)
