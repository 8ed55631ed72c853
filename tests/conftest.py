# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import sys
import uuid
import pathlib
import importlib
import tempfile

import pytest


# =====================================================================================
# Project location (makes sure "cloudcall_app" and config.py are importable)
# =====================================================================================
def _add_project_root():
    here = pathlib.Path(__file__).resolve()
    for base in [here.parent, here.parent.parent, pathlib.Path.cwd()]:
        for candidate in [base, *base.parents]:
            if (candidate / "cloudcall_app").is_dir():
                if str(candidate) not in sys.path:
                    sys.path.insert(0, str(candidate))
                return candidate
    return None


PROJECT_ROOT = _add_project_root()


# =====================================================================================
# Unit-test environment (no external services)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["FLASK_ENV"] = "testing"
    os.environ["TESTING"] = "1"
    os.environ["DISABLE_SCHEDULER"] = "1"
    os.environ.setdefault("SECRET_KEY", "testing-secret")
    yield


# =====================================================================================
# Flask app on a temporary SQLite file; schema created once per session
# =====================================================================================
@pytest.fixture(scope="session")
def app(_testing_env):
    fd, db_path = tempfile.mkstemp(prefix="cloudcall_test_", suffix=".sqlite")
    os.close(fd)
    os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"
    os.environ["DATABASE_URL"] = os.environ["SQLALCHEMY_DATABASE_URI"]

    create_app = importlib.import_module("cloudcall_app").create_app
    from config import TestingConfig

    class _Cfg(TestingConfig):
        SQLALCHEMY_DATABASE_URI = os.environ["SQLALCHEMY_DATABASE_URI"]

    app = create_app(_Cfg)

    from cloudcall_app.extensions import db
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


# =====================================================================================
# Every test starts with empty tables
# =====================================================================================
@pytest.fixture(autouse=True)
def _clean_tables(app):
    yield
    from cloudcall_app.extensions import db
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from cloudcall_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            try:
                db.session.rollback()
            except Exception:
                pass
            db.session.close()


# =====================================================================================
# External services
#   - requests.get/post never reach the network
#   - the PayPal client in app.extensions is replaced by FakeGateway
# =====================================================================================
@pytest.fixture(autouse=True)
def _mock_externals(monkeypatch):
    import requests

    class _Resp:
        def __init__(self, status_code=200, json_data=None, text="OK"):
            self.status_code = status_code
            self._json = json_data or {}
            self.text = text
        def json(self):
            return self._json

    monkeypatch.setattr(requests, "get", lambda *a, **k: _Resp(), raising=False)
    monkeypatch.setattr(requests, "post", lambda *a, **k: _Resp(), raising=False)
    yield


class FakeGateway:
    """Stands in for PayPalClient; records calls and returns canned payloads."""

    def __init__(self):
        self.calls = []
        self.errors = {}                      # method name -> exception to raise
        self.capture_status = "COMPLETED"
        self.subscription_status = "APPROVAL_PENDING"
        self.snapshots = {}                   # subscription id -> get_subscription payload
        self.verified = True

    def _call(self, name, *args):
        self.calls.append((name, args))
        err = self.errors.get(name)
        if err is not None:
            raise err

    def called(self, name):
        return [args for n, args in self.calls if n == name]

    def create_order(self, body):
        self._call("create_order", body)
        order_id = f"ORDER-{uuid.uuid4().hex[:10].upper()}"
        return {
            "id": order_id,
            "status": "CREATED",
            "links": [
                {"rel": "self", "href": f"https://api-m.sandbox.paypal.com/v2/checkout/orders/{order_id}"},
                {"rel": "approve", "href": f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}"},
            ],
        }

    def capture_order(self, order_id):
        self._call("capture_order", order_id)
        return {"id": order_id, "status": self.capture_status}

    def create_subscription(self, body):
        self._call("create_subscription", body)
        sub_id = f"I-{uuid.uuid4().hex[:12].upper()}"
        payload = {
            "id": sub_id,
            "links": [{"rel": "approve", "href": f"https://www.sandbox.paypal.com/webapps/billing/subscriptions?ba_token={sub_id}"}],
        }
        if self.subscription_status:
            payload["status"] = self.subscription_status
        return payload

    def cancel_subscription(self, subscription_id, reason):
        self._call("cancel_subscription", subscription_id, reason)
        return {}

    def get_subscription(self, subscription_id):
        self._call("get_subscription", subscription_id)
        return self.snapshots.get(subscription_id, {"id": subscription_id, "status": "APPROVAL_PENDING"})

    def create_billing_plan(self, body):
        self._call("create_billing_plan", body)
        return {"id": "P-TESTPLAN", "status": "ACTIVE", "name": body.get("name")}

    def verify_webhook_signature(self, headers, event, webhook_id):
        self._call("verify_webhook_signature", headers, event, webhook_id)
        return self.verified


@pytest.fixture(autouse=True)
def gateway(app, monkeypatch):
    fake = FakeGateway()
    monkeypatch.setitem(app.extensions, "paypal", fake)
    yield fake


# =====================================================================================
# Model factories
# =====================================================================================
@pytest.fixture
def tenant(db_session):
    from cloudcall_app.models import Tenant
    t = Tenant(name=f"Tenant {uuid.uuid4().hex[:6]}")
    db_session.add(t); db_session.commit()
    return t


@pytest.fixture
def other_tenant(db_session):
    from cloudcall_app.models import Tenant
    t = Tenant(name=f"Other {uuid.uuid4().hex[:6]}")
    db_session.add(t); db_session.commit()
    return t


@pytest.fixture
def invoice(db_session, tenant):
    from cloudcall_app.models import Invoice
    inv = Invoice(tenant_id=tenant.id, invoice_number="INV-0001", currency="usd",
                  total=2500, amount_paid=0, amount_due=2500, status="open")
    db_session.add(inv); db_session.commit()
    return inv


@pytest.fixture
def logged_client_tenant(client, tenant):
    with client.session_transaction() as sess:
        sess["user"] = {"id": 1, "tenant_id": tenant.id, "role": "member"}
    return client


@pytest.fixture
def logged_client_admin(client, tenant):
    with client.session_transaction() as sess:
        sess["user"] = {"id": 2, "tenant_id": tenant.id, "role": "admin"}
    return client


def webhook_event(event_type, resource, event_id=None):
    return {
        "id": event_id or f"WH-{uuid.uuid4().hex[:12].upper()}",
        "event_type": event_type,
        "resource_type": "capture" if event_type.startswith("PAYMENT") else "subscription",
        "resource": resource,
    }


@pytest.fixture
def make_event():
    return webhook_event
