# tests/test_reconciliation.py
from __future__ import annotations

from cloudcall_app.errors import GatewayError
from cloudcall_app.models import Subscription
from cloudcall_app.services import subscription_service
from cloudcall_app.services.reconciliation import sync_subscriptions


def test_sync_activates_subscription_reported_active(db_session, tenant, gateway):
    sub_id = subscription_service.create_subscription("P-BASIC", tenant.id)["external_subscription_id"]
    gateway.snapshots[sub_id] = {
        "id": sub_id,
        "status": "ACTIVE",
        "start_time": "2031-03-01T00:00:00Z",
        "billing_info": {"next_billing_time": "2031-04-01T00:00:00Z"},
    }

    summary = sync_subscriptions()

    assert summary == {"checked": 1, "updated": 1, "errors": 0}
    sub = db_session.query(Subscription).filter_by(external_reference=sub_id).one()
    assert sub.status == "active"
    assert sub.current_period_end.year == 2031 and sub.current_period_end.month == 4


def test_sync_leaves_approval_pending_alone(db_session, tenant, gateway):
    sub_id = subscription_service.create_subscription("P-BASIC", tenant.id)["external_subscription_id"]
    summary = sync_subscriptions()
    assert summary == {"checked": 1, "updated": 0, "errors": 0}
    assert db_session.query(Subscription).filter_by(external_reference=sub_id).one().status == "pending"


def test_sync_cancels_and_skips_terminal_rows(db_session, tenant, gateway):
    sub_id = subscription_service.create_subscription("P-BASIC", tenant.id)["external_subscription_id"]
    gateway.snapshots[sub_id] = {"id": sub_id, "status": "CANCELLED"}

    assert sync_subscriptions()["updated"] == 1
    # canceled rows are no longer swept
    assert sync_subscriptions() == {"checked": 0, "updated": 0, "errors": 0}
    assert db_session.query(Subscription).filter_by(external_reference=sub_id).one().canceled_at is not None


def test_sync_counts_gateway_errors_and_continues(db_session, tenant, other_tenant, gateway):
    subscription_service.create_subscription("P-BASIC", tenant.id)
    subscription_service.create_subscription("P-BASIC", other_tenant.id)
    gateway.errors["get_subscription"] = GatewayError("timeout")

    summary = sync_subscriptions()

    assert summary == {"checked": 2, "updated": 0, "errors": 2}


def test_reconcile_cli_command(app, db_session, tenant, gateway):
    sub_id = subscription_service.create_subscription("P-BASIC", tenant.id)["external_subscription_id"]
    gateway.snapshots[sub_id] = {"id": sub_id, "status": "ACTIVE"}

    result = app.test_cli_runner().invoke(args=["reconcile-subscriptions", "--limit", "10"])

    assert result.exit_code == 0
    assert "checked=1 updated=1 errors=0" in result.output
