# cloudcall_app/services/reconciliation.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import current_app

from ..errors import GatewayError, NotTerminalYet
from ..models.subscription import SUB_ACTIVE, SUB_CANCELED, SUB_PAST_DUE
from . import ledger
from .gateway_service import get_gateway
from .subscription_service import local_status
from .webhook_service import subscription_period


def _apply_snapshot(subscription, snapshot: dict) -> bool:
    status = local_status(snapshot.get("status"))
    if status == SUB_ACTIVE:
        start, end = subscription_period(snapshot)
        return ledger.transition_subscription(
            subscription, SUB_ACTIVE, current_period_start=start, current_period_end=end,
        )
    if status == SUB_CANCELED:
        return ledger.transition_subscription(subscription, SUB_CANCELED)
    if status == SUB_PAST_DUE and subscription.status == SUB_ACTIVE:
        return ledger.transition_subscription(subscription, SUB_PAST_DUE)
    # approval pending / suspended while already past_due: wait for the payer or a webhook
    raise NotTerminalYet(snapshot.get("status"))


def sync_subscriptions(limit: int = 100) -> dict:
    """
    Pulls the gateway snapshot of every pending/past_due subscription and
    applies it with the same conditional transitions the webhooks use.
    Covers webhooks that never arrived.
    """
    summary = {"checked": 0, "updated": 0, "errors": 0}
    for subscription in ledger.subscriptions_to_sync(limit=limit):
        summary["checked"] += 1
        external_id = subscription.external_reference
        try:
            snapshot = get_gateway().get_subscription(external_id)
            if _apply_snapshot(subscription, snapshot):
                summary["updated"] += 1
                current_app.logger.info("Subscription %s reconciled to %s",
                                        subscription.id, subscription.status)
        except NotTerminalYet as exc:
            current_app.logger.debug("Subscription %s still %s at gateway",
                                     external_id, exc.status)
        except GatewayError:
            summary["errors"] += 1
            current_app.logger.exception("Could not fetch PayPal subscription %s", external_id)
    if summary["checked"]:
        current_app.logger.info("Subscription sync: %s", summary)
    return summary
