# cloudcall_app/services/webhook_service.py
# -*- coding: utf-8 -*-
"""
Applies PayPal webhook deliveries to the local ledger.

Handlers only ever say "if the matching local record exists, move it": a
webhook may arrive before the synchronous path has persisted the row, so a
miss is logged and accepted. Combined with the conditional updates in
``ledger`` this makes every handler idempotent and order-independent with
respect to the capture/cancel calls.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from flask import current_app

from ..errors import GatewayError, RecordNotFound, WebhookVerificationError
from ..models.subscription import SUB_ACTIVE, SUB_CANCELED, SUB_PAST_DUE
from . import ledger
from .gateway_service import get_gateway
from .subscription_service import default_period


class WebhookEventKind(Enum):
    PAYMENT_CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
    PAYMENT_CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"
    SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
    SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
    SUBSCRIPTION_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"
    UNRECOGNIZED = "UNRECOGNIZED"

    @classmethod
    def parse(cls, event_type: Optional[str]) -> "WebhookEventKind":
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNRECOGNIZED


def parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        # stored as naive UTC
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _order_id(resource: dict) -> Optional[str]:
    return ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")


def _payment_for(resource: dict):
    order_id = _order_id(resource)
    if not order_id:
        raise RecordNotFound("Payment", "<no order id in capture resource>")
    payment = ledger.find_payment(order_id)
    if payment is None:
        raise RecordNotFound("Payment", order_id)
    return payment


def _subscription_for(resource: dict):
    external_id = resource.get("id")
    subscription = ledger.find_subscription(external_id) if external_id else None
    if subscription is None:
        raise RecordNotFound("Subscription", external_id)
    return subscription


# --------------------------------------------------------------------------
# handlers: one per event kind
# --------------------------------------------------------------------------
def _on_capture_completed(resource: dict) -> str:
    payment = _payment_for(resource)
    if ledger.settle_payment(payment):
        return f"payment {payment.id} succeeded"
    return f"payment {payment.id} already {payment.status}"


def _on_capture_denied(resource: dict) -> str:
    payment = _payment_for(resource)
    if ledger.fail_payment(payment):
        return f"payment {payment.id} failed"
    return f"payment {payment.id} already {payment.status}"


def subscription_period(resource: dict):
    """Billing bounds reported by the gateway, defaulting to now -> now+30d."""
    start = parse_gateway_time(resource.get("start_time"))
    end = parse_gateway_time((resource.get("billing_info") or {}).get("next_billing_time"))
    default_start, default_end = default_period()
    return start or default_start, end or default_end


def _on_subscription_activated(resource: dict) -> str:
    subscription = _subscription_for(resource)
    start, end = subscription_period(resource)
    changed = ledger.transition_subscription(
        subscription, SUB_ACTIVE, current_period_start=start, current_period_end=end,
    )
    if changed:
        return f"subscription {subscription.id} active"
    return f"subscription {subscription.id} is {subscription.status}; activation ignored"


def _on_subscription_cancelled(resource: dict) -> str:
    subscription = _subscription_for(resource)
    if ledger.transition_subscription(subscription, SUB_CANCELED):
        return f"subscription {subscription.id} canceled"
    return f"subscription {subscription.id} already canceled"


def _on_subscription_payment_failed(resource: dict) -> str:
    subscription = _subscription_for(resource)
    if ledger.transition_subscription(subscription, SUB_PAST_DUE):
        return f"subscription {subscription.id} past_due"
    return f"subscription {subscription.id} is {subscription.status}; past_due ignored"


def _on_unrecognized(resource: dict) -> str:
    return "ignored"


HANDLERS: Dict[WebhookEventKind, Callable[[dict], str]] = {
    WebhookEventKind.PAYMENT_CAPTURE_COMPLETED: _on_capture_completed,
    WebhookEventKind.PAYMENT_CAPTURE_DENIED: _on_capture_denied,
    WebhookEventKind.SUBSCRIPTION_ACTIVATED: _on_subscription_activated,
    WebhookEventKind.SUBSCRIPTION_CANCELLED: _on_subscription_cancelled,
    WebhookEventKind.SUBSCRIPTION_PAYMENT_FAILED: _on_subscription_payment_failed,
    WebhookEventKind.UNRECOGNIZED: _on_unrecognized,
}


def dispatch(event: dict) -> str:
    """Runs the handler for one event; a missing local record is not an error."""
    event_type = event.get("event_type")
    kind = WebhookEventKind.parse(event_type)
    resource = event.get("resource") or {}
    if not isinstance(resource, dict):
        current_app.logger.warning("PayPal webhook %s has a malformed resource (%s); acknowledged",
                                   event_type, type(resource).__name__)
        return "malformed resource"
    if kind is WebhookEventKind.UNRECOGNIZED:
        current_app.logger.info("Unhandled PayPal webhook event: %s", event_type)
    try:
        outcome = HANDLERS[kind](resource)
    except RecordNotFound as exc:
        current_app.logger.info("PayPal webhook %s: %s (nothing to reconcile)", event_type, exc)
        outcome = "no local record"
    return outcome


# --------------------------------------------------------------------------
# entry point
# --------------------------------------------------------------------------
def _decode(body) -> List[dict]:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        body = json.loads(body)
    events = body if isinstance(body, list) else [body]
    if not events or not all(isinstance(e, dict) for e in events):
        raise ValueError("webhook body must be a JSON object or a list of objects")
    return events


def verify_event(event: dict, headers) -> None:
    """Raises WebhookVerificationError unless PayPal confirms the signature."""
    if not current_app.config.get("PAYPAL_VERIFY_WEBHOOKS", True):
        return
    webhook_id = current_app.config.get("PAYPAL_WEBHOOK_ID")
    if not webhook_id:
        raise WebhookVerificationError("PAYPAL_WEBHOOK_ID is not configured")
    try:
        verified = get_gateway().verify_webhook_signature(headers or {}, event, webhook_id)
    except GatewayError as exc:
        raise WebhookVerificationError(f"signature check failed: {exc}") from exc
    if not verified:
        raise WebhookVerificationError("invalid webhook signature")


def handle_webhook(body, headers) -> Dict[str, Any]:
    """
    Verifies and applies a webhook delivery. Never raises: the result carries
    ``success`` and ``message`` (and ``reason`` on failure) so the transport
    can answer the gateway's retry mechanism.
    """
    try:
        events = _decode(body)
    except (ValueError, UnicodeDecodeError, RecursionError) as exc:
        current_app.logger.warning("Rejected PayPal webhook with invalid body: %s", exc)
        return {"success": False, "message": f"Invalid webhook body: {exc}", "reason": "invalid_body"}

    try:
        for event in events:
            verify_event(event, headers)
    except WebhookVerificationError as exc:
        current_app.logger.warning("Rejected unverified PayPal webhook: %s", exc)
        return {"success": False, "message": str(exc), "reason": "invalid_signature"}
    except Exception as exc:
        current_app.logger.exception("PayPal webhook signature check crashed")
        return {"success": False, "message": f"Signature check failed: {exc}",
                "reason": "invalid_signature"}

    errors = []
    for event in events:
        event_id = event.get("id")
        event_type = event.get("event_type") or "UNKNOWN"
        try:
            if event_id and ledger.webhook_event_seen(event_id):
                current_app.logger.info("PayPal webhook %s already processed", event_id)
                continue
            outcome = dispatch(event)
            if event_id:
                resource = event.get("resource")
                ledger.record_webhook_event(
                    event_id, event_type,
                    resource.get("id") if isinstance(resource, dict) else None,
                )
            current_app.logger.info("PayPal webhook %s (%s): %s", event_id, event_type, outcome)
        except Exception as exc:
            current_app.logger.exception("PayPal webhook processing error (%s)", event_type)
            errors.append(f"{event_type}: {exc}")

    if errors:
        return {
            "success": False,
            "message": "Failed to process PayPal webhook: " + "; ".join(errors),
            "reason": "processing_error",
        }
    return {"success": True, "message": "Webhook processed successfully"}
