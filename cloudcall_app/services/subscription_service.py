# cloudcall_app/services/subscription_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from ..errors import GatewayError
from ..models.subscription import SUB_ACTIVE, SUB_CANCELED, SUB_PAST_DUE, SUB_PENDING
from . import ledger
from .gateway_service import get_gateway
from .payment_service import to_gateway_amount
from .paypal_client import approval_link

DEFAULT_CANCEL_REASON = "User requested cancellation"
DEFAULT_PERIOD = timedelta(days=30)
PLAN_INTERVALS = ("MONTH", "YEAR")

# PayPal subscription status -> local status
GATEWAY_STATUS_MAP = {
    "APPROVAL_PENDING": SUB_PENDING,
    "APPROVED": SUB_PENDING,
    "ACTIVE": SUB_ACTIVE,
    "SUSPENDED": SUB_PAST_DUE,
    "CANCELLED": SUB_CANCELED,
    "EXPIRED": SUB_CANCELED,
}


def _now():
    return datetime.utcnow()


def local_status(gateway_status: Optional[str]) -> str:
    return GATEWAY_STATUS_MAP.get((gateway_status or "").upper(), SUB_PENDING)


def resolve_plan_type(plan_id: str) -> str:
    """Gateway plan id -> internal tier; unmapped plans get the default tier."""
    tiers = current_app.config.get("PAYPAL_PLAN_TIERS") or {}
    return tiers.get(plan_id) or current_app.config.get("DEFAULT_PLAN_TYPE", "basic")


def default_period(start: Optional[datetime] = None):
    start = start or _now()
    return start, start + DEFAULT_PERIOD


def _subscription_request(plan_id: str, payer_info: Optional[dict]) -> dict:
    cfg = current_app.config
    body = {
        "plan_id": plan_id,
        # gateway rejects start times that are not in the future
        "start_time": (_now() + timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "quantity": "1",
        "application_context": {
            "brand_name": cfg.get("PAYPAL_BRAND_NAME", "Cloud Call Center"),
            "locale": "en-US",
            "shipping_preference": "NO_SHIPPING",
            "user_action": "SUBSCRIBE_NOW",
            "payment_method": {
                "payer_selected": "PAYPAL",
                "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED",
            },
            "return_url": cfg.get("PAYPAL_RETURN_URL"),
            "cancel_url": cfg.get("PAYPAL_CANCEL_URL"),
        },
    }
    if payer_info:
        body["subscriber"] = {
            "name": {
                "given_name": payer_info.get("first_name") or "",
                "surname": payer_info.get("last_name") or "",
            },
            "email_address": payer_info.get("email") or "",
        }
    return body


def create_subscription(plan_id: str, tenant_id: int, payer_info: Optional[dict] = None) -> dict:
    if not plan_id:
        raise ValueError("plan_id is required")

    try:
        gateway_sub = get_gateway().create_subscription(_subscription_request(plan_id, payer_info))
    except GatewayError:
        current_app.logger.exception("PayPal create subscription failed (tenant=%s)", tenant_id)
        raise

    external_id = gateway_sub.get("id")
    if not external_id:
        raise GatewayError("Failed to create PayPal subscription: response has no subscription id")

    # provisional period until a webhook reports the real billing bounds
    period_start, period_end = default_period()
    subscription = ledger.upsert_subscription(
        tenant_id,
        gateway=ledger.PAYPAL,
        external_reference=external_id,
        gateway_plan_id=plan_id,
        plan_type=resolve_plan_type(plan_id),
        status=local_status(gateway_sub.get("status")),
        quantity=1,
        current_period_start=period_start,
        current_period_end=period_end,
        canceled_at=None,
    )
    current_app.logger.info("PayPal subscription %s stored for tenant %s (%s)",
                            external_id, tenant_id, subscription.status)
    return {
        "external_subscription_id": external_id,
        "approval_url": approval_link(gateway_sub),
        "subscription": subscription,
        "gateway_subscription": gateway_sub,
    }


def cancel_subscription(external_subscription_id: str, reason: Optional[str] = None) -> dict:
    reason = reason or DEFAULT_CANCEL_REASON
    try:
        get_gateway().cancel_subscription(external_subscription_id, reason)
    except GatewayError:
        current_app.logger.exception("PayPal cancel failed for subscription %s",
                                     external_subscription_id)
        raise

    subscription = ledger.find_subscription(external_subscription_id)
    if subscription is None:
        # gateway is the source of truth; the gap is left for reconciliation
        current_app.logger.warning("Canceled PayPal subscription %s has no local record",
                                   external_subscription_id)
    elif not ledger.transition_subscription(subscription, SUB_CANCELED):
        current_app.logger.info("Subscription %s was already canceled", subscription.id)
    return {"success": True, "message": "Subscription canceled successfully"}


def get_subscription(external_subscription_id: str) -> dict:
    return get_gateway().get_subscription(external_subscription_id)


def create_billing_plan(name: str, description: str, amount: int, currency: str = "USD",
                        interval: str = "MONTH", interval_count: int = 1,
                        product_id: Optional[str] = None) -> dict:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError("amount must be a non-negative integer in minor currency units")
    interval = (interval or "").upper()
    if interval not in PLAN_INTERVALS:
        raise ValueError(f"interval must be one of {', '.join(PLAN_INTERVALS)}")
    currency = (currency or "USD").upper()

    body = {
        "product_id": product_id or current_app.config.get("PAYPAL_PRODUCT_ID"),
        "name": name,
        "description": description,
        "status": "ACTIVE",
        "billing_cycles": [{
            "frequency": {"interval_unit": interval, "interval_count": int(interval_count)},
            "tenure_type": "REGULAR",
            "sequence": 1,
            "total_cycles": 0,  # infinite
            "pricing_scheme": {
                "fixed_price": {"value": to_gateway_amount(amount, currency), "currency_code": currency},
            },
        }],
        "payment_preferences": {
            "auto_bill_outstanding": True,
            "setup_fee": {"value": to_gateway_amount(0, currency), "currency_code": currency},
            "setup_fee_failure_action": "CONTINUE",
            "payment_failure_threshold": 3,
        },
    }
    plan = get_gateway().create_billing_plan(body)
    current_app.logger.info("PayPal billing plan %s created (%s)", plan.get("id"), name)
    return plan
