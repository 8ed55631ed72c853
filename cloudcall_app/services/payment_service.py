# cloudcall_app/services/payment_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from flask import current_app

from ..errors import GatewayError, NotTerminalYet, RecordNotFound
from ..models.payment import PAYMENT_SUCCEEDED
from . import ledger
from .gateway_service import get_gateway
from .paypal_client import approval_link

DEFAULT_CURRENCY = "USD"
DEFAULT_DESCRIPTION = "Cloud Call Center Payment"
CAPTURE_COMPLETED = "COMPLETED"
# currencies PayPal does not accept decimals for
ZERO_DECIMAL_CURRENCIES = {"HUF", "JPY", "TWD"}


def to_gateway_amount(amount: int, currency: str) -> str:
    """Minor units (int) -> decimal string, only at the gateway boundary."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return str(amount)
    return str((Decimal(amount) / Decimal(100)).quantize(Decimal("0.01")))


def _validate_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("amount must be an integer in minor currency units")
    if amount <= 0:
        raise ValueError("amount must be positive")
    return amount


def _order_request(*, amount: int, currency: str, description: str, custom_id: str) -> dict:
    cfg = current_app.config
    return {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {
                "currency_code": currency,
                "value": to_gateway_amount(amount, currency),
            },
            "description": description,
            "custom_id": custom_id,
            "soft_descriptor": "CLOUDCALL",
        }],
        "application_context": {
            "brand_name": cfg.get("PAYPAL_BRAND_NAME", "Cloud Call Center"),
            "landing_page": "NO_PREFERENCE",
            "user_action": "PAY_NOW",
            "return_url": cfg.get("PAYPAL_RETURN_URL"),
            "cancel_url": cfg.get("PAYPAL_CANCEL_URL"),
        },
    }


def create_order(tenant_id: int, amount: int, currency: Optional[str] = None,
                 description: Optional[str] = None, invoice_id: Optional[int] = None) -> dict:
    """
    Opens a gateway order and records the local Payment as pending.

    The Payment row is written only after the gateway confirms the order id;
    a gateway failure leaves nothing behind.
    """
    amount = _validate_amount(amount)
    currency = (currency or DEFAULT_CURRENCY).upper()
    description = description or DEFAULT_DESCRIPTION
    if invoice_id is not None and ledger.find_invoice(invoice_id, tenant_id) is None:
        raise RecordNotFound("Invoice", invoice_id)
    # lets the gateway-side record be traced back without our database
    custom_id = str(invoice_id) if invoice_id else f"tenant_{tenant_id}"

    body = _order_request(amount=amount, currency=currency, description=description,
                          custom_id=custom_id)
    try:
        order = get_gateway().create_order(body)
    except GatewayError:
        current_app.logger.exception("PayPal create order failed (tenant=%s)", tenant_id)
        raise

    order_id = order.get("id")
    if not order_id:
        raise GatewayError("Failed to create PayPal order: response has no order id")

    payment = ledger.create_payment(
        tenant_id=tenant_id,
        invoice_id=invoice_id,
        amount=amount,
        currency=currency.lower(),
        description=description,
        external_reference=order_id,
    )
    current_app.logger.info("PayPal order %s created for tenant %s (%s %s)",
                            order_id, tenant_id, amount, currency)
    return {
        "external_order_id": order_id,
        "approval_url": approval_link(order),
        "payment": payment,
        "order": order,
    }


def _require_completed(capture: dict) -> None:
    status = capture.get("status")
    if status != CAPTURE_COMPLETED:
        raise NotTerminalYet(status)


def capture_order(external_order_id: str, tenant_id: int) -> dict:
    """
    Captures an approved order and settles the tenant's Payment.

    - COMPLETED: pending -> succeeded (+ invoice credit), once.
    - any other capture status: payment stays pending, success=False.
    - gateway call error: pending -> failed, GatewayError re-raised.
    """
    payment = ledger.find_payment(external_order_id, tenant_id=tenant_id)
    if payment is None:
        raise RecordNotFound("Payment", external_order_id)

    try:
        capture = get_gateway().capture_order(external_order_id)
    except GatewayError:
        current_app.logger.exception("PayPal capture failed for order %s", external_order_id)
        payment = ledger.find_payment(external_order_id, tenant_id=tenant_id)
        if payment is not None and ledger.fail_payment(payment):
            current_app.logger.warning("Payment %s marked failed after capture error", payment.id)
        raise

    try:
        _require_completed(capture)
    except NotTerminalYet as exc:
        current_app.logger.info("Order %s captured with status %s; payment left pending",
                                external_order_id, exc.status)
        return {"capture": capture, "payment": payment, "success": False}

    if ledger.settle_payment(payment):
        current_app.logger.info("Payment %s settled by capture of order %s",
                                payment.id, external_order_id)
    else:
        # webhook or an earlier capture already decided the outcome
        current_app.logger.info("Payment %s already %s; capture is a no-op",
                                payment.id, payment.status)
    return {"capture": capture, "payment": payment,
            "success": payment.status == PAYMENT_SUCCEEDED}
