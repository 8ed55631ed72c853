# cloudcall_app/services/ledger.py
# -*- coding: utf-8 -*-
"""
Read/write contract over the payment ledger.

Three writers touch the same rows (order/capture, subscription calls and the
webhook reconciler), so every status change is a conditional UPDATE:
``WHERE id = :id AND status IN (:allowed)``. The caller learns from the
return value whether *it* performed the transition; side effects (invoice
credit) only follow a transition that actually happened.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, Payment, Subscription, WebhookEvent
from ..models.invoice import INVOICE_PAID
from ..models.payment import PAYMENT_FAILED, PAYMENT_PENDING, PAYMENT_SUCCEEDED
from ..models.subscription import SUB_ACTIVE, SUB_CANCELED, SUB_PAST_DUE, SUB_PENDING

PAYPAL = "paypal"

PAYMENT_ALLOWED_FROM = {
    PAYMENT_SUCCEEDED: (PAYMENT_PENDING,),
    PAYMENT_FAILED: (PAYMENT_PENDING,),
}

SUBSCRIPTION_ALLOWED_FROM = {
    SUB_ACTIVE: (SUB_PENDING, SUB_ACTIVE, SUB_PAST_DUE),
    SUB_PAST_DUE: (SUB_ACTIVE,),
    SUB_CANCELED: (SUB_PENDING, SUB_ACTIVE, SUB_PAST_DUE),
}


def _now():
    # naive UTC, same as the column defaults
    return datetime.utcnow()


def _conditional_update(model, row_id: int, allowed: Iterable[str], values: dict):
    stmt = (
        update(model)
        .where(model.id == row_id, model.status.in_(tuple(allowed)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt)


# --------------------------------------------------------------------------
# Payments
# --------------------------------------------------------------------------
def create_payment(*, tenant_id: int, amount: int, currency: str, external_reference: str,
                   invoice_id: Optional[int] = None, description: Optional[str] = None,
                   payment_method: str = PAYPAL, gateway: str = PAYPAL) -> Payment:
    payment = Payment(
        tenant_id=tenant_id,
        invoice_id=invoice_id,
        amount=amount,
        currency=currency,
        status=PAYMENT_PENDING,
        payment_method=payment_method,
        description=description,
        gateway=gateway,
        external_reference=external_reference,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def find_payment(external_reference: str, tenant_id: Optional[int] = None,
                 gateway: str = PAYPAL) -> Optional[Payment]:
    stmt = select(Payment).where(
        Payment.gateway == gateway,
        Payment.external_reference == external_reference,
    )
    if tenant_id is not None:
        stmt = stmt.where(Payment.tenant_id == tenant_id)
    return db.session.execute(stmt).scalar_one_or_none()


def find_invoice(invoice_id: int, tenant_id: int) -> Optional[Invoice]:
    return db.session.execute(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
    ).scalar_one_or_none()


def settle_payment(payment: Payment) -> bool:
    """pending -> succeeded, crediting the linked invoice in the same transaction.

    Returns False (and touches nothing) when another writer got there first.
    """
    now = _now()
    try:
        result = _conditional_update(
            Payment, payment.id, PAYMENT_ALLOWED_FROM[PAYMENT_SUCCEEDED],
            {"status": PAYMENT_SUCCEEDED, "paid_at": now},
        )
        changed = result.rowcount == 1
        if changed and payment.invoice_id:
            db.session.execute(
                update(Invoice)
                .where(Invoice.id == payment.invoice_id, Invoice.tenant_id == payment.tenant_id,
                       Invoice.status != INVOICE_PAID)
                .values(status=INVOICE_PAID, paid_at=now, amount_paid=payment.amount, amount_due=0)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return changed


def fail_payment(payment: Payment) -> bool:
    """pending -> failed. A payment already settled is never downgraded."""
    try:
        result = _conditional_update(
            Payment, payment.id, PAYMENT_ALLOWED_FROM[PAYMENT_FAILED],
            {"status": PAYMENT_FAILED, "failed_at": _now()},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return result.rowcount == 1


# --------------------------------------------------------------------------
# Subscriptions
# --------------------------------------------------------------------------
def find_subscription(external_reference: str, gateway: str = PAYPAL) -> Optional[Subscription]:
    return db.session.execute(
        select(Subscription).where(
            Subscription.gateway == gateway,
            Subscription.external_reference == external_reference,
        )
    ).scalar_one_or_none()


def find_subscription_for_tenant(tenant_id: int) -> Optional[Subscription]:
    return db.session.execute(
        select(Subscription).where(Subscription.tenant_id == tenant_id)
    ).scalar_one_or_none()


def upsert_subscription(tenant_id: int, **fields) -> Subscription:
    """Insert the tenant's subscription, or overwrite the existing row in place."""
    sub = find_subscription_for_tenant(tenant_id)
    if sub is None:
        sub = Subscription(tenant_id=tenant_id, **fields)
        db.session.add(sub)
        try:
            db.session.commit()
            return sub
        except IntegrityError:
            # lost the race against a concurrent insert for the same tenant
            db.session.rollback()
            sub = find_subscription_for_tenant(tenant_id)
            if sub is None:
                raise
    for key, value in fields.items():
        setattr(sub, key, value)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return sub


def transition_subscription(subscription: Subscription, to_status: str, **fields) -> bool:
    values = {"status": to_status}
    if to_status == SUB_CANCELED:
        values["canceled_at"] = fields.pop("canceled_at", None) or _now()
    values.update(fields)
    try:
        result = _conditional_update(
            Subscription, subscription.id, SUBSCRIPTION_ALLOWED_FROM[to_status], values,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    return result.rowcount == 1


def subscriptions_to_sync(limit: int = 100) -> list[Subscription]:
    return list(db.session.execute(
        select(Subscription)
        .where(
            Subscription.status.in_((SUB_PENDING, SUB_PAST_DUE)),
            Subscription.external_reference.is_not(None),
        )
        .order_by(Subscription.updated_at.asc())
        .limit(limit)
    ).scalars())


# --------------------------------------------------------------------------
# Webhook delivery log
# --------------------------------------------------------------------------
def webhook_event_seen(event_id: str, gateway: str = PAYPAL) -> bool:
    return db.session.execute(
        select(WebhookEvent.id).where(
            WebhookEvent.gateway == gateway,
            WebhookEvent.event_id == event_id,
        )
    ).first() is not None


def record_webhook_event(event_id: str, event_type: str, resource_id: Optional[str] = None,
                         gateway: str = PAYPAL) -> bool:
    """Returns False if the event id was already recorded by a concurrent delivery."""
    db.session.add(WebhookEvent(
        gateway=gateway, event_id=event_id, event_type=event_type, resource_id=resource_id,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True
