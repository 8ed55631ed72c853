# cloudcall_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

PAYMENT_PENDING = "pending"
PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"
PAYMENT_TERMINAL = (PAYMENT_SUCCEEDED, PAYMENT_FAILED)

class Payment(db.Model):
    __tablename__ = "payments"
    __table_args__ = (
        # the gateway order id is the join key with webhook events
        db.UniqueConstraint("gateway", "external_reference", name="uq_payments_gateway_reference"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), index=True, nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)

    # always minor units (cents) to avoid float drift
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="usd")
    status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING)  # pending, succeeded, failed
    payment_method = db.Column(db.String(30))                                    # paypal, card, manual
    description = db.Column(db.String(255))

    gateway = db.Column(db.String(32), nullable=False, default="paypal")
    external_reference = db.Column(db.String(120), index=True)

    paid_at = db.Column(db.DateTime)
    failed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy="dynamic"))

    @property
    def is_terminal(self) -> bool:
        return self.status in PAYMENT_TERMINAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_id": self.invoice_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "payment_method": self.payment_method,
            "description": self.description,
            "gateway": self.gateway,
            "external_reference": self.external_reference,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }
