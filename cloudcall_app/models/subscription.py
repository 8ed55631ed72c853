# cloudcall_app/models/subscription.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

SUB_PENDING = "pending"
SUB_ACTIVE = "active"
SUB_PAST_DUE = "past_due"
SUB_CANCELED = "canceled"
SUB_STATUSES = (SUB_PENDING, SUB_ACTIVE, SUB_PAST_DUE, SUB_CANCELED)

class Subscription(db.Model):
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.UniqueConstraint("gateway", "external_reference", name="uq_subscriptions_gateway_reference"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # one subscription row per tenant; re-subscribing updates it in place
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), unique=True, nullable=False)

    gateway = db.Column(db.String(32), nullable=False, default="paypal")
    external_reference = db.Column(db.String(120), index=True)
    gateway_plan_id = db.Column(db.String(120))
    plan_type = db.Column(db.String(30), nullable=False, default="basic")

    status = db.Column(db.String(20), nullable=False, default=SUB_PENDING)  # pending, active, past_due, canceled
    quantity = db.Column(db.Integer, nullable=False, default=1)
    current_period_start = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    canceled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = db.relationship("Tenant", backref=db.backref("subscription", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "gateway": self.gateway,
            "external_reference": self.external_reference,
            "gateway_plan_id": self.gateway_plan_id,
            "plan_type": self.plan_type,
            "status": self.status,
            "quantity": self.quantity,
            "current_period_start": self.current_period_start.isoformat() if self.current_period_start else None,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
        }
