# cloudcall_app/models/webhook_event.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

class WebhookEvent(db.Model):
    """Gateway deliveries already applied; redeliveries are acknowledged only."""
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.UniqueConstraint("gateway", "event_id", name="uq_webhook_events_gateway_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    gateway = db.Column(db.String(32), nullable=False, default="paypal")
    event_id = db.Column(db.String(120), nullable=False)
    event_type = db.Column(db.String(120), nullable=False)
    resource_id = db.Column(db.String(120))
    received_at = db.Column(db.DateTime, default=datetime.utcnow)
