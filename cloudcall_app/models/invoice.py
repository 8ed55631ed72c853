# cloudcall_app/models/invoice.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

INVOICE_OPEN = "open"
INVOICE_PAID = "paid"

class Invoice(db.Model):
    __tablename__ = "invoices"
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), index=True, nullable=False)
    invoice_number = db.Column(db.String(60))
    currency = db.Column(db.String(8), default="usd")
    total = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=INVOICE_OPEN)  # open, paid
    amount_paid = db.Column(db.Integer, nullable=False, default=0)
    amount_due = db.Column(db.Integer, nullable=False, default=0)
    paid_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
