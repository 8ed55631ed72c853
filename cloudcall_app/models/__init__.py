# cloudcall_app/models/__init__.py
# -*- coding: utf-8 -*-
from .tenant import Tenant
from .invoice import Invoice
from .payment import Payment
from .subscription import Subscription
from .webhook_event import WebhookEvent


__all__ = [
    "Tenant",
    "Invoice",
    "Payment",
    "Subscription",
    "WebhookEvent",
]
