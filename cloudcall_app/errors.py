# cloudcall_app/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations


class BillingError(Exception):
    """Base class for payment/subscription orchestration failures."""


class GatewayError(BillingError):
    """The call to the payment gateway itself failed (network, auth, rejection)."""

    def __init__(self, message: str, status_code: int | None = None,
                 name: str | None = None, details=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.name = name
        self.details = details or []

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "gateway_status": self.status_code,
            "gateway_error": self.name,
        }


class NotTerminalYet(BillingError):
    """The gateway answered but reports a status that is not final."""

    def __init__(self, status: str | None):
        super().__init__(f"gateway status is not terminal: {status}")
        self.status = status


class RecordNotFound(BillingError):
    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class WebhookVerificationError(BillingError):
    """The webhook could not be proven to come from the gateway."""
