# cloudcall_app/services/gateway_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app

from .paypal_client import PayPalClient, base_url_for

def _build_client(app):
    """Builds the PayPal client from the app config."""
    return PayPalClient(
        client_id=app.config.get("PAYPAL_CLIENT_ID", ""),
        client_secret=app.config.get("PAYPAL_CLIENT_SECRET", ""),
        base_url=base_url_for(app.config.get("PAYPAL_ENVIRONMENT", "sandbox")),
        timeout=app.config.get("PAYPAL_TIMEOUT", 30),
    )

def init_gateway(app):
    app.extensions["paypal"] = _build_client(app)

def get_gateway():
    """
    Returns the gateway client registered in app.extensions.
    Tests replace it with a fake exposing the same methods.
    """
    client = current_app.extensions.get("paypal")
    if client is None:
        client = _build_client(current_app)
        current_app.extensions["paypal"] = client
    return client
