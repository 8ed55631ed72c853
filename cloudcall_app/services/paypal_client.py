# cloudcall_app/services/paypal_client.py
# -*- coding: utf-8 -*-
"""Thin PayPal REST client: OAuth2 token, orders, subscriptions, plans, webhooks."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

import requests

from ..errors import GatewayError

PAYPAL_BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "production": "https://api-m.paypal.com",
}

# headers PayPal sends with every webhook delivery
WEBHOOK_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


def base_url_for(environment: str) -> str:
    return PAYPAL_BASE_URLS.get((environment or "sandbox").lower(), PAYPAL_BASE_URLS["sandbox"])


def approval_link(resource: Dict[str, Any]) -> Optional[str]:
    """href of the link the payer must visit to approve an order/subscription."""
    for link in resource.get("links") or []:
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


class PayPalClient:
    def __init__(self, client_id: str, client_secret: str,
                 base_url: str = PAYPAL_BASE_URLS["sandbox"], timeout: float = 30):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not self.client_id or not self.client_secret:
            raise GatewayError("PayPal credentials are not configured")
        try:
            resp = requests.post(
                f"{self.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(f"PayPal authentication failed: {exc}") from exc
        data = self._parse(resp, "authenticate")
        token = data.get("access_token")
        if not token:
            raise GatewayError("PayPal authentication returned no access token",
                               status_code=resp.status_code)
        # refresh a minute early
        self._token = token
        self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 0)) - 60, 0)
        return token

    def _request(self, method: str, path: str, payload: Optional[dict] = None,
                 action: str = "request") -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        send = getattr(requests, method.lower())
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if payload is not None:
            kwargs["json"] = payload
        try:
            resp = send(f"{self.base_url}{path}", **kwargs)
        except requests.RequestException as exc:
            raise GatewayError(f"Failed to {action}: {exc}") from exc
        if resp.status_code == 401:
            self._token = None
        return self._parse(resp, action)

    @staticmethod
    def _parse(resp, action: str) -> Dict[str, Any]:
        if resp.status_code == 204:
            return {}
        try:
            data = resp.json()
        except ValueError:
            data = None
        if resp.status_code >= 400:
            body = data if isinstance(data, dict) else {}
            message = (
                body.get("message")
                or body.get("error_description")
                or getattr(resp, "text", "")
                or "gateway error"
            )
            raise GatewayError(
                f"Failed to {action}: {message}",
                status_code=resp.status_code,
                name=body.get("name") or body.get("error"),
                details=body.get("details"),
            )
        if not isinstance(data, dict):
            raise GatewayError(f"Failed to {action}: unexpected gateway response",
                               status_code=resp.status_code)
        return data

    # ------------------------------------------------------------------
    # orders
    # ------------------------------------------------------------------
    def create_order(self, body: dict) -> Dict[str, Any]:
        return self._request("POST", "/v2/checkout/orders", body, action="create PayPal order")

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/v2/checkout/orders/{order_id}/capture", {},
                             action="capture PayPal order")

    # ------------------------------------------------------------------
    # subscriptions / plans
    # ------------------------------------------------------------------
    def create_subscription(self, body: dict) -> Dict[str, Any]:
        return self._request("POST", "/v1/billing/subscriptions", body,
                             action="create PayPal subscription")

    def cancel_subscription(self, subscription_id: str, reason: str) -> Dict[str, Any]:
        return self._request("POST", f"/v1/billing/subscriptions/{subscription_id}/cancel",
                             {"reason": reason}, action="cancel PayPal subscription")

    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v1/billing/subscriptions/{subscription_id}",
                             action="get PayPal subscription")

    def create_billing_plan(self, body: dict) -> Dict[str, Any]:
        return self._request("POST", "/v1/billing/plans", body, action="create PayPal billing plan")

    # ------------------------------------------------------------------
    # webhooks
    # ------------------------------------------------------------------
    def verify_webhook_signature(self, headers, event: dict, webhook_id: str) -> bool:
        """Asks PayPal whether ``event`` was really signed for ``webhook_id``."""
        body = {"webhook_id": webhook_id, "webhook_event": event}
        for field, header in WEBHOOK_HEADERS.items():
            value = headers.get(header) or headers.get(header.lower())
            if not value:
                return False
            body[field] = value
        result = self._request("POST", "/v1/notifications/verify-webhook-signature", body,
                               action="verify PayPal webhook signature")
        return result.get("verification_status") == "SUCCESS"
