# cloudcall_app/blueprints/billing.py
from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app

from ..decorators import tenant_required, admin_required, current_tenant_id
from ..errors import GatewayError, RecordNotFound
from ..services import payment_service, subscription_service
from ..services.webhook_service import handle_webhook

bp = Blueprint("billing", __name__, url_prefix="/billing/paypal")

def _json_body() -> dict:
    return request.get_json(silent=True) or {}

@bp.errorhandler(ValueError)
def _bad_request(err):
    return jsonify(error=str(err)), 400

@bp.errorhandler(RecordNotFound)
def _not_found(err):
    return jsonify(error=str(err)), 404

@bp.errorhandler(GatewayError)
def _gateway_failed(err):
    return jsonify(err.to_dict()), 502

@bp.route("/orders", methods=["POST"])
@tenant_required
def create_order():
    data = _json_body()
    result = payment_service.create_order(
        tenant_id=current_tenant_id(),
        amount=data.get("amount"),
        currency=data.get("currency"),
        description=data.get("description"),
        invoice_id=data.get("invoice_id"),
    )
    return jsonify(
        message="PayPal order created successfully",
        order_id=result["external_order_id"],
        approval_url=result["approval_url"],
        payment=result["payment"].to_dict(),
    ), 201

@bp.route("/capture/<order_id>", methods=["POST"])
@tenant_required
def capture_order(order_id: str):
    result = payment_service.capture_order(order_id, current_tenant_id())
    return jsonify(
        message="PayPal order captured successfully" if result["success"] else "PayPal order not completed yet",
        success=result["success"],
        capture=result["capture"],
        payment=result["payment"].to_dict(),
    )

@bp.route("/subscription", methods=["POST"])
@tenant_required
def create_subscription():
    data = _json_body()
    payer = data.get("payer_info")
    if payer is not None and not isinstance(payer, dict):
        raise ValueError("payer_info must be an object")
    result = subscription_service.create_subscription(
        plan_id=data.get("plan_id"),
        tenant_id=current_tenant_id(),
        payer_info=payer,
    )
    return jsonify(
        message="PayPal subscription created successfully",
        subscription_id=result["external_subscription_id"],
        approval_url=result["approval_url"],
        subscription=result["subscription"].to_dict(),
    ), 201

@bp.route("/subscription/<subscription_id>", methods=["GET"])
@tenant_required
def get_subscription(subscription_id: str):
    return jsonify(subscription_service.get_subscription(subscription_id))

@bp.route("/subscription/<subscription_id>/cancel", methods=["POST"])
@admin_required
def cancel_subscription(subscription_id: str):
    data = _json_body()
    result = subscription_service.cancel_subscription(subscription_id, data.get("reason"))
    return jsonify(result)

@bp.route("/plans", methods=["POST"])
@admin_required
def create_billing_plan():
    data = _json_body()
    plan = subscription_service.create_billing_plan(
        name=data.get("name") or "",
        description=data.get("description") or "",
        amount=data.get("amount"),
        currency=data.get("currency") or "USD",
        interval=data.get("interval") or "MONTH",
        interval_count=data.get("interval_count") or 1,
        product_id=data.get("product_id"),
    )
    return jsonify(plan), 201

# -------- PayPal Webhook --------
@bp.route("/webhook", methods=["POST"])  # configure the endpoint in the PayPal dashboard
def paypal_webhook():
    result = handle_webhook(request.get_data(), request.headers)
    if result["success"]:
        return jsonify(result)
    # 400: malformed or unverified delivery; 500: PayPal redelivers
    status = 400 if result.get("reason") in ("invalid_body", "invalid_signature") else 500
    current_app.logger.warning("PayPal webhook answered %s: %s", status, result["message"])
    return jsonify(result), status
