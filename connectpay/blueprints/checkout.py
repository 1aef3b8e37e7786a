"""Checkout blueprint — /api/checkout, /api/payment-intents

Destination charges: the platform collects the payment, keeps its fee and
Stripe transfers the rest to the seller's connected account. The Order
itself is written later by the payment_intent.succeeded webhook.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from connectpay.errors import ServiceError
from connectpay.extensions import db
from connectpay.services import account_service, stripe_service
from connectpay.utils import first_value, request_json
from connectpay.validation import (
    RequestValidationError,
    parse_checkout,
    parse_payment_intent,
)

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


@checkout_bp.route("/checkout", methods=["POST"])
def create_checkout():
    """Create a hosted Checkout Session for a single price.

    Honours an optional Idempotency-Key header so client retries don't
    open duplicate sessions.
    """
    try:
        data = parse_checkout(
            request_json(), current_app.config["DEFAULT_FEE_PERCENT"]
        )
    except RequestValidationError as e:
        return jsonify({"error": "Invalid body", "issues": e.issues}), 400

    idempotency_key = first_value(request.headers.getlist("Idempotency-Key"))

    try:
        seller = account_service.resolve_stripe_account_id(
            db.session, data["user_id"], data["stripe_account_id"]
        )
        session = stripe_service.create_checkout_session(
            seller,
            price_id=data["price_id"],
            quantity=data["quantity"],
            fee_percent=data["fee_percent"],
            buyer_id=data["buyer_id"],
            success_url=data["success_url"],
            cancel_url=data["cancel_url"],
            idempotency_key=idempotency_key,
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.error(f"Checkout error: {e}", exc_info=True)
        return jsonify({
            "error": "Failed to create checkout session",
            "message": str(e),
        }), 500

    return jsonify({"url": session.url, "sessionId": session.id}), 201


@checkout_bp.route("/payment-intents", methods=["POST"])
def create_payment_intent():
    """Create a PaymentIntent for a custom amount (Payment Element flows)."""
    try:
        data = parse_payment_intent(
            request_json(), current_app.config["DEFAULT_FEE_PERCENT"]
        )
    except RequestValidationError as e:
        return jsonify({"error": "Invalid body", "issues": e.issues}), 400

    try:
        seller = account_service.resolve_stripe_account_id(
            db.session, data["user_id"], data["stripe_account_id"]
        )
        payment_intent, platform_fee = stripe_service.create_payment_intent(
            seller,
            amount=data["amount"],
            currency=data["currency"],
            fee_percent=data["fee_percent"],
            buyer_id=data["buyer_id"],
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        logger.error(f"PaymentIntent error: {e}", exc_info=True)
        return jsonify({
            "error": "Failed to create PaymentIntent",
            "message": str(e),
        }), 500

    return jsonify({
        "paymentIntentId": payment_intent.id,
        "clientSecret": payment_intent.client_secret,
        "amount": data["amount"],
        "platformFee": platform_fee,
    }), 201
