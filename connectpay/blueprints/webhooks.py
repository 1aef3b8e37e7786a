"""Webhooks blueprint — /stripe/webhooks

Receives Stripe webhook events.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from connectpay.extensions import db
from connectpay.services.stripe_service import verify_webhook_signature
from connectpay.services.webhook_service import handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/stripe")


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body bytes (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via webhook_events table)
    4. Return 200 to acknowledge, 500 so Stripe retries on failure
    """
    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 400

    # --- Verify signature ---
    check = verify_webhook_signature(
        payload, sig_header, current_app.config.get("STRIPE_WEBHOOK_SECRET")
    )
    if not check.ok:
        logger.warning(f"Webhook signature verification failed: {check.message}")
        return jsonify({
            "error": "Signature verification failed",
            "message": check.message,
        }), 400

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(db.session, check.event)

    if success:
        return jsonify({
            "received": True,
            "duplicate": message == "already_processed",
            "status": message,
        }), 200
    else:
        logger.error(f"Webhook processing failed: {message}")
        return jsonify({
            "error": "Webhook processing failed",
            "message": message,
        }), 500
