"""Connect blueprint — /api/connect/*

Express account onboarding and status for sellers.

Route Map:
  POST /api/connect/accounts         — create (or reuse) a user's Express account
  GET  /api/connect/accounts         — list accounts, newest first
  POST /api/connect/onboarding-link  — hosted onboarding AccountLink
  POST /api/connect/login-link       — Express dashboard login link
  GET  /api/connect/account-status   — fetch from Stripe, mirror locally
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from connectpay.errors import ServiceError
from connectpay.extensions import db
from connectpay.services import account_service, stripe_service
from connectpay.utils import first_value, isoformat, request_json
from connectpay.validation import (
    RequestValidationError,
    parse_account_link,
    parse_account_ref,
    parse_create_account,
)

logger = logging.getLogger(__name__)

connect_bp = Blueprint("connect", __name__, url_prefix="/api/connect")


def _failure(error, e):
    """500 response for an unexpected error inside a route."""
    logger.error(f"{error}: {e}", exc_info=True)
    db.session.rollback()
    return jsonify({"error": error, "message": str(e)}), 500


def _query_args():
    return {
        "userId": first_value(request.args.getlist("userId")),
        "stripeAccountId": first_value(request.args.getlist("stripeAccountId")),
    }


@connect_bp.route("/accounts", methods=["POST"])
def create_account():
    """Create an Express connected account for a user.

    Reuses the existing account if the user already has one (200),
    otherwise creates it in Stripe and persists a snapshot (201).
    """
    try:
        data = parse_create_account(request_json())
    except RequestValidationError as e:
        return jsonify({"error": "Invalid body", "issues": e.issues}), 400

    try:
        account, reused = account_service.get_or_create_connected_account(
            db.session, data["user_id"]
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        return _failure("Failed to create connected account", e)

    return jsonify({
        "stripeAccountId": account.stripe_account_id,
        "reused": reused,
    }), 200 if reused else 201


@connect_bp.route("/accounts", methods=["GET"])
def list_accounts():
    """Admin listing. Optional ?userId= or ?stripeAccountId= filter."""
    args = _query_args()
    try:
        rows = account_service.list_connected_accounts(
            db.session,
            user_id=args["userId"],
            stripe_account_id=args["stripeAccountId"],
            limit=current_app.config["ACCOUNT_LIST_LIMIT"],
        )
    except Exception as e:
        return _failure("Failed to list connected accounts", e)

    return jsonify([
        {
            **row.to_status(),
            "user": row.user.to_summary() if row.user else None,
            "createdAt": isoformat(row.created_at),
            "updatedAt": isoformat(row.updated_at),
        }
        for row in rows
    ]), 200


@connect_bp.route("/onboarding-link", methods=["POST"])
def create_onboarding_link():
    """Create a Stripe-hosted onboarding link for identity verification."""
    try:
        data = parse_account_link(request_json())
    except RequestValidationError as e:
        return jsonify({"error": "Invalid body", "issues": e.issues}), 400

    try:
        stripe_account_id = account_service.resolve_stripe_account_id(
            db.session, data["user_id"], data["stripe_account_id"]
        )
        link = stripe_service.create_account_link(
            stripe_account_id, data["refresh_url"], data["return_url"]
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        return _failure("Failed to create account link", e)

    return jsonify({"url": link.url, "expiresAt": link.expires_at}), 201


@connect_bp.route("/login-link", methods=["POST"])
def create_login_link():
    """Create a one-time login link to the seller's Express dashboard."""
    try:
        data = parse_account_ref(request_json())
    except RequestValidationError as e:
        return jsonify({"error": "Invalid body", "issues": e.issues}), 400

    try:
        stripe_account_id = account_service.resolve_stripe_account_id(
            db.session, data["user_id"], data["stripe_account_id"]
        )
        link = stripe_service.create_login_link(stripe_account_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        return _failure("Failed to create login link", e)

    return jsonify({"url": link.url}), 201


@connect_bp.route("/account-status", methods=["GET"])
def account_status():
    """Fetch the latest account state from Stripe and sync it to the DB."""
    try:
        data = parse_account_ref(_query_args())
    except RequestValidationError as e:
        return jsonify({"error": "Invalid query", "issues": e.issues}), 400

    try:
        stripe_account_id = account_service.resolve_stripe_account_id(
            db.session, data["user_id"], data["stripe_account_id"]
        )
        account = account_service.refresh_account_status(db.session, stripe_account_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        return _failure("Failed to retrieve account", e)

    return jsonify({
        "stripeAccountId": account.get("id"),
        "chargesEnabled": bool(account.get("charges_enabled")),
        "payoutsEnabled": bool(account.get("payouts_enabled")),
        "detailsSubmitted": bool(account.get("details_submitted")),
        "country": account.get("country"),
        "defaultCurrency": account.get("default_currency"),
    }), 200
