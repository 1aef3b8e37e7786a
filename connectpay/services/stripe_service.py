"""Stripe service — every call into the Stripe SDK goes through here.

Responsible for:
- Verifying webhook signatures (tagged result, never raises)
- Looking up a charge's transfer for order enrichment
- Creating and retrieving Express connected accounts
- Creating onboarding account links and Express dashboard login links
- Creating Checkout Sessions and PaymentIntents as destination charges
"""

import logging
import math
from collections import namedtuple

import stripe
from flask import current_app

from connectpay.errors import MissingRedirectUrl, PriceIncomplete, SellerNotReady
from connectpay.utils import object_id, to_json

logger = logging.getLogger(__name__)

# ok=True carries the verified event; ok=False carries a human-readable reason.
SignatureCheck = namedtuple("SignatureCheck", ["ok", "event", "message"])


def _configure_stripe():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    api_version = current_app.config.get("STRIPE_API_VERSION")
    if api_version:
        stripe.api_version = api_version


# ──────────────────────────────────────────────
# Webhook signature
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header, secret=None):
    """Verify a webhook signature and construct the event.

    payload must be the exact request bytes; the signature is computed
    over them. secret defaults to STRIPE_WEBHOOK_SECRET.

    Returns SignatureCheck(ok, event, message). Never raises: a missing
    header, missing secret, bad signature or malformed payload all come
    back as ok=False so the caller can answer 400 instead of 500.
    On success event is a plain dict, not a stripe.Event.
    """
    if not sig_header:
        return SignatureCheck(False, None, "Missing Stripe-Signature header")

    if secret is None:
        secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        return SignatureCheck(False, None, "Missing STRIPE_WEBHOOK_SECRET")

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, secret)
    except Exception as e:
        # SignatureVerificationError, ValueError on bad JSON, bad header format
        return SignatureCheck(False, None, str(e) or "Invalid payload")

    return SignatureCheck(True, to_json(event), None)


# ──────────────────────────────────────────────
# Charges
# ──────────────────────────────────────────────

def retrieve_charge_transfer_id(charge_id):
    """Return the transfer id of a destination charge, or None.

    The transfer may not exist yet when payment_intent.succeeded fires,
    and the lookup is only an enrichment: Stripe errors are logged and
    swallowed so the order is still written.
    """
    if not charge_id:
        return None

    _configure_stripe()
    try:
        charge = to_json(stripe.Charge.retrieve(charge_id))
    except stripe.error.StripeError as e:
        logger.warning(f"Could not retrieve charge {charge_id} for transfer id: {e}")
        return None

    return object_id(charge.get("transfer"))


# ──────────────────────────────────────────────
# Connected accounts
# ──────────────────────────────────────────────

def create_express_account():
    _configure_stripe()
    return to_json(stripe.Account.create(type="express"))


def retrieve_account(stripe_account_id):
    _configure_stripe()
    return to_json(stripe.Account.retrieve(stripe_account_id))


def create_account_link(stripe_account_id, refresh_url, return_url):
    """Create a hosted onboarding link. Links expire after a few minutes."""
    _configure_stripe()
    return stripe.AccountLink.create(
        account=stripe_account_id,
        refresh_url=refresh_url,
        return_url=return_url,
        type="account_onboarding",
    )


def create_login_link(stripe_account_id):
    _configure_stripe()
    return stripe.Account.create_login_link(stripe_account_id)


# ──────────────────────────────────────────────
# Destination charges
# ──────────────────────────────────────────────

def calculate_platform_fee(subtotal, fee_percent):
    """Platform fee in minor units, rounded down."""
    return math.floor(subtotal * fee_percent / 100)


def build_payment_metadata(seller_stripe_account_id, platform_fee,
                           buyer_id=None, **extra):
    """Metadata stamped on every PaymentIntent we create.

    The payment_intent.succeeded webhook reads it back to build the Order.
    buyerId is only present when there is a buyer; guests get no key at
    all rather than a placeholder string.
    """
    metadata = {
        "sellerStripeAccountId": seller_stripe_account_id,
        "platformFee": str(platform_fee),
    }
    if buyer_id:
        metadata["buyerId"] = buyer_id
    for key, value in extra.items():
        metadata[key] = str(value)
    return metadata


def _ensure_charges_enabled(stripe_account_id):
    account = retrieve_account(stripe_account_id)
    if not account.get("charges_enabled"):
        raise SellerNotReady("Seller account cannot receive payments yet")
    return account


def create_checkout_session(seller_stripe_account_id, price_id, quantity,
                            fee_percent, buyer_id=None, success_url=None,
                            cancel_url=None, idempotency_key=None):
    """Create a one-time Checkout Session with a destination charge.

    The seller must have charges enabled. The platform fee is taken as a
    percentage of the price subtotal. Redirect URLs default to pages under
    APP_BASE_URL when not given explicitly.

    Raises SellerNotReady, PriceIncomplete or MissingRedirectUrl for the
    expected failure modes; stripe.error.StripeError on API failures.
    """
    _ensure_charges_enabled(seller_stripe_account_id)

    price = to_json(stripe.Price.retrieve(price_id))
    unit_amount = price.get("unit_amount")
    currency = price.get("currency")
    if not unit_amount or not currency:
        raise PriceIncomplete("Price missing amount or currency")

    subtotal = unit_amount * quantity
    application_fee = calculate_platform_fee(subtotal, fee_percent)

    base_url = current_app.config.get("APP_BASE_URL")
    if not base_url and (not success_url or not cancel_url):
        raise MissingRedirectUrl("Missing APP_BASE_URL or explicit redirect URLs")
    success_url = success_url or f"{base_url}/success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = cancel_url or f"{base_url}/cancel"

    params = dict(
        mode="payment",
        line_items=[{"price": price_id, "quantity": quantity}],
        success_url=success_url,
        cancel_url=cancel_url,
        payment_intent_data={
            "application_fee_amount": application_fee,
            "transfer_data": {"destination": seller_stripe_account_id},
            "metadata": build_payment_metadata(
                seller_stripe_account_id,
                application_fee,
                buyer_id=buyer_id,
                quantity=quantity,
                currency=currency,
                unitAmount=unit_amount,
            ),
        },
    )
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    session = stripe.checkout.Session.create(**params)
    logger.info(
        f"Checkout session {session.id} created for {seller_stripe_account_id} "
        f"(fee={application_fee} {currency})"
    )
    return session


def create_payment_intent(seller_stripe_account_id, amount, currency,
                          fee_percent, buyer_id=None):
    """Create a PaymentIntent with a destination charge for Elements flows.

    Returns (payment_intent, application_fee).
    """
    _configure_stripe()
    application_fee = calculate_platform_fee(amount, fee_percent)

    payment_intent = stripe.PaymentIntent.create(
        amount=amount,
        currency=currency,
        application_fee_amount=application_fee,
        transfer_data={"destination": seller_stripe_account_id},
        metadata=build_payment_metadata(
            seller_stripe_account_id, application_fee, buyer_id=buyer_id
        ),
    )
    return payment_intent, application_fee
