"""Webhook service — event dispatch and order/account reconciliation.

Responsible for:
- Recording each event in the ledger before processing (idempotency)
- Dispatching to event-specific handlers
- Marking events processed only after every side effect succeeded
- Replaying events an earlier attempt left unprocessed

Handlers treat "referenced row not found" as a normal outcome: they log
and return, the event is still marked processed and Stripe is not asked
to retry. Anything unexpected propagates so the endpoint answers 500 and
Stripe redelivers.
"""

import logging

from connectpay.services import account_service, ledger_service, order_service
from connectpay.services.stripe_service import retrieve_charge_transfer_id
from connectpay.utils import object_id, to_json, to_minor_units

logger = logging.getLogger(__name__)


def handle_webhook_event(session, event):
    """Process a verified Stripe webhook event.

    Returns (success: bool, message: str). message is "processed" or
    "already_processed" on success, the error text otherwise.
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check + ledger row ---
    is_duplicate = ledger_service.record_if_new(
        session,
        event_id,
        event_type,
        payload=to_json(event),
        livemode=event.get("livemode", False),
        api_version=event.get("api_version"),
        request_id=object_id(event.get("request")),
    )
    if is_duplicate:
        return True, "already_processed"

    try:
        apply_event(session, event)
        ledger_service.mark_processed(session, event_id)
        session.commit()
    except Exception as e:
        logger.error(f"Error handling {event_type} ({event_id}): {e}", exc_info=True)
        session.rollback()
        return False, str(e)

    return True, "processed"


def apply_event(session, event):
    """Run the handler for event["type"]. Unknown types are a no-op.

    Returns True if a handler ran.
    """
    handlers = {
        "checkout.session.completed": _handle_checkout_completed,
        "payment_intent.succeeded": _handle_payment_intent_succeeded,
        "payment_intent.payment_failed": _handle_payment_intent_failed,
        "account.updated": _handle_account_updated,
        "charge.refunded": _handle_charge_refunded,
        "refund.created": _handle_refund_created,
    }

    handler = handlers.get(event["type"])
    if handler is None:
        logger.debug(f"No handler for {event['type']}, acknowledging")
        return False

    handler(session, event)
    return True


def replay_unprocessed_events(session, limit=None):
    """Re-apply ledger rows whose processed_at is still NULL.

    Each event is applied and committed on its own; a failure is logged,
    rolled back and left for the next run.
    Returns (replayed, failed).
    """
    pending = [
        (row.stripe_event_id, row.payload)
        for row in ledger_service.unprocessed_events(session, limit=limit)
    ]

    replayed = failed = 0
    for event_id, payload in pending:
        try:
            apply_event(session, payload)
            ledger_service.mark_processed(session, event_id)
            session.commit()
            replayed += 1
        except Exception as e:
            logger.error(f"Replay of {event_id} failed: {e}", exc_info=True)
            session.rollback()
            failed += 1

    return replayed, failed


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_checkout_completed(session, event):
    """Handle checkout.session.completed.

    Links the session id to the Order for its PaymentIntent. Stripe does
    not order this event against payment_intent.succeeded, so a missing
    Order just means this event came first.
    """
    checkout_session = event["data"]["object"]
    payment_intent_id = object_id(checkout_session.get("payment_intent"))
    checkout_session_id = checkout_session.get("id")

    if not payment_intent_id or not checkout_session_id:
        logger.info(f"checkout.session.completed {checkout_session_id} has no payment intent")
        return

    if not order_service.attach_checkout_session(
        session, payment_intent_id, checkout_session_id
    ):
        logger.info(
            f"checkout.session.completed: no order yet for {payment_intent_id}, skipping"
        )


def _handle_payment_intent_succeeded(session, event):
    """Handle payment_intent.succeeded — the authoritative order creator.

    Resolves the seller from metadata (written by the checkout API), tries
    to learn the transfer id from the charge, then upserts the Order.
    """
    payment_intent = event["data"]["object"]
    payment_intent_id = payment_intent["id"]
    metadata = payment_intent.get("metadata") or {}

    amount = payment_intent.get("amount_received")
    if amount is None:
        amount = payment_intent.get("amount") or 0
    currency = (payment_intent.get("currency") or "usd").upper()

    transfer_data = payment_intent.get("transfer_data") or {}
    seller_stripe_id = (
        metadata.get("sellerStripeAccountId")
        or object_id(transfer_data.get("destination"))
    )
    seller = account_service.find_account(session, seller_stripe_id)
    if seller is None:
        logger.warning(
            f"payment_intent.succeeded: unknown seller {seller_stripe_id!r} "
            f"for {payment_intent_id}, dropping"
        )
        return

    buyer_id = order_service.resolve_buyer_id(session, metadata.get("buyerId"))
    platform_fee = to_minor_units(
        metadata.get("platformFee"),
        default=payment_intent.get("application_fee_amount") or 0,
    )

    charge_id = object_id(payment_intent.get("latest_charge"))
    transfer_id = retrieve_charge_transfer_id(charge_id)

    order = order_service.upsert_paid_order(
        session,
        payment_intent_id=payment_intent_id,
        seller_account_id=seller.id,
        buyer_id=buyer_id,
        amount=amount,
        platform_fee=platform_fee,
        currency=currency,
        metadata=metadata,
        charge_id=charge_id,
        transfer_id=transfer_id,
    )
    logger.info(f"Order {order.id} paid: {amount} {currency} via {payment_intent_id}")


def _handle_payment_intent_failed(session, event):
    """Handle payment_intent.payment_failed. Never creates an order."""
    payment_intent_id = event["data"]["object"]["id"]
    if not order_service.mark_payment_failed(session, payment_intent_id):
        logger.info(f"payment_intent.payment_failed: no order for {payment_intent_id}")


def _handle_account_updated(session, event):
    """Handle account.updated — mirror capability flags and snapshots."""
    account = event["data"]["object"]
    account_service.sync_connected_account(session, account)


def _handle_charge_refunded(session, event):
    """Handle charge.refunded.

    amount_refunded on the charge is cumulative, so it is assigned rather
    than added. Refund objects are only embedded on older API versions;
    newer ones deliver them through refund.created.
    """
    charge = event["data"]["object"]
    order = order_service.find_order(
        session,
        payment_intent_id=object_id(charge.get("payment_intent")),
        charge_id=charge.get("id"),
    )
    if order is None:
        logger.warning(f"charge.refunded: no order for charge {charge.get('id')}")
        return

    order_service.apply_refund_total(session, order, charge.get("amount_refunded"))

    refunds = (charge.get("refunds") or {}).get("data") or []
    for refund in refunds:
        order_service.upsert_refund(session, order, refund)


def _handle_refund_created(session, event):
    """Handle refund.created — record the individual refund."""
    refund = event["data"]["object"]
    order = order_service.find_order(
        session,
        payment_intent_id=object_id(refund.get("payment_intent")),
        charge_id=object_id(refund.get("charge")),
    )
    if order is None:
        logger.warning(f"refund.created: no order for refund {refund.get('id')}")
        return

    order_service.upsert_refund(session, order, refund)
