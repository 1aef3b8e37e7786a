"""Order service — idempotent writes to orders and refunds.

Every mutation here is safe to repeat: rows are keyed by Stripe ids and
written with atomic upserts or absolute assignments, never increments, so
a webhook replayed after a partial failure converges on the same state.
"""

import logging
import uuid

from sqlalchemy import case, func
from sqlalchemy.dialects import postgresql, sqlite

from connectpay.models.order import Order, Refund
from connectpay.models.user import User
from connectpay.utils import object_id, to_json

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _upsert(session, model, key, values, update_values):
    """INSERT ... ON CONFLICT (key) DO UPDATE in one statement.

    Both supported backends implement the same on_conflict_do_update API,
    which makes the create-or-update atomic at the row level.
    """
    dialect = session.get_bind().dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"Upsert is not supported on {dialect}")

    stmt = insert(model.__table__).values(id=str(uuid.uuid4()), **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[key],
        set_={**update_values, **_touch(model)},
    )
    session.execute(stmt)


def _touch(model):
    if "updated_at" in model.__table__.c:
        return {"updated_at": func.now()}
    return {}


def find_order(session, payment_intent_id=None, charge_id=None):
    """Look an order up by payment intent, falling back to charge id."""
    query = session.query(Order).execution_options(populate_existing=True)
    if payment_intent_id:
        order = query.filter_by(payment_intent_id=payment_intent_id).first()
        if order:
            return order
    if charge_id:
        return query.filter_by(charge_id=charge_id).first()
    return None


def resolve_buyer_id(session, raw_buyer_id):
    """Map metadata buyerId to an existing user id, or None.

    No buyer is encoded as an absent key. Empty strings, legacy
    placeholders and ids of users that no longer exist all resolve to
    None so the order is stored as a guest purchase.
    """
    if not raw_buyer_id:
        return None
    if session.get(User, raw_buyer_id) is None:
        logger.warning(f"Buyer {raw_buyer_id!r} not found, storing order as guest")
        return None
    return raw_buyer_id


def upsert_paid_order(session, payment_intent_id, seller_account_id, amount,
                      platform_fee, currency, metadata=None, buyer_id=None,
                      charge_id=None, transfer_id=None):
    """Create or update the Order for a succeeded PaymentIntent.

    Created with status=paid. On an existing row the financial fields are
    refreshed and status/payment_state go back to paid/succeeded unless a
    refund has already been recorded, in which case the refund-derived
    state is kept. Charge/transfer ids are only overwritten when known,
    so a failed enrichment never erases an earlier value.
    Returns the Order.
    """
    financials = {
        "amount": amount,
        "platform_fee": platform_fee,
        "currency": currency,
        "metadata": to_json(metadata or {}),
    }
    orders = Order.__table__
    refunded = orders.c.amount_refunded > 0
    enrichment = {}
    if charge_id:
        enrichment["charge_id"] = charge_id
    if transfer_id:
        enrichment["transfer_id"] = transfer_id

    _upsert(
        session,
        Order,
        "payment_intent_id",
        values={
            "payment_intent_id": payment_intent_id,
            "seller_account_id": seller_account_id,
            "buyer_id": buyer_id,
            "amount_refunded": 0,
            "status": "paid",
            "payment_state": "succeeded",
            **financials,
            **enrichment,
        },
        update_values={
            **financials,
            **enrichment,
            "status": case((refunded, orders.c.status), else_="paid"),
            "payment_state": case(
                (refunded, orders.c.payment_state), else_="succeeded"
            ),
        },
    )
    return find_order(session, payment_intent_id=payment_intent_id)


def attach_checkout_session(session, payment_intent_id, checkout_session_id):
    """Link a Checkout Session to its Order. Returns False if no order yet."""
    updated = (
        session.query(Order)
        .filter_by(payment_intent_id=payment_intent_id)
        .update({"checkout_session_id": checkout_session_id})
    )
    return updated > 0


def mark_payment_failed(session, payment_intent_id):
    """Record a failed payment attempt on an existing order only."""
    updated = (
        session.query(Order)
        .filter_by(payment_intent_id=payment_intent_id)
        .update({"payment_state": "failed"})
    )
    return updated > 0


def apply_refund_total(session, order, amount_refunded):
    """Set the cumulative refunded amount and derive the refund state.

    amount_refunded is Stripe's running total for the charge; it is
    clamped to the order amount.
    """
    total = min(max(amount_refunded or 0, 0), order.amount)
    order.amount_refunded = total

    if total > 0 and total >= order.amount:
        order.payment_state = "refunded_full"
        order.status = "refunded"
    elif total > 0:
        order.payment_state = "refunded_partial"
    session.flush()
    return order


def upsert_refund(session, order, refund):
    """Create or update a Refund row from a Stripe Refund object."""
    values = {
        "amount": refund.get("amount") or 0,
        "balance_transaction_id": object_id(refund.get("balance_transaction")),
        "reason": refund.get("reason") or None,
        "metadata": to_json(refund.get("metadata") or {}),
    }
    _upsert(
        session,
        Refund,
        "stripe_refund_id",
        values={
            "order_id": order.id,
            "stripe_refund_id": refund["id"],
            **values,
        },
        update_values=values,
    )
