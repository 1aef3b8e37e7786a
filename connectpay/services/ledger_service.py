"""Ledger service — dedup and audit trail for webhook events.

The unique constraint on webhook_events.stripe_event_id is the only
coordination between concurrent deliveries: whichever request commits the
row first owns the event, the other sees a conflict and backs off.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from connectpay.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)


def find_event(session, event_id):
    return session.query(WebhookEvent).filter_by(stripe_event_id=event_id).first()


def record_if_new(session, event_id, event_type, payload, livemode=False,
                  api_version=None, request_id=None):
    """Record an incoming event before any domain row is touched.

    Returns is_duplicate:
      True  — already processed, or a concurrent delivery won the insert.
              The caller acknowledges without side effects.
      False — the caller owns the event and must process it. This also
              covers a row left unprocessed by an earlier failed attempt.

    Commits the ledger row on its own so it survives a later rollback of
    the domain mutations.
    """
    existing = find_event(session, event_id)
    if existing is not None:
        if existing.is_processed:
            logger.info(f"Duplicate webhook event {event_id}, skipping")
            return True
        logger.warning(
            f"Webhook event {event_id} was recorded but never processed, reprocessing"
        )
        return False

    session.add(WebhookEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        payload=payload,
        livemode=bool(livemode),
        api_version=api_version,
        request_id=request_id,
    ))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info(f"Webhook event {event_id} recorded concurrently, skipping")
        return True

    return False


def mark_processed(session, event_id):
    """Stamp processed_at. The caller commits."""
    session.query(WebhookEvent).filter_by(stripe_event_id=event_id).update(
        {"processed_at": datetime.now(timezone.utc)}
    )


def unprocessed_events(session, limit=None):
    query = (
        session.query(WebhookEvent)
        .filter(WebhookEvent.processed_at.is_(None))
        .order_by(WebhookEvent.created_at.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()
