"""Webhook event model (dedup + audit ledger).

Every webhook event is recorded by its Stripe event ID before any domain
row is touched. processed_at stays NULL until every side effect of the
event has been committed; a NULL row therefore marks an event that still
needs (re)processing.
"""

import uuid

from connectpay.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.Index("ix_webhook_events_type_created_at", "event_type", "created_at"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(64), nullable=False
    )  # e.g. "payment_intent.succeeded"
    livemode = db.Column(db.Boolean, nullable=False, default=False)
    api_version = db.Column(db.String(32), nullable=True)
    request_id = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=False)
    processed_at = db.Column(
        db.DateTime(timezone=True), nullable=True, index=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def is_processed(self):
        return self.processed_at is not None

    def __repr__(self):
        return f"<WebhookEvent {self.stripe_event_id} ({self.event_type})>"
