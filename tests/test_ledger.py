"""Tests for the webhook event ledger and the replay-webhooks CLI."""

from datetime import datetime, timezone
from unittest.mock import patch

from connectpay.extensions import db
from connectpay.models.order import Order
from connectpay.models.webhook_event import WebhookEvent
from connectpay.services import ledger_service
from connectpay.services.webhook_service import replay_unprocessed_events


def _succeeded_payload(event_id, pi_id="pi_replay_001"):
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": pi_id,
                "amount_received": 500,
                "currency": "usd",
                "metadata": {
                    "sellerStripeAccountId": "acct_seller_123",
                    "platformFee": "50",
                },
            }
        },
    }


def _unprocessed(event_id, payload):
    row = WebhookEvent(
        stripe_event_id=event_id,
        event_type=payload["type"],
        payload=payload,
    )
    db.session.add(row)
    db.session.commit()
    return row


class TestRecordIfNew:

    def test_new_event_is_recorded_and_owned(self, db_session):
        is_duplicate = ledger_service.record_if_new(
            db_session, "evt_new", "account.updated", payload={"id": "evt_new"},
            livemode=True, api_version="2025-09-30.clover", request_id="req_1",
        )
        assert is_duplicate is False

        row = WebhookEvent.query.filter_by(stripe_event_id="evt_new").first()
        assert row.event_type == "account.updated"
        assert row.livemode is True
        assert row.api_version == "2025-09-30.clover"
        assert row.request_id == "req_1"
        assert row.processed_at is None

    def test_processed_event_is_duplicate(self, db_session):
        db_session.add(WebhookEvent(
            stripe_event_id="evt_done",
            event_type="account.updated",
            payload={},
            processed_at=datetime.now(timezone.utc),
        ))
        db_session.commit()

        assert ledger_service.record_if_new(
            db_session, "evt_done", "account.updated", payload={}
        ) is True
        assert WebhookEvent.query.count() == 1

    def test_unprocessed_event_is_handed_back(self, db_session):
        """A row left by a failed attempt is reprocessed, not deduped."""
        _unprocessed("evt_stuck", {"type": "account.updated"})

        assert ledger_service.record_if_new(
            db_session, "evt_stuck", "account.updated", payload={}
        ) is False
        assert WebhookEvent.query.count() == 1

    def test_concurrent_insert_is_duplicate(self, db_session):
        """Lost the insert race -> unique violation -> treated as duplicate."""
        _unprocessed("evt_race", {"type": "account.updated"})

        with patch(
            "connectpay.services.ledger_service.find_event", return_value=None
        ):
            is_duplicate = ledger_service.record_if_new(
                db_session, "evt_race", "account.updated", payload={}
            )

        assert is_duplicate is True
        assert WebhookEvent.query.count() == 1


class TestMarkProcessed:

    def test_stamps_processed_at(self, db_session):
        _unprocessed("evt_mark", {"type": "account.updated"})

        ledger_service.mark_processed(db_session, "evt_mark")
        db_session.commit()

        row = ledger_service.find_event(db_session, "evt_mark")
        assert row.is_processed
        assert ledger_service.unprocessed_events(db_session) == []

    def test_unprocessed_events_oldest_first(self, db_session):
        _unprocessed("evt_a", {"type": "account.updated"})
        _unprocessed("evt_b", {"type": "account.updated"})

        rows = ledger_service.unprocessed_events(db_session, limit=1)
        assert len(rows) == 1


class TestReplay:

    def test_replay_applies_and_marks(self, db_session, seed_data):
        _unprocessed("evt_replay", _succeeded_payload("evt_replay"))

        replayed, failed = replay_unprocessed_events(db_session)

        assert (replayed, failed) == (1, 0)
        order = Order.query.filter_by(payment_intent_id="pi_replay_001").first()
        assert order.amount == 500
        assert order.platform_fee == 50
        assert ledger_service.find_event(db_session, "evt_replay").is_processed

    def test_replay_failure_leaves_row_pending(self, db_session, seed_data):
        _unprocessed("evt_boom", _succeeded_payload("evt_boom"))

        with patch(
            "connectpay.services.order_service.upsert_paid_order",
            side_effect=RuntimeError("boom"),
        ):
            replayed, failed = replay_unprocessed_events(db_session)

        assert (replayed, failed) == (0, 1)
        assert not ledger_service.find_event(db_session, "evt_boom").is_processed
        assert Order.query.count() == 0


class TestReplayCommand:

    def test_dry_run_lists_pending(self, app, seed_data):
        _unprocessed("evt_cli", _succeeded_payload("evt_cli"))

        result = app.test_cli_runner().invoke(args=["replay-webhooks", "--dry-run"])

        assert result.exit_code == 0
        assert "evt_cli" in result.output
        assert "1 unprocessed event(s)." in result.output
        assert Order.query.count() == 0

    def test_replays_pending(self, app, seed_data):
        _unprocessed("evt_cli", _succeeded_payload("evt_cli"))

        result = app.test_cli_runner().invoke(args=["replay-webhooks"])

        assert result.exit_code == 0
        assert "Replayed 1 event(s), 0 failed." in result.output
        assert Order.query.filter_by(payment_intent_id="pi_replay_001").count() == 1


class TestSeedUserCommand:

    def test_creates_then_reports_existing(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["seed-user", "--email", "new@shop.test"])
        second = runner.invoke(args=["seed-user", "--email", "new@shop.test"])

        assert "Created user: new@shop.test" in first.output
        assert "User already exists: new@shop.test" in second.output
