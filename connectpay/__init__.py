import os
import logging

import click
from flask import Flask, jsonify

from connectpay.config import config_by_name
from connectpay.extensions import db, migrate


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from connectpay import models  # noqa: F401

    # --- Register blueprints ---
    from connectpay.blueprints.webhooks import webhooks_bp
    from connectpay.blueprints.connect import connect_bp
    from connectpay.blueprints.checkout import checkout_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(connect_bp)
    app.register_blueprint(checkout_bp)

    # --- Error handlers (JSON API, no templates) ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not Found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        allow = ", ".join(sorted(e.valid_methods or []))
        return jsonify({"error": "Method Not Allowed"}), 405, {"Allow": allow}

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal Server Error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-user")
    @click.option("--email", required=True, help="User email")
    @click.option("--name", default=None, help="Display name")
    def seed_user(email, name):
        """Create a user that can own a connected account or buy.

        Usage:
            flask seed-user --email seller@example.com --name "Jane Seller"
        """
        from connectpay.models.user import User

        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"User already exists: {email} (id: {existing.id})")
            return

        user = User(email=email, name=name)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created user: {email} (id: {user.id})")

    @app.cli.command("sync-account")
    @click.argument("stripe_account_id")
    def sync_account(stripe_account_id):
        """Pull a connected account from Stripe and mirror it locally.

        Usage:
            flask sync-account acct_123
        """
        from connectpay.models.connected_account import ConnectedAccount
        from connectpay.services.account_service import refresh_account_status

        account = refresh_account_status(db.session, stripe_account_id)
        row = ConnectedAccount.query.filter_by(
            stripe_account_id=stripe_account_id
        ).first()

        click.echo(f"Stripe account {account.get('id')}:")
        click.echo(f"  charges_enabled={bool(account.get('charges_enabled'))}")
        click.echo(f"  payouts_enabled={bool(account.get('payouts_enabled'))}")
        click.echo(f"  details_submitted={bool(account.get('details_submitted'))}")
        if row is None:
            click.echo("  WARNING: no local connected account row, nothing synced.")

    @app.cli.command("replay-webhooks")
    @click.option("--dry-run", is_flag=True, help="List pending events without applying them.")
    @click.option("--limit", type=int, default=None, help="Replay at most N events.")
    def replay_webhooks(dry_run, limit):
        """Re-apply webhook events that were recorded but never processed.

        Events land in webhook_events before any domain write; a row whose
        processed_at is still empty failed part-way. Stripe normally retries
        these on its own, this is for when its retry window has passed.

        Usage:
            flask replay-webhooks
            flask replay-webhooks --dry-run
        """
        from connectpay.services.ledger_service import unprocessed_events
        from connectpay.services.webhook_service import replay_unprocessed_events

        if dry_run:
            rows = unprocessed_events(db.session, limit=limit)
            for row in rows:
                click.echo(f"  {row.stripe_event_id}  {row.event_type}  {row.created_at}")
            click.echo(f"{len(rows)} unprocessed event(s).")
            return

        replayed, failed = replay_unprocessed_events(db.session, limit=limit)
        click.echo(f"Replayed {replayed} event(s), {failed} failed.")
