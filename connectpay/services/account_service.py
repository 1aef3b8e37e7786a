"""Account service — connected account persistence and sync helpers.

Responsible for:
- Resolving a seller's Stripe account id from a user id
- Provisioning Express accounts (reusing an existing one per user)
- Mirroring Stripe account flags/snapshots onto connected_accounts
- Listing accounts for the admin view
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from connectpay.errors import AccountNotFound, UserNotFound
from connectpay.models.connected_account import ConnectedAccount
from connectpay.models.user import User
from connectpay.services import stripe_service
from connectpay.utils import to_json

logger = logging.getLogger(__name__)


def find_account(session, stripe_account_id):
    if not stripe_account_id:
        return None
    return (
        session.query(ConnectedAccount)
        .filter_by(stripe_account_id=stripe_account_id)
        .first()
    )


def resolve_stripe_account_id(session, user_id=None, stripe_account_id=None):
    """Return the Stripe account id to act on.

    An explicit stripe_account_id wins; otherwise the user's connected
    account is looked up. Raises AccountNotFound if the user has none.
    """
    if stripe_account_id:
        return stripe_account_id

    account = (
        session.query(ConnectedAccount)
        .filter_by(user_id=user_id)
        .order_by(ConnectedAccount.created_at.asc())
        .first()
    )
    if not account:
        raise AccountNotFound("Connected account not found")
    return account.stripe_account_id


def account_snapshot(account, onboarding_completed_at=None):
    """Map a Stripe Account onto connected_accounts column values.

    onboarding_completed_at is the currently stored value: it is kept once
    set, stamped the first time details_submitted is true and cleared if
    Stripe reports details as no longer submitted. requirements and
    capabilities are only included when Stripe sent them.
    """
    details_submitted = bool(account.get("details_submitted"))
    if details_submitted:
        completed_at = onboarding_completed_at or datetime.now(timezone.utc)
    else:
        completed_at = None

    fields = {
        "charges_enabled": bool(account.get("charges_enabled")),
        "payouts_enabled": bool(account.get("payouts_enabled")),
        "details_submitted": details_submitted,
        "onboarding_completed_at": completed_at,
        "country": account.get("country") or None,
        "default_currency": account.get("default_currency") or None,
    }
    if account.get("livemode") is not None:
        fields["livemode"] = bool(account.get("livemode"))
    if account.get("requirements") is not None:
        fields["requirements"] = to_json(account.get("requirements"))
    if account.get("capabilities") is not None:
        fields["capabilities"] = to_json(account.get("capabilities"))
    return fields


def sync_connected_account(session, account):
    """Apply a Stripe Account object to its local row.

    Returns the updated ConnectedAccount, or None when no local row
    exists (e.g. account.updated arriving before provisioning finished).
    Flushes only; the caller owns the commit.
    """
    row = find_account(session, account.get("id"))
    if row is None:
        logger.info(f"No local connected account for {account.get('id')}, skipping sync")
        return None

    for key, value in account_snapshot(account, row.onboarding_completed_at).items():
        setattr(row, key, value)
    session.flush()
    return row


def get_or_create_connected_account(session, user_id):
    """Return (ConnectedAccount, reused) for a user, provisioning if needed.

    Raises UserNotFound for unknown users.
    Raises stripe.error.StripeError on API failures.
    """
    if session.get(User, user_id) is None:
        raise UserNotFound("User not found")

    existing = session.query(ConnectedAccount).filter_by(user_id=user_id).first()
    if existing:
        return existing, True

    account = stripe_service.create_express_account()
    row = ConnectedAccount(
        user_id=user_id,
        stripe_account_id=account["id"],
        **account_snapshot(account),
    )
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent request stored the same Stripe account first
        session.rollback()
        row = find_account(session, account["id"])
        if row is None:
            raise
        return row, True

    logger.info(f"Provisioned Express account {row.stripe_account_id} for user {user_id}")
    return row, False


def refresh_account_status(session, stripe_account_id):
    """Fetch the account from Stripe and mirror it locally (best effort).

    Returns the Stripe Account. A missing local row is not an error.
    """
    account = stripe_service.retrieve_account(stripe_account_id)
    sync_connected_account(session, account)
    session.commit()
    return account


def list_connected_accounts(session, user_id=None, stripe_account_id=None, limit=200):
    """Newest-first account listing, filtered by account id or owner."""
    query = session.query(ConnectedAccount)
    if stripe_account_id is not None:
        query = query.filter_by(stripe_account_id=stripe_account_id)
    elif user_id is not None:
        query = query.filter_by(user_id=user_id)
    return (
        query.order_by(ConnectedAccount.created_at.desc())
        .limit(limit)
        .all()
    )
