"""Connected account model.

One row per seller. Mirrors the flags and requirement snapshots of the
seller's Stripe Express account. Kept in sync by the account.updated
webhook and by the account-status endpoint.
"""

import uuid

from connectpay.extensions import db


class ConnectedAccount(db.Model):
    __tablename__ = "connected_accounts"
    __table_args__ = (
        db.Index(
            "ix_connected_accounts_charges_payouts",
            "charges_enabled",
            "payouts_enabled",
        ),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_account_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "acct_1Abc..."
    charges_enabled = db.Column(db.Boolean, nullable=False, default=False)
    payouts_enabled = db.Column(db.Boolean, nullable=False, default=False)
    details_submitted = db.Column(db.Boolean, nullable=False, default=False)
    onboarding_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    country = db.Column(db.String(2), nullable=True)
    default_currency = db.Column(db.String(3), nullable=True)
    requirements = db.Column(db.JSON, nullable=True)
    capabilities = db.Column(db.JSON, nullable=True)
    livemode = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="connected_accounts")
    orders = db.relationship(
        "Order", back_populates="seller_account", lazy="dynamic"
    )

    def to_status(self):
        return {
            "stripeAccountId": self.stripe_account_id,
            "chargesEnabled": self.charges_enabled,
            "payoutsEnabled": self.payouts_enabled,
            "detailsSubmitted": self.details_submitted,
            "country": self.country,
            "defaultCurrency": self.default_currency,
        }

    def __repr__(self):
        return f"<ConnectedAccount {self.stripe_account_id}>"
