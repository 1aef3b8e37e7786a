"""Order and refund models.

- Order: one row per PaymentIntent (destination charge). Created or
  updated by the payment_intent.succeeded webhook; the checkout session,
  transfer and charge ids are attached as they become known.
- Refund: one row per Stripe refund, always tied to an Order.
  orders.amount_refunded is the cumulative total and never exceeds amount.
"""

import uuid

from connectpay.extensions import db


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_payment_state_created_at", "payment_state", "created_at"),
        db.CheckConstraint(
            "amount_refunded >= 0 AND amount_refunded <= amount",
            name="ck_orders_amount_refunded_range",
        ),
    )

    # -- Valid statuses --
    STATUSES = ["created", "paid", "refunded"]
    PAYMENT_STATES = [
        "processing",
        "succeeded",
        "failed",
        "refunded_partial",
        "refunded_full",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    buyer_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )  # None for guest checkouts
    seller_account_id = db.Column(
        db.String(36),
        db.ForeignKey("connected_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payment_intent_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "pi_3Abc..."
    checkout_session_id = db.Column(db.String(255), unique=True, nullable=True)
    transfer_id = db.Column(db.String(255), unique=True, nullable=True)
    charge_id = db.Column(db.String(255), unique=True, nullable=True)
    amount = db.Column(db.Integer, nullable=False)  # minor units
    platform_fee = db.Column(db.Integer, nullable=False)  # minor units
    currency = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(
        db.String(20), nullable=False, default="created"
    )  # created | paid | refunded
    payment_state = db.Column(
        db.String(20), nullable=False, default="processing"
    )  # processing | succeeded | failed | refunded_partial | refunded_full
    amount_refunded = db.Column(db.Integer, nullable=False, default=0)
    metadata_ = db.Column(
        "metadata", db.JSON, nullable=True
    )  # PaymentIntent metadata snapshot
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now(), index=True
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    buyer = db.relationship("User", back_populates="orders")
    seller_account = db.relationship("ConnectedAccount", back_populates="orders")
    refunds = db.relationship(
        "Refund",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Refund.created_at",
    )

    def __repr__(self):
        return f"<Order {self.payment_intent_id} ({self.status})>"


class Refund(db.Model):
    __tablename__ = "refunds"
    __table_args__ = (
        db.Index("ix_refunds_order_id_created_at", "order_id", "created_at"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id = db.Column(
        db.String(36),
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    stripe_refund_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "re_3Abc..."
    amount = db.Column(db.Integer, nullable=False)
    balance_transaction_id = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.String(64), nullable=True)
    metadata_ = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    order = db.relationship("Order", back_populates="refunds")

    def __repr__(self):
        return f"<Refund {self.stripe_refund_id} ({self.amount})>"
