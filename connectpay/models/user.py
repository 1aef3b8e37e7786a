"""User model.

Minimal profile row. Sellers own a ConnectedAccount; buyers are
optionally referenced by Orders.
"""

import uuid

from connectpay.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(254), unique=True, nullable=False)
    name = db.Column(db.String(120))
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    connected_accounts = db.relationship(
        "ConnectedAccount",
        back_populates="user",
        lazy="dynamic",
        passive_deletes=True,
    )
    orders = db.relationship("Order", back_populates="buyer", lazy="dynamic")

    def to_summary(self):
        """Minimal PII for account listings."""
        return {"id": self.id, "email": self.email, "name": self.name}

    def __repr__(self):
        return f"<User {self.email}>"
