from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z, to_iso_date


class CustomerDiscount(db.Model):
    """
    Membership tier discount attached to customers.

    Applied automatically at settlement, independent of promo discounts.
    """
    __tablename__ = "customer_discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_percentage_bps = db.Column(db.Integer, nullable=False, default=0)  # 500 = 5%
    minimum_purchase_cents = db.Column(db.Integer, nullable=False, default=0)
    maximum_discount_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discount_percentage_bps": self.discount_percentage_bps,
            "minimum_purchase_cents": self.minimum_purchase_cents,
            "maximum_discount_cents": self.maximum_discount_cents,
            "is_active": self.is_active,
        }


class Customer(db.Model):
    """
    Customer with optional membership tier and running purchase statistics.

    Denormalized aggregates are updated atomically when a transaction settles.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_customers_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    customer_discount_id = db.Column(db.Integer, db.ForeignKey("customer_discounts.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)
    last_transaction_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer_discount = db.relationship("CustomerDiscount", backref=db.backref("customers", lazy=True))

    @property
    def is_member(self) -> bool:
        return self.customer_discount_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "customer_discount_id": self.customer_discount_id,
            "is_member": self.is_member,
            "is_active": self.is_active,
            "total_spent_cents": self.total_spent_cents,
            "total_transactions": self.total_transactions,
            "last_transaction_date": to_iso_date(self.last_transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
