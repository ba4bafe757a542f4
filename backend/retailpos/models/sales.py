from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z
from retailpos.services.pricing_service import calculate_payment_fee


class PaymentMethod(db.Model):
    """
    Tender type accepted at the register (cash, card, e-wallet...).

    Fees are recorded per payment line and never reduce the transaction total.
    """
    __tablename__ = "payment_methods"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_payment_methods_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)

    fee_percentage_bps = db.Column(db.Integer, nullable=False, default=0)
    fee_fixed_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def calculate_fee(self, amount_cents: int) -> int:
        """amount * bps / 10000 (half-up) plus the fixed fee."""
        return calculate_payment_fee(amount_cents, self.fee_percentage_bps, self.fee_fixed_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "fee_percentage_bps": self.fee_percentage_bps,
            "fee_fixed_cents": self.fee_fixed_cents,
            "is_active": self.is_active,
        }


class SalesTransaction(db.Model):
    """
    Settled sales transaction (the durable financial record).

    STATUS:
    - completed: settled, stock decremented, payments recorded
    - voided:    fully reversed (terminal)
    - refunded:  at least half of the sold quantity came back through returns
    - pending/draft/cancelled: reserved for external workflows

    Totals invariant: total = subtotal - discount - customer_discount + tax, never negative.
    """
    __tablename__ = "sales_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_sales_transactions_number"),
        db.Index("ix_sales_transactions_store_status_date", "store_id", "status", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "TR-20240115-0001"
    transaction_number = db.Column(db.String(64), nullable=False)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    customer_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    customer_discount_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="paid")

    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.Integer, nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("sales_transactions", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales_transactions", lazy=True))
    discount = db.relationship("Discount")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_discount_cents(self) -> int:
        return (self.discount_cents or 0) + (self.customer_discount_cents or 0)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "cashier_id": self.cashier_id,
            "discount_id": self.discount_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "customer_discount_cents": self.customer_discount_cents,
            "customer_discount_bps": self.customer_discount_bps,
            "total_discount_cents": self.total_discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "change_cents": self.change_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SalesItem(db.Model):
    """Sold line. Immutable once the transaction settles."""
    __tablename__ = "sales_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_transaction_id = db.Column(db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    sales_transaction = db.relationship(
        "SalesTransaction",
        backref=db.backref("items", lazy=True, order_by="SalesItem.id"),
    )
    product = db.relationship("Product")

    @property
    def returned_quantity(self) -> int:
        # Pending and approved returns both hold quantity; rejected ones release it
        return sum(
            line.quantity
            for line in self.return_items
            if line.sales_return.status != "rejected"
        )

    @property
    def quantity_available_for_return(self) -> int:
        return self.quantity - self.returned_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_transaction_id": self.sales_transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


class SalesPayment(db.Model):
    """
    Payment line recorded against a transaction (split tender supported).

    STATUS: completed, voided
    """
    __tablename__ = "sales_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_transaction_id = db.Column(db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    fee_cents = db.Column(db.Integer, nullable=False, default=0)
    reference_number = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sales_transaction = db.relationship(
        "SalesTransaction",
        backref=db.backref("payments", lazy=True, order_by="SalesPayment.id"),
    )
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_transaction_id": self.sales_transaction_id,
            "payment_method_id": self.payment_method_id,
            "amount_cents": self.amount_cents,
            "fee_cents": self.fee_cents,
            "reference_number": self.reference_number,
            "status": self.status,
        }
