from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z, to_iso_date


class SalesReturn(db.Model):
    """
    Customer return against a settled transaction.

    LIFECYCLE:
    1. pending:  created, holds the requested quantity, editable/deletable
    2. approved: good-condition items restocked, transaction status re-derived
    3. rejected: no stock or status effect, quantity released

    Items reference the original SalesItem so returnable quantity can be
    bounded per line.
    """
    __tablename__ = "sales_returns"
    __table_args__ = (
        db.UniqueConstraint("return_number", name="uq_sales_returns_number"),
        db.Index("ix_sales_returns_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "RTN-20240115-0001"
    return_number = db.Column(db.String(64), nullable=False)

    sales_transaction_id = db.Column(db.Integer, db.ForeignKey("sales_transactions.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, approved, rejected
    return_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    refund_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, nullable=False)
    processed_by = db.Column(db.Integer, nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sales_transaction = db.relationship("SalesTransaction", backref=db.backref("returns", lazy=True))
    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "return_number": self.return_number,
            "sales_transaction_id": self.sales_transaction_id,
            "store_id": self.store_id,
            "status": self.status,
            "return_date": to_iso_date(self.return_date),
            "reason": self.reason,
            "refund_cents": self.refund_cents,
            "created_by": self.created_by,
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    """Returned quantity of one sold line. condition: good, damaged, defective."""
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_return_id = db.Column(db.Integer, db.ForeignKey("sales_returns.id"), nullable=False, index=True)
    sales_item_id = db.Column(db.Integer, db.ForeignKey("sales_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    condition = db.Column(db.String(16), nullable=False, default="good")

    sales_return = db.relationship(
        "SalesReturn",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="ReturnItem.id"),
    )
    sales_item = db.relationship("SalesItem", backref=db.backref("return_items", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_return_id": self.sales_return_id,
            "sales_item_id": self.sales_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
            "reason": self.reason,
            "condition": self.condition,
        }


class StockTransfer(db.Model):
    """
    Inter-store stock transfer.

    LIFECYCLE:
        draft -> pending -> approved -> shipped -> received
        draft/pending -> approved
        pending -> rejected
        draft/pending/approved -> cancelled

    Stock leaves the source on ship (transfer_out) and lands at the
    destination on receive (transfer_in). Only draft/pending are editable.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("transfer_number", name="uq_stock_transfers_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "TRF-20240115-0001"
    transfer_number = db.Column(db.String(64), nullable=False)

    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    transfer_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    # User attribution per step
    requested_by = db.Column(db.Integer, nullable=False)
    approved_by = db.Column(db.Integer, nullable=True)
    rejected_by = db.Column(db.Integer, nullable=True)
    shipped_by = db.Column(db.Integer, nullable=True)
    received_by = db.Column(db.Integer, nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)

    # Timestamps per step
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "status": self.status,
            "transfer_date": to_iso_date(self.transfer_date),
            "notes": self.notes,
            "total_value_cents": self.total_value_cents,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "rejected_by": self.rejected_by,
            "shipped_by": self.shipped_by,
            "received_by": self.received_by,
            "cancelled_by": self.cancelled_by,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_at": to_utc_z(self.approved_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class TransferItem(db.Model):
    """Requested/shipped/received quantities for one product on a transfer."""
    __tablename__ = "transfer_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stock_transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_requested = db.Column(db.Integer, nullable=False)
    quantity_shipped = db.Column(db.Integer, nullable=True)
    quantity_received = db.Column(db.Integer, nullable=True)

    # Snapshot of source average cost, taken at ship time
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    stock_transfer = db.relationship(
        "StockTransfer",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="TransferItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_transfer_id": self.stock_transfer_id,
            "product_id": self.product_id,
            "quantity_requested": self.quantity_requested,
            "quantity_shipped": self.quantity_shipped,
            "quantity_received": self.quantity_received,
            "unit_cost_cents": self.unit_cost_cents,
            "notes": self.notes,
        }
