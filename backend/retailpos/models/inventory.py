from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z, to_iso_date


class Product(db.Model):
    """
    Product master data (read-only snapshot for the settlement core).

    Authoritative prices and costs are stored in cents.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Default reorder point for new inventory rows
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "minimum_stock": self.minimum_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Inventory(db.Model):
    """
    Stock balance for one (store, product) pair.

    Mutated only through inventory_service, which pairs every quantity change
    with an append-only StockMovement row in the same DB transaction.
    Quantity may go negative: sales decrement unconditionally.
    """
    __tablename__ = "inventories"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", name="uq_inventories_store_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    average_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    last_cost_cents = db.Column(db.Integer, nullable=True)

    minimum_stock = db.Column(db.Integer, nullable=False, default=0)
    maximum_stock = db.Column(db.Integer, nullable=True)
    location = db.Column(db.String(64), nullable=True)
    last_restock_date = db.Column(db.Date, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("inventories", lazy=True))
    product = db.relationship("Product", backref=db.backref("inventories", lazy=True))

    @property
    def stock_status(self) -> str:
        if self.quantity <= 0:
            return "out_of_stock"
        if self.quantity <= self.minimum_stock:
            return "low_stock"
        return "in_stock"

    @property
    def stock_value_cents(self) -> int:
        return self.quantity * self.average_cost_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "average_cost_cents": self.average_cost_cents,
            "last_cost_cents": self.last_cost_cents,
            "minimum_stock": self.minimum_stock,
            "maximum_stock": self.maximum_stock,
            "location": self.location,
            "last_restock_date": to_iso_date(self.last_restock_date),
            "stock_status": self.stock_status,
            "stock_value_cents": self.stock_value_cents,
        }


class StockMovement(db.Model):
    """
    Append-only audit record of one inventory quantity change.

    MOVEMENT TYPES:
    - sale:         cashier sale (negative)
    - adjustment:   manual correction or void restoration
    - transfer_out: shipped to another store (negative)
    - transfer_in:  received from another store
    - return:       restocked customer return
    - purchase:     goods received from a supplier

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_store_product_date", "store_id", "product_id", "movement_date"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(32), nullable=False, index=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference_type = db.Column(db.String(64), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(255), nullable=True)
    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity_before": self.quantity_before,
            "quantity_change": self.quantity_change,
            "quantity_after": self.quantity_after,
            "unit_cost_cents": self.unit_cost_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "movement_date": to_utc_z(self.movement_date),
        }
