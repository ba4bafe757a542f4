# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory ledger invariants (authoritative)

- One Inventory row per (store, product); created lazily on first movement.
- Every quantity change is an atomic column update
  (quantity = quantity + :change) paired with one StockMovement row in the
  same DB transaction. Movements are append-only.
- quantity_after - quantity_before == quantity_change for every movement.
- Sales never check stock: quantity may go negative.
- Manual decreases, transfers out and transfer creation DO check stock.
- Average cost is a moving average, updated by purchase receipts and
  transfer receipts: (qty*avg + in_qty*in_cost) / (qty + in_qty), half-up.
  Negative on-hand counts as zero in that formula.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Inventory, Product, Store, StockMovement
from ..errors import NotFoundError, QuantityExceeded, ValidationError
from retailpos.time_utils import utcnow, utctoday
from .concurrency import lock_for_update, run_unit_of_work


MOVEMENT_TYPES = {"sale", "adjustment", "transfer_in", "transfer_out", "return", "purchase"}
ADJUSTMENT_DIRECTIONS = {"increase", "decrease"}


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def _require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found", {"store_id": store_id})
    return store


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", {field: value})
    return value


def find_inventory(store_id: int, product_id: int, *, lock: bool = False) -> Inventory | None:
    query = db.session.query(Inventory).filter_by(store_id=store_id, product_id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_or_create_inventory(store_id: int, product_id: int, *, lock: bool = False) -> Inventory:
    """Locked Inventory row for (store, product), created with zero stock if missing."""
    inv = find_inventory(store_id, product_id, lock=lock)
    if inv is not None:
        return inv

    product = _require_product(product_id)
    inv = Inventory(
        store_id=store_id,
        product_id=product_id,
        quantity=0,
        average_cost_cents=product.cost_cents or 0,
        minimum_stock=product.minimum_stock or 0,
    )
    db.session.add(inv)
    db.session.flush()
    return inv


def moving_average_cost(current_qty: int, current_avg: int, incoming_qty: int, incoming_cost: int) -> int:
    base_qty = max(current_qty, 0)
    total_qty = base_qty + incoming_qty
    if total_qty <= 0:
        return incoming_cost
    numerator = base_qty * current_avg + incoming_qty * incoming_cost
    return (2 * numerator + total_qty) // (2 * total_qty)


def record_movement(
    store_id: int,
    product_id: int,
    change: int,
    movement_type: str,
    *,
    user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    unit_cost_cents: int | None = None,
    notes: str | None = None,
    new_average_cost_cents: int | None = None,
) -> StockMovement:
    """
    Apply ``change`` to the (store, product) balance and append its movement.

    Runs inside the caller's transaction; the caller commits.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type '{movement_type}'", {"type": movement_type})

    inv = get_or_create_inventory(store_id, product_id, lock=True)

    values = {"quantity": Inventory.quantity + change}
    if new_average_cost_cents is not None:
        values["average_cost_cents"] = new_average_cost_cents
    db.session.execute(update(Inventory).where(Inventory.id == inv.id).values(**values))

    quantity_after = db.session.query(Inventory.quantity).filter(Inventory.id == inv.id).scalar()

    movement = StockMovement(
        store_id=store_id,
        product_id=product_id,
        user_id=user_id,
        type=movement_type,
        quantity_before=quantity_after - change,
        quantity_change=change,
        quantity_after=quantity_after,
        unit_cost_cents=unit_cost_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        movement_date=utcnow(),
    )
    db.session.add(movement)
    return movement


def receive_into(
    store_id: int,
    product_id: int,
    quantity: int,
    unit_cost_cents: int,
    movement_type: str,
    **movement_kwargs,
) -> StockMovement:
    """Incoming stock that updates last/average cost (purchase, transfer_in)."""
    inv = get_or_create_inventory(store_id, product_id, lock=True)
    new_avg = moving_average_cost(inv.quantity, inv.average_cost_cents or 0, quantity, unit_cost_cents)

    movement = record_movement(
        store_id,
        product_id,
        quantity,
        movement_type,
        unit_cost_cents=unit_cost_cents,
        new_average_cost_cents=new_avg,
        **movement_kwargs,
    )
    db.session.execute(
        update(Inventory)
        .where(Inventory.id == inv.id)
        .values(last_cost_cents=unit_cost_cents, last_restock_date=utctoday())
    )
    return movement


def adjust_stock(
    *,
    store_id: int,
    product_id: int,
    quantity: int,
    direction: str,
    user_id: int,
    notes: str | None = None,
) -> StockMovement:
    """Manual correction. Decreases may not take on-hand below zero."""
    quantity = _positive_int(quantity, "quantity")
    if direction not in ADJUSTMENT_DIRECTIONS:
        raise ValidationError(
            "direction must be 'increase' or 'decrease'",
            {"direction": direction},
        )
    _require_store(store_id)
    product = _require_product(product_id)

    def _op():
        inv = get_or_create_inventory(store_id, product_id, lock=True)
        if direction == "decrease" and quantity > inv.quantity:
            raise QuantityExceeded(
                f"Cannot remove {quantity} of '{product.name}' (available: {inv.quantity})",
                {"product_id": product_id, "requested": quantity, "available": inv.quantity},
            )
        change = quantity if direction == "increase" else -quantity
        return record_movement(
            store_id,
            product_id,
            change,
            "adjustment",
            user_id=user_id,
            reference_type="manual_adjustment",
            unit_cost_cents=inv.average_cost_cents,
            notes=notes,
        )

    return run_unit_of_work(_op, label=f"stock adjustment for product {product_id}")


def receive_stock(
    *,
    store_id: int,
    product_id: int,
    quantity: int,
    unit_cost_cents: int,
    user_id: int,
    notes: str | None = None,
) -> StockMovement:
    """Goods received from a supplier: purchase movement plus cost update."""
    quantity = _positive_int(quantity, "quantity")
    if isinstance(unit_cost_cents, bool) or not isinstance(unit_cost_cents, int) or unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be a non-negative integer", {"unit_cost_cents": unit_cost_cents})
    _require_store(store_id)
    _require_product(product_id)

    def _op():
        return receive_into(
            store_id,
            product_id,
            quantity,
            unit_cost_cents,
            "purchase",
            user_id=user_id,
            reference_type="purchase_receipt",
            notes=notes,
        )

    return run_unit_of_work(_op, label=f"stock receipt for product {product_id}")


def get_stock_level(store_id: int, product_id: int) -> Inventory:
    inv = find_inventory(store_id, product_id)
    if inv is None:
        raise NotFoundError(
            f"No inventory for product {product_id} in store {store_id}",
            {"store_id": store_id, "product_id": product_id},
        )
    return inv


def list_movements(store_id: int, product_id: int, *, limit: int = 100, offset: int = 0) -> list[StockMovement]:
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500
    return (
        db.session.query(StockMovement)
        .filter_by(store_id=store_id, product_id=product_id)
        .order_by(StockMovement.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
