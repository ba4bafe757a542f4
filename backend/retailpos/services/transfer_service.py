# backend/retailpos/services/transfer_service.py
"""
Inter-store stock transfer service.

LIFECYCLE:
1. draft:     created, lines editable
2. pending:   submitted for approval, lines still editable
3. approved:  cleared to ship
4. shipped:   left the source store (transfer_out movements)
5. received:  arrived at the destination (transfer_in movements)
6. cancelled / rejected: closed without stock effect

Source stock is checked on create/update and again on ship. The source
average cost is snapshotted per line at ship time and becomes the incoming
cost at the destination, feeding its moving average.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Product, Store, StockTransfer, TransferItem
from ..errors import NotFoundError, QuantityExceeded, ValidationError
from ..validation import date_field, int_field, list_field, str_field
from retailpos.time_utils import utcnow, utctoday
from .concurrency import lock_for_update, run_unit_of_work
from .inventory_service import find_inventory, receive_into, record_movement
from .lifecycle_service import require_transfer_editable, require_transfer_transition
from .sequence_service import next_transfer_number


def _require_store(store_id: int, field: str) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found", {field: store_id})
    return store


def _parse_items(items) -> list[dict]:
    entries = list_field({"items": items}, "items")
    parsed = []
    seen: set[int] = set()
    for index, entry in enumerate(entries):
        product_id = int_field(entry, "product_id", minimum=1, label=f"items[{index}].product_id")
        if product_id in seen:
            raise ValidationError(
                f"Product {product_id} is listed more than once",
                {"field": f"items[{index}].product_id", "product_id": product_id},
            )
        seen.add(product_id)
        parsed.append({
            "product_id": product_id,
            "quantity": int_field(entry, "quantity", minimum=1, label=f"items[{index}].quantity"),
            "notes": str_field(entry, "notes"),
        })
    return parsed


def _parse_step_quantities(items) -> dict[int, int]:
    """Optional [{"id": transfer_item_id, "quantity": n}] overrides for ship/receive."""
    if items is None:
        return {}
    entries = list_field({"items": items}, "items")
    quantities: dict[int, int] = {}
    for index, entry in enumerate(entries):
        item_id = int_field(entry, "id", minimum=1, label=f"items[{index}].id")
        quantities[item_id] = int_field(entry, "quantity", minimum=0, label=f"items[{index}].quantity")
    return quantities


def _check_source_stock(from_store_id: int, items: list[dict], *, lock: bool = False) -> dict[int, int]:
    """Average cost per product at the source. Raises QuantityExceeded on short stock."""
    costs: dict[int, int] = {}
    for item in items:
        product = db.session.get(Product, item["product_id"])
        if product is None:
            raise NotFoundError(f"Product {item['product_id']} not found", {"product_id": item["product_id"]})

        inv = find_inventory(from_store_id, product.id, lock=lock)
        available = inv.quantity if inv is not None else 0
        if item["quantity"] > available:
            raise QuantityExceeded(
                f"Insufficient stock of '{product.name}' at source store (available: {available})",
                {
                    "product_id": product.id,
                    "store_id": from_store_id,
                    "requested": item["quantity"],
                    "available": available,
                },
            )
        costs[product.id] = inv.average_cost_cents if inv is not None else 0
    return costs


def _replace_items(transfer: StockTransfer, items: list[dict]) -> None:
    costs = _check_source_stock(transfer.from_store_id, items)
    transfer.items.clear()
    db.session.flush()
    total = 0
    for item in items:
        unit_cost = costs[item["product_id"]]
        transfer.items.append(TransferItem(
            product_id=item["product_id"],
            quantity_requested=item["quantity"],
            unit_cost_cents=unit_cost,
            notes=item["notes"],
        ))
        total += unit_cost * item["quantity"]
    transfer.total_value_cents = total


def _lock_transfer(transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
    return transfer


def get_transfer(transfer_id: int) -> StockTransfer:
    transfer = db.session.get(StockTransfer, transfer_id)
    if transfer is None:
        raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
    return transfer


def create_transfer(
    from_store_id: int,
    to_store_id: int,
    user_id: int,
    items: list[dict],
    notes: str | None = None,
    transfer_date: date | str | None = None,
) -> StockTransfer:
    """
    Create a draft transfer.

    Raises:
        ValidationError: same source/destination, bad lines
        QuantityExceeded: a line exceeds on-hand stock at the source
    """
    if not user_id:
        raise ValidationError("user_id is required", {"field": "user_id"})
    if from_store_id == to_store_id:
        raise ValidationError(
            "Source and destination stores must differ",
            {"from_store_id": from_store_id, "to_store_id": to_store_id},
        )
    _require_store(from_store_id, "from_store_id")
    _require_store(to_store_id, "to_store_id")
    parsed = _parse_items(items)
    transfer_date = date_field({"transfer_date": transfer_date}, "transfer_date") or utctoday()

    def _op() -> StockTransfer:
        transfer = StockTransfer(
            transfer_number=next_transfer_number(),
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            status="draft",
            transfer_date=transfer_date,
            notes=notes,
            requested_by=user_id,
        )
        db.session.add(transfer)
        _replace_items(transfer, parsed)
        db.session.flush()
        return transfer

    transfer = run_unit_of_work(_op, label="stock transfer", sequence_column="transfer_number")
    current_app.logger.info(
        "Created transfer %s (%s -> %s)", transfer.transfer_number, from_store_id, to_store_id,
    )
    return transfer


def update_transfer(
    transfer_id: int,
    user_id: int,
    items: list[dict] | None = None,
    notes: str | None = None,
    to_store_id: int | None = None,
) -> StockTransfer:
    """Edit a draft/pending transfer; lines are replaced and re-checked against source stock."""
    parsed = _parse_items(items) if items is not None else None
    if to_store_id is not None:
        _require_store(to_store_id, "to_store_id")

    def _op() -> StockTransfer:
        transfer = _lock_transfer(transfer_id)
        require_transfer_editable(transfer, "update")

        if to_store_id is not None:
            if to_store_id == transfer.from_store_id:
                raise ValidationError(
                    "Source and destination stores must differ",
                    {"from_store_id": transfer.from_store_id, "to_store_id": to_store_id},
                )
            transfer.to_store_id = to_store_id
        if notes is not None:
            transfer.notes = notes
        if parsed is not None:
            _replace_items(transfer, parsed)
        db.session.flush()
        return transfer

    return run_unit_of_work(_op, label=f"transfer {transfer_id}")


def delete_transfer(transfer_id: int, user_id: int) -> None:
    def _op() -> None:
        transfer = _lock_transfer(transfer_id)
        require_transfer_editable(transfer, "delete")
        db.session.delete(transfer)

    run_unit_of_work(_op, label=f"transfer {transfer_id}")
    current_app.logger.info("Deleted transfer %s by user %s", transfer_id, user_id)


def _transition(transfer_id: int, user_id: int, target: str, actor_field: str, stamp_field: str) -> StockTransfer:
    def _op() -> StockTransfer:
        transfer = _lock_transfer(transfer_id)
        require_transfer_transition(transfer, target)
        transfer.status = target
        if actor_field:
            setattr(transfer, actor_field, user_id)
        setattr(transfer, stamp_field, utcnow())
        db.session.flush()
        return transfer

    transfer = run_unit_of_work(_op, label=f"transfer {transfer_id}")
    current_app.logger.info("Transfer %s -> %s by user %s", transfer.transfer_number, target, user_id)
    return transfer


def submit_transfer(transfer_id: int, user_id: int) -> StockTransfer:
    return _transition(transfer_id, user_id, "pending", None, "submitted_at")


def approve_transfer(transfer_id: int, user_id: int) -> StockTransfer:
    return _transition(transfer_id, user_id, "approved", "approved_by", "approved_at")


def reject_transfer(transfer_id: int, user_id: int) -> StockTransfer:
    return _transition(transfer_id, user_id, "rejected", "rejected_by", "rejected_at")


def cancel_transfer(transfer_id: int, user_id: int) -> StockTransfer:
    return _transition(transfer_id, user_id, "cancelled", "cancelled_by", "cancelled_at")


def ship_transfer(transfer_id: int, user_id: int, items: list[dict] | None = None) -> StockTransfer:
    """
    Ship an approved transfer.

    Each line ships its requested quantity unless overridden (0..requested).
    Source stock is re-checked under lock and decremented with transfer_out
    movements; the source average cost is frozen on the line.
    """
    overrides = _parse_step_quantities(items)

    def _op() -> StockTransfer:
        transfer = _lock_transfer(transfer_id)
        require_transfer_transition(transfer, "shipped")

        known = {item.id for item in transfer.items}
        unknown = set(overrides) - known
        if unknown:
            raise ValidationError(
                f"Items {sorted(unknown)} do not belong to transfer {transfer.transfer_number}",
                {"transfer_id": transfer.id, "item_ids": sorted(unknown)},
            )

        total = 0
        for item in transfer.items:
            quantity = overrides.get(item.id, item.quantity_requested)
            if quantity > item.quantity_requested:
                raise QuantityExceeded(
                    f"Cannot ship {quantity} of product {item.product_id}: only {item.quantity_requested} requested",
                    {"item_id": item.id, "requested": quantity, "available": item.quantity_requested},
                )
            costs = _check_source_stock(
                transfer.from_store_id,
                [{"product_id": item.product_id, "quantity": quantity}],
                lock=True,
            )
            item.quantity_shipped = quantity
            item.unit_cost_cents = costs[item.product_id]
            total += quantity * item.unit_cost_cents
            if quantity == 0:
                continue
            record_movement(
                transfer.from_store_id,
                item.product_id,
                -quantity,
                "transfer_out",
                user_id=user_id,
                reference_type="stock_transfer",
                reference_id=transfer.id,
                unit_cost_cents=item.unit_cost_cents,
                notes=f"Transfer {transfer.transfer_number} to store {transfer.to_store_id}",
            )

        transfer.total_value_cents = total
        transfer.status = "shipped"
        transfer.shipped_by = user_id
        transfer.shipped_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_unit_of_work(_op, label=f"transfer {transfer_id}")
    current_app.logger.info("Transfer %s shipped by user %s", transfer.transfer_number, user_id)
    return transfer


def receive_transfer(transfer_id: int, user_id: int, items: list[dict] | None = None) -> StockTransfer:
    """
    Receive a shipped transfer at its destination.

    Each line receives its shipped quantity unless overridden (0..shipped).
    Missing destination inventory rows are created; the destination moving
    average absorbs the frozen source cost.
    """
    overrides = _parse_step_quantities(items)

    def _op() -> StockTransfer:
        transfer = _lock_transfer(transfer_id)
        require_transfer_transition(transfer, "received")

        known = {item.id for item in transfer.items}
        unknown = set(overrides) - known
        if unknown:
            raise ValidationError(
                f"Items {sorted(unknown)} do not belong to transfer {transfer.transfer_number}",
                {"transfer_id": transfer.id, "item_ids": sorted(unknown)},
            )

        for item in transfer.items:
            shipped = item.quantity_shipped or 0
            quantity = overrides.get(item.id, shipped)
            if quantity > shipped:
                raise QuantityExceeded(
                    f"Cannot receive {quantity} of product {item.product_id} (available: {shipped})",
                    {"item_id": item.id, "requested": quantity, "available": shipped},
                )
            item.quantity_received = quantity
            if quantity == 0:
                continue
            receive_into(
                transfer.to_store_id,
                item.product_id,
                quantity,
                item.unit_cost_cents,
                "transfer_in",
                user_id=user_id,
                reference_type="stock_transfer",
                reference_id=transfer.id,
                notes=f"Transfer {transfer.transfer_number} from store {transfer.from_store_id}",
            )

        transfer.status = "received"
        transfer.received_by = user_id
        transfer.received_at = utcnow()
        db.session.flush()
        return transfer

    transfer = run_unit_of_work(_op, label=f"transfer {transfer_id}")
    current_app.logger.info("Transfer %s received by user %s", transfer.transfer_number, user_id)
    return transfer
