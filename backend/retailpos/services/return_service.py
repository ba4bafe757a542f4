"""
Return Service - customer returns against settled transactions

LIFECYCLE:
1. pending:  created against a completed transaction; holds the quantity
2. approved: good-condition items go back on the shelf (return movements);
             the transaction status is re-derived from approved quantities
3. rejected: nothing else changes; the held quantity is released

Returnable quantity per sold line is quantity - sum(non-rejected returns).
Refund per line is (unit_price - line discount) * quantity.

When an approval moves the transaction from completed to refunded and the
sale used a promo, one use of that promo is released. This is a heuristic:
the promo is not prorated across partial returns.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import SalesItem, SalesReturn, SalesTransaction, ReturnItem
from ..errors import InvalidState, NotFoundError, QuantityExceeded, ValidationError
from ..validation import date_field, int_field, list_field, str_field
from retailpos.time_utils import utcnow, utctoday
from .concurrency import lock_for_update, run_unit_of_work
from .inventory_service import get_or_create_inventory, record_movement
from .lifecycle_service import derive_status, require_return_pending, require_transaction_status
from .promotions_service import release_usage
from .sales_service import approved_returned_quantity, sold_quantity
from .sequence_service import next_return_number


ITEM_CONDITIONS = {"good", "damaged", "defective"}
RESTOCKABLE_CONDITIONS = {"good"}


def _parse_items(items) -> list[dict]:
    entries = list_field({"items": items}, "items")
    parsed = []
    for index, entry in enumerate(entries):
        condition = entry.get("condition") or "good"
        if condition not in ITEM_CONDITIONS:
            raise ValidationError(
                f"items[{index}].condition must be one of: {', '.join(sorted(ITEM_CONDITIONS))}",
                {"field": f"items[{index}].condition", "value": condition},
            )
        parsed.append({
            "sales_item_id": int_field(entry, "sales_item_id", minimum=1, label=f"items[{index}].sales_item_id"),
            "quantity": int_field(entry, "quantity", minimum=1, label=f"items[{index}].quantity"),
            "reason": str_field(entry, "reason"),
            "condition": condition,
        })
    return parsed


def _requested_by_item(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["sales_item_id"]] = totals.get(item["sales_item_id"], 0) + item["quantity"]
    return totals


def _check_quantities(tx: SalesTransaction, items: list[dict], exclude_return: SalesReturn | None = None) -> dict[int, SalesItem]:
    """
    Bound every requested quantity by what is still returnable.

    Quantities held by ``exclude_return`` (the return being edited) count as
    available. Raises before anything is written.
    """
    sales_items = {item.id: item for item in tx.items}
    for sales_item_id, requested in _requested_by_item(items).items():
        sales_item = sales_items.get(sales_item_id)
        if sales_item is None:
            raise ValidationError(
                f"Sales item {sales_item_id} does not belong to transaction {tx.transaction_number}",
                {"sales_item_id": sales_item_id, "transaction_id": tx.id},
            )

        available = sales_item.quantity_available_for_return
        if exclude_return is not None:
            available += sum(
                line.quantity for line in exclude_return.items if line.sales_item_id == sales_item_id
            )

        if requested > available:
            name = sales_item.product.name if sales_item.product else f"product {sales_item.product_id}"
            raise QuantityExceeded(
                f"Cannot return {requested} of '{name}' (available: {available})",
                {
                    "product_id": sales_item.product_id,
                    "sales_item_id": sales_item_id,
                    "requested": requested,
                    "available": available,
                },
            )
    return sales_items


def _build_items(sales_return: SalesReturn, items: list[dict], sales_items: dict[int, SalesItem]) -> int:
    refund_total = 0
    for item in items:
        sales_item = sales_items[item["sales_item_id"]]
        unit_refund = max(0, sales_item.unit_price_cents - (sales_item.discount_cents or 0))
        refund = unit_refund * item["quantity"]
        sales_return.items.append(ReturnItem(
            sales_item_id=sales_item.id,
            product_id=sales_item.product_id,
            quantity=item["quantity"],
            unit_price_cents=sales_item.unit_price_cents,
            refund_cents=refund,
            reason=item["reason"],
            condition=item["condition"],
        ))
        refund_total += refund
    return refund_total


def _lock_return(return_id: int) -> SalesReturn:
    sales_return = lock_for_update(db.session.query(SalesReturn).filter_by(id=return_id)).first()
    if sales_return is None:
        raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
    return sales_return


def _lock_transaction(transaction_id: int) -> SalesTransaction:
    tx = lock_for_update(db.session.query(SalesTransaction).filter_by(id=transaction_id)).first()
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return tx


def create_return(
    transaction_id: int,
    store_id: int,
    user_id: int,
    items: list[dict],
    reason: str | None = None,
    return_date: date | str | None = None,
) -> SalesReturn:
    """
    Open a pending return.

    Requires a completed transaction from ``store_id``, sold no more than
    RETURN_WINDOW_DAYS before today, with no other pending return. The
    window is measured from today; ``return_date`` is only recorded and may
    not precede the sale. Every line is bounded by its returnable quantity;
    QuantityExceeded names the product and what is still available.
    """
    if not user_id:
        raise ValidationError("user_id is required", {"field": "user_id"})
    parsed = _parse_items(items)
    return_date = date_field({"return_date": return_date}, "return_date") or utctoday()
    window_days = current_app.config.get("RETURN_WINDOW_DAYS", 30)

    def _op() -> SalesReturn:
        tx = _lock_transaction(transaction_id)
        if tx.store_id != store_id:
            raise ValidationError(
                f"Transaction {tx.transaction_number} was not sold in store {store_id}",
                {"transaction_id": tx.id, "store_id": store_id},
            )
        require_transaction_status(tx, {"completed"}, "return items from")

        sold_on = tx.transaction_date.date()
        if return_date < sold_on:
            raise ValidationError(
                f"Return date {return_date.isoformat()} is before the sale date {sold_on.isoformat()}",
                {"field": "return_date", "transaction_id": tx.id},
            )

        age_days = (utctoday() - sold_on).days
        if age_days > window_days:
            raise InvalidState(
                f"Transaction {tx.transaction_number} is outside the {window_days}-day return window",
                {"transaction_id": tx.id, "age_days": age_days, "window_days": window_days},
            )

        pending = (
            db.session.query(SalesReturn.id)
            .filter_by(sales_transaction_id=tx.id, status="pending")
            .first()
        )
        if pending is not None:
            raise InvalidState(
                f"Transaction {tx.transaction_number} already has a pending return",
                {"transaction_id": tx.id, "return_id": pending.id},
            )

        sales_items = _check_quantities(tx, parsed)

        sales_return = SalesReturn(
            return_number=next_return_number(),
            sales_transaction_id=tx.id,
            store_id=store_id,
            status="pending",
            return_date=return_date,
            reason=reason,
            created_by=user_id,
        )
        sales_return.refund_cents = _build_items(sales_return, parsed, sales_items)
        db.session.add(sales_return)
        db.session.flush()
        return sales_return

    sales_return = run_unit_of_work(_op, label="sales return", sequence_column="return_number")
    current_app.logger.info(
        "Created return %s for transaction %s (refund_cents=%s)",
        sales_return.return_number, transaction_id, sales_return.refund_cents,
    )
    return sales_return


def get_return(return_id: int) -> SalesReturn:
    sales_return = db.session.get(SalesReturn, return_id)
    if sales_return is None:
        raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
    return sales_return


def update_return(
    return_id: int,
    user_id: int,
    items: list[dict] | None = None,
    reason: str | None = None,
) -> SalesReturn:
    """Replace the lines and/or reason of a pending return."""
    parsed = _parse_items(items) if items is not None else None

    def _op() -> SalesReturn:
        sales_return = _lock_return(return_id)
        require_return_pending(sales_return, "update")

        if parsed is not None:
            tx = _lock_transaction(sales_return.sales_transaction_id)
            sales_items = _check_quantities(tx, parsed, exclude_return=sales_return)
            sales_return.items.clear()
            db.session.flush()
            sales_return.refund_cents = _build_items(sales_return, parsed, sales_items)
        if reason is not None:
            sales_return.reason = reason
        db.session.flush()
        return sales_return

    return run_unit_of_work(_op, label=f"return {return_id}")


def delete_return(return_id: int, user_id: int) -> None:
    def _op() -> None:
        sales_return = _lock_return(return_id)
        require_return_pending(sales_return, "delete")
        db.session.delete(sales_return)

    run_unit_of_work(_op, label=f"return {return_id}")
    current_app.logger.info("Deleted pending return %s by user %s", return_id, user_id)


def approve_return(return_id: int, user_id: int) -> SalesReturn:
    """
    Approve a pending return.

    Restocks good-condition items, then re-derives the transaction status
    from cumulative approved quantities.
    """
    ratio = current_app.config.get("SIGNIFICANT_RETURN_RATIO", 0.5)

    def _op() -> SalesReturn:
        sales_return = _lock_return(return_id)
        require_return_pending(sales_return, "approve")

        tx = _lock_transaction(sales_return.sales_transaction_id)
        if tx.status == "voided":
            raise InvalidState(
                f"Cannot approve return {sales_return.return_number}: transaction {tx.transaction_number} is voided",
                {"return_id": sales_return.id, "transaction_id": tx.id},
            )

        for item in sales_return.items:
            if item.condition not in RESTOCKABLE_CONDITIONS:
                continue
            inv = get_or_create_inventory(sales_return.store_id, item.product_id, lock=True)
            record_movement(
                sales_return.store_id,
                item.product_id,
                item.quantity,
                "return",
                user_id=user_id,
                reference_type="sales_return",
                reference_id=sales_return.id,
                unit_cost_cents=inv.average_cost_cents,
                notes=f"Return {sales_return.return_number}",
            )

        sales_return.status = "approved"
        sales_return.processed_by = user_id
        sales_return.processed_at = utcnow()
        db.session.flush()

        previous_status = tx.status
        new_status = derive_status(
            sold_quantity(tx.id),
            approved_returned_quantity(tx.id),
            voided=False,
            ratio=ratio,
        )
        if new_status != previous_status:
            tx.status = new_status
            if previous_status == "completed" and new_status == "refunded" and tx.discount_id and tx.discount_cents > 0:
                release_usage(tx.discount_id)
        db.session.flush()
        return sales_return

    sales_return = run_unit_of_work(_op, label=f"return {return_id}")
    current_app.logger.info(
        "Approved return %s by user %s (transaction status: %s)",
        sales_return.return_number, user_id, sales_return.sales_transaction.status,
    )
    return sales_return


def reject_return(return_id: int, user_id: int) -> SalesReturn:
    def _op() -> SalesReturn:
        sales_return = _lock_return(return_id)
        require_return_pending(sales_return, "reject")
        sales_return.status = "rejected"
        sales_return.processed_by = user_id
        sales_return.processed_at = utcnow()
        db.session.flush()
        return sales_return

    sales_return = run_unit_of_work(_op, label=f"return {return_id}")
    current_app.logger.info("Rejected return %s by user %s", sales_return.return_number, user_id)
    return sales_return
