"""
Sales Service - settlement and void of sales transactions

settle_transaction turns a cart, an optional customer, an optional promo
discount and one or more payments into one SalesTransaction, in a single DB
transaction:

    number -> pricing -> header -> items + stock decrement (sale movements)
           -> payments with fees -> promo usage -> customer statistics

All input validation happens before the first write. Any failure rolls the
whole unit back; a duplicate transaction number re-runs it from the start.

void_transaction is the exact reverse for a completed transaction that has
no approved return.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import (
    Customer,
    Discount,
    PaymentMethod,
    Product,
    ReturnItem,
    SalesItem,
    SalesPayment,
    SalesReturn,
    SalesTransaction,
    Store,
)
from ..errors import InvalidState, NotFoundError, ValidationError
from ..validation import MAX_PRICE_CENTS, int_field, list_field, str_field
from retailpos.time_utils import utcnow
from .concurrency import lock_for_update, run_unit_of_work
from .inventory_service import get_or_create_inventory, record_movement
from .lifecycle_service import derive_status, require_transaction_status
from .pricing_service import CartLine, TierSnapshot, calculate_change, price_cart
from .promotions_service import applicable_promo, consume_usage, release_usage
from .sequence_service import next_transaction_number


DEFAULT_VOID_REASON = "Manual void"


# =============================================================================
# Validation (no writes)
# =============================================================================

def _parse_items(items) -> list[CartLine]:
    entries = list_field({"items": items}, "items")
    lines: list[CartLine] = []
    products: dict[int, Product] = {}

    for index, entry in enumerate(entries):
        product_id = int_field(entry, "product_id", minimum=1, label=f"items[{index}].product_id")
        quantity = int_field(entry, "quantity", minimum=1, label=f"items[{index}].quantity")

        product = products.get(product_id) or db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        if not product.is_active:
            raise ValidationError(f"Product '{product.name}' is inactive", {"product_id": product_id})
        products[product_id] = product

        unit_price = int_field(
            entry, "unit_price_cents",
            required=False, default=product.price_cents,
            minimum=0, maximum=MAX_PRICE_CENTS,
            label=f"items[{index}].unit_price_cents",
        )
        line_discount = int_field(
            entry, "discount_cents",
            required=False, default=0, minimum=0,
            label=f"items[{index}].discount_cents",
        )
        if line_discount > quantity * unit_price:
            raise ValidationError(
                f"Discount on '{product.name}' exceeds the line amount",
                {"product_id": product_id, "discount_cents": line_discount},
            )
        lines.append(CartLine(product_id, quantity, unit_price, line_discount))
    return lines


def _parse_payments(payments) -> list[dict]:
    entries = list_field({"payments": payments}, "payments")
    parsed = []
    for index, entry in enumerate(entries):
        method_id = int_field(entry, "payment_method_id", minimum=1, label=f"payments[{index}].payment_method_id")
        amount = int_field(entry, "amount_cents", minimum=1, label=f"payments[{index}].amount_cents")

        method = db.session.get(PaymentMethod, method_id)
        if method is None:
            raise NotFoundError(f"Payment method {method_id} not found", {"payment_method_id": method_id})
        if not method.is_active:
            raise ValidationError(f"Payment method '{method.name}' is inactive", {"payment_method_id": method_id})

        parsed.append({
            "payment_method_id": method_id,
            "amount_cents": amount,
            "reference_number": str_field(entry, "reference_number", max_length=128),
        })
    return parsed


def _require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found", {"store_id": store_id})
    if not store.is_active:
        raise ValidationError(f"Store '{store.name}' is inactive", {"store_id": store_id})
    return store


# =============================================================================
# Settlement
# =============================================================================

def settle_transaction(
    store_id: int,
    cashier_id: int,
    items: list[dict],
    payments: list[dict],
    customer_id: int | None = None,
    discount_id: int | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> SalesTransaction:
    """
    Settle a cart into a completed transaction.

    Unit prices default to the product price. Under-payment is accepted;
    change is max(0, paid - total). The promo discount is only recorded (and
    its usage counted) when it yields a positive amount.

    Raises:
        ValidationError / NotFoundError: bad input, nothing written
        SequenceExhausted: transaction number retries exhausted
        ConcurrencyConflict / InternalError: persistence failures
    """
    if not cashier_id:
        raise ValidationError("cashier_id is required", {"field": "cashier_id"})
    _require_store(store_id)
    lines = _parse_items(items)
    payment_lines = _parse_payments(payments)

    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found", {"customer_id": customer_id})
    if discount_id is not None and db.session.get(Discount, discount_id) is None:
        raise NotFoundError(f"Discount {discount_id} not found", {"discount_id": discount_id})

    def _op() -> SalesTransaction:
        number = next_transaction_number()
        now = utcnow()

        discount = None
        promo = None
        if discount_id is not None:
            discount = lock_for_update(db.session.query(Discount).filter_by(id=discount_id)).first()
            promo = applicable_promo(discount, store_id, now.date())

        customer = db.session.get(Customer, customer_id) if customer_id is not None else None
        tier = None
        if customer is not None and customer.customer_discount is not None:
            tier = TierSnapshot.from_model(customer.customer_discount)

        pricing = price_cart(lines, promo, tier)
        paid = sum(p["amount_cents"] for p in payment_lines)
        promo_applied = promo is not None and pricing.discount_cents > 0

        tx = SalesTransaction(
            transaction_number=number,
            store_id=store_id,
            customer_id=customer_id,
            cashier_id=cashier_id,
            discount_id=discount.id if promo_applied else None,
            transaction_date=now,
            subtotal_cents=pricing.subtotal_cents,
            discount_cents=pricing.discount_cents,
            customer_discount_cents=pricing.customer_discount_cents,
            customer_discount_bps=pricing.customer_discount_bps,
            tax_cents=pricing.tax_cents,
            total_cents=pricing.total_cents,
            paid_cents=paid,
            change_cents=calculate_change(paid, pricing.total_cents),
            status="completed",
            payment_status="paid",
            reference_number=reference_number,
            notes=notes,
        )
        db.session.add(tx)
        db.session.flush()

        for line in lines:
            db.session.add(SalesItem(
                sales_transaction_id=tx.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                total_cents=line.total_cents,
            ))
            inv = get_or_create_inventory(store_id, line.product_id, lock=True)
            record_movement(
                store_id,
                line.product_id,
                -line.quantity,
                "sale",
                user_id=cashier_id,
                reference_type="sales_transaction",
                reference_id=tx.id,
                unit_cost_cents=inv.average_cost_cents,
                notes=f"Sale {number}",
            )

        for payment in payment_lines:
            method = db.session.get(PaymentMethod, payment["payment_method_id"])
            db.session.add(SalesPayment(
                sales_transaction_id=tx.id,
                payment_method_id=method.id,
                amount_cents=payment["amount_cents"],
                fee_cents=method.calculate_fee(payment["amount_cents"]),
                reference_number=payment["reference_number"],
                status="completed",
            ))

        if promo_applied:
            consume_usage(discount.id)

        if customer is not None:
            db.session.execute(
                update(Customer)
                .where(Customer.id == customer.id)
                .values(
                    total_spent_cents=Customer.total_spent_cents + pricing.total_cents,
                    total_transactions=Customer.total_transactions + 1,
                    last_transaction_date=now.date(),
                )
            )

        db.session.flush()
        return tx

    tx = run_unit_of_work(
        _op,
        label="sales transaction",
        sequence_column="transaction_number",
    )
    current_app.logger.info(
        "Settled transaction %s (store=%s, total_cents=%s, paid_cents=%s)",
        tx.transaction_number, tx.store_id, tx.total_cents, tx.paid_cents,
    )
    return tx


# =============================================================================
# Lookups
# =============================================================================

def get_transaction(transaction_id: int) -> SalesTransaction:
    tx = db.session.get(SalesTransaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return tx


def approved_returned_quantity(transaction_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(SalesReturn, SalesReturn.id == ReturnItem.sales_return_id)
        .filter(
            SalesReturn.sales_transaction_id == transaction_id,
            SalesReturn.status == "approved",
        )
        .scalar()
        or 0
    )


def sold_quantity(transaction_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(SalesItem.quantity), 0))
        .filter(SalesItem.sales_transaction_id == transaction_id)
        .scalar()
        or 0
    )


def get_returnable_items(transaction_id: int) -> list[dict]:
    """Per sold line: quantity still available for return (pending/approved returns hold quantity)."""
    tx = get_transaction(transaction_id)
    rows = []
    for item in tx.items:
        returned = item.returned_quantity
        rows.append({
            "sales_item_id": item.id,
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "quantity": item.quantity,
            "returned_quantity": returned,
            "available_quantity": item.quantity - returned,
            "unit_price_cents": item.unit_price_cents,
            "discount_cents": item.discount_cents,
        })
    return rows


# =============================================================================
# Void
# =============================================================================

def void_transaction(transaction_id: int, user_id: int, reason: str | None = None) -> SalesTransaction:
    """
    Fully reverse a completed transaction.

    Restores stock for every item (adjustment movements), voids completed
    payments, releases one promo use, and marks the transaction voided.
    Rejected when the transaction is not completed or has an approved return.
    """
    if not user_id:
        raise ValidationError("user_id is required", {"field": "user_id"})
    reason = (reason or "").strip() or DEFAULT_VOID_REASON

    def _op() -> SalesTransaction:
        tx = lock_for_update(db.session.query(SalesTransaction).filter_by(id=transaction_id)).first()
        if tx is None:
            raise NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})

        require_transaction_status(tx, {"completed"}, "void")

        approved_returns = (
            db.session.query(SalesReturn.id)
            .filter_by(sales_transaction_id=tx.id, status="approved")
            .count()
        )
        if approved_returns:
            raise InvalidState(
                f"Cannot void transaction {tx.transaction_number}: it has approved returns",
                {"transaction_id": tx.id, "approved_returns": approved_returns},
            )

        for item in tx.items:
            inv = get_or_create_inventory(tx.store_id, item.product_id, lock=True)
            record_movement(
                tx.store_id,
                item.product_id,
                item.quantity,
                "adjustment",
                user_id=user_id,
                reference_type="sales_transaction_void",
                reference_id=tx.id,
                unit_cost_cents=inv.average_cost_cents,
                notes=f"Void of {tx.transaction_number}: {reason}",
            )

        for payment in tx.payments:
            if payment.status == "completed":
                payment.status = "voided"

        if tx.discount_id and tx.discount_cents > 0:
            release_usage(tx.discount_id)

        tx.status = derive_status(sold_quantity(tx.id), approved_returned_quantity(tx.id), voided=True)
        tx.voided_at = utcnow()
        tx.voided_by = user_id
        tx.void_reason = reason
        db.session.flush()
        return tx

    tx = run_unit_of_work(_op, label=f"void of transaction {transaction_id}")
    current_app.logger.info(
        "Voided transaction %s by user %s (%s)", tx.transaction_number, user_id, tx.void_reason,
    )
    return tx
