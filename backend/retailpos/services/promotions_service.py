from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Discount
from .pricing_service import PromoSnapshot


def applicable_promo(discount: Discount | None, store_id: int, on: date | None = None) -> PromoSnapshot | None:
    """Snapshot of ``discount`` if it may be applied in ``store_id`` today, else None."""
    if discount is None:
        return None
    if not discount.is_valid(on) or not discount.can_apply_to_store(store_id):
        return None
    return PromoSnapshot.from_model(discount)


def _usage_state(discount_id: int):
    return (
        db.session.query(
            Discount.usage_count,
            Discount.usage_limit,
            Discount.is_active,
            Discount.deactivated_by_limit,
        )
        .filter(Discount.id == discount_id)
        .one()
    )


def consume_usage(discount_id: int) -> int:
    """
    Atomically count one use; auto-deactivate when the limit is reached.

    Runs inside the caller's transaction. Returns the new usage_count.
    """
    db.session.execute(
        update(Discount)
        .where(Discount.id == discount_id)
        .values(usage_count=Discount.usage_count + 1)
    )
    state = _usage_state(discount_id)

    if state.usage_limit is not None and state.usage_count >= state.usage_limit and state.is_active:
        db.session.execute(
            update(Discount)
            .where(Discount.id == discount_id)
            .values(is_active=False, deactivated_by_limit=True)
        )
        current_app.logger.info(
            "Discount %s deactivated: usage limit reached (%d/%d)",
            discount_id, state.usage_count, state.usage_limit,
        )
    return state.usage_count


def release_usage(discount_id: int) -> int:
    """
    Atomically give one use back (never below zero).

    Reactivates the discount only if it was deactivated by its usage limit
    and is now below that limit. Returns the new usage_count.
    """
    db.session.execute(
        update(Discount)
        .where(Discount.id == discount_id, Discount.usage_count > 0)
        .values(usage_count=Discount.usage_count - 1)
    )
    state = _usage_state(discount_id)

    below_limit = state.usage_limit is None or state.usage_count < state.usage_limit
    if state.deactivated_by_limit and below_limit:
        db.session.execute(
            update(Discount)
            .where(Discount.id == discount_id)
            .values(is_active=True, deactivated_by_limit=False)
        )
        current_app.logger.info(
            "Discount %s reactivated: usage dropped below limit (%d/%s)",
            discount_id, state.usage_count, state.usage_limit,
        )
    return state.usage_count
