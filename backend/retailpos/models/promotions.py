from __future__ import annotations

from datetime import date

from ..extensions import db
from retailpos.time_utils import to_utc_z, to_iso_date, utctoday


DISCOUNT_TYPES = {"percentage", "fixed", "buy_x_get_y"}


class Discount(db.Model):
    """
    Promo discount applied at the transaction level.

    Can be global (store_id=NULL) or store-specific.
    value is basis points for "percentage" and cents for "fixed".
    For "buy_x_get_y", minimum_quantity is X and get_quantity is Y.

    usage_count tracks non-reversed transactions that consumed the discount.
    Reaching usage_limit deactivates it (deactivated_by_limit=True) so that a
    later release can reactivate it without overriding a manual deactivation.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_discounts_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    type = db.Column(db.String(32), nullable=False)  # percentage, fixed, buy_x_get_y
    value = db.Column(db.Integer, nullable=False, default=0)

    minimum_amount_cents = db.Column(db.Integer, nullable=True)
    maximum_discount_cents = db.Column(db.Integer, nullable=True)
    minimum_quantity = db.Column(db.Integer, nullable=True)
    get_quantity = db.Column(db.Integer, nullable=True)

    usage_count = db.Column(db.Integer, nullable=False, default=0)
    usage_limit = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deactivated_by_limit = db.Column(db.Boolean, nullable=False, default=False)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def is_valid(self, on: date | None = None) -> bool:
        """Active, inside its date window and not usage-exhausted."""
        on = on or utctoday()
        if not self.is_active:
            return False
        if self.start_date and on < self.start_date:
            return False
        if self.end_date and on > self.end_date:
            return False
        if self.usage_limit is not None and (self.usage_count or 0) >= self.usage_limit:
            return False
        return True

    def can_apply_to_store(self, store_id: int) -> bool:
        return self.store_id is None or self.store_id == store_id

    def to_dict(self):
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "type": self.type,
            "value": self.value,
            "minimum_amount_cents": self.minimum_amount_cents,
            "maximum_discount_cents": self.maximum_discount_cents,
            "minimum_quantity": self.minimum_quantity,
            "get_quantity": self.get_quantity,
            "usage_count": self.usage_count,
            "usage_limit": self.usage_limit,
            "is_active": self.is_active,
            "deactivated_by_limit": self.deactivated_by_limit,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
