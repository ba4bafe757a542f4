# Overview: Service-layer operations for sequence; allocates daily document numbers.

"""
Daily document numbering: PREFIX-YYYYMMDD-NNNN.

The latest number of the day is read under a row lock and incremented. The
candidate is double-checked against existing rows before it is returned.
Two writers can still race on an empty day (nothing to lock) or on databases
that ignore FOR UPDATE; that collision surfaces as a unique violation at
insert time and is retried by concurrency.run_unit_of_work.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import SalesTransaction, SalesReturn, StockTransfer
from retailpos.time_utils import utctoday
from .concurrency import lock_for_update


NUMBER_WIDTH = 4


def day_prefix(prefix: str, on_date: date) -> str:
    return f"{prefix}-{on_date:%Y%m%d}-"


def format_number(prefix: str, on_date: date, sequence: int, width: int = NUMBER_WIDTH) -> str:
    return f"{day_prefix(prefix, on_date)}{sequence:0{width}d}"


def parse_sequence(number: str | None, prefix: str, on_date: date) -> int:
    """Return the trailing counter of ``number`` or 0 when it is not today's format."""
    if not number:
        return 0
    head = day_prefix(prefix, on_date)
    if not number.startswith(head):
        return 0
    tail = number[len(head):]
    return int(tail) if tail.isdigit() else 0


def next_number(model, column_name: str, prefix: str, on_date: date | None = None) -> str:
    """
    Allocate the next number of the day for ``model.column_name``.

    Must run inside the caller's DB transaction so the lock is held until
    the new row is inserted.
    """
    on_date = on_date or utctoday()
    column = getattr(model, column_name)

    query = (
        db.session.query(model)
        .filter(column.like(f"{day_prefix(prefix, on_date)}%"))
        .order_by(model.id.desc())
    )
    latest = lock_for_update(query).first()
    candidate = parse_sequence(getattr(latest, column_name, None), prefix, on_date) + 1

    # Double-check: bump past numbers already taken (out-of-order ids, manual rows)
    while db.session.query(model.id).filter(column == format_number(prefix, on_date, candidate)).first():
        candidate += 1

    return format_number(prefix, on_date, candidate)


def next_transaction_number(on_date: date | None = None) -> str:
    return next_number(
        SalesTransaction,
        "transaction_number",
        current_app.config["TRANSACTION_NUMBER_PREFIX"],
        on_date,
    )


def next_return_number(on_date: date | None = None) -> str:
    return next_number(
        SalesReturn,
        "return_number",
        current_app.config["RETURN_NUMBER_PREFIX"],
        on_date,
    )


def next_transfer_number(on_date: date | None = None) -> str:
    return next_number(
        StockTransfer,
        "transfer_number",
        current_app.config["TRANSFER_NUMBER_PREFIX"],
        on_date,
    )
