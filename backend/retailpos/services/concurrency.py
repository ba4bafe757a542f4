# Overview: Service-layer operations for concurrency; row locks and the unit-of-work wrapper.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    ConcurrencyConflict,
    InternalError,
    SequenceExhausted,
    SettlementError,
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_unique_violation(exc: IntegrityError, column: str) -> bool:
    """
    True when the IntegrityError was raised by a unique index on ``column``.

    SQLite reports "UNIQUE constraint failed: table.column"; PostgreSQL and
    MySQL mention the column in the detail / key name.
    """
    message = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in message and "duplicate" not in message:
        return False
    return column.lower() in message


def run_unit_of_work(
    func,
    *,
    label: str,
    sequence_column: str | None = None,
    attempts: int | None = None,
    backoff_base: float | None = None,
):
    """
    Run ``func`` and commit, as one all-or-nothing DB transaction.

    - SettlementError: rolled back and re-raised unchanged
    - unique violation on ``sequence_column``: rolled back and the whole
      unit of work re-run from the start, bounded with exponential backoff;
      exhaustion raises SequenceExhausted
    - any other IntegrityError / StaleDataError: ConcurrencyConflict
    - any other SQLAlchemyError: logged with ``label``, InternalError

    Only sequence collisions are retried; every other failure surfaces on
    the first attempt.
    """
    config = current_app.config
    attempts = attempts or config.get("SEQUENCE_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = config.get("SEQUENCE_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except SettlementError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            db.session.rollback()
            if sequence_column and is_unique_violation(exc, sequence_column):
                current_app.logger.warning(
                    "Duplicate %s while saving %s (attempt %d/%d), retrying",
                    sequence_column, label, attempt + 1, attempts,
                )
                if attempt < attempts - 1:
                    time.sleep(backoff_base * (2 ** attempt))
                    continue
                current_app.logger.error(
                    "Gave up allocating %s for %s after %d attempts",
                    sequence_column, label, attempts,
                )
                raise SequenceExhausted(details={"attempts": attempts})
            current_app.logger.warning("Integrity conflict while saving %s: %s", label, exc.orig)
            raise ConcurrencyConflict(
                f"A conflicting change was saved while processing {label}. Please retry.",
            )
        except StaleDataError:
            db.session.rollback()
            current_app.logger.warning("Stale write detected while saving %s", label)
            raise ConcurrencyConflict(
                f"{label} was modified by another request. Please reload and retry.",
            )
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Unexpected database error while saving %s", label)
            raise InternalError()
    raise SequenceExhausted(details={"attempts": attempts})
