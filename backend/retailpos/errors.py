# Overview: Domain error taxonomy shared by services and routes.

"""
Settlement error taxonomy.

Every error carries a human-readable message naming the offending entity,
a structured ``details`` dict, and the HTTP status routes answer with.

- ValidationError:     malformed or missing input, raised before any write
- NotFoundError:       referenced entity does not exist
- InvalidState:        operation not legal for the entity's current status
- QuantityExceeded:    return/transfer request exceeds returnable or on-hand quantity
- SequenceExhausted:   transaction-number retries exhausted
- ConcurrencyConflict: unique-constraint violation not resolved by retry
- InternalError:       unexpected persistence failure (message is generic)
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for errors raised by the settlement core."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(SettlementError):
    """400-level input problem."""


class NotFoundError(SettlementError):
    status_code = 404


class InvalidState(SettlementError):
    """409-level lifecycle violation (e.g. voiding a voided transaction)."""

    status_code = 409


class QuantityExceeded(SettlementError):
    status_code = 422


class ConcurrencyConflict(SettlementError):
    status_code = 409


class SequenceExhausted(SettlementError):
    status_code = 503

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(
            message or "Could not allocate a transaction number. Please try again.",
            details,
        )


class InternalError(SettlementError):
    status_code = 500

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(
            message or "An unexpected error occurred while saving. Please try again.",
            details,
        )
