# Overview: Service-layer operations for lifecycle; status vocabularies and legal transitions.

"""
RetailPOS Lifecycle Rules

================================================================================
SALES TRANSACTION STATUS
================================================================================

    completed -> voided     (void; terminal)
    completed -> refunded   (approved returns reach the significant ratio)

Status after any reversal is DERIVED, never set ad hoc:

    derive_status(original_qty, returned_qty, voided)
        voided                              -> "voided"
        returned_qty / original_qty >= 0.5  -> "refunded"
        otherwise                           -> "completed"

Void and return approval both go through derive_status so the two
reversal paths cannot disagree.

================================================================================
RETURN STATUS
================================================================================

    pending -> approved | rejected      (both terminal)

================================================================================
TRANSFER STATUS
================================================================================

    draft -> pending                    (submit)
    draft | pending -> approved
    pending -> rejected
    draft | pending | approved -> cancelled
    approved -> shipped -> received

Only draft and pending transfers are editable or deletable.
================================================================================
"""

from __future__ import annotations
from typing import Literal

from ..errors import InvalidState


# Sales transactions
VALID_STATUSES = {"pending", "completed", "voided", "refunded", "cancelled", "draft"}
TransactionStatus = Literal["pending", "completed", "voided", "refunded", "cancelled", "draft"]

SIGNIFICANT_RETURN_RATIO = 0.5

# Returns
RETURN_STATUSES = {"pending", "approved", "rejected"}
ReturnStatus = Literal["pending", "approved", "rejected"]

# Transfers
TRANSFER_STATUSES = {"draft", "pending", "approved", "shipped", "received", "cancelled", "rejected"}
TransferStatus = Literal["draft", "pending", "approved", "shipped", "received", "cancelled", "rejected"]

TRANSFER_TRANSITIONS = {
    ("draft", "pending"),
    ("draft", "approved"),
    ("pending", "approved"),
    ("pending", "rejected"),
    ("draft", "cancelled"),
    ("pending", "cancelled"),
    ("approved", "cancelled"),
    ("approved", "shipped"),
    ("shipped", "received"),
}
EDITABLE_TRANSFER_STATUSES = {"draft", "pending"}


class LifecycleError(InvalidState):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the user attempted an operation that violates business rules.
    """
    pass


def derive_status(
    original_qty: int,
    returned_qty: int,
    voided: bool,
    *,
    ratio: float = SIGNIFICANT_RETURN_RATIO,
) -> TransactionStatus:
    """
    Status of a settled transaction given its reversals.

    Args:
        original_qty: Total quantity sold on the transaction
        returned_qty: Cumulative quantity of APPROVED returns
        voided: Whether the transaction has been voided
        ratio: Returned fraction at which the transaction counts as refunded
    """
    if voided:
        return "voided"
    if original_qty > 0 and returned_qty / original_qty >= ratio:
        return "refunded"
    return "completed"


def require_transaction_status(transaction, allowed: set[str], action: str) -> None:
    if transaction.status not in allowed:
        raise LifecycleError(
            f"Cannot {action} transaction {transaction.transaction_number}: status is '{transaction.status}'",
            {"transaction_id": transaction.id, "status": transaction.status},
        )


def require_return_pending(sales_return, action: str) -> None:
    if sales_return.status != "pending":
        raise LifecycleError(
            f"Cannot {action} return {sales_return.return_number}: status is '{sales_return.status}'",
            {"return_id": sales_return.id, "status": sales_return.status},
        )


def can_transition_transfer(from_status: str, to_status: str) -> bool:
    if from_status not in TRANSFER_STATUSES or to_status not in TRANSFER_STATUSES:
        return False
    return (from_status, to_status) in TRANSFER_TRANSITIONS


def require_transfer_transition(transfer, to_status: str) -> None:
    if not can_transition_transfer(transfer.status, to_status):
        raise LifecycleError(
            f"Cannot move transfer {transfer.transfer_number} from '{transfer.status}' to '{to_status}'",
            {"transfer_id": transfer.id, "status": transfer.status, "target": to_status},
        )


def require_transfer_editable(transfer, action: str) -> None:
    if transfer.status not in EDITABLE_TRANSFER_STATUSES:
        raise LifecycleError(
            f"Cannot {action} transfer {transfer.transfer_number}: status is '{transfer.status}'",
            {"transfer_id": transfer.id, "status": transfer.status},
        )
