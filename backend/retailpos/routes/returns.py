# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/retailpos/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Create a pending return against a settled transaction, lines included
- Pending returns can be edited or deleted
- Approve restocks good items and re-derives the transaction status
- Reject closes the return without stock effect
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import SettlementError
from ..services import return_service
from ..validation import int_field, str_field
from ..decorators import require_actor


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# RETURN CREATION / EDITING
# =============================================================================

@returns_bp.post("")
@require_actor
def create_return_route():
    """
    Create a new return (status: pending).

    Request body:
    {
        "sales_transaction_id": 123,
        "store_id": 1,
        "reason": "Wrong size",          (optional)
        "return_date": "2024-01-20",     (optional, default: today)
        "items": [
            {"sales_item_id": 456, "quantity": 2, "condition": "good", "reason": "..."}
        ]
    }

    Returns:
        201: Return created
        400: Invalid input, return date before the sale
        404: Transaction not found
        409: Transaction not completed, outside the return window, or a return is already pending
        422: Quantity exceeds what is still returnable
    """
    try:
        data = request.get_json(silent=True) or {}

        sales_return = return_service.create_return(
            transaction_id=int_field(data, "sales_transaction_id", minimum=1),
            store_id=int_field(data, "store_id", minimum=1),
            user_id=g.actor_id,
            items=data.get("items"),
            reason=str_field(data, "reason", max_length=2000),
            return_date=data.get("return_date"),
        )

        return jsonify({"return": sales_return.to_dict()}), 201

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_actor
def get_return_route(return_id: int):
    try:
        sales_return = return_service.get_return(return_id)
        return jsonify({"return": sales_return.to_dict()}), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.put("/<int:return_id>")
@require_actor
def update_return_route(return_id: int):
    """
    Edit a pending return.

    Request body (all optional):
    {
        "reason": "...",
        "items": [{"sales_item_id": 456, "quantity": 1, "condition": "damaged"}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        sales_return = return_service.update_return(
            return_id,
            user_id=g.actor_id,
            items=data.get("items") if "items" in data else None,
            reason=str_field(data, "reason", max_length=2000),
        )

        return jsonify({"return": sales_return.to_dict()}), 200

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.delete("/<int:return_id>")
@require_actor
def delete_return_route(return_id: int):
    try:
        return_service.delete_return(return_id, user_id=g.actor_id)
        return jsonify({"deleted": True, "id": return_id}), 200
    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# APPROVAL WORKFLOW
# =============================================================================

@returns_bp.post("/<int:return_id>/approve")
@require_actor
def approve_return_route(return_id: int):
    """
    Approve a pending return.

    Returns:
        200: Approved return plus the transaction's new status
        409: Return not pending, or transaction voided
    """
    try:
        sales_return = return_service.approve_return(return_id, user_id=g.actor_id)
        return jsonify({
            "return": sales_return.to_dict(),
            "transaction_status": sales_return.sales_transaction.status,
        }), 200
    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_actor
def reject_return_route(return_id: int):
    try:
        sales_return = return_service.reject_return(return_id, user_id=g.actor_id)
        return jsonify({"return": sales_return.to_dict()}), 200
    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject return %s", return_id)
        return jsonify({"error": "Internal server error"}), 500
