# Overview: Flask API routes for transfers operations; parses input and returns JSON responses.

# backend/retailpos/routes/transfers.py
"""
Inter-store Transfer API Routes

LIFECYCLE:
    draft -> pending -> approved -> shipped -> received
    pending -> rejected; draft/pending/approved -> cancelled

Stock moves on ship (source) and receive (destination) only.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import SettlementError
from ..services import transfer_service
from ..validation import int_field, str_field
from ..decorators import require_actor


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _error_response(e: SettlementError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def _internal_error(message: str, transfer_id: int | None = None):
    db.session.rollback()
    current_app.logger.exception("%s (transfer_id=%s)", message, transfer_id)
    return jsonify({"error": "Internal server error"}), 500


@transfers_bp.post("")
@require_actor
def create_transfer_route():
    """
    Create a draft transfer.

    Request body:
    {
        "from_store_id": 1,
        "to_store_id": 2,
        "transfer_date": "2024-01-20",  (optional)
        "notes": "Restock weekend promo",  (optional)
        "items": [{"product_id": 5, "quantity": 10, "notes": null}]
    }

    Returns:
        201: Transfer created (status: draft)
        400: Invalid input
        422: Insufficient stock at the source store
    """
    try:
        data = request.get_json(silent=True) or {}

        transfer = transfer_service.create_transfer(
            from_store_id=int_field(data, "from_store_id", minimum=1),
            to_store_id=int_field(data, "to_store_id", minimum=1),
            user_id=g.actor_id,
            items=data.get("items"),
            notes=str_field(data, "notes", max_length=2000),
            transfer_date=data.get("transfer_date"),
        )

        return jsonify({"transfer": transfer.to_dict()}), 201

    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to create transfer")


@transfers_bp.get("/<int:transfer_id>")
@require_actor
def get_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to load transfer", transfer_id)


@transfers_bp.put("/<int:transfer_id>")
@require_actor
def update_transfer_route(transfer_id: int):
    """Edit a draft/pending transfer (to_store_id, notes, items; all optional)."""
    try:
        data = request.get_json(silent=True) or {}

        transfer = transfer_service.update_transfer(
            transfer_id,
            user_id=g.actor_id,
            items=data.get("items") if "items" in data else None,
            notes=str_field(data, "notes", max_length=2000),
            to_store_id=int_field(data, "to_store_id", required=False, minimum=1),
        )

        return jsonify({"transfer": transfer.to_dict()}), 200

    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to update transfer", transfer_id)


@transfers_bp.delete("/<int:transfer_id>")
@require_actor
def delete_transfer_route(transfer_id: int):
    try:
        transfer_service.delete_transfer(transfer_id, user_id=g.actor_id)
        return jsonify({"deleted": True, "id": transfer_id}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to delete transfer", transfer_id)


# =============================================================================
# WORKFLOW
# =============================================================================

@transfers_bp.post("/<int:transfer_id>/submit")
@require_actor
def submit_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.submit_transfer(transfer_id, user_id=g.actor_id)
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to submit transfer", transfer_id)


@transfers_bp.post("/<int:transfer_id>/approve")
@require_actor
def approve_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.approve_transfer(transfer_id, user_id=g.actor_id)
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to approve transfer", transfer_id)


@transfers_bp.post("/<int:transfer_id>/reject")
@require_actor
def reject_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.reject_transfer(transfer_id, user_id=g.actor_id)
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to reject transfer", transfer_id)


@transfers_bp.post("/<int:transfer_id>/cancel")
@require_actor
def cancel_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.cancel_transfer(transfer_id, user_id=g.actor_id)
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to cancel transfer", transfer_id)


@transfers_bp.post("/<int:transfer_id>/ship")
@require_actor
def ship_transfer_route(transfer_id: int):
    """
    Ship an approved transfer.

    Request body (optional):
    {
        "items": [{"id": 11, "quantity": 8}]   per-line shipped quantity (<= requested)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.ship_transfer(transfer_id, user_id=g.actor_id, items=data.get("items"))
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to ship transfer", transfer_id)


@transfers_bp.post("/<int:transfer_id>/receive")
@require_actor
def receive_transfer_route(transfer_id: int):
    """
    Receive a shipped transfer.

    Request body (optional):
    {
        "items": [{"id": 11, "quantity": 7}]   per-line received quantity (<= shipped)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        transfer = transfer_service.receive_transfer(transfer_id, user_id=g.actor_id, items=data.get("items"))
        return jsonify({"transfer": transfer.to_dict()}), 200
    except SettlementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to receive transfer", transfer_id)
