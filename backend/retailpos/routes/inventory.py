# backend/retailpos/routes/inventory.py
"""
Inventory ledger routes.

- Stock level and movement history per (store, product)
- Manual adjustments (increase/decrease) with an adjustment movement
- Supplier receipts with a purchase movement and moving-average cost update

Sales, returns and transfers move stock through their own endpoints.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import SettlementError
from ..services import inventory_service
from ..validation import int_field, str_field
from ..decorators import require_actor


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<int:store_id>/<int:product_id>")
@require_actor
def stock_level_route(store_id: int, product_id: int):
    try:
        inv = inventory_service.get_stock_level(store_id, product_id)
        return jsonify({"inventory": inv.to_dict()}), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock level store=%s product=%s", store_id, product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:store_id>/<int:product_id>/movements")
@require_actor
def movements_route(store_id: int, product_id: int):
    """Newest first. Query params: limit (1-500, default 100), offset."""
    try:
        limit = int_field(request.args, "limit", required=False, default=100, minimum=1, maximum=500)
        offset = int_field(request.args, "offset", required=False, default=0, minimum=0)
        movements = inventory_service.list_movements(store_id, product_id, limit=limit, offset=offset)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list movements store=%s product=%s", store_id, product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@require_actor
def adjust_route():
    """
    Manual stock correction.

    Request body:
    {
        "store_id": 1,
        "product_id": 5,
        "quantity": 3,
        "direction": "increase" | "decrease",
        "notes": "Damaged in storage"  (optional)
    }

    Returns:
        201: Movement recorded
        422: Decrease exceeds on-hand quantity
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = inventory_service.adjust_stock(
            store_id=int_field(data, "store_id", minimum=1),
            product_id=int_field(data, "product_id", minimum=1),
            quantity=int_field(data, "quantity", minimum=1),
            direction=data.get("direction"),
            user_id=g.actor_id,
            notes=str_field(data, "notes"),
        )

        return jsonify({"movement": movement.to_dict()}), 201

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/receive")
@require_actor
def receive_route():
    """
    Receive goods from a supplier.

    Request body:
    {
        "store_id": 1,
        "product_id": 5,
        "quantity": 24,
        "unit_cost_cents": 850,
        "notes": "PO-2024-001"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = inventory_service.receive_stock(
            store_id=int_field(data, "store_id", minimum=1),
            product_id=int_field(data, "product_id", minimum=1),
            quantity=int_field(data, "quantity", minimum=1),
            unit_cost_cents=int_field(data, "unit_cost_cents", minimum=0),
            user_id=g.actor_id,
            notes=str_field(data, "notes"),
        )

        return jsonify({"movement": movement.to_dict()}), 201

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500
