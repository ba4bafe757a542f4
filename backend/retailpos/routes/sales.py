# Overview: Flask API routes for sales transactions; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""
Sales Transaction API Routes

DESIGN:
- One POST settles a whole cart (items + payments + optional customer/promo)
- Transactions are immutable once settled; the only reversal here is void
- Returnable quantities are exposed per sold line for the returns screen
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import SettlementError
from ..services import sales_service
from ..validation import int_field, str_field
from ..decorators import require_actor


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/transactions")
@require_actor
def create_transaction_route():
    """
    Settle a transaction.

    Request body:
    {
        "store_id": 1,
        "items": [{"product_id": 5, "quantity": 2, "unit_price_cents": 1500, "discount_cents": 0}],
        "payments": [{"payment_method_id": 1, "amount_cents": 3000, "reference_number": null}],
        "customer_id": 7,          (optional)
        "discount_id": 3,          (optional)
        "reference_number": "...", (optional)
        "notes": "..."             (optional)
    }

    Returns:
        201: Settled transaction
        400: Invalid input
        404: Unknown store/product/customer/discount/payment method
        503: Transaction number could not be allocated
    """
    try:
        data = request.get_json(silent=True) or {}

        tx = sales_service.settle_transaction(
            store_id=int_field(data, "store_id", minimum=1),
            cashier_id=g.actor_id,
            items=data.get("items"),
            payments=data.get("payments"),
            customer_id=int_field(data, "customer_id", required=False, minimum=1),
            discount_id=int_field(data, "discount_id", required=False, minimum=1),
            reference_number=str_field(data, "reference_number", max_length=128),
            notes=str_field(data, "notes", max_length=2000),
        )

        return jsonify({"transaction": tx.to_dict()}), 201

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to settle transaction")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/transactions/<int:transaction_id>")
@require_actor
def get_transaction_route(transaction_id: int):
    try:
        tx = sales_service.get_transaction(transaction_id)
        return jsonify({"transaction": tx.to_dict()}), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/transactions/<int:transaction_id>/returnable")
@require_actor
def returnable_items_route(transaction_id: int):
    """Sold lines with the quantity still available for return."""
    try:
        items = sales_service.get_returnable_items(transaction_id)
        return jsonify({"transaction_id": transaction_id, "items": items}), 200
    except SettlementError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load returnable items for transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/transactions/<int:transaction_id>/void")
@require_actor
def void_transaction_route(transaction_id: int):
    """
    Void a completed transaction.

    Request body:
    {
        "reason": "Customer changed mind"  (optional, default: "Manual void")
    }

    Returns:
        200: Voided transaction
        404: Transaction not found
        409: Not completed, or has approved returns
    """
    try:
        data = request.get_json(silent=True) or {}

        tx = sales_service.void_transaction(
            transaction_id,
            user_id=g.actor_id,
            reason=str_field(data, "reason"),
        )

        return jsonify({"transaction": tx.to_dict()}), 200

    except SettlementError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to void transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500
