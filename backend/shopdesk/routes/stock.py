# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import stock_service
from ..services.stock_service import StockError
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, require_int, coerce_date
from ..decorators import require_auth, require_permission


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/adjust")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_stock_route():
    """
    Manual stock adjustment.

    Request body:
    {
        "product_id": 1,
        "quantity": 3,
        "direction": "add" | "remove"
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = require_int(data, "product_id", minimum=1)
        quantity = require_int(data, "quantity", minimum=1)
        direction = data.get("direction")

        product = stock_service.adjust_stock(g.current_user, product_id, quantity, direction)
        return jsonify({"product": product.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/purchases")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_purchases_route():
    limit = min(request.args.get("limit", 200, type=int), 1000)
    purchases = stock_service.list_purchases(limit=limit)
    return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)}), 200


@stock_bp.post("/purchases")
@require_auth
@require_permission("RECORD_PURCHASE")
def record_purchase_route():
    """
    Record a restocking purchase; increments the product's stock.

    Request body:
    {
        "product_id": 1,
        "quantity": 12,
        "purchase_date": "2024-05-01",   (optional, defaults to today)
        "file_url": "https://..."        (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = require_int(data, "product_id", minimum=1)
        quantity = require_int(data, "quantity", minimum=1)
        purchase_date = None
        if data.get("purchase_date"):
            purchase_date = coerce_date("purchase_date", data["purchase_date"])

        purchase = stock_service.record_purchase(
            g.current_user,
            product_id,
            quantity,
            purchase_date=purchase_date,
            file_url=data.get("file_url"),
        )
        return jsonify({"purchase": purchase.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500
