# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

- POST /api/sales/checkout  -> cart + client + payment choice -> sale + receipt
- GET  /api/sales           -> sales history for a date range
- GET  /api/sales/<id>      -> one sale with lines and installments
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Product, Sale
from ..services import reporting_service
from ..services.cart import Cart, CartError
from ..services.checkout_service import CheckoutError, PaymentChoice, checkout
from ..services.permission_service import PermissionDeniedError
from ..services.reporting_service import ReportError
from ..validation import ValidationError, coerce_date, optional_int
from ..decorators import require_auth, require_permission
from shopdesk.time_utils import today


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_payment(data: dict) -> PaymentChoice:
    raw = data.get("payment")
    if not isinstance(raw, dict):
        raise ValidationError("payment required")

    for key in ("kind", "method"):
        if raw.get(key) is not None and not isinstance(raw[key], str):
            raise ValidationError(f"payment.{key} must be a string")

    return PaymentChoice(
        kind=raw.get("kind"),
        method=raw.get("method"),
        installments=optional_int(raw, "installments"),
        amount_tendered_cents=optional_int(raw, "amount_tendered_cents", minimum=0),
    )


def _parse_lines(data: dict) -> list[dict]:
    lines = data.get("lines")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines required")
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("each line must be an object")
    return lines


@sales_bp.post("/checkout")
@require_auth
@require_permission("CREATE_SALE")
def checkout_route():
    """
    Complete a sale.

    Request body:
    {
        "client_id": 1,
        "lines": [{"product_id": 1, "quantity": 2}],
        "payment": {"kind": "cash", "method": "money", "amount_tendered_cents": 2000}
                 | {"kind": "installment", "installments": 3}
    }

    Returns 201 with {"sale": ..., "receipt": ...}. Failures return 400 with
    the stage that failed; nothing is persisted.
    """
    data = request.get_json(silent=True) or {}

    try:
        lines = _parse_lines(data)
        payment = _parse_payment(data)
        client_id = optional_int(data, "client_id", minimum=1)

        product_ids = {line.get("product_id") for line in lines if isinstance(line.get("product_id"), int)}
        products = db.session.query(Product).filter(Product.id.in_(product_ids)).all() if product_ids else []
        cart = Cart.from_requested_lines(products, lines)

        result = checkout(cart, client_id, payment, g.current_user)
        return jsonify({
            "sale": result.sale.to_dict(include_lines=True),
            "receipt": result.receipt,
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except CheckoutError as e:
        return jsonify(e.to_dict()), 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Sales history, newest first.

    Query params:
    - start_date: YYYY-MM-DD (default today)
    - end_date: YYYY-MM-DD (default start_date)
    """
    try:
        start_raw = request.args.get("start_date")
        end_raw = request.args.get("end_date")
        start_date = coerce_date("start_date", start_raw) if start_raw else today()
        end_date = coerce_date("end_date", end_raw) if end_raw else start_date

        items = reporting_service.sales_history(start_date, end_date)
        return jsonify({
            "items": items,
            "count": len(items),
            "total_cents": sum(item["total_cents"] for item in items),
        }), 200

    except (ValidationError, ReportError) as e:
        return jsonify({"error": str(e)}), 400


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    sale = db.session.get(Sale, sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict(include_lines=True)}), 200
