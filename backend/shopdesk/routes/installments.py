# Overview: Flask API routes for installments operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import installment_service
from ..services.installment_service import InstallmentError, InstallmentFilter, STATUS_ALL
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, coerce_date
from ..decorators import require_auth, require_permission
from shopdesk.time_utils import today


installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


@installments_bp.get("")
@require_auth
@require_permission("VIEW_INSTALLMENTS")
def list_installments_route():
    """
    Installments grouped by client.

    Query params:
    - search: client name (case-insensitive)
    - status: all | pending | paid | overdue (default all)
    - due_today: true to keep only installments due today
    """
    filters = InstallmentFilter(
        search=request.args.get("search"),
        status=request.args.get("status") or STATUS_ALL,
        due_today=(request.args.get("due_today") or "").lower() in {"1", "true", "yes"},
        today=today(),
    )

    try:
        groups = installment_service.list_grouped_by_client(filters)
    except InstallmentError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"groups": [group.to_dict() for group in groups], "count": len(groups)}), 200


@installments_bp.post("/<int:installment_id>/pay")
@require_auth
@require_permission("RECEIVE_INSTALLMENT")
def pay_installment_route(installment_id: int):
    """
    Mark an installment paid.

    Request body:
    {
        "payment_date": "2024-06-01",   (optional, defaults to today)
        "payment_method": "money" | "pix" | "debit" | "credit"
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        payment_date = coerce_date("payment_date", data["payment_date"]) if data.get("payment_date") else today()
        payment_method = data.get("payment_method")
        if not payment_method:
            raise ValidationError("payment_method required")
        if not isinstance(payment_method, str):
            raise ValidationError("payment_method must be a string")

        inst = installment_service.mark_paid(g.current_user, installment_id, payment_date, payment_method)
        return jsonify({"installment": inst.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InstallmentError as e:
        return jsonify({"error": str(e)}), 404 if e.not_found else 400
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to record installment payment")
        return jsonify({"error": "Internal server error"}), 500
