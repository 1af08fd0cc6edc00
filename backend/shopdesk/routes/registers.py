# Overview: Flask API routes for registers operations; parses input and returns JSON responses.

"""
Cash Register API Routes

WHY: Each operator opens a register at the start of a shift, records cash
movements and closes it at the end with a computed balance.

SECURITY:
- OPERATE_REGISTER for the caller's own register
- VIEW_ALL_REGISTERS (admin) to see or close other operators' registers
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import register_service
from ..services.register_service import CashRegisterError
from ..services.permission_service import PermissionDeniedError
from ..validation import ValidationError, require_amount_cents, optional_int
from ..decorators import require_auth, require_permission


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _register_error(e: CashRegisterError):
    return jsonify({"error": str(e)}), 409 if e.conflict else 400


@registers_bp.get("/current")
@require_auth
@require_permission("OPERATE_REGISTER")
def current_register_route():
    """Caller's open register with live balance and transactions, or null."""
    register = register_service.get_open_register(g.current_user.id)
    if not register:
        return jsonify({"register": None}), 200
    return jsonify({"register": register_service.get_register_summary(register)}), 200


@registers_bp.post("/open")
@require_auth
@require_permission("OPERATE_REGISTER")
def open_register_route():
    """
    Open a register.

    Request body:
    {
        "initial_balance_cents": 10000
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        initial = require_amount_cents(data, "initial_balance_cents")
        register = register_service.open_register(g.current_user, initial)
        return jsonify({"register": register_service.get_register_summary(register)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CashRegisterError as e:
        return _register_error(e)
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to open register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/close")
@require_auth
@require_permission("OPERATE_REGISTER")
def close_register_route():
    """
    Close a register.

    Request body (optional):
    {
        "register_id": 5   (defaults to the caller's open register)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        register_id = optional_int(data, "register_id", minimum=1)
        register = register_service.close_register(g.current_user, register_id)
        return jsonify({"register": register_service.get_register_summary(register)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CashRegisterError as e:
        return _register_error(e)
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


def _manual_movement(record):
    data = request.get_json(silent=True) or {}

    try:
        amount = require_amount_cents(data, "amount_cents", allow_zero=False)
        description = (data.get("description") or "").strip()
        if not description:
            raise ValidationError("description required")

        tx = record(g.current_user, amount, description)
        return jsonify({"transaction": tx.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CashRegisterError as e:
        return _register_error(e)
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to record register movement")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/deposits")
@require_auth
@require_permission("OPERATE_REGISTER")
def deposit_route():
    """Request body: {"amount_cents": 5000, "description": "Change float"}"""
    return _manual_movement(register_service.record_deposit)


@registers_bp.post("/withdrawals")
@require_auth
@require_permission("OPERATE_REGISTER")
def withdrawal_route():
    """Request body: {"amount_cents": 2000, "description": "Bank drop"}"""
    return _manual_movement(register_service.record_withdrawal)


@registers_bp.get("")
@require_auth
@require_permission("OPERATE_REGISTER")
def list_registers_route():
    """
    Register history, newest first.

    Query params:
    - status: open | closed (optional)
    - limit: int (default 100)
    """
    try:
        registers = register_service.list_registers(
            g.current_user,
            status=request.args.get("status"),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
    except CashRegisterError as e:
        return _register_error(e)

    return jsonify({"items": [r.to_dict() for r in registers], "count": len(registers)}), 200


@registers_bp.get("/<int:register_id>/transactions")
@require_auth
@require_permission("OPERATE_REGISTER")
def register_transactions_route(register_id: int):
    try:
        register = register_service.get_register_for_viewer(g.current_user, register_id)
    except CashRegisterError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": str(e)}), 403

    transactions = register_service.list_transactions(register.id)
    return jsonify({
        "register": register.to_dict(),
        "items": [tx.to_dict() for tx in transactions],
        "count": len(transactions),
    }), 200
