# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..services import reporting_service
from ..validation import ValidationError, coerce_date
from ..decorators import require_auth, require_permission
from shopdesk.time_utils import today


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
@require_permission("VIEW_REPORTS")
def dashboard_route():
    """Query params: date (YYYY-MM-DD, default today)."""
    try:
        raw = request.args.get("date")
        day = coerce_date("date", raw) if raw else today()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(reporting_service.dashboard_stats(day)), 200
