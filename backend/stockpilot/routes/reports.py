# Overview: Cached report endpoints.

from flask import Blueprint, current_app

from ..decorators import require_auth
from ..extensions import cache
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales-summary")
@require_auth
@cache.cached()
def sales_summary_route():
    return {"success": True, "summary": reporting_service.get_sales_summary()}


@reports_bp.get("/alerts")
@require_auth
@cache.cached()
def report_alerts_route():
    """Same lists as the dashboard, capped at REPORT_ALERT_LIMIT entries each."""
    limit = current_app.config.get("REPORT_ALERT_LIMIT", 10)
    return {"success": True, **reporting_service.get_inventory_alerts(limit=limit)}
