# Overview: Cached dashboard aggregates.

from flask import Blueprint

from ..decorators import require_auth
from ..extensions import cache
from ..services import reporting_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

# Responses are cached per path (no query string) and marked stale by
# services.revalidation after every write.


@dashboard_bp.get("/overview")
@require_auth
@cache.cached()
def overview_route():
    return {"success": True, "stats": reporting_service.get_overview_stats()}


@dashboard_bp.get("/recent-activity")
@require_auth
@cache.cached()
def recent_activity_route():
    return {"success": True, **reporting_service.get_recent_activity()}


@dashboard_bp.get("/alerts")
@require_auth
@cache.cached()
def alerts_route():
    return {"success": True, **reporting_service.get_inventory_alerts()}
