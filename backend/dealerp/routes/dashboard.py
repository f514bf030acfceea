# Overview: Flask API routes for the dashboard.

from flask import Blueprint

from ..services import dashboard_service
from ..decorators import require_auth, require_permission

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_permission("VIEW_DASHBOARD")
def stats_route():
    return dashboard_service.get_dashboard_stats()
