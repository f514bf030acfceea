# Overview: Flask API routes for stock locations.

from flask import Blueprint, request

from ..services import location_service
from ..decorators import require_auth, require_permission

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_locations():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    locations = location_service.list_locations(include_inactive=include_inactive)
    return {"locations": [loc.to_dict() for loc in locations]}


@locations_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_location():
    data = request.get_json(silent=True) or {}
    location = location_service.create_location(data.get("name"))
    return location.to_dict(), 201


@locations_bp.post("/<int:location_id>/deactivate")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def deactivate_location(location_id: int):
    return location_service.deactivate_location(location_id).to_dict()
