# Overview: Flask API routes for serial-tracked units (vehicles).

from flask import Blueprint, request, g

from ..services import inventory_service, serial_unit_service
from ..validation import require_positive_int
from ..decorators import require_auth, require_permission

serial_units_bp = Blueprint("serial_units", __name__, url_prefix="/api/serial-units")


@serial_units_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_units_route():
    """
    Query params:
    - product_id: int (optional)
    - status: AVAILABLE (default) | SOLD | all
    """
    product_id = request.args.get("product_id", type=int)
    status = request.args.get("status", "AVAILABLE").upper()

    if status == "AVAILABLE":
        units = serial_unit_service.list_available(product_id)
    else:
        units = serial_unit_service.list_units(
            product_id=product_id,
            status=None if status == "ALL" else status,
        )
    return {"units": [u.to_dict() for u in units], "count": len(units)}


@serial_units_bp.post("")
@require_auth
@require_permission("MANAGE_SERIAL_UNITS")
def register_unit_route():
    """Body: product_id, location_id, vin."""
    data = request.get_json(silent=True) or {}
    unit = serial_unit_service.register_unit(
        actor=g.actor,
        product_id=require_positive_int(data.get("product_id"), "product_id"),
        location_id=require_positive_int(data.get("location_id"), "location_id"),
        vin=data.get("vin"),
    )
    return unit.to_dict(), 201


@serial_units_bp.get("/<int:unit_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_unit_route(unit_id: int):
    unit = serial_unit_service.get_unit(unit_id)
    data = unit.to_dict()
    data["stock"] = inventory_service.get_unit_stock(unit.id)
    return data
