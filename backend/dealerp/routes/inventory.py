# backend/dealerp/routes/inventory.py
"""
Inventory routes: ledger writes and ledger-derived stock reads.

- View operations require VIEW_INVENTORY permission
- Manual movements require RECORD_MOVEMENT permission
"""
from flask import Blueprint, request, g

from ..models import Direction, MovementEntry, MovementReason
from ..services import inventory_service, ledger_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id", "location_id", "serial_unit_id", "quantity", "direction", "reason",
        "reference_type", "reference_id", "note",
    },
    required_on_create={"product_id", "location_id", "quantity", "direction", "reason"},
    choices={"direction": Direction.ALL, "reason": MovementReason.ALL},
)


@inventory_bp.post("/movements")
@require_auth
@require_permission("RECORD_MOVEMENT")
def record_movement_route():
    """
    Record a manual movement.

    quantity is signed and must agree with direction (IN > 0, OUT < 0).
    Vehicles move one unit at a time and need serial_unit_id.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=MovementEntry, payload=payload, policy=MOVEMENT_POLICY, partial=False)

    entry = ledger_service.record_movement(
        actor=g.actor,
        product_id=patch["product_id"],
        location_id=patch["location_id"],
        quantity=patch["quantity"],
        direction=patch["direction"],
        reason=patch["reason"],
        serial_unit_id=patch.get("serial_unit_id"),
        reference_type=patch.get("reference_type") or "MANUAL",
        reference_id=patch.get("reference_id"),
        note=patch.get("note"),
    )
    return {
        "movement": entry.to_dict(),
        "current_stock": inventory_service.get_current_stock(entry.product_id),
    }, 201


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    limit = min(request.args.get("limit", default=200, type=int), 1000)
    movements = ledger_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        serial_unit_id=request.args.get("serial_unit_id", type=int),
        reason=request.args.get("reason"),
        limit=max(limit, 1),
    )
    return {"movements": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/stock/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def stock_route(product_id: int):
    return inventory_service.get_inventory_summary(product_id)


@inventory_bp.get("/snapshot")
@require_auth
@require_permission("VIEW_INVENTORY")
def snapshot_route():
    snapshot = inventory_service.get_stock_snapshot()
    return {"items": snapshot, "count": len(snapshot)}


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    rows = inventory_service.list_low_stock()
    return {
        "items": [
            {
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "reorder_level": product.reorder_level,
                "current_stock": stock,
                "status": inventory_service.stock_status(stock, product.reorder_level),
            }
            for product, stock in rows
        ],
        "count": len(rows),
    }
