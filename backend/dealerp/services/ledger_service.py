# Overview: Service-layer operations for the stock movement ledger; append-only writes and reads.

from __future__ import annotations

from typing import Optional

from sqlalchemy import event, func

from ..extensions import db
from ..models import (
    Direction,
    Location,
    MovementEntry,
    MovementReason,
    Product,
    SaleItem,
    SerialUnit,
    TrackingMode,
    UnitStatus,
    User,
)
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    ValidationError,
    require_int_range,
)
from . import inventory_service
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .session_service import Actor

"""
Movement Ledger Invariants (authoritative)

- Every stock change is one MovementEntry row; rows are never updated or deleted.
- quantity is signed. direction agrees with the sign. reason is metadata only.
- stock(product) = SUM(quantity) over its entries, stock(unit) = SUM over the unit's entries.
- Corrections are new offsetting entries (reason=ADJUSTMENT).
- Entries are written inside the same transaction as the domain change they record.
"""

APPEND_ONLY_MODELS = (MovementEntry, SaleItem)


def _reject_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        f"{target.__class__.__name__} {target.id} is append-only and cannot be updated"
    )


def _reject_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        f"{target.__class__.__name__} {target.id} is append-only and cannot be deleted"
    )


def register_immutability_listeners() -> None:
    """Install ORM guards on append-only tables. Safe to call more than once."""
    for model in APPEND_ONLY_MODELS:
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def validate_movement_shape(quantity: int, direction: str, reason: str) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")
    require_int_range(quantity, "quantity")
    if direction not in Direction.ALL:
        raise ValidationError(f"direction must be one of: {', '.join(sorted(Direction.ALL))}")
    if reason not in MovementReason.ALL:
        raise ValidationError(f"reason must be one of: {', '.join(sorted(MovementReason.ALL))}")
    if direction == Direction.IN and quantity < 0:
        raise ValidationError("IN movements must have a positive quantity")
    if direction == Direction.OUT and quantity > 0:
        raise ValidationError("OUT movements must have a negative quantity")
    if direction not in MovementReason.ALLOWED_DIRECTIONS[reason]:
        raise ValidationError(f"reason {reason} cannot be recorded as {direction}")


def require_actor(actor: Actor) -> User:
    if actor is None or not actor.user_id:
        raise ValidationError("performed_by user is required")
    user = db.session.get(User, actor.user_id)
    if user is None or not user.is_active:
        raise ValidationError(f"User {actor.user_id} is not an active user")
    return user


def append_entry(
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    direction: str,
    reason: str,
    reference_type: str,
    reference_id: Optional[str],
    performed_by_user_id: int,
    serial_unit_id: Optional[int] = None,
    note: Optional[str] = None,
) -> MovementEntry:
    """
    Insert one ledger row and flush. NO COMMIT: callers own the transaction.
    """
    validate_movement_shape(quantity, direction, reason)
    if not reference_type:
        raise ValidationError("reference_type is required")

    entry = MovementEntry(
        product_id=product_id,
        location_id=location_id,
        serial_unit_id=serial_unit_id,
        quantity=quantity,
        direction=direction,
        reason=reason,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        performed_by_user_id=performed_by_user_id,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _stock_for_update(product_id: int) -> int:
    total = db.session.query(func.coalesce(func.sum(MovementEntry.quantity), 0)).filter(
        MovementEntry.product_id == product_id
    ).scalar()
    return int(total or 0)


def _lock_unit(
    product: Product,
    location_id: int,
    serial_unit_id: Optional[int],
    quantity: int,
    reason: str,
) -> Optional[SerialUnit]:
    """Validate a unit-level movement and return the locked unit (None for BATCH products)."""
    if product.tracking_mode != TrackingMode.SERIAL:
        if serial_unit_id is not None:
            raise ValidationError(f"Product {product.id} is not serial-tracked; serial_unit_id is not allowed")
        return None

    if serial_unit_id is None:
        raise ValidationError(f"Product {product.id} is serial-tracked; serial_unit_id is required")
    unit = lock_for_update(db.session.query(SerialUnit).filter_by(id=serial_unit_id)).first()
    if unit is None:
        raise ValidationError(f"Serial unit {serial_unit_id} does not exist")
    if unit.product_id != product.id:
        raise ValidationError(f"Serial unit {unit.id} does not belong to product {product.id}")
    if unit.location_id != location_id:
        raise ValidationError(f"Serial unit {unit.id} is held at location {unit.location_id}")
    if abs(quantity) != 1:
        raise ValidationError("A serial unit movement has quantity 1 or -1")
    if reason == MovementReason.SALE:
        raise ValidationError("Serial units leave stock as SALE only through a sale")
    if unit.status != UnitStatus.AVAILABLE:
        raise ConflictError(f"Vehicle {unit.vin} has been sold")

    unit_stock = inventory_service.get_unit_stock(unit.id)
    if quantity < 0 and unit_stock < 1:
        raise InsufficientStockError(product.id, 1, unit_stock, product.name)
    if quantity > 0 and unit_stock >= 1:
        raise ConflictError(f"Vehicle {unit.vin} is already in stock")
    return unit


def record_movement(
    *,
    actor: Actor,
    product_id: int,
    location_id: int,
    quantity: int,
    direction: str,
    reason: str,
    serial_unit_id: Optional[int] = None,
    reference_type: str = "MANUAL",
    reference_id: Optional[str] = None,
    note: Optional[str] = None,
) -> MovementEntry:
    """
    Record a manual movement (receipt, damage, adjustment).

    BATCH products move by any count; an OUT that would take the product
    below zero raises InsufficientStockError.

    SERIAL products move one unit at a time: serial_unit_id is required,
    quantity is 1 or -1 at the unit's location, and SALE is left to
    create_sale(). A unit written off with DAMAGE keeps status AVAILABLE
    but has stock 0, so it cannot be sold until an IN ADJUSTMENT restores it.
    """
    validate_movement_shape(quantity, direction, reason)

    def _op() -> MovementEntry:
        begin_write_transaction()
        user = require_actor(actor)

        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ValidationError(f"Product {product_id} does not exist")

        location = db.session.get(Location, location_id)
        if location is None:
            raise ValidationError(f"Location {location_id} does not exist")
        if not location.is_active:
            raise ValidationError(f"Location {location.name} is inactive")

        unit = _lock_unit(product, location.id, serial_unit_id, quantity, reason)

        if unit is None and quantity < 0:
            available = _stock_for_update(product.id)
            if available + quantity < 0:
                raise InsufficientStockError(product.id, -quantity, available, product.name)

        return append_entry(
            product_id=product.id,
            location_id=location.id,
            serial_unit_id=unit.id if unit is not None else None,
            quantity=quantity,
            direction=direction,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            performed_by_user_id=user.id,
            note=note,
        )

    return run_in_transaction(_op)


def list_movements(
    *,
    product_id: Optional[int] = None,
    serial_unit_id: Optional[int] = None,
    reason: Optional[str] = None,
    limit: int = 200,
) -> list[MovementEntry]:
    """Newest first."""
    q = db.session.query(MovementEntry)
    if product_id is not None:
        q = q.filter(MovementEntry.product_id == product_id)
    if serial_unit_id is not None:
        q = q.filter(MovementEntry.serial_unit_id == serial_unit_id)
    if reason is not None:
        q = q.filter(MovementEntry.reason == reason)
    return q.order_by(MovementEntry.created_at.desc(), MovementEntry.id.desc()).limit(limit).all()
