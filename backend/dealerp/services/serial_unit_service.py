# Overview: Service-layer operations for serial units (vehicles identified by VIN).

from __future__ import annotations

import re
from typing import Optional

from sqlalchemy import func, select, update

from ..extensions import db
from ..models import (
    Direction,
    Location,
    MovementEntry,
    MovementReason,
    Product,
    SerialUnit,
    TrackingMode,
    UnitStatus,
)
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import begin_write_transaction, run_in_transaction
from .ledger_service import append_entry, require_actor
from .session_service import Actor

"""
Serial Unit Registry Invariants

- VIN is globally unique (after normalization) and immutable.
- status moves AVAILABLE -> SOLD exactly once, through mark_sold().
- Registration appends a +1 PURCHASE entry for the unit, so unit stock is
  1 while AVAILABLE and 0 after the SALE entry.
- A DAMAGE entry takes an AVAILABLE unit to stock 0 without changing its
  status; such a unit is neither listed as available nor sellable.
"""

SERIAL_UNIT_REFERENCE = "SERIAL_UNIT"
VIN_MAX_LENGTH = 64


def normalize_vin(vin) -> str:
    if not isinstance(vin, str):
        raise ValidationError("vin is required")
    normalized = re.sub(r"\s+", "", vin).upper()
    if not normalized:
        raise ValidationError("vin is required")
    if len(normalized) > VIN_MAX_LENGTH:
        raise ValidationError(f"vin exceeds max length {VIN_MAX_LENGTH}")
    return normalized


def register_unit(*, actor: Actor, product_id: int, location_id: int, vin: str) -> SerialUnit:
    """
    Register a vehicle unit and record its arrival on the ledger.

    Raises:
        ValidationError: blank VIN, product is not SERIAL-tracked, location inactive
        NotFoundError: product or location missing
        ConflictError: VIN already registered
    """
    normalized = normalize_vin(vin)

    def _op() -> SerialUnit:
        begin_write_transaction()
        user = require_actor(actor)

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if product.tracking_mode != TrackingMode.SERIAL:
            raise ValidationError(f"Product {product.id} is not serial-tracked")
        if not product.is_active:
            raise ValidationError(f"Product {product.id} is inactive")

        location = db.session.get(Location, location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        if not location.is_active:
            raise ValidationError(f"Location {location.name} is inactive")

        if db.session.query(SerialUnit.id).filter_by(vin=normalized).first():
            raise ConflictError(f"Vehicle with VIN {normalized} already exists")

        unit = SerialUnit(
            product_id=product.id,
            location_id=location.id,
            vin=normalized,
            status=UnitStatus.AVAILABLE,
            created_at=utcnow(),
        )
        db.session.add(unit)
        db.session.flush()

        append_entry(
            product_id=product.id,
            location_id=location.id,
            serial_unit_id=unit.id,
            quantity=1,
            direction=Direction.IN,
            reason=MovementReason.PURCHASE,
            reference_type=SERIAL_UNIT_REFERENCE,
            reference_id=str(unit.id),
            performed_by_user_id=user.id,
        )
        return unit

    return run_in_transaction(_op)


def get_unit(unit_id: int) -> SerialUnit:
    unit = db.session.get(SerialUnit, unit_id)
    if unit is None:
        raise NotFoundError(f"Serial unit {unit_id} not found")
    return unit


def get_unit_by_vin(vin: str) -> SerialUnit:
    normalized = normalize_vin(vin)
    unit = db.session.query(SerialUnit).filter_by(vin=normalized).first()
    if unit is None:
        raise NotFoundError(f"Vehicle with VIN {normalized} not found")
    return unit


def list_available(product_id: Optional[int] = None) -> list[SerialUnit]:
    """AVAILABLE units still on hand; a unit written off by DAMAGE is left out."""
    unit_stock = (
        select(func.coalesce(func.sum(MovementEntry.quantity), 0))
        .where(MovementEntry.serial_unit_id == SerialUnit.id)
        .scalar_subquery()
    )
    q = db.session.query(SerialUnit).filter(SerialUnit.status == UnitStatus.AVAILABLE, unit_stock > 0)
    if product_id is not None:
        q = q.filter(SerialUnit.product_id == product_id)
    return q.order_by(SerialUnit.id).all()


def list_units(*, product_id: Optional[int] = None, status: Optional[str] = None) -> list[SerialUnit]:
    q = db.session.query(SerialUnit)
    if product_id is not None:
        q = q.filter(SerialUnit.product_id == product_id)
    if status is not None:
        if status not in {UnitStatus.AVAILABLE, UnitStatus.SOLD}:
            raise ValidationError("status must be AVAILABLE or SOLD")
        q = q.filter(SerialUnit.status == status)
    return q.order_by(SerialUnit.id).all()


def mark_sold(unit_id: int, *, sale_id: int) -> None:
    """
    AVAILABLE -> SOLD as a single conditional UPDATE. NO COMMIT.

    Zero affected rows means another transaction sold the unit first
    (or it never existed): the caller's transaction must roll back.
    """
    now = utcnow()
    result = db.session.execute(
        update(SerialUnit)
        .where(SerialUnit.id == unit_id, SerialUnit.status == UnitStatus.AVAILABLE)
        .values(status=UnitStatus.SOLD, sale_id=sale_id, sold_at=now)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        if db.session.get(SerialUnit, unit_id) is None:
            raise NotFoundError(f"Serial unit {unit_id} not found")
        raise ConflictError(f"Serial unit {unit_id} is no longer available")
