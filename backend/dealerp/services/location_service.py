# Overview: Service-layer operations for stock locations.

from __future__ import annotations

from ..extensions import db
from ..models import Location
from ..validation import ConflictError, NotFoundError, ValidationError


def list_locations(*, include_inactive: bool = False) -> list[Location]:
    q = db.session.query(Location)
    if not include_inactive:
        q = q.filter(Location.is_active.is_(True))
    return q.order_by(Location.name).all()


def get_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    return location


def create_location(name: str) -> Location:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120")
    if db.session.query(Location.id).filter_by(name=name).first():
        raise ConflictError(f"Location {name} already exists")

    location = Location(name=name, is_active=True)
    db.session.add(location)
    db.session.commit()
    return location


def ensure_location(name: str) -> Location:
    """Idempotent create, used by `flask system init`."""
    location = db.session.query(Location).filter_by(name=name).first()
    if location is None:
        location = create_location(name)
    return location


def deactivate_location(location_id: int) -> Location:
    """Deactivated locations keep their history but accept no new movements."""
    location = get_location(location_id)
    location.is_active = False
    db.session.commit()
    return location
