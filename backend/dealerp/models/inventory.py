from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class UnitStatus:
    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"


class Direction:
    IN = "IN"
    OUT = "OUT"

    ALL = {IN, OUT}


class MovementReason:
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    DAMAGE = "DAMAGE"
    ADJUSTMENT = "ADJUSTMENT"

    ALL = {PURCHASE, SALE, DAMAGE, ADJUSTMENT}

    # Directions each reason may be recorded with
    ALLOWED_DIRECTIONS = {
        PURCHASE: {Direction.IN},
        SALE: {Direction.OUT},
        DAMAGE: {Direction.OUT},
        ADJUSTMENT: {Direction.IN, Direction.OUT},
    }


class SerialUnit(db.Model):
    """
    An individually identified unit (a vehicle) of a SERIAL-tracked product.

    LIFECYCLE: AVAILABLE -> SOLD, exactly once. The transition is a
    conditional UPDATE (WHERE status='AVAILABLE') inside the sale transaction;
    see services/serial_unit_service.mark_sold.
    """
    __tablename__ = "serial_units"
    __table_args__ = (
        db.Index("ix_serial_units_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    # Normalized: upper-case, no whitespace
    vin = db.Column(db.String(64), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default=UnitStatus.AVAILABLE, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("serial_units", lazy=True))
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return f"<SerialUnit id={self.id} vin={self.vin!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "vin": self.vin,
            "status": self.status,
            "sale_id": self.sale_id,
            "sold_at": to_utc_z(self.sold_at) if self.sold_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class MovementEntry(db.Model):
    """
    Append-only stock ledger.

    quantity is SIGNED and is the only input to stock derivation:
    stock(product) = SUM(quantity). direction must agree with the sign and
    reason is metadata. Rows are never updated or deleted (enforced by
    ORM listeners in services/ledger_service.py); corrections are new
    offsetting entries.

    A SERIAL product's entries each carry serial_unit_id and quantity +/-1.
    """
    __tablename__ = "movement_entries"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_movements_quantity_nonzero"),
        db.CheckConstraint(
            "(direction = 'IN' AND quantity > 0) OR (direction = 'OUT' AND quantity < 0)",
            name="ck_movements_direction_sign",
        ),
        db.Index("ix_movements_product_created", "product_id", "created_at"),
        db.Index("ix_movements_reference", "reference_type", "reference_id"),
        # Second line of defence against double-selling a unit
        db.Index(
            "uq_movements_unit_sale",
            "serial_unit_id",
            unique=True,
            sqlite_where=db.text("reason = 'SALE'"),
            postgresql_where=db.text("reason = 'SALE'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    serial_unit_id = db.Column(db.Integer, db.ForeignKey("serial_units.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(8), nullable=False)
    reason = db.Column(db.String(16), nullable=False, index=True)

    # What caused the movement: ("SALE", sale id), ("SERIAL_UNIT", unit id), ("MANUAL", note/ref) ...
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.String(64), nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    location = db.relationship("Location")
    serial_unit = db.relationship("SerialUnit")
    performed_by = db.relationship("User")

    def __repr__(self) -> str:
        return (
            f"<MovementEntry id={self.id} product_id={self.product_id} "
            f"quantity={self.quantity} reason={self.reason}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "serial_unit_id": self.serial_unit_id,
            "quantity": self.quantity,
            "direction": self.direction,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "performed_by_user_id": self.performed_by_user_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
