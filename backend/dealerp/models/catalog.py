from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class TrackingMode:
    """How stock of a product is counted."""
    BATCH = "BATCH"    # undifferentiated quantity
    SERIAL = "SERIAL"  # one SerialUnit (VIN) per item

    ALL = {BATCH, SERIAL}


class Product(db.Model):
    """
    Product master data.

    Stock is never stored here: it is derived from the movement ledger
    (see services/inventory_service.py).

    SKU is globally unique. unit_price is the current list price; sale items
    copy it at sale time so later price edits never rewrite history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("unit_price >= 0", name="ck_products_unit_price_nonneg"),
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_level_nonneg"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="unit")

    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    tracking_mode = db.Column(db.String(16), nullable=False, default=TrackingMode.BATCH)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_serial(self) -> bool:
        return self.tracking_mode == TrackingMode.SERIAL

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "unit": self.unit,
            "unit_price": money_str(self.unit_price),
            "reorder_level": self.reorder_level,
            "tracking_mode": self.tracking_mode,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """A place stock sits in (showroom, yard, warehouse). Referenced by movements."""
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
