# Overview: Service-layer operations for inventory; derives stock from the movement ledger.

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func

from ..extensions import db
from ..models import Location, MovementEntry, Product, SerialUnit, TrackingMode, UnitStatus
from ..validation import NotFoundError

"""
Stock Aggregator Invariants

- Stock is NEVER stored. It is SUM(MovementEntry.quantity), computed on read.
- Reads are side-effect free: calling any function here twice with no
  intervening movement returns identical results.
- A product with no entries has stock 0.
"""


class StockStatus:
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


def stock_status(stock: int, reorder_level: int) -> str:
    if stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if stock <= reorder_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def stock_subquery():
    return (
        db.session.query(
            MovementEntry.product_id.label("product_id"),
            func.sum(MovementEntry.quantity).label("stock"),
        )
        .group_by(MovementEntry.product_id)
        .subquery()
    )


def get_current_stock(product_id: int) -> int:
    """
    Ledger-derived stock of one product.

    Raises NotFoundError if the product does not exist.
    """
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    total = db.session.query(func.coalesce(func.sum(MovementEntry.quantity), 0)).filter(
        MovementEntry.product_id == product_id
    ).scalar()
    return int(total or 0)


def get_unit_stock(serial_unit_id: int) -> int:
    """1 while a registered unit is on hand, 0 once sold or written off."""
    if db.session.get(SerialUnit, serial_unit_id) is None:
        raise NotFoundError(f"Serial unit {serial_unit_id} not found")

    total = db.session.query(func.coalesce(func.sum(MovementEntry.quantity), 0)).filter(
        MovementEntry.serial_unit_id == serial_unit_id
    ).scalar()
    return int(total or 0)


def get_stock_levels(product_ids: Optional[Iterable[int]] = None) -> dict[int, int]:
    """product_id -> stock in one grouped query. Products without entries are omitted."""
    q = db.session.query(MovementEntry.product_id, func.sum(MovementEntry.quantity))
    if product_ids is not None:
        ids = list(product_ids)
        if not ids:
            return {}
        q = q.filter(MovementEntry.product_id.in_(ids))
    rows = q.group_by(MovementEntry.product_id).all()
    return {product_id: int(total or 0) for product_id, total in rows}


def get_stock_snapshot(*, include_inactive: bool = False) -> list[dict]:
    """Every product with its derived stock and status, ordered by name."""
    sq = stock_subquery()
    stock_col = func.coalesce(sq.c.stock, 0)
    q = db.session.query(Product, stock_col).outerjoin(sq, sq.c.product_id == Product.id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))

    snapshot = []
    for product, stock in q.order_by(Product.name, Product.id).all():
        stock = int(stock)
        snapshot.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": product.category,
            "tracking_mode": product.tracking_mode,
            "reorder_level": product.reorder_level,
            "current_stock": stock,
            "status": stock_status(stock, product.reorder_level),
        })
    return snapshot


def list_low_stock() -> list[tuple[Product, int]]:
    """
    Active products whose stock is at or below their reorder level,
    lowest stock first (ties by name).
    """
    sq = stock_subquery()
    stock_col = func.coalesce(sq.c.stock, 0)
    rows = (
        db.session.query(Product, stock_col)
        .outerjoin(sq, sq.c.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .filter(stock_col <= Product.reorder_level)
        .order_by(stock_col.asc(), Product.name, Product.id)
        .all()
    )
    return [(product, int(stock)) for product, stock in rows]


def count_low_stock() -> int:
    return len(list_low_stock())


def get_stock_by_location(product_id: int) -> list[dict]:
    """Per-location breakdown; locations that net to zero are still listed."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    rows = (
        db.session.query(Location.id, Location.name, func.sum(MovementEntry.quantity))
        .join(MovementEntry, MovementEntry.location_id == Location.id)
        .filter(MovementEntry.product_id == product_id)
        .group_by(Location.id, Location.name)
        .order_by(Location.name)
        .all()
    )
    return [
        {"location_id": loc_id, "location_name": name, "stock": int(total or 0)}
        for loc_id, name, total in rows
    ]


def get_inventory_summary(product_id: int) -> dict:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    stock = get_current_stock(product_id)
    summary = {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "tracking_mode": product.tracking_mode,
        "reorder_level": product.reorder_level,
        "current_stock": stock,
        "status": stock_status(stock, product.reorder_level),
        "by_location": get_stock_by_location(product_id),
    }
    if product.tracking_mode == TrackingMode.SERIAL:
        summary["available_units"] = db.session.query(func.count(SerialUnit.id)).filter(
            SerialUnit.product_id == product_id,
            SerialUnit.status == UnitStatus.AVAILABLE,
        ).scalar()
    return summary
