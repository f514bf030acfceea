# Overview: Service-layer operations for sales; the single write path for a sale.

"""
Sale Transaction Orchestrator

One call to create_sale() is one atomic transaction:

1. resolve the customer (existing id, or find-or-create by phone)
2. lock and re-check availability of every line against the ledger
3. allocate SALE-YYYYMMDD-NNN
4. insert the Sale header (COMPLETED)
5. per line: SaleItem (price copied), OUT/SALE ledger entry, mark_sold for units
6. commit

Any failure rolls back every write of the attempt, the customer upsert
included. Receipt delivery runs after commit and never undoes the sale.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import (
    Direction,
    Location,
    MovementReason,
    Product,
    Sale,
    SaleItem,
    SaleStatus,
    SerialUnit,
    TrackingMode,
    UnitStatus,
)
from ..money import to_money
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    require_positive_int,
)
from . import customer_service, inventory_service, notification_service, serial_unit_service
from .concurrency import begin_write_transaction, lock_for_update, run_in_transaction
from .document_service import next_sale_number
from .ledger_service import append_entry, require_actor
from .session_service import Actor

SALE_REFERENCE = "SALE"


@dataclass(frozen=True)
class CustomerRef:
    customer_id: Optional[int] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: int
    quantity: int = 1
    serial_unit_id: Optional[int] = None
    location_id: Optional[int] = None


def parse_customer_ref(raw: Any) -> CustomerRef:
    if isinstance(raw, CustomerRef):
        return raw
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("customer is required")

    if raw.get("customer_id") is not None:
        return CustomerRef(customer_id=require_positive_int(raw["customer_id"], "customer_id"))

    full_name = (raw.get("full_name") or "").strip()
    phone = raw.get("phone")
    if not full_name or not phone:
        raise ValidationError("customer_id, or customer full_name and phone, are required")
    return CustomerRef(
        full_name=full_name,
        phone=phone,
        email=raw.get("email"),
        address=raw.get("address"),
    )


def parse_sale_lines(raw_items: Any) -> list[SaleLineRequest]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError("A sale requires at least one item")

    lines: list[SaleLineRequest] = []
    seen_units: set[int] = set()
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, SaleLineRequest):
            line = raw
        elif isinstance(raw, dict):
            serial_unit_id = raw.get("serial_unit_id")
            location_id = raw.get("location_id")
            line = SaleLineRequest(
                product_id=require_positive_int(raw.get("product_id"), f"items[{idx}].product_id"),
                quantity=require_positive_int(raw.get("quantity", 1), f"items[{idx}].quantity"),
                serial_unit_id=(
                    require_positive_int(serial_unit_id, f"items[{idx}].serial_unit_id")
                    if serial_unit_id is not None else None
                ),
                location_id=(
                    require_positive_int(location_id, f"items[{idx}].location_id")
                    if location_id is not None else None
                ),
            )
        else:
            raise ValidationError(f"items[{idx}] must be an object")

        if line.serial_unit_id is not None:
            if line.quantity != 1:
                raise ValidationError(f"items[{idx}]: a serial unit line has quantity 1")
            if line.serial_unit_id in seen_units:
                raise ValidationError(f"Serial unit {line.serial_unit_id} appears more than once")
            seen_units.add(line.serial_unit_id)
        lines.append(line)
    return lines


def _resolve_customer(ref: CustomerRef):
    if ref.customer_id is not None:
        return customer_service.get_customer(ref.customer_id)
    return customer_service.upsert_customer_by_phone(
        full_name=ref.full_name,
        phone=ref.phone,
        email=ref.email,
        address=ref.address,
    )


def _load_products(lines: list[SaleLineRequest]) -> dict[int, Product]:
    ids = sorted({line.product_id for line in lines})
    products = {
        p.id: p
        for p in lock_for_update(db.session.query(Product).filter(Product.id.in_(ids))).all()
    }
    for product_id in ids:
        product = products.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is inactive")
    return products


def _load_units(lines: list[SaleLineRequest], products: dict[int, Product]) -> dict[int, SerialUnit]:
    ids = sorted(line.serial_unit_id for line in lines if line.serial_unit_id is not None)
    units = {}
    if ids:
        units = {
            u.id: u
            for u in lock_for_update(db.session.query(SerialUnit).filter(SerialUnit.id.in_(ids))).all()
        }

    for line in lines:
        product = products[line.product_id]
        if product.tracking_mode == TrackingMode.SERIAL:
            if line.serial_unit_id is None:
                raise ValidationError(f"Product {product.name} is serial-tracked; serial_unit_id is required")
            unit = units.get(line.serial_unit_id)
            if unit is None:
                raise NotFoundError(f"Serial unit {line.serial_unit_id} not found")
            if unit.product_id != product.id:
                raise ValidationError(f"Serial unit {unit.id} does not belong to product {product.id}")
            if unit.status != UnitStatus.AVAILABLE:
                raise ConflictError(f"Vehicle {unit.vin} has already been sold")
            if inventory_service.get_unit_stock(unit.id) < 1:
                raise ConflictError(f"Vehicle {unit.vin} is not in stock")
        elif line.serial_unit_id is not None:
            raise ValidationError(f"Product {product.name} is not serial-tracked")
    return units


def _check_batch_availability(lines: list[SaleLineRequest], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        if products[line.product_id].tracking_mode == TrackingMode.BATCH:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    for product_id, qty in requested.items():
        available = inventory_service.get_current_stock(product_id)
        if available < qty:
            raise InsufficientStockError(product_id, qty, available, products[product_id].name)


def _default_location_id() -> int:
    name = current_app.config.get("DEFAULT_LOCATION_NAME")
    location = None
    if name:
        location = db.session.query(Location).filter_by(name=name, is_active=True).first()
    if location is None:
        location = (
            db.session.query(Location)
            .filter(Location.is_active.is_(True))
            .order_by(Location.id)
            .first()
        )
    if location is None:
        raise ValidationError("No active location to sell from; create a location first")
    return location.id


def _batch_location_id(line: SaleLineRequest, sale_location_id: Optional[int], cache: dict) -> int:
    location_id = line.location_id or sale_location_id
    if location_id is None:
        if "default" not in cache:
            cache["default"] = _default_location_id()
        return cache["default"]

    if location_id not in cache:
        location = db.session.get(Location, location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        if not location.is_active:
            raise ValidationError(f"Location {location.name} is inactive")
        cache[location_id] = location.id
    return cache[location_id]


def create_sale(
    *,
    actor: Actor,
    customer: Any,
    items: Any,
    location_id: Optional[int] = None,
    note: Optional[str] = None,
    notify: bool = True,
) -> Sale:
    """
    Create a COMPLETED sale atomically.

    Raises:
        ValidationError: missing customer info or items, malformed lines
        NotFoundError: product, customer, location or unit absent
        InsufficientStockError: a batch line exceeds ledger-derived stock
        ConflictError: a unit is already sold, or a concurrent sale won the race
        StorageError: the database failed; nothing was written
    """
    customer_ref = parse_customer_ref(customer)
    lines = parse_sale_lines(items)

    def _op() -> Sale:
        begin_write_transaction()
        user = require_actor(actor)

        sale_customer = _resolve_customer(customer_ref)
        products = _load_products(lines)
        units = _load_units(lines, products)
        _check_batch_availability(lines, products)

        now = utcnow()
        priced = []
        total = Decimal("0.00")
        for line in lines:
            unit_price = to_money(products[line.product_id].unit_price)
            line_total = to_money(unit_price * line.quantity)
            total += line_total
            priced.append((line, unit_price, line_total))

        sale = Sale(
            sale_number=next_sale_number(now),
            customer_id=sale_customer.id,
            created_by_user_id=user.id,
            status=SaleStatus.COMPLETED,
            total_amount=to_money(total),
            note=(note or "").strip() or None,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        location_cache: dict = {}
        for line, unit_price, line_total in priced:
            unit = units.get(line.serial_unit_id) if line.serial_unit_id is not None else None
            if unit is not None:
                entry_location_id = unit.location_id
            else:
                entry_location_id = _batch_location_id(line, location_id, location_cache)

            entry = append_entry(
                product_id=line.product_id,
                location_id=entry_location_id,
                serial_unit_id=line.serial_unit_id,
                quantity=-line.quantity,
                direction=Direction.OUT,
                reason=MovementReason.SALE,
                reference_type=SALE_REFERENCE,
                reference_id=str(sale.id),
                performed_by_user_id=user.id,
            )

            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                serial_unit_id=line.serial_unit_id,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=line_total,
                movement_entry_id=entry.id,
                created_at=now,
            ))

            if unit is not None:
                serial_unit_service.mark_sold(unit.id, sale_id=sale.id)

        db.session.flush()
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "Sale %s committed: %d item(s), total %s", sale.sale_number, len(lines), sale.total_amount
    )

    if notify:
        _after_commit(sale)
    return sale


def _after_commit(sale: Sale) -> None:
    """Best-effort receipt delivery. Failures are logged, never raised."""
    try:
        notification_service.notify_sale_completed(sale)
    except Exception:
        current_app.logger.exception("Receipt delivery failed for sale %s", sale.sale_number)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def get_sale_by_number(sale_number: str) -> Sale:
    sale = db.session.query(Sale).filter_by(sale_number=(sale_number or "").strip().upper()).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_number} not found")
    return sale


def list_sales(
    *,
    customer_id: Optional[int] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Sale], int]:
    """Newest first. Returns (page_items, total_count)."""
    q = db.session.query(Sale)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    total = q.count()
    items = (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return items, total
