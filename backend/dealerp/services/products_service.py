# backend/dealerp/services/products_service.py
"""
Products Service

Product rows carry master data only; stock always comes from the ledger
(inventory_service). list_products joins the derived stock in one grouped
query.
"""
from __future__ import annotations

import random
import re

from sqlalchemy import func, or_

from ..extensions import db
from ..models import MovementEntry, Product, SaleItem, SerialUnit, TrackingMode
from ..validation import ConflictError, NotFoundError, ValidationError
from .inventory_service import stock_subquery, stock_status

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "category", "description", "unit",
    "unit_price", "reorder_level", "tracking_mode", "is_active",
}

SKU_ATTEMPTS = 20


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _sku_part(text: str) -> str:
    letters = re.sub(r"[^A-Za-z0-9]", "", text or "")
    return (letters[:3] or "GEN").upper()


def generate_sku(name: str, category: str) -> str:
    """NAM-CAT-NNNN, retried until unused."""
    prefix = f"{_sku_part(name)}-{_sku_part(category)}"
    for _ in range(SKU_ATTEMPTS):
        sku = f"{prefix}-{random.randint(1000, 9999)}"
        if not db.session.query(Product.id).filter_by(sku=sku).first():
            return sku
    raise ConflictError(f"Could not allocate a free SKU for prefix {prefix}")


def _product_row(product: Product, stock: int) -> dict:
    row = product.to_dict()
    row["current_stock"] = stock
    row["stock_status"] = stock_status(stock, product.reorder_level)
    return row


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = True,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with derived stock and optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    sq = stock_subquery()
    stock_col = func.coalesce(sq.c.stock, 0)
    base_query = db.session.query(Product, stock_col).outerjoin(sq, sq.c.product_id == Product.id)

    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    if category and category != "all":
        base_query = base_query.filter(Product.category == category)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        rows = base_query.all()
        return {
            "items": [_product_row(p, int(stock)) for p, stock in rows],
            "count": len(rows),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [_product_row(p, int(stock)) for p, stock in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFoundError(f"Product {product_id} not found")
    return p


def list_categories() -> list[str]:
    rows = db.session.query(Product.category).distinct().order_by(Product.category).all()
    return [c for (c,) in rows]


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch dict. A missing SKU is generated.

    Raises:
        ConflictError: If SKU already exists
    """
    sku = patch.get("sku")
    if sku:
        if db.session.query(Product.id).filter_by(sku=sku).first():
            raise ConflictError(f"SKU {sku} already exists")
    else:
        patch = dict(patch, sku=generate_sku(patch.get("name", ""), patch.get("category", "")))

    p = Product()
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.commit()
    return p


def _has_history(product_id: int) -> bool:
    return any(
        db.session.query(model.id).filter(model.product_id == product_id).first() is not None
        for model in (MovementEntry, SaleItem, SerialUnit)
    )


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Raises:
        NotFoundError: unknown product
        ConflictError: new SKU already taken, or tracking_mode change on a
            product that already has ledger history
    """
    p = get_product(product_id)

    if "sku" in patch and patch["sku"] != p.sku:
        existing = (
            db.session.query(Product.id)
            .filter(Product.sku == patch["sku"], Product.id != p.id)
            .first()
        )
        if existing:
            raise ConflictError(f"SKU {patch['sku']} already exists")

    if "tracking_mode" in patch and patch["tracking_mode"] != p.tracking_mode:
        if patch["tracking_mode"] not in TrackingMode.ALL:
            raise ValidationError("tracking_mode must be BATCH or SERIAL")
        if _has_history(p.id):
            raise ConflictError("tracking_mode cannot change once a product has stock history")

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(*, product_id: int) -> None:
    """Hard delete, only for products nothing references."""
    p = get_product(product_id)
    if _has_history(p.id):
        raise ConflictError("Cannot delete product with existing stock movements, sales, or vehicles")

    db.session.delete(p)
    db.session.commit()
