# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

- Read operations require VIEW_INVENTORY permission
- Write operations require MANAGE_PRODUCTS permission
"""
from flask import Blueprint, request

from ..models import Product, TrackingMode
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from ..decorators import require_auth, require_permission

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "category", "description", "unit",
        "unit_price", "reorder_level", "tracking_mode", "is_active",
    },
    required_on_create={"name", "category", "unit_price", "tracking_mode"},
    choices={"tracking_mode": TrackingMode.ALL},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products():
    """
    Query params:
    - search: matches name or SKU
    - category: exact category ("all" for no filter)
    - page / per_page: pagination (per_page max 100). Without page, returns all.
    """
    return products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_categories():
    return {"categories": products_service.list_categories()}


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    return products_service.get_product(product_id).to_dict()


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(patch=patch)
    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(product_id=product_id, patch=patch)
    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product_route(product_id: int):
    products_service.delete_product(product_id=product_id)
    return {"ok": True}, 200
