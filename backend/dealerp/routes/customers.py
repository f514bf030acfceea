# Overview: Flask API routes for customers.

from flask import Blueprint, request

from ..services import customer_service
from ..decorators import require_auth, require_permission

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def list_customers_route():
    limit = min(max(request.args.get("limit", default=100, type=int), 1), 500)
    customers = customer_service.list_customers(search=request.args.get("search"), limit=limit)
    return {"customers": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    data = request.get_json(silent=True) or {}
    customer = customer_service.create_customer(
        full_name=data.get("full_name"),
        phone=data.get("phone"),
        email=data.get("email"),
        address=data.get("address"),
    )
    return customer.to_dict(), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def get_customer_route(customer_id: int):
    return customer_service.get_customer(customer_id).to_dict()
