# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales routes.

POST /api/sales is a thin wrapper over sales_service.create_sale: the whole
sale commits or nothing does. Receipt delivery happens after commit and
never changes the response status.
"""

from io import BytesIO

from flask import Blueprint, request, jsonify, g, send_file

from ..services import receipt_service, sales_service
from ..validation import ValidationError, require_positive_int
from ..decorators import require_auth, require_permission


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Body:
    {
      "customer": {"customer_id": 3} | {"full_name": "...", "phone": "...", "email": "...", "address": "..."},
      "items": [{"product_id": 1, "quantity": 2}, {"product_id": 4, "serial_unit_id": 9}],
      "location_id": 1,   (optional, batch lines)
      "note": "..."       (optional)
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    location_id = data.get("location_id")
    sale = sales_service.create_sale(
        actor=g.actor,
        customer=data.get("customer"),
        items=data.get("items"),
        location_id=require_positive_int(location_id, "location_id") if location_id is not None else None,
        note=data.get("note"),
    )
    return jsonify({"sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    page = max(request.args.get("page", default=1, type=int), 1)
    per_page = min(max(request.args.get("per_page", default=20, type=int), 1), 100)

    sales, total = sales_service.list_sales(
        customer_id=request.args.get("customer_id", type=int),
        page=page,
        per_page=per_page,
    )
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    return jsonify({
        "sales": [s.to_dict(include_items=True) for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    })


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict(include_items=True)})


@sales_bp.get("/by-number/<sale_number>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_by_number_route(sale_number: str):
    return jsonify({"sale": sales_service.get_sale_by_number(sale_number).to_dict(include_items=True)})


@sales_bp.get("/<int:sale_id>/receipt")
@require_auth
@require_permission("VIEW_SALES")
def receipt_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    pdf = receipt_service.render_receipt_pdf(sale)
    return send_file(
        BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=receipt_service.receipt_filename(sale),
    )
