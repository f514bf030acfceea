# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user and role management.

All endpoints require authentication; reads need VIEW_USERS and writes
need MANAGE_USERS.
"""

from flask import Blueprint, request, jsonify, g

from ..extensions import db
from ..models import Role
from ..services import auth_service, permission_service
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _user_payload(user) -> dict:
    data = user.to_dict()
    data["roles"] = permission_service.get_user_role_names(user.id)
    return data


@admin_bp.get("/users")
@require_auth
@require_permission("VIEW_USERS")
def list_users():
    """
    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = auth_service.list_users()
    if not include_inactive:
        users = [u for u in users if u.is_active]

    result = [_user_payload(u) for u in users]
    return jsonify({"users": result, "count": len(result)})


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """Body: full_name, email, password, role (admin|editor|viewer, optional)."""
    data = request.get_json(silent=True) or {}

    user = auth_service.create_user(
        full_name=data.get("full_name"),
        email=data.get("email"),
        password=data.get("password"),
        role_name=data.get("role"),
    )
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="USER_CREATED",
        success=True,
        resource=request.path,
        action=f"user:{user.id}",
        ip_address=request.remote_addr,
    )
    return jsonify({"user": _user_payload(user)}), 201


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_permission("MANAGE_USERS")
def activate_user(user_id: int):
    user = auth_service.set_user_active(user_id, True)
    return jsonify({"user": _user_payload(user)})


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot deactivate your own account"}), 400

    user = auth_service.set_user_active(user_id, False)
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="USER_DEACTIVATED",
        success=True,
        resource=request.path,
        action=f"user:{user.id}",
        ip_address=request.remote_addr,
    )
    return jsonify({"user": _user_payload(user)})


@admin_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_permission("MANAGE_USERS")
def assign_role(user_id: int):
    data = request.get_json(silent=True) or {}
    role_name = data.get("role")
    if not role_name:
        return jsonify({"error": "role is required"}), 400

    auth_service.assign_role(user_id, role_name)
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="ROLE_ASSIGNED",
        success=True,
        resource=request.path,
        action=f"user:{user_id}:{role_name}",
        ip_address=request.remote_addr,
    )
    return jsonify({"user_id": user_id, "roles": permission_service.get_user_role_names(user_id)})


@admin_bp.get("/roles")
@require_auth
@require_permission("VIEW_USERS")
def list_roles():
    roles = db.session.query(Role).order_by(Role.name).all()
    return jsonify({"roles": [r.to_dict() for r in roles]})
