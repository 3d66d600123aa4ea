# Overview: Flask API routes for user, role and permission administration.

"""
Admin routes

SECURITY:
- users.create / users.read / users.update / users.delete gate the user endpoints
- Nobody can change their own role
- Only administrators can hand out a role that grants all permissions, or
  change, demote or delete an administrator
"""

from flask import Blueprint, request, jsonify, g

from ..services import auth_service, permission_service
from ..decorators import require_auth, require_permission
from ..permissions import Module, Action, PERMISSION_DEFINITIONS, permission_code


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
def list_users():
    users = auth_service.list_users(g.current_user.id)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@admin_bp.post("/users")
@require_auth
def create_user():
    """Body: username, email, password, optional name and role."""
    user = auth_service.create_staff_user(g.current_user.id, request.get_json(silent=True) or {})
    return jsonify({"user": user.to_dict()}), 201


@admin_bp.patch("/users/<int:user_id>")
@require_auth
def update_user(user_id: int):
    """Body: any of name, email, is_active, password."""
    user = auth_service.update_user(g.current_user.id, user_id, request.get_json(silent=True) or {})
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.delete("/users/<int:user_id>")
@require_auth
def delete_user(user_id: int):
    auth_service.delete_user(g.current_user.id, user_id)
    return jsonify({"deleted": True}), 200


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
def assign_role(user_id: int):
    """Body: {"role": "<name>"} or {"role": null} to clear it."""
    data = request.get_json(silent=True) or {}
    user = auth_service.assign_role(g.current_user.id, user_id, data.get("role"))
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.get("/roles")
@require_auth
def list_roles():
    roles = auth_service.list_roles(g.current_user.id)
    return jsonify({"items": [r.to_dict() for r in roles]}), 200


@admin_bp.get("/permissions")
@require_auth
@require_permission(Module.USERS, Action.READ)
def list_permissions():
    return jsonify({
        "items": [
            {"code": permission_code(m, a), "module": m, "action": a, "description": d}
            for m, a, d in PERMISSION_DEFINITIONS
        ],
    }), 200


@admin_bp.get("/users/<int:user_id>/permissions")
@require_auth
@require_permission(Module.USERS, Action.READ)
def user_permissions(user_id: int):
    return jsonify({
        "user_id": user_id,
        "permissions": sorted(permission_service.get_user_permissions(user_id)),
        "is_admin": permission_service.is_admin(user_id),
    }), 200
