# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Login issues an opaque session token (returned in the body and set as a
cookie); every other route reads it from the Authorization header or cookie.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import audit_service, auth_service, permission_service, session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header (or the session cookie)
    for protected routes.
    """
    data = request.get_json(silent=True) or {}
    identifier = data.get("username") or data.get("email") or data.get("identifier")
    password = data.get("password")

    if not all([identifier, password]):
        return jsonify({"error": "username/email and password required"}), 400

    user = auth_service.authenticate(identifier, password)
    if not user:
        current_app.logger.warning("Failed login for %r from %s", identifier, request.remote_addr)
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    audit_service.create_audit_log(
        user_id=user.id,
        action="login",
        module="auth",
        entity_id=user.id,
        entity_name=user.username,
    )

    response = jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    })
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        httponly=True,
        samesite="Lax",
        secure=not (current_app.debug or current_app.testing),
    )
    return response, 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    session_service.revoke_session(g.session_token, reason="User logout")
    audit_service.create_audit_log(
        user_id=g.current_user.id,
        action="logout",
        module="auth",
        entity_id=g.current_user.id,
        entity_name=g.current_user.username,
    )

    response = jsonify({"message": "Logout successful"})
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with permission codes, for UI filtering."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id)),
        "is_admin": permission_service.is_admin(user.id),
    }), 200
