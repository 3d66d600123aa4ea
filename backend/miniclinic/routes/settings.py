# Overview: Flask API routes for module lock settings.

from flask import Blueprint, request, jsonify, g

from ..services import lock_service
from ..decorators import require_auth
from ..validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/locks/<module>")
@require_auth
def get_lock(module: str):
    return jsonify(lock_service.get_lock_status(g.current_user.id, module)), 200


@settings_bp.put("/locks/<module>")
@require_auth
def set_lock(module: str):
    """Body: {"locked": true|false}. Administrators only."""
    data = request.get_json(silent=True) or {}
    locked = data.get("locked")
    if not isinstance(locked, bool):
        raise ValidationError("locked must be a boolean")
    return jsonify(lock_service.set_lock_status(g.current_user.id, module, locked)), 200
