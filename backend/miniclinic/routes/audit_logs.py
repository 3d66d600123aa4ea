# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, request, jsonify, g

from ..services import audit_service
from ..decorators import require_auth


audit_logs_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")


@audit_logs_bp.get("")
@require_auth
def list_audit_logs():
    """Query params: limit (default AUDIT_LOG_DEFAULT_LIMIT, max 1000)."""
    logs = audit_service.list_audit_logs(g.current_user.id, limit=request.args.get("limit", type=int))
    return jsonify({"items": [log.to_dict() for log in logs], "count": len(logs)}), 200
