# Overview: Service-layer operations for audit; encapsulates business logic and database work.

"""
Business Audit Trail

WHY: Who did what to which record, for compliance and dispute resolution.

Writes are best effort: they happen after the business commit and a failed
audit write is rolled back and logged, never raised. The business result
stands either way.
"""

from __future__ import annotations

import json

from flask import current_app, has_request_context, request

from ..decorators import guarded
from ..extensions import db
from ..models import AuditLog, AUDIT_ACTIONS
from ..permissions import Module, Action


def _jsonable(changes: dict | None) -> dict | None:
    if not changes:
        return None
    return json.loads(json.dumps(changes, default=str))


def create_audit_log(
    user_id: int,
    action: str,
    module: str,
    entity_id: int | str | None = None,
    entity_name: str | None = None,
    changes: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Append an audit entry. Never raises.

    IP address and user agent fall back to the current request when one exists.
    """
    try:
        if action not in AUDIT_ACTIONS:
            raise ValueError(f"Invalid audit action: {action}")

        if has_request_context():
            ip_address = ip_address or request.remote_addr
            user_agent = user_agent or request.headers.get("User-Agent")

        db.session.add(AuditLog(
            user_id=user_id,
            action=action,
            module=module,
            entity_id=str(entity_id) if entity_id is not None else None,
            entity_name=entity_name or None,
            changes=_jsonable(changes),
            ip_address=ip_address or None,
            user_agent=user_agent or None,
        ))
        db.session.commit()

        current_app.logger.info(
            "Audit log created (user_id=%s action=%s module=%s entity_id=%s)",
            user_id, action, module, entity_id,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to create audit log (user_id=%s action=%s module=%s entity_id=%s)",
            user_id, action, module, entity_id,
        )


def format_changes(before: dict, after: dict) -> dict:
    """
    Field-level diff between two snapshots.

    Only keys whose values differ are reported, as
    {key: {"before": old, "after": new}}. A key missing on one side counts
    as None there, so a None that disappears is not a change.
    """
    changes = {}
    for key in dict.fromkeys([*before.keys(), *after.keys()]):
        old = before.get(key)
        new = after.get(key)
        if old != new:
            changes[key] = {"before": old, "after": new}
    return changes


@guarded(Module.AUDIT_LOGS, Action.READ)
def list_audit_logs(actor_id: int, limit: int | None = None) -> list[AuditLog]:
    """Most recent entries first, capped at limit (AUDIT_LOG_DEFAULT_LIMIT by default)."""
    if limit is None:
        limit = current_app.config.get("AUDIT_LOG_DEFAULT_LIMIT", 100)
    limit = max(1, min(int(limit), 1000))

    return (
        db.session.query(AuditLog)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
