from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


AUDIT_ACTIONS = frozenset({
    "create",
    "update",
    "delete",
    "login",
    "logout",
    "view",
    "export",
    "upload",
    "download",
    "lock",
    "unlock",
})


class AuditLog(db.Model):
    """
    Business audit trail: who did what to which entity.

    changes holds an optional {field: {"before": ..., "after": ...}} map.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_created", "created_at"),
        db.Index("ix_audit_logs_module_entity", "module", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    action = db.Column(db.String(16), nullable=False, index=True)
    module = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    changes = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("audit_logs", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
            } if self.user else None,
            "action": self.action,
            "module": self.module,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "changes": self.changes,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")
