from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ModuleLock(db.Model):
    """
    Admin-controlled write lock for a module (products, inventory).

    A missing row means unlocked. While locked, only administrators may
    create, update or delete records in the module; reads stay open.
    """
    __tablename__ = "module_locks"

    module = db.Column(db.String(64), primary_key=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "is_locked": self.is_locked,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
