from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    A clinic staff member. Sales, payments and audit entries point back here.

    A user holds at most one role. Roles are assigned by another user with
    users.update permission; nobody can assign a role to themself.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    # Stored lowercased
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=True)
    password_hash = db.Column(db.String(60), nullable=False)

    # No role means no permissions at all (fail-closed)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    role = db.relationship("Role", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role_id={self.role_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role.name if self.role else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class Role(db.Model):
    """
    Named bundle of permissions (admin, doctor, receptionist, ...).

    grants_all_permissions is the explicit super-user capability: a role
    carrying it passes every permission check, including modules added after
    the role was seeded. The admin role is seeded with it AND with every
    defined (module, action) pair.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    grants_all_permissions = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "grants_all_permissions": self.grants_all_permissions,
            "created_at": to_utc_z(self.created_at),
        }


class Permission(db.Model):
    """
    A (module, action) pair, e.g. (inventory, create).

    Matching is exact string equality on both keys, case-sensitive as stored.
    """
    __tablename__ = "permissions"
    __table_args__ = (
        db.UniqueConstraint("module", "action", name="uq_permissions_module_action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    module = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def code(self) -> str:
        return f"{self.module}.{self.action}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "module": self.module,
            "action": self.action,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class RolePermission(db.Model):
    """A grant of one permission to one role."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permissions"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    role = db.relationship("Role", backref=db.backref("grants", lazy=True))
    permission = db.relationship("Permission")


class SessionToken(db.Model):
    """
    Server-side login session.

    The client holds a 64-hex-char random token; only its SHA-256 digest is
    stored here. A session dies at expires_at (24h after login), after 2h
    without use, on logout, or when its user is deactivated.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(64), nullable=True)

    # Login origin, shown in audit views
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy="dynamic", passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
