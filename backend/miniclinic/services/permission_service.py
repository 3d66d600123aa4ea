# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Role-Based Permission Checking

WHY: Every read or write of business data is gated on a (module, action)
pair held by the caller's role.

DESIGN PRINCIPLES:
- Fail closed: unknown user, missing role, empty permission set and lookup
  errors all deny
- Never raise from the check itself; callers get a plain bool
- Log denials only: grants are not logged
- No role-name comparisons: super-user access comes from the role's
  grants_all_permissions flag
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import User, Role, RolePermission, Permission
from ..permissions import (
    PERMISSION_DEFINITIONS,
    DEFAULT_ROLE_MODULES,
    get_all_permission_codes,
    permission_code,
)


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


def _load_user(user_id: int | None) -> User | None:
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def check_permission(user_id: int | None, module: str, action: str) -> bool:
    """
    True iff the user's role grants (module, action).

    Module and action are matched by exact, case-sensitive string equality.
    Any failure during lookup is logged and treated as a denial.
    """
    role_id = None
    try:
        user = _load_user(user_id)
        if not user or not user.role_id:
            current_app.logger.warning(
                "Permission denied: user %s has no role (%s.%s)", user_id, module, action
            )
            return False

        role = user.role
        role_id = role.id
        if role.grants_all_permissions:
            return True

        permissions = (
            db.session.query(Permission.module, Permission.action)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(RolePermission.role_id == role.id)
            .all()
        )
        if not permissions:
            current_app.logger.warning(
                "Permission denied: role %s of user %s has no permissions", role.id, user_id
            )
            return False

        granted = any(p.module == module and p.action == action for p in permissions)
        if not granted:
            current_app.logger.info(
                "Permission denied: user %s role %s lacks %s.%s", user_id, role.id, module, action
            )
        return granted
    except Exception:
        current_app.logger.exception(
            "Permission check failed (user_id=%s role_id=%s module=%s action=%s)",
            user_id, role_id, module, action,
        )
        return False


def require_permission(user_id: int | None, module: str, action: str) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(g.current_user.id, "inventory", "create")
    """
    if not check_permission(user_id, module, action):
        raise PermissionDeniedError("Unauthorized")


def is_admin(user_id: int | None) -> bool:
    """Whether the user's role carries the grants_all_permissions capability."""
    try:
        user = _load_user(user_id)
        return bool(user and user.role and user.role.grants_all_permissions)
    except Exception:
        current_app.logger.exception("Admin check failed (user_id=%s)", user_id)
        return False


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user.

    Returns set of permission codes (e.g., {"inventory.create", "patients.read"}).
    A grants-all role reports every defined code.
    """
    user = _load_user(user_id)
    if not user or not user.role:
        return set()

    if user.role.grants_all_permissions:
        return set(get_all_permission_codes())

    rows = (
        db.session.query(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == user.role_id)
        .all()
    )
    return {p.code for p in rows}


def _get_permission(module: str, action: str) -> Permission | None:
    return db.session.query(Permission).filter_by(module=module, action=action).first()


def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Creates Permission records for every (module, action) pair.
    Idempotent: Safe to run multiple times.
    """
    created_count = 0

    for module, action, description in PERMISSION_DEFINITIONS:
        existing = _get_permission(module, action)
        if not existing:
            db.session.add(Permission(module=module, action=action, description=description))
            created_count += 1
        elif existing.description != description:
            existing.description = description

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Assign default permissions to roles based on DEFAULT_ROLE_MODULES.

    Every action on each listed module is granted. Idempotent: skips pairs
    that are already assigned and roles that do not exist yet.
    """
    created_count = 0

    for role_name, modules in DEFAULT_ROLE_MODULES.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            continue

        existing_ids = {
            rp.permission_id
            for rp in db.session.query(RolePermission).filter_by(role_id=role.id).all()
        }

        for permission in db.session.query(Permission).filter(Permission.module.in_(modules)).all():
            if permission.id in existing_ids:
                continue
            db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            created_count += 1

    db.session.commit()
    return created_count


def _resolve(role_name: str, module: str, action: str) -> tuple[Role, Permission]:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    permission = _get_permission(module, action)
    if not permission:
        raise ValueError(f"Permission '{permission_code(module, action)}' not found")

    return role, permission


def grant_permission_to_role(role_name: str, module: str, action: str) -> RolePermission:
    """Grant a permission to a role."""
    role, permission = _resolve(role_name, module, action)

    existing = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id,
    ).first()
    if existing:
        return existing

    role_permission = RolePermission(role_id=role.id, permission_id=permission.id)
    db.session.add(role_permission)
    db.session.commit()
    return role_permission


def revoke_permission_from_role(role_name: str, module: str, action: str) -> bool:
    """Revoke a permission from a role. False if it was never granted."""
    role, permission = _resolve(role_name, module, action)

    role_permission = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id,
    ).first()

    if not role_permission:
        return False

    db.session.delete(role_permission)
    db.session.commit()
    return True
