# Overview: Service-layer operations for module locks; encapsulates business logic and database work.

"""
Module Locks

WHY: Lets an administrator freeze the product catalogue or inventory list
(e.g. during a stock count) while staff keep read access.

Locks persist in the module_locks table; a missing row means unlocked.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ModuleLock
from ..permissions import Module, MUTATING_ACTIONS
from ..validation import ValidationError
from . import audit_service, permission_service
from .permission_service import PermissionDeniedError
from .session_service import NotAuthenticatedError


LOCKABLE_MODULES = (Module.PRODUCTS, Module.INVENTORY)

_LABELS = {
    Module.PRODUCTS: "Products",
    Module.INVENTORY: "Inventory items",
}


def _check_module(module: str) -> None:
    if module not in LOCKABLE_MODULES:
        raise ValidationError(f"Module cannot be locked: {module}")


def is_locked(module: str) -> bool:
    lock = db.session.get(ModuleLock, module)
    return bool(lock and lock.is_locked)


def get_lock_status(actor_id: int | None, module: str) -> dict:
    """{"is_locked": bool, "is_admin": bool} for the caller."""
    if actor_id is None:
        raise NotAuthenticatedError()
    _check_module(module)

    return {
        "module": module,
        "is_locked": is_locked(module),
        "is_admin": permission_service.is_admin(actor_id),
    }


def set_lock_status(actor_id: int | None, module: str, locked: bool) -> dict:
    """Lock or unlock a module. Administrators only."""
    if actor_id is None:
        raise NotAuthenticatedError()
    _check_module(module)

    if not permission_service.is_admin(actor_id):
        raise PermissionDeniedError("Only administrators can change lock status")

    lock = db.session.get(ModuleLock, module)
    if lock is None:
        lock = ModuleLock(module=module)
        db.session.add(lock)
    lock.is_locked = bool(locked)
    lock.updated_by_user_id = actor_id
    db.session.commit()

    current_app.logger.info(
        "%s %s by user %s", _LABELS[module], "locked" if locked else "unlocked", actor_id
    )
    audit_service.create_audit_log(
        user_id=actor_id,
        action="lock" if locked else "unlock",
        module=module,
        entity_name=module,
    )
    return {"module": module, "is_locked": lock.is_locked}


def can_perform_action(user_id: int | None, module: str, action: str) -> tuple[bool, str | None]:
    """
    Base permission first, then the module lock.

    While a module is locked, create/update/delete are admin-only; reads stay
    allowed for anyone holding the read permission.
    """
    if user_id is None:
        return False, "Not authenticated"

    if not permission_service.check_permission(user_id, module, action):
        return False, "Unauthorized"

    if module not in LOCKABLE_MODULES or action not in MUTATING_ACTIONS:
        return True, None

    if is_locked(module) and not permission_service.is_admin(user_id):
        return False, f"{_LABELS[module]} are locked. Only administrators can make changes."

    return True, None
