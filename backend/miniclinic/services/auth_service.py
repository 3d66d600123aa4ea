# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and User Administration

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, mixed case, digit and special character required
- Session tokens managed separately (see session_service.py)
- Nobody can assign a role to themself; only administrators can hand out a
  role that grants all permissions
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..decorators import guarded
from ..extensions import db
from ..models import Appointment, AuditLog, Expense, Payment, Role, Sale, SessionToken, User
from ..permissions import DEFAULT_ROLES, Module, Action
from ..time_utils import utcnow
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from . import audit_service, permission_service, session_service
from .permission_service import PermissionDeniedError


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserNotFoundError(Exception):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


# Roles change through assign_role and passwords are handled apart from the patch
USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "email", "is_active"}),
)


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    Malformed hashes never match.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    name: str | None = None,
    role_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: username or email missing
        ConflictError: username or email already taken
        PasswordValidationError: password doesn't meet requirements
        ValueError: role_name given but not found
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()

    errors = []
    if not username:
        errors.append("username is required")
    if not email:
        errors.append("email is required")
    if errors:
        raise ValidationError(errors)

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise ValueError(f"Role {role_name} not found")

    user = User(
        username=username,
        email=email,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        role_id=role.id if role else None,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not identifier or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def set_user_role(user_id: int, role_name: str | None) -> User:
    """
    Unchecked role assignment for bootstrap tooling (CLI).

    Request handlers go through assign_role instead.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError()
    if _is_admin_account(user) and not permission_service.is_admin(actor_id):
        raise PermissionDeniedError("Only administrators can change an administrator's role")

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise ValueError(f"Role {role_name} not found")

    user.role_id = role.id if role else None
    db.session.commit()
    return user


def _is_admin_account(user: User) -> bool:
    return bool(user.role and user.role.grants_all_permissions)


@guarded(Module.USERS, Action.UPDATE)
def assign_role(actor_id: int, user_id: int, role_name: str | None) -> User:
    """
    Assign (or clear, with role_name=None) a user's role.

    - Needs users.update
    - Never to oneself
    - Roles that grant all permissions can only be handed out, or taken
      away, by an admin
    """
    if actor_id == user_id:
        raise PermissionDeniedError("You cannot change your own role")

    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError()

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise ValidationError(f"Role {role_name} not found")
        if role.grants_all_permissions and not permission_service.is_admin(actor_id):
            raise PermissionDeniedError("Only administrators can assign this role")

    before = {"role": user.role.name if user.role else None}
    user.role_id = role.id if role else None
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="update",
        module=Module.USERS,
        entity_id=user.id,
        entity_name=user.username,
        changes=audit_service.format_changes(before, {"role": role.name if role else None}),
    )
    current_app.logger.info(
        "User %s assigned role %s to user %s", actor_id, role_name, user_id
    )
    return user


@guarded(Module.USERS, Action.UPDATE)
def update_user(actor_id: int, user_id: int, payload: dict) -> User:
    """
    Change a user's name, email, active flag or password.

    Roles go through assign_role. Deactivating an account, or resetting
    someone else's password, ends every session that user holds.
    """
    payload = dict(payload or {})
    password = payload.pop("password", None)

    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError()
    if user.id != actor_id and _is_admin_account(user) and not permission_service.is_admin(actor_id):
        raise PermissionDeniedError("Only administrators can update an administrator")

    patch = validate_payload(model=User, payload=payload, policy=USER_UPDATE_POLICY, partial=True)
    if not patch and not password:
        raise ValidationError("No fields to update")
    if patch.get("is_active") is False and user.id == actor_id:
        raise PermissionDeniedError("You cannot deactivate your own account")

    if "email" in patch:
        patch["email"] = patch["email"].lower()
        taken = (
            db.session.query(User.id)
            .filter(User.email == patch["email"], User.id != user.id)
            .first()
        )
        if taken:
            raise ConflictError("Email already exists")

    password_hash = hash_password(password) if password else None

    before = {k: getattr(user, k) for k in patch}
    for k, v in patch.items():
        setattr(user, k, v)
    if password_hash:
        user.password_hash = password_hash
    db.session.commit()

    changes = audit_service.format_changes(before, patch)
    if password_hash:
        changes["password"] = {"before": None, "after": "changed"}

    if patch.get("is_active") is False:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
    elif password_hash and user.id != actor_id:
        session_service.revoke_all_user_sessions(user.id, reason="Password reset")

    audit_service.create_audit_log(
        user_id=actor_id,
        action="update",
        module=Module.USERS,
        entity_id=user.id,
        entity_name=user.username,
        changes=changes,
    )
    current_app.logger.info("User %s updated user %s (%s)", actor_id, user.id, ", ".join(changes))
    return user


@guarded(Module.USERS, Action.DELETE)
def delete_user(actor_id: int, user_id: int) -> None:
    """
    Delete an account that never did anything.

    Users with audit entries, sales, payments, appointments or expenses
    stay for attribution; deactivate those instead (ConflictError).
    """
    if actor_id == user_id:
        raise PermissionDeniedError("You cannot delete your own account")

    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError()
    if _is_admin_account(user) and not permission_service.is_admin(actor_id):
        raise PermissionDeniedError("Only administrators can delete an administrator")

    history = (
        db.session.query(AuditLog.id).filter(AuditLog.user_id == user.id),
        db.session.query(Sale.id).filter(Sale.sold_by_user_id == user.id),
        db.session.query(Payment.id).filter(Payment.recorded_by_user_id == user.id),
        db.session.query(Appointment.id).filter(
            db.or_(Appointment.doctor_user_id == user.id, Appointment.created_by_user_id == user.id)
        ),
        db.session.query(Expense.id).filter(Expense.recorded_by_user_id == user.id),
    )
    if any(q.first() is not None for q in history):
        raise ConflictError("User has recorded activity; deactivate the account instead")

    username = user.username
    db.session.query(SessionToken).filter(SessionToken.user_id == user.id).delete(synchronize_session=False)
    db.session.delete(user)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.USERS,
        entity_id=user_id,
        entity_name=username,
    )
    current_app.logger.info("User %s deleted user %s (%s)", actor_id, user_id, username)


@guarded(Module.USERS, Action.CREATE)
def create_staff_user(actor_id: int, payload: dict) -> User:
    """Create a user on behalf of another user (admin screens)."""
    payload = payload or {}
    role_name = payload.get("role")
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise ValidationError(f"Role {role_name} not found")
        if role.grants_all_permissions and not permission_service.is_admin(actor_id):
            raise PermissionDeniedError("Only administrators can assign this role")

    user = create_user(
        username=payload.get("username"),
        email=payload.get("email"),
        password=payload.get("password"),
        name=payload.get("name"),
        role_name=role_name,
    )

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.USERS,
        entity_id=user.id,
        entity_name=user.username,
    )
    return user


@guarded(Module.USERS, Action.READ)
def list_users(actor_id: int) -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


@guarded(Module.USERS, Action.READ)
def list_roles(actor_id: int) -> list[Role]:
    return db.session.query(Role).order_by(Role.name.asc()).all()


def create_default_roles() -> int:
    """Create standard roles if they don't exist. Returns count created."""
    created = 0
    for name, desc, grants_all in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(name=name).first()
        if not existing:
            db.session.add(Role(name=name, description=desc, grants_all_permissions=grants_all))
            created += 1

    db.session.commit()
    return created
