"""
Login sessions.

Login hands the client an opaque random token; the database only keeps its
SHA-256 digest, which is enough since the token itself carries 256 bits of
entropy. A session ends at the first of:

- SESSION_ABSOLUTE_TIMEOUT after login
- SESSION_IDLE_TIMEOUT without a request
- logout, or revocation of all the user's sessions
- deactivation of the user account
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)

# Ended sessions are kept this long for audit before cleanup deletes them
SESSION_RETENTION = timedelta(days=30)


class NotAuthenticatedError(Exception):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


def generate_token() -> str:
    """64 hex characters from the OS CSPRNG. Only the client ever sees it."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_live(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def _end(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    current_app.logger.info("Session %s of user %s ended: %s", session.id, session.user_id, reason)


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for an active user.

    Returns (session, token); the token is not recoverable afterwards.
    Raises ValueError for an unknown or inactive user.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is inactive")

    token = generate_token()
    started = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=started,
        last_used_at=started,
        expires_at=started + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str | None) -> User | None:
    """
    The user behind a live token, or None.

    A session found idle or belonging to a deactivated account is ended on
    the spot. Each successful call refreshes last_used_at.
    """
    if not token:
        return None

    session = _find_live(token)
    if session is None:
        return None

    now = utcnow()
    if now >= session.expires_at:
        return None
    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _end(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _end(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """End one session. False when the token is unknown or already ended."""
    session = _find_live(token)
    if session is None:
        return False
    _end(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    count = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .update(
            {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
            synchronize_session="fetch",
        )
    )
    db.session.commit()
    return count


def cleanup_expired_sessions() -> int:
    """Delete ended sessions that started more than SESSION_RETENTION ago."""
    now = utcnow()
    count = (
        db.session.query(SessionToken)
        .filter(
            db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
            SessionToken.created_at < now - SESSION_RETENTION,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count


def get_request_token() -> str | None:
    """Bearer token from the Authorization header, else the session cookie."""
    if not has_request_context():
        return None

    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme == "Bearer" and value.strip():
        return value.strip()

    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"]) or None


def get_current_user() -> User | None:
    """The signed-in user for the current request, or None."""
    return validate_session(get_request_token())
