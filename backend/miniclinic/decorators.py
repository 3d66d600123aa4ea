# Overview: Request and permission decorators for API routes and services.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError
from .services.session_service import NotAuthenticatedError


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_token: The plaintext token the request carried

    SECURITY: Returns 401 if there is no token, or the token is invalid,
    expired, revoked or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = session_service.get_request_token()
        if not token:
            return jsonify({"error": "Not authenticated"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Not authenticated"}), 401

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(module: str, action: str):
    """
    Route-level permission check for handlers that do not call a guarded
    service (e.g. permission listings).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Not authenticated"}), 401

            if not permission_service.check_permission(g.current_user.id, module, action):
                current_app.logger.warning(
                    "Permission denied: user %s %s %s (%s.%s)",
                    g.current_user.id, request.method, request.path, module, action,
                )
                return jsonify({"error": "Unauthorized"}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def guarded(module: str, action: str, *, lockable: bool = False):
    """
    Mandatory permission gate for service operations.

    The wrapped function's first positional argument is the acting user id.
    The body only runs once the caller is known to hold (module, action);
    with lockable=True the module lock is honoured as well.

    Raises NotAuthenticatedError when actor_id is None and
    PermissionDeniedError (message "Unauthorized" or the lock reason) when
    the check fails.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(actor_id, *args, **kwargs):
            if actor_id is None:
                raise NotAuthenticatedError()

            if lockable:
                from .services import lock_service

                allowed, reason = lock_service.can_perform_action(actor_id, module, action)
                if not allowed:
                    raise PermissionDeniedError(reason or "Unauthorized")
            else:
                permission_service.require_permission(actor_id, module, action)

            return f(actor_id, *args, **kwargs)

        wrapper.required_permission = (module, action)
        return wrapper
    return decorator
