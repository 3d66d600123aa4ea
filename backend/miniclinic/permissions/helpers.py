# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS


def permission_code(module: str, action: str) -> str:
    """Flat "module.action" code used in API responses and logs."""
    return f"{module}.{action}"


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [permission_code(module, action) for module, action, _ in PERMISSION_DEFINITIONS]


def get_permission_definition(module, action):
    """Get full definition for a (module, action) pair."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == module and perm[1] == action:
            return {
                "code": permission_code(perm[0], perm[1]),
                "module": perm[0],
                "action": perm[1],
                "description": perm[2],
            }
    return None


def validate_permission(module, action):
    """Check if a (module, action) pair is defined."""
    return get_permission_definition(module, action) is not None
