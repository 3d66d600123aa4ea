# Overview: Permission system package.
# Re-exports the module/action vocabulary and default role grants.

from .modules import Module, Action, RoleName, MODULES, ACTIONS, MUTATING_ACTIONS
from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_MODULES
from .helpers import (
    permission_code,
    get_all_permission_codes,
    get_permission_definition,
    validate_permission,
)

__all__ = [
    "Module",
    "Action",
    "RoleName",
    "MODULES",
    "ACTIONS",
    "MUTATING_ACTIONS",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_MODULES",
    "permission_code",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission",
]
