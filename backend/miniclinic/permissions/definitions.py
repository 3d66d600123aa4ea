# Overview: All permission definitions.
# Each permission is defined as: (module, action, description)

from .modules import MODULES, ACTIONS


def _describe(module: str, action: str) -> str:
    return f"{action.capitalize()} {module.replace('_', ' ')}"


PERMISSION_DEFINITIONS = [
    (module, action, _describe(module, action))
    for module in MODULES
    for action in ACTIONS
]
