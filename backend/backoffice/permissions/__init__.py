# Overview: Permission system package.
# Re-exports the matrix type, its closed key sets, and the default roles.

from .definitions import (
    MODULES,
    ACTIONS,
    MODULE_KEYS,
    ACTION_KEYS,
    get_module_label,
    get_action_label,
)
from .matrix import PermissionMatrix, UnknownPermissionKey
from .roles import DEFAULT_ROLES, get_default_role

__all__ = [
    "MODULES",
    "ACTIONS",
    "MODULE_KEYS",
    "ACTION_KEYS",
    "get_module_label",
    "get_action_label",
    "PermissionMatrix",
    "UnknownPermissionKey",
    "DEFAULT_ROLES",
    "get_default_role",
]
