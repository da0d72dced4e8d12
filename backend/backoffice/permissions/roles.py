# Overview: Default role set seeded into an empty store.
# Each role is defined as: (name, description, scope, {module: [actions]}).
# An empty grant dict for a module means no access to it.

from .definitions import ACTION_KEYS, MODULE_KEYS


DEFAULT_ROLES = [
    (
        "Admin",
        "Full access to all modules and actions",
        "global",
        {module: list(ACTION_KEYS) for module in MODULE_KEYS},
    ),
    (
        "Manager",
        "Manage day-to-day operations",
        "branch",
        {
            "dashboard": ["read"],
            "inventory": ["read", "create", "update", "export"],
            "sales": ["read", "create", "update", "export"],
            "reports": ["read", "export"],
            "staff": ["read", "update"],
        },
    ),
    (
        "Staff",
        "Standard staff access",
        "branch",
        {
            "dashboard": ["read"],
            "inventory": ["read"],
            "sales": ["read", "create"],
        },
    ),
]


def get_default_role(name):
    """Get the seed definition for a default role name (case-insensitive)."""
    for role in DEFAULT_ROLES:
        if role[0].lower() == (name or "").strip().lower():
            return role
    return None
