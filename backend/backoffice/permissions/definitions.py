# Overview: Closed module and action key sets for the role permission matrix.
# Each entry is defined as: (key, label). Order is display order.

MODULES = [
    ("dashboard", "Dashboard"),
    ("inventory", "Inventory"),
    ("sales", "Sales"),
    ("reports", "Reports"),
    ("staff", "Staff"),
    ("marketing", "Marketing"),
    ("settings", "Settings"),
]

ACTIONS = [
    ("read", "Read"),
    ("create", "Create"),
    ("update", "Update"),
    ("delete", "Delete"),
    ("export", "Export"),
]

MODULE_KEYS = tuple(key for key, _ in MODULES)
ACTION_KEYS = tuple(key for key, _ in ACTIONS)


def get_module_label(key):
    """Get display label for a module key."""
    for module_key, label in MODULES:
        if module_key == key:
            return label
    return None


def get_action_label(key):
    """Get display label for an action key."""
    for action_key, label in ACTIONS:
        if action_key == key:
            return label
    return None
