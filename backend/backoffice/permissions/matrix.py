# Overview: Per-role module x action grant table.

"""
PermissionMatrix

A role's permissions are a grid over two closed key sets (MODULE_KEYS x
ACTION_KEYS). A cell is either granted or not; a missing cell means not
granted, and no action implies another ("delete" does not imply "read").

Every operation is total over the closed key sets. Passing a key outside
them is a programming error and raises UnknownPermissionKey immediately;
form/HTTP layers convert that into a field-keyed ValidationError.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from .definitions import ACTION_KEYS, MODULE_KEYS


class UnknownPermissionKey(ValueError):
    """Module or action key outside the closed key sets."""


def _check_module(module: str) -> None:
    if module not in MODULE_KEYS:
        raise UnknownPermissionKey(f"Unknown module: {module!r}")


def _check_action(action: str) -> None:
    if action not in ACTION_KEYS:
        raise UnknownPermissionKey(f"Unknown action: {action!r}")


class PermissionMatrix:
    __slots__ = ("_grants",)

    def __init__(self, grants: Mapping[str, Iterable[str]] | None = None):
        self._grants: dict[str, set[str]] = {module: set() for module in MODULE_KEYS}
        for module, actions in (grants or {}).items():
            for action in actions:
                self.grant(module, action)

    @classmethod
    def empty(cls) -> "PermissionMatrix":
        return cls()

    @classmethod
    def all_granted(cls) -> "PermissionMatrix":
        return cls({module: ACTION_KEYS for module in MODULE_KEYS})

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "PermissionMatrix":
        """
        Build from a stored or submitted grid.

        Accepts either {module: {action: bool}} (the stored shape) or
        {module: [action, ...]}. False cells and missing modules stay revoked.
        """
        matrix = cls()
        for module, cells in (data or {}).items():
            _check_module(module)
            if isinstance(cells, Mapping):
                for action, granted in cells.items():
                    _check_action(action)
                    if granted:
                        matrix._grants[module].add(action)
            elif isinstance(cells, (list, tuple, set, frozenset)):
                for action in cells:
                    matrix.grant(module, action)
            elif cells is not None:
                raise UnknownPermissionKey(f"Invalid cells for module {module!r}")
        return matrix

    def to_dict(self) -> dict[str, dict[str, bool]]:
        return {
            module: {action: action in self._grants[module] for action in ACTION_KEYS}
            for module in MODULE_KEYS
        }

    def copy(self) -> "PermissionMatrix":
        return PermissionMatrix(self._grants)

    def grant(self, module: str, action: str) -> None:
        _check_module(module)
        _check_action(action)
        self._grants[module].add(action)

    def revoke(self, module: str, action: str) -> None:
        _check_module(module)
        _check_action(action)
        self._grants[module].discard(action)

    def toggle(self, module: str, action: str) -> bool:
        """Flip one cell; returns the new value."""
        if self.is_granted(module, action):
            self.revoke(module, action)
            return False
        self.grant(module, action)
        return True

    def set_module(self, module: str, all_granted: bool) -> None:
        """Select-all / clear-all for one module."""
        _check_module(module)
        self._grants[module] = set(ACTION_KEYS) if all_granted else set()

    def is_granted(self, module: str, action: str) -> bool:
        _check_module(module)
        _check_action(action)
        return action in self._grants[module]

    def is_module_fully_granted(self, module: str) -> bool:
        _check_module(module)
        return all(action in self._grants[module] for action in ACTION_KEYS)

    def effective_permissions(self) -> list[tuple[str, list[str]]]:
        """
        Module-ordered projection for previews and audits.

        Modules with nothing granted are still listed with [] so consumers can
        tell "no access" apart from "unknown module".
        """
        return [
            (module, [action for action in ACTION_KEYS if action in self._grants[module]])
            for module in MODULE_KEYS
        ]

    def granted_count(self) -> int:
        return sum(len(actions) for actions in self._grants.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, PermissionMatrix):
            return NotImplemented
        return self._grants == other._grants

    def __repr__(self) -> str:
        granted = {m: sorted(a) for m, a in self._grants.items() if a}
        return f"<PermissionMatrix {granted}>"
