# src/docquery/base/permissions.py
"""Which builder options each operation kind refuses."""

import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .exceptions import CompatibilityError

log = logging.getLogger(__name__)

# Checked in this order so the first offending option is reported.
CHECKED_OPTIONS = (
    "select",
    "slice",
    "sort",
    "limit",
    "skip",
    "batch_size",
    "max_scan",
    "snapshot",
    "hint",
    "tailable",
)

_CURSOR_ONLY = frozenset({"batch_size", "max_scan", "snapshot", "tailable"})
_SINGLE_DOCUMENT = frozenset({"limit", "skip"}) | _CURSOR_ONLY

DENIED: Dict[str, FrozenSet[str]] = {
    "distinct": frozenset(CHECKED_OPTIONS),
    "count": frozenset({"select", "slice"}) | _CURSOR_ONLY,
    "find_one_and_update": _SINGLE_DOCUMENT,
    "find_one_and_remove": _SINGLE_DOCUMENT,
    "update_one": _CURSOR_ONLY,
    "update_many": _CURSOR_ONLY,
    "replace_one": _CURSOR_ONLY,
}

# Ops for which any projection at all is rejected.
_NO_PROJECTION = frozenset({"count", "distinct"})


def denied_for(op: Optional[str]) -> FrozenSet[str]:
    return DENIED.get(op or "", frozenset())


def is_permitted(action: str, op: Optional[str]) -> bool:
    return action not in denied_for(op)


def check_permitted(action: str, op: Optional[str]) -> None:
    """Raises CompatibilityError if ``action`` may not be used with ``op``."""
    if not is_permitted(action, op):
        raise CompatibilityError(f"{action} cannot be used with {op}")


def validate(op: Optional[str], fields: Optional[Mapping[str, Any]], options: Mapping[str, Any]) -> None:
    """
    Checks the accumulated builder state against the table for ``op``.

    A non-empty projection fails first for ops that take none; after that
    the first truthy forbidden option, in CHECKED_OPTIONS order, fails.
    """
    denied = denied_for(op)
    if not denied:
        return

    if op in _NO_PROJECTION and fields:
        raise CompatibilityError(f"field selection and slice cannot be used with {op}")

    for name in CHECKED_OPTIONS:
        if name in denied and options.get(name):
            log.debug(f"Rejecting option '{name}' for op '{op}'")
            raise CompatibilityError(f"{name} cannot be used with {op}")
