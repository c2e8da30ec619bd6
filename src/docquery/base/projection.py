# src/docquery/base/projection.py
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple, Union

from bson.son import SON
from pymongo import ASCENDING, DESCENDING

from .arguments import classify_slice
from .exceptions import CompatibilityError, InvalidArgumentError
from .shapes import is_number, is_sequence

log = logging.getLogger(__name__)

SortSpec = Union[Dict[str, Any], SON, List[Tuple[str, Any]]]

_SORT_DIRECTIONS = {
    "1": ASCENDING,
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "-1": DESCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
}


def sort_direction(value: Any) -> Any:
    """
    Normalizes a sort value to ``pymongo.ASCENDING`` / ``DESCENDING``.

    ``{"$meta": ...}`` descriptors pass through unchanged and falsy values
    mean ascending.
    """
    if isinstance(value, Mapping) and "$meta" in value:
        return value
    if not value:
        return ASCENDING
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid sort value: {value!r}")
    if is_number(value) and value in (1, -1):
        return int(value)
    direction = _SORT_DIRECTIONS.get(str(value).lower())
    if direction is None:
        raise InvalidArgumentError(f"Invalid sort value: {value!r}")
    return direction


def is_exclusion(value: Any) -> bool:
    return value is False or (is_number(value) and value == 0)


def check_projection(fields: Optional[Mapping[str, Any]]) -> None:
    """
    Rejects projections mixing inclusion and exclusion.

    ``_id`` may always be excluded and operator values (``$slice``,
    ``$meta``, ``$elemMatch``) are ignored.
    """
    if not fields:
        return
    included = excluded = False
    for key, value in fields.items():
        if isinstance(value, Mapping):
            continue
        if is_exclusion(value):
            if key != "_id":
                excluded = True
        else:
            included = True
        if included and excluded:
            raise CompatibilityError(
                "Projection cannot have a mix of inclusion and exclusion."
            )


class ProjectionMixin:
    """``select()``, ``slice()`` and ``sort()`` for ``Query``."""

    def select(self, *args):
        """
        Specifies which document fields to include or exclude.

        Accepts a whitespace separated string (``"a -b"``), several string
        arguments, a list of such tokens or a mapping (``{"a": 1, "b": 0}``).
        A leading ``-`` excludes the field. Calls merge into the existing
        projection.
        """
        if not args:
            return self
        arg = args[0] if len(args) == 1 else list(args)
        if arg is None or (not arg and not isinstance(arg, (Mapping, list, tuple))):
            return self

        self._check_permitted("select")

        if isinstance(arg, str):
            tokens = arg.split()
        elif is_sequence(arg) and all(isinstance(t, str) for t in arg):
            tokens = list(arg)
        elif isinstance(arg, Mapping):
            fields = self._ensure_fields()
            for key, value in arg.items():
                fields[key] = value
            return self
        else:
            raise InvalidArgumentError(
                "Invalid select() argument. Must be string, mapping or sequence of strings."
            )

        fields = self._ensure_fields()
        for token in tokens:
            if not token:
                continue
            if token[0] == "-":
                fields[token[1:]] = 0
            else:
                fields[token] = 1
        log.debug(f"Projection is now {fields!r}")
        return self

    def selected(self) -> bool:
        return bool(self._fields)

    def selected_inclusively(self) -> bool:
        if not self._fields:
            return False
        for value in self._fields.values():
            if isinstance(value, Mapping):
                if "$meta" in value:
                    return False
                continue
            if is_exclusion(value):
                return False
        return True

    def selected_exclusively(self) -> bool:
        if not self._fields:
            return False
        return any(is_exclusion(value) for value in self._fields.values())

    def slice(self, *args):
        """
        Projects an array slice: ``slice("comments", 5)``,
        ``slice("comments", 10, 5)``, ``where("comments").slice([-10, 5])``
        or ``slice({"comments": 5, "tags": -2})``.
        """
        if not args:
            return self

        self._check_permitted("slice")

        if len(args) == 1 and isinstance(args[0], Mapping):
            for path, value in args[0].items():
                self.slice(path, value)
            return self

        call = classify_slice(args)
        path = self._resolve_path("slice", call)
        value = list(call.value) if isinstance(call.value, tuple) else call.value
        fields = self._ensure_fields()
        fields[path] = {"$slice": value}
        return self

    def sort(self, *args):
        """
        Sets the sort order.

        Accepts ``"a -b"``, a mapping such as ``{"a": 1, "b": "desc"}``, a
        ``bson.son.SON``, or a list of ``(field, direction)`` pairs. The
        pair form and the mapping/string forms cannot be combined on one
        query.
        """
        if not args or not args[0]:
            return self
        if len(args) > 1:
            raise InvalidArgumentError(
                "Invalid sort() argument. Must be a string, object, or array."
            )

        self._check_permitted("sort")
        arg = args[0]
        existing = self._options.get("sort")

        if is_sequence(arg):
            if existing is not None and not isinstance(existing, list):
                raise InvalidArgumentError("Can't mix sort syntaxes. Use either array or object")
            pairs = list(existing or [])
            for item in arg:
                if not is_sequence(item) or len(item) != 2:
                    raise InvalidArgumentError("Invalid sort() argument, must be array of arrays")
                pairs.append((item[0], sort_direction(item[1])))
            self._options["sort"] = pairs
            return self

        if isinstance(existing, list):
            raise InvalidArgumentError("Can't mix sort syntaxes. Use either array or object")

        if isinstance(arg, str):
            items = []
            for token in arg.split():
                if token[0] == "-":
                    items.append((token[1:], DESCENDING))
                else:
                    items.append((token, ASCENDING))
        elif isinstance(arg, Mapping):
            items = [(key, sort_direction(value)) for key, value in arg.items()]
        else:
            raise InvalidArgumentError(
                "Invalid sort() argument. Must be a string, object, or array."
            )

        if existing is None:
            existing = SON() if isinstance(arg, SON) else {}
        for key, direction in items:
            existing[key] = direction
        self._options["sort"] = existing
        return self
