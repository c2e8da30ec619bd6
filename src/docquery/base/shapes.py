# src/docquery/base/shapes.py
"""Capability predicates used to tell argument shapes apart."""

from collections.abc import Mapping
from numbers import Number
from typing import Any, Optional

_COLLECTION_METHODS = ("find", "update_one", "delete_many")
_MISSING = object()


def is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def is_sequence(value: Any) -> bool:
    """Lists and tuples only; strings are not sequences here."""
    return isinstance(value, (list, tuple))


def get_option(area: Mapping, name: str, default: Any = None) -> Any:
    """
    Reads ``name`` from ``area`` accepting both snake_case and camelCase keys.

    ``get_option(area, "max_distance")`` finds ``max_distance`` or
    ``maxDistance``.
    """
    if name in area:
        return area[name]
    head, *rest = name.split("_")
    camel = head + "".join(part.title() for part in rest)
    return area.get(camel, default)


def has_option(area: Mapping, name: str) -> bool:
    return get_option(area, name, _MISSING) is not _MISSING


def looks_like_geojson(value: Any) -> bool:
    """A truthy ``type`` and a list of ``coordinates``."""
    if not isinstance(value, Mapping):
        return False
    return bool(value.get("type")) and is_sequence(value.get("coordinates"))


def looks_like_point(value: Any) -> bool:
    return looks_like_geojson(value) and value.get("type") == "Point"


def area_kind(area: Any) -> Optional[str]:
    """
    Classifies the single-argument form of ``within()``.

    Returns "circle", "box", "polygon" or "geometry", or None when the shape
    is not recognized. Earlier matches win.
    """
    if not area or not isinstance(area, Mapping):
        return None
    if area.get("center"):
        return "circle"
    if area.get("box"):
        return "box"
    if area.get("polygon"):
        return "polygon"
    if looks_like_geojson(area):
        return "geometry"
    return None


def looks_like_collection(value: Any) -> bool:
    """True for objects exposing the driver collection methods we call."""
    if value is None or isinstance(value, (Mapping, str, type)):
        return False
    return all(callable(getattr(value, name, None)) for name in _COLLECTION_METHODS)
