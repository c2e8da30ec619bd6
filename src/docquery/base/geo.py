# src/docquery/base/geo.py
import logging
from collections.abc import Mapping

from docquery.config import within_operator

from .arguments import ArgShape, classify_box, classify_polygon, classify_shape
from .exceptions import InvalidArgumentError, UsageError
from .shapes import area_kind, get_option, has_option, is_sequence, looks_like_geojson, looks_like_point

log = logging.getLogger(__name__)

# Comparisons after which geometry() may be called.
GEOMETRY_COMPARISONS = ("$within", "$geoWithin", "$near", "$nearSphere", "$geoIntersects")


class GeoMixin:
    """
    Geospatial query methods for ``Query``.

    All shapes are written under the active path (or an explicit one) as
    MongoDB operator documents, e.g. ``{"loc": {"$geoWithin": {"$box": ...}}}``.
    """

    def within(self, *args):
        """
        Starts a ``$geoWithin`` (or legacy ``$within``) condition.

        With no argument only the comparison is recorded, so a following
        ``box()``, ``circle()``, ``polygon()`` or ``geometry()`` completes
        it. Two arguments are box corners; more than two are polygon points.
        A single mapping is routed on its shape: ``center`` (circle),
        ``box``, ``polygon`` or a GeoJSON object.
        """
        self._ensure_path("within")
        kind = area_kind(args[0]) if len(args) == 1 else None
        if len(args) == 1 and kind is None:
            raise InvalidArgumentError("Invalid argument")

        if len(args) == 2:
            self.box(*args)
        elif len(args) > 2:
            self.polygon(*args)
        elif kind == "circle":
            self.circle(args[0])
        elif kind == "box":
            self.box(*args[0]["box"])
        elif kind == "polygon":
            self.polygon(*args[0]["polygon"])

        self._geo_comparison = within_operator()
        if kind == "geometry":
            self.geometry(args[0])
        return self

    geo_within = within

    def box(self, *args):
        call = classify_box(args)
        path = self._resolve_path("box", call)
        conds = self._path_conditions(path)
        conds[within_operator()] = {"$box": call.value}
        return self

    def polygon(self, *args):
        call = classify_polygon(args)
        path = self._resolve_path("polygon", call)
        points = call.value
        if len(points) < 2:
            raise InvalidArgumentError("polygon() requires at least two points")
        conds = self._path_conditions(path)
        conds[within_operator()] = {"$polygon": points}
        return self

    def circle(self, *args):
        call = classify_shape("circle", args)
        if call.shape is ArgShape.EMPTY:
            raise InvalidArgumentError("Invalid argument")
        path = self._resolve_path("circle", call)
        area = call.value

        if not isinstance(area, Mapping) or "radius" not in area or not area.get("center"):
            raise InvalidArgumentError("center and radius are required")

        kind = "$centerSphere" if area.get("spherical") else "$center"
        shape = {kind: [area["center"], area["radius"]]}
        if "unique" in area:
            shape["$uniqueDocs"] = bool(area["unique"])

        conds = self._path_conditions(path)
        conds[within_operator()] = shape
        return self

    def near(self, *args):
        """
        Adds a ``$near`` (or ``$nearSphere``) condition.

        ``near({"center": [10, 10], "max_distance": 5})`` writes legacy
        coordinate pairs with the distance bounds as siblings. A GeoJSON
        Point center writes ``{"$near": {"$geometry": ..., "$maxDistance": ...}}``.
        Distance keys may be given in snake_case or camelCase.
        """
        call = classify_shape("near", args)
        if call.shape is ArgShape.EMPTY:
            self._geo_comparison = "$near"
            return self
        path = self._resolve_path("near", call)
        area = call.value

        if not isinstance(area, Mapping) or not area.get("center"):
            raise UsageError("center is required")

        center = area["center"]
        kind = "$nearSphere" if area.get("spherical") else "$near"
        max_distance = get_option(area, "max_distance")
        min_distance = get_option(area, "min_distance")

        if is_sequence(center):
            self._geo_comparison = "$near"
            conds = self._path_conditions(path)
            conds[kind] = list(center)
            if max_distance is not None:
                conds["$maxDistance"] = max_distance
            if min_distance is not None:
                conds["$minDistance"] = min_distance
            return self

        if not looks_like_point(center):
            raise InvalidArgumentError(f"Invalid GeoJSON specified for {kind}")

        self._geo_comparison = "$near"
        conds = self._path_conditions(path)
        operand = {"$geometry": center}
        if has_option(area, "max_distance"):
            operand["$maxDistance"] = max_distance
        if has_option(area, "min_distance"):
            operand["$minDistance"] = min_distance
        conds[kind] = operand
        return self

    def near_sphere(self, *args):
        """``near()`` with spherical geometry forced on."""
        call = classify_shape("near_sphere", args)
        if call.shape is ArgShape.EMPTY:
            self._geo_comparison = "$nearSphere"
            return self
        area = call.value
        if isinstance(area, Mapping):
            area = {**area, "spherical": True}
        if call.needs_path:
            self.near(area)
        else:
            self.near(call.path, area)
        self._geo_comparison = "$nearSphere"
        return self

    def intersects(self, *args):
        self._ensure_path("intersects")
        if args and not (len(args) == 1 and looks_like_geojson(args[0])):
            raise InvalidArgumentError("Invalid argument")

        self._geo_comparison = "$geoIntersects"
        if args:
            self.geometry(args[0])
        return self

    def geometry(self, *args):
        """
        Completes ``within()``, ``intersects()`` or ``near()`` with a GeoJSON
        object: ``{path: {comparison: {"$geometry": descriptor}}}``.
        """
        if self._geo_comparison not in GEOMETRY_COMPARISONS:
            raise UsageError("geometry() must come after `within()`, `intersects()`, or `near()`")

        if len(args) != 1:
            raise InvalidArgumentError("Invalid argument")

        self._ensure_path("geometry")
        descriptor = args[0]
        if not looks_like_geojson(descriptor):
            raise InvalidArgumentError("Invalid argument")

        conds = self._path_conditions(self._path)
        conds[self._geo_comparison] = {"$geometry": descriptor}
        log.debug(f"Added {self._geo_comparison} geometry on '{self._path}'")
        return self
