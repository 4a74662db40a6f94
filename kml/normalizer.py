"""
Coverage geometry normalization.

Turns the raw FeatureCollection produced by :mod:`kml.parser` into one that
holds only ``Polygon``/``MultiPolygon`` features in ``[lng, lat]`` order.

Coordinate order assumption
---------------------------
Authoring tools do not agree on KML axis order. Any pair whose first
component has absolute value greater than 90 cannot be a latitude, so the
pair is taken to be ``[lat, lng]`` and swapped. This is a heuristic tied to
the deployment region (Brazil); it is not a general KML converter rule.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from core.constants import CLOSED_RING_TOLERANCE
from core.exceptions import EmptyGeometryError

logger = logging.getLogger(__name__)

POLYGON_TYPES = frozenset({"Polygon", "MultiPolygon"})
MIN_RING_POSITIONS = 4


def _fix_position(position: Any) -> Any:
    if (
        isinstance(position, (list, tuple))
        and len(position) >= 2
        and isinstance(position[0], (int, float))
        and isinstance(position[1], (int, float))
        and abs(position[0]) > 90
    ):
        return [position[1], position[0], *position[2:]]
    if isinstance(position, (list, tuple)):
        return list(position)
    return position


def _fix_nested(coords: Any, depth: int) -> Any:
    if depth == 0:
        return _fix_position(coords)
    if not isinstance(coords, (list, tuple)):
        return coords
    return [_fix_nested(item, depth - 1) for item in coords]


_POSITION_DEPTH = {
    "Point": 0,
    "MultiPoint": 1,
    "LineString": 1,
    "MultiLineString": 2,
    "Polygon": 2,
    "MultiPolygon": 3,
}


def fix_coordinate_order(geometry: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return a copy of ``geometry`` with every ``[lat, lng]`` pair swapped."""
    if not isinstance(geometry, dict):
        return geometry
    geom_type = geometry.get("type")
    if geom_type == "GeometryCollection":
        return {
            **geometry,
            "geometries": [
                fix_coordinate_order(item) for item in geometry.get("geometries", [])
            ],
        }
    depth = _POSITION_DEPTH.get(geom_type)
    if depth is None or "coordinates" not in geometry:
        return dict(geometry)
    return {**geometry, "coordinates": _fix_nested(geometry["coordinates"], depth)}


def is_closed_line(
    coords: Any,
    tolerance: float = CLOSED_RING_TOLERANCE,
) -> bool:
    """
    True when a line's first and last positions coincide within ``tolerance``.

    Lines with fewer than four positions cannot form a ring and are never
    closed.
    """
    if not isinstance(coords, (list, tuple)) or len(coords) < MIN_RING_POSITIONS:
        return False
    first, last = coords[0], coords[-1]
    try:
        return (
            abs(float(first[0]) - float(last[0])) <= tolerance
            and abs(float(first[1]) - float(last[1])) <= tolerance
        )
    except (TypeError, ValueError, IndexError):
        return False


def _iter_positions(coords: Any):
    if (
        isinstance(coords, (list, tuple))
        and coords
        and isinstance(coords[0], (int, float))
    ):
        yield coords
        return
    if isinstance(coords, (list, tuple)):
        for item in coords:
            yield from _iter_positions(item)


def within_world_bounds(geometry: dict[str, Any]) -> bool:
    positions = list(_iter_positions(geometry.get("coordinates")))
    if not positions:
        return False
    for position in positions:
        if len(position) < 2:
            return False
        lng, lat = position[0], position[1]
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            return False
    return True


@dataclass
class NormalizationReport:
    """Diagnostics of one normalization pass."""

    input_features: int = 0
    kept: int = 0
    converted_lines: int = 0
    dropped_by_type: Counter = field(default_factory=Counter)
    out_of_range: int = 0

    @property
    def dropped(self) -> int:
        return sum(self.dropped_by_type.values()) + self.out_of_range

    def describe(self) -> list[str]:
        lines = [
            f"{count} feature(s) do tipo {geom_type} ignorada(s)"
            for geom_type, count in sorted(self.dropped_by_type.items())
        ]
        if self.out_of_range:
            lines.append(
                f"{self.out_of_range} feature(s) com coordenadas fora dos limites válidos"
            )
        return lines


@dataclass
class NormalizedCoverage:
    feature_collection: dict[str, Any]
    report: NormalizationReport


def coerce_geometry(geometry: dict[str, Any] | None) -> tuple[dict[str, Any] | None, str]:
    """
    Reinterpret ``geometry`` as a region.

    Returns ``(geometry, outcome)`` where outcome is ``"kept"``,
    ``"converted"`` or the reason it was dropped.
    """
    if not isinstance(geometry, dict) or not geometry.get("type"):
        return None, "SemGeometria"

    geom_type = geometry["type"]
    if geom_type in POLYGON_TYPES:
        return geometry, "kept"

    if geom_type == "LineString":
        coords = geometry.get("coordinates") or []
        if is_closed_line(coords):
            return {"type": "Polygon", "coordinates": [list(coords)]}, "converted"
        return None, "LineString aberta"

    if geom_type == "MultiLineString":
        rings = [
            list(line)
            for line in geometry.get("coordinates") or []
            if is_closed_line(line)
        ]
        if not rings:
            return None, "MultiLineString aberta"
        if len(rings) == 1:
            return {"type": "Polygon", "coordinates": rings}, "converted"
        return {
            "type": "MultiPolygon",
            "coordinates": [[ring] for ring in rings],
        }, "converted"

    return None, geom_type


def count_open_lines(geometry: dict[str, Any] | None) -> int:
    """Member lines of a MultiLineString that cannot be read as rings."""
    if not isinstance(geometry, dict) or geometry.get("type") != "MultiLineString":
        return 0
    return sum(
        1 for line in geometry.get("coordinates") or [] if not is_closed_line(line)
    )


def normalize_feature_collection(source: dict[str, Any]) -> NormalizedCoverage:
    """
    Fix coordinate order and keep only region geometries.

    Raises:
        EmptyGeometryError: nothing usable remains after coercion.
    """
    report = NormalizationReport()
    features: list[dict[str, Any]] = []

    for feature in source.get("features") or []:
        report.input_features += 1
        if not isinstance(feature, dict):
            report.dropped_by_type["SemGeometria"] += 1
            continue

        fixed = fix_coordinate_order(feature.get("geometry"))
        geometry, outcome = coerce_geometry(fixed)
        if geometry is None:
            report.dropped_by_type[outcome] += 1
            continue
        if not within_world_bounds(geometry):
            report.out_of_range += 1
            continue

        if outcome == "converted":
            report.converted_lines += 1
            open_lines = count_open_lines(fixed)
            if open_lines:
                report.dropped_by_type["LineString aberta"] += open_lines
        report.kept += 1
        features.append(
            {
                "type": "Feature",
                "properties": dict(feature.get("properties") or {}),
                "geometry": geometry,
            }
        )

    if report.converted_lines:
        logger.info(
            "%d closed line(s) converted to Polygon", report.converted_lines
        )
    if report.dropped:
        logger.info(
            "%d of %d feature(s) dropped during normalization",
            report.dropped,
            report.input_features,
        )

    if not features:
        errors = [
            "Nenhuma área de cobertura utilizável após a normalização. "
            "São necessários polígonos ou LineStrings fechadas (círculos)."
        ]
        errors.extend(report.describe())
        raise EmptyGeometryError(errors, {"dropped": report.dropped})

    return NormalizedCoverage(
        feature_collection={"type": "FeatureCollection", "features": features},
        report=report,
    )


def bounding_box(feature_collection: dict[str, Any]) -> list[float] | None:
    """``[min_lng, min_lat, max_lng, max_lat]`` of every position, or None."""
    min_lng = min_lat = float("inf")
    max_lng = max_lat = float("-inf")
    for feature in feature_collection.get("features") or []:
        geometry = (feature or {}).get("geometry") or {}
        for position in _iter_positions(geometry.get("coordinates")):
            lng, lat = position[0], position[1]
            min_lng = min(min_lng, lng)
            min_lat = min(min_lat, lat)
            max_lng = max(max_lng, lng)
            max_lat = max(max_lat, lat)
    if min_lng == float("inf"):
        return None
    return [min_lng, min_lat, max_lng, max_lat]
