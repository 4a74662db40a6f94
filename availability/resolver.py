"""
Point-in-Region Resolver.

Answers "which stored coverage areas contain this point" by testing the
point against every feature of every area. Containment is planar and
boundary-inclusive (``covers``): a point on a ring edge counts as inside,
a point inside a hole does not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shapely.geometry import Point, shape
from shapely.ops import unary_union
from shapely.validation import make_valid

if TYPE_CHECKING:
    from availability.repository import CoverageStore
    from db.models import CoverageArea
    from geocoding.models import GeoPoint

logger = logging.getLogger(__name__)

POLYGONAL = ("Polygon", "MultiPolygon")


def _clean_geometry(raw_geometry: dict[str, Any], label: str):
    """Convert a GeoJSON geometry into a shapely shape, repairing it if needed."""
    try:
        geom = shape(raw_geometry)
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning("Skipping unreadable geometry in %s", label)
        return None

    if geom.is_empty:
        return None
    if geom.is_valid:
        return geom

    fixed = make_valid(geom)
    if fixed.is_empty:
        logger.warning("Skipping %s: geometry empty after make_valid", label)
        return None
    if fixed.geom_type == "GeometryCollection":
        polygons = [g for g in fixed.geoms if g.geom_type in POLYGONAL]
        if not polygons:
            logger.warning("Skipping %s: no polygonal parts in repaired geometry", label)
            return None
        return unary_union(polygons)
    return fixed


def _feature_shapes(area: CoverageArea) -> list[Any]:
    shapes: list[Any] = []
    for index, feature in enumerate(area.geometry.get("features") or []):
        geometry = (feature or {}).get("geometry")
        if not isinstance(geometry, dict):
            shapes.append(None)
            continue
        shapes.append(_clean_geometry(geometry, f"area {area.id} feature {index}"))
    return shapes


def _bbox_may_contain(bbox: list[float] | None, lng: float, lat: float) -> bool:
    if not bbox or len(bbox) != 4:
        return True
    min_lng, min_lat, max_lng, max_lat = bbox
    return min_lng <= lng <= max_lng and min_lat <= lat <= max_lat


def area_covers(area: CoverageArea, lng: float, lat: float) -> bool:
    """True when any feature of ``area`` covers the point."""
    point = Point(lng, lat)
    return any(geom is not None and geom.covers(point) for geom in _feature_shapes(area))


@dataclass
class FeatureDiagnostic:
    index: int
    name: str | None
    geometry_type: str | None
    contains: bool


@dataclass
class AreaDiagnostic:
    area_id: str
    provider_id: str
    name: str
    bbox: list[float]
    in_bbox: bool
    contains: bool
    features: list[FeatureDiagnostic]


class PointInRegionResolver:
    """Find every coverage area containing a point."""

    def __init__(self, store: CoverageStore) -> None:
        self._store = store

    async def resolve(self, point: GeoPoint) -> list[CoverageArea]:
        """
        Return all areas containing ``point``; an empty list when none do.

        Overlapping areas, including several of one provider, are all
        returned. The bounding-box check only skips areas that cannot match.
        """
        areas = await self._store.list_all()
        matches = [
            area
            for area in areas
            if _bbox_may_contain(area.bbox, point.lng, point.lat)
            and area_covers(area, point.lng, point.lat)
        ]
        logger.debug(
            "Point (%s, %s) matched %d of %d area(s)",
            point.lat,
            point.lng,
            len(matches),
            len(areas),
        )
        return matches

    async def diagnose(self, point: GeoPoint) -> list[AreaDiagnostic]:
        """Per-area, per-feature containment report without the bbox shortcut."""
        results: list[AreaDiagnostic] = []
        target = Point(point.lng, point.lat)
        for area in await self._store.list_all():
            features: list[FeatureDiagnostic] = []
            raw_features = area.geometry.get("features") or []
            for index, (feature, geom) in enumerate(
                zip(raw_features, _feature_shapes(area), strict=False)
            ):
                feature = feature or {}
                features.append(
                    FeatureDiagnostic(
                        index=index,
                        name=(feature.get("properties") or {}).get("name"),
                        geometry_type=(feature.get("geometry") or {}).get("type"),
                        contains=geom is not None and bool(geom.covers(target)),
                    )
                )
            results.append(
                AreaDiagnostic(
                    area_id=str(area.id),
                    provider_id=str(area.provider_id),
                    name=area.name,
                    bbox=list(area.bbox or []),
                    in_bbox=_bbox_may_contain(area.bbox, point.lng, point.lat),
                    contains=any(item.contains for item in features),
                    features=features,
                )
            )
        return results
