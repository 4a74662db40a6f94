"""KML/KMZ coverage map parsing and geometry normalization."""

from kml.normalizer import (
    NormalizationReport,
    NormalizedCoverage,
    bounding_box,
    fix_coordinate_order,
    is_closed_line,
    normalize_feature_collection,
)
from kml.parser import GeometryTally, KmlParser, ParsedCoverageDocument

__all__ = [
    "GeometryTally",
    "KmlParser",
    "NormalizationReport",
    "NormalizedCoverage",
    "ParsedCoverageDocument",
    "bounding_box",
    "fix_coordinate_order",
    "is_closed_line",
    "normalize_feature_collection",
]
