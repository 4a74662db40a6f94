import pytest

from core.exceptions import EmptyGeometryError
from kml.normalizer import (
    bounding_box,
    coerce_geometry,
    fix_coordinate_order,
    is_closed_line,
    normalize_feature_collection,
)

SQUARE_LNG_LAT = [[-46.0, -23.0], [-46.0, -22.0], [-45.0, -22.0], [-45.0, -23.0], [-46.0, -23.0]]


def _feature(geometry, name=None):
    properties = {"name": name} if name else {}
    return {"type": "Feature", "properties": properties, "geometry": geometry}


def _collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def test_fix_coordinate_order_leaves_lng_lat_polygon_untouched() -> None:
    polygon = {"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}

    assert fix_coordinate_order(polygon) == polygon


def test_fix_coordinate_order_swaps_pairs_with_large_first_component() -> None:
    small_first = {"type": "Polygon", "coordinates": [[[-23.0, -46.0], [-22.0, -46.0]]]}
    large_first = {
        "type": "Polygon",
        "coordinates": [[[-146.0, -23.0], [-146.0, -22.0]]],
    }

    assert fix_coordinate_order(small_first) == small_first
    fixed = fix_coordinate_order(large_first)
    assert fixed["coordinates"] == [[[-23.0, -146.0], [-22.0, -146.0]]]


def test_fix_coordinate_order_is_idempotent() -> None:
    polygon = {"type": "Polygon", "coordinates": [[[120.0, 10.0], [121.0, 11.0], [120.0, 10.0]]]}

    once = fix_coordinate_order(polygon)
    twice = fix_coordinate_order(once)

    assert once["coordinates"] == [[[10.0, 120.0], [11.0, 121.0], [10.0, 120.0]]]
    assert twice == once


def test_fix_coordinate_order_keeps_altitude() -> None:
    point = {"type": "Point", "coordinates": [100.0, 5.0, 30.0]}

    assert fix_coordinate_order(point)["coordinates"] == [5.0, 100.0, 30.0]


def test_fix_coordinate_order_does_not_mutate_input() -> None:
    polygon = {"type": "Polygon", "coordinates": [[[120.0, 10.0], [121.0, 11.0]]]}

    fix_coordinate_order(polygon)

    assert polygon["coordinates"] == [[[120.0, 10.0], [121.0, 11.0]]]


@pytest.mark.parametrize(
    ("coords", "expected"),
    [
        (SQUARE_LNG_LAT, True),
        (SQUARE_LNG_LAT[:-1] + [[-46.0000001, -23.0000001]], True),
        (SQUARE_LNG_LAT[:-1] + [[-46.001, -23.0]], False),
        ([[0.0, 0.0], [1.0, 1.0], [0.0, 0.0]], False),
        ([], False),
        (None, False),
    ],
)
def test_is_closed_line(coords, expected) -> None:
    assert is_closed_line(coords) is expected


def test_closed_line_becomes_polygon_with_same_ring() -> None:
    geometry, outcome = coerce_geometry({"type": "LineString", "coordinates": SQUARE_LNG_LAT})

    assert outcome == "converted"
    assert geometry == {"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}


def test_open_line_is_dropped() -> None:
    geometry, outcome = coerce_geometry(
        {"type": "LineString", "coordinates": SQUARE_LNG_LAT[:-1]}
    )

    assert geometry is None
    assert outcome == "LineString aberta"


def test_multilinestring_with_two_rings_becomes_multipolygon() -> None:
    other = [[lng + 2, lat] for lng, lat in SQUARE_LNG_LAT]
    geometry, outcome = coerce_geometry(
        {
            "type": "MultiLineString",
            "coordinates": [SQUARE_LNG_LAT, other, SQUARE_LNG_LAT[:3]],
        }
    )

    assert outcome == "converted"
    assert geometry == {
        "type": "MultiPolygon",
        "coordinates": [[SQUARE_LNG_LAT], [other]],
    }


def test_normalize_keeps_polygons_and_reports_drops() -> None:
    source = _collection(
        _feature({"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}, "A"),
        _feature({"type": "LineString", "coordinates": SQUARE_LNG_LAT}, "B"),
        _feature({"type": "Point", "coordinates": [-46.0, -23.0]}, "C"),
        _feature({"type": "LineString", "coordinates": SQUARE_LNG_LAT[:3]}, "D"),
    )

    normalized = normalize_feature_collection(source)

    features = normalized.feature_collection["features"]
    assert [feature["properties"]["name"] for feature in features] == ["A", "B"]
    assert {feature["geometry"]["type"] for feature in features} == {"Polygon"}
    assert normalized.report.converted_lines == 1
    assert normalized.report.dropped == 2
    assert normalized.report.dropped_by_type["Point"] == 1


def test_normalize_counts_open_members_of_a_partly_closed_multilinestring() -> None:
    source = _collection(
        _feature(
            {
                "type": "MultiLineString",
                "coordinates": [SQUARE_LNG_LAT, SQUARE_LNG_LAT[:3]],
            },
            "mixed",
        )
    )

    normalized = normalize_feature_collection(source)

    [feature] = normalized.feature_collection["features"]
    assert feature["geometry"] == {"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}
    assert normalized.report.kept == 1
    assert normalized.report.converted_lines == 1
    assert normalized.report.dropped_by_type["LineString aberta"] == 1
    assert "1 feature(s) do tipo LineString aberta ignorada(s)" in normalized.report.describe()


def test_normalize_drops_features_left_out_of_range_by_the_swap() -> None:
    swapped_ring = [[-100.0, 40.0], [-100.0, 41.0], [-99.0, 41.0], [-100.0, 40.0]]
    normalized = normalize_feature_collection(
        _collection(
            _feature({"type": "Polygon", "coordinates": [swapped_ring]}, "far"),
            _feature({"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}, "near"),
        )
    )

    features = normalized.feature_collection["features"]
    assert [feature["properties"]["name"] for feature in features] == ["near"]
    assert normalized.report.out_of_range == 1


def test_normalize_rejects_collection_without_regions() -> None:
    source = _collection(
        _feature({"type": "LineString", "coordinates": SQUARE_LNG_LAT[:-1]}),
        _feature({"type": "Point", "coordinates": [-46.0, -23.0]}),
    )

    with pytest.raises(EmptyGeometryError) as raised:
        normalize_feature_collection(source)

    assert raised.value.code == "empty_geometry"
    assert len(raised.value.errors) >= 2


def test_bounding_box() -> None:
    fc = _collection(_feature({"type": "Polygon", "coordinates": [SQUARE_LNG_LAT]}))

    assert bounding_box(fc) == [-46.0, -23.0, -45.0, -22.0]
    assert bounding_box(_collection()) is None
