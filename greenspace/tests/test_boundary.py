from __future__ import annotations

# ruff: noqa: S101
import pytest

from greenspace.boundary import boundary_from_centroid, parse_boundary
from greenspace.exceptions import InvalidBoundary


def _square(west: float, south: float, size: float) -> list[list[float]]:
    return [
        [west, south],
        [west + size, south],
        [west + size, south + size],
        [west, south + size],
        [west, south],
    ]


def test_parse_polygon_computes_geodesic_area_and_centroid() -> None:
    boundary = parse_boundary(
        {"type": "Polygon", "coordinates": [_square(0.0, 0.0, 0.02)]}
    )

    # 0.02 deg is ~2.23 km east-west and ~2.21 km north-south at the equator.
    assert boundary.area_km2 == pytest.approx(4.92, rel=0.02)
    assert boundary.centroid_lat == pytest.approx(0.01)
    assert boundary.centroid_lon == pytest.approx(0.01)
    assert boundary.bbox == (0.0, 0.0, 0.02, 0.02)


def test_parse_feature_unwraps_geometry() -> None:
    boundary = parse_boundary(
        {
            "type": "Feature",
            "properties": {"name": "Test"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [_square(10.0, 45.0, 0.1)],
            },
        }
    )
    assert boundary.bbox.west == pytest.approx(10.0)
    assert boundary.bbox.north == pytest.approx(45.1)


def test_parse_feature_collection_merges_parts() -> None:
    single = parse_boundary(
        {"type": "Polygon", "coordinates": [_square(0.0, 0.0, 0.02)]}
    )
    merged = parse_boundary(
        {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "geometry": {
                        "type": "Polygon",
                        "coordinates": [_square(0.0, 0.0, 0.02)],
                    },
                },
                {
                    "type": "Feature",
                    "geometry": {
                        "type": "Polygon",
                        "coordinates": [_square(0.02, 0.0, 0.02)],
                    },
                },
            ],
        }
    )
    assert merged.area_km2 == pytest.approx(single.area_km2 * 2, rel=0.01)
    assert merged.bbox.east == pytest.approx(0.04)


def test_parse_multipolygon() -> None:
    boundary = parse_boundary(
        {
            "type": "MultiPolygon",
            "coordinates": [
                [_square(0.0, 0.0, 0.01)],
                [_square(0.05, 0.05, 0.01)],
            ],
        }
    )
    assert boundary.geometry.geom_type == "MultiPolygon"
    assert boundary.bbox == pytest.approx((0.0, 0.0, 0.06, 0.06))


def test_self_intersecting_polygon_is_repaired() -> None:
    bowtie = [[0.0, 0.0], [0.1, 0.1], [0.1, 0.0], [0.0, 0.1], [0.0, 0.0]]
    boundary = parse_boundary({"type": "Polygon", "coordinates": [bowtie]})

    assert boundary.geometry.is_valid
    assert boundary.area_km2 > 0


@pytest.mark.parametrize(
    "geojson",
    [
        None,
        {},
        {"type": "Point", "coordinates": [0.0, 0.0]},
        {"type": "Feature", "geometry": None},
        {"type": "FeatureCollection", "features": []},
        {"type": "Polygon", "coordinates": [[[0.0, 0.0], [1.0]]]},
        {"type": "Polygon", "coordinates": [_square(200.0, 0.0, 1.0)]},
        {
            "type": "Polygon",
            "coordinates": [[[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 0.0]]],
        },
    ],
)
def test_parse_boundary_rejects_unusable_input(geojson: object) -> None:
    with pytest.raises(InvalidBoundary):
        parse_boundary(geojson)  # type: ignore[arg-type]


def test_boundary_from_centroid_builds_square() -> None:
    boundary = boundary_from_centroid(43.7, -79.4, 0.1)
    assert boundary.bbox == pytest.approx((-79.5, 43.6, -79.3, 43.8))
    assert boundary.centroid_lat == pytest.approx(43.7)


def test_boundary_from_centroid_rejects_non_positive_buffer() -> None:
    with pytest.raises(InvalidBoundary):
        boundary_from_centroid(0.0, 0.0, 0.0)
