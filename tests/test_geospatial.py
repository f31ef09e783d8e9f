import math

import pytest

from src.rapidroutes.errors import InvalidCoordinate
from src.rapidroutes.models.domain import Coordinate
from src.rapidroutes.services.geospatial import (
    bounding_box,
    haversine_miles,
    in_bounding_box,
    is_valid_coordinate,
)

CHICAGO = Coordinate(41.8781, -87.6298)
ATLANTA = Coordinate(33.7490, -84.3880)


def test_haversine_chicago_to_atlanta():
    distance = haversine_miles(CHICAGO, ATLANTA)

    assert 580 < distance < 595
    assert haversine_miles(ATLANTA, CHICAGO) == pytest.approx(distance)
    assert haversine_miles(CHICAGO, CHICAGO) == 0.0


def test_one_degree_of_latitude_is_about_69_miles():
    assert haversine_miles(Coordinate(40.0, -90.0), Coordinate(41.0, -90.0)) == pytest.approx(69.1, abs=0.1)


@pytest.mark.parametrize(
    "coordinate",
    [
        None,
        Coordinate(float("nan"), -87.0),
        Coordinate(41.0, float("inf")),
        Coordinate(91.0, 0.0),
        Coordinate(0.0, -181.0),
        Coordinate(None, -87.0),
    ],
)
def test_invalid_coordinates_raise(coordinate):
    with pytest.raises(InvalidCoordinate):
        haversine_miles(CHICAGO, coordinate)
    assert not is_valid_coordinate(coordinate)


def test_bounding_box_contains_points_on_the_circle():
    radius = 75.0
    box = bounding_box(CHICAGO, radius)

    # Sample points around the circle at exactly `radius` miles.
    for bearing in range(0, 360, 15):
        theta = math.radians(bearing)
        delta = radius / 3959.0
        lat1, lon1 = math.radians(CHICAGO.latitude), math.radians(CHICAGO.longitude)
        lat2 = math.asin(math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(theta))
        lon2 = lon1 + math.atan2(
            math.sin(theta) * math.sin(delta) * math.cos(lat1),
            math.cos(delta) - math.sin(lat1) * math.sin(lat2),
        )
        point = Coordinate(math.degrees(lat2), math.degrees(lon2))
        assert in_bounding_box(point, box), bearing


def test_bounding_box_spans_all_longitudes_near_pole_and_antimeridian():
    assert bounding_box(Coordinate(89.5, 10.0), 75.0)[2:] == (-180.0, 180.0)
    assert bounding_box(Coordinate(10.0, 179.8), 75.0)[2:] == (-180.0, 180.0)


def test_bounding_box_rejects_negative_radius():
    with pytest.raises(ValueError):
        bounding_box(CHICAGO, -1.0)
