"""Unit tests for distance computation and coordinate validation."""

import math

import pytest

from core.geoshutoff.exceptions import ComputationAnomalyError, InvalidCoordinateError
from core.geoshutoff.geodesy import (
    MAX_DISTANCE_METERS,
    distance,
    format_coordinates,
    format_distance,
    validate_coordinates,
)
from core.geoshutoff.models import Coordinate

from conftest import HOME

POINTS = [
    Coordinate(35.681236, 139.767125),
    Coordinate(0.0, 0.0),
    Coordinate(-33.8688, 151.2093),
    Coordinate(51.5074, -0.1278),
    Coordinate(89.9, 179.9),
    Coordinate(-45.0, -120.0),
]


class TestDistance:
    """Haversine distance properties."""

    @pytest.mark.parametrize("point", POINTS)
    def test_distance_to_self_is_zero(self, point):
        assert distance(point, point) == 0

    @pytest.mark.parametrize("a", POINTS)
    @pytest.mark.parametrize("b", POINTS)
    def test_distance_is_symmetric(self, a, b):
        assert distance(a, b) == pytest.approx(distance(b, a))

    def test_thousandth_degree_latitude_is_about_111m(self):
        north = Coordinate(HOME.latitude + 0.001, HOME.longitude)
        assert distance(HOME, north) == pytest.approx(111.2, rel=0.01)

    def test_ten_thousandth_degree_latitude_is_about_11m(self):
        north = Coordinate(35.681336, 139.767125)
        assert distance(HOME, north) == pytest.approx(11.1, rel=0.01)

    def test_long_distance_within_bound(self):
        meters = distance(Coordinate(0.0, 0.0), Coordinate(0.0, 179.0))
        assert meters <= MAX_DISTANCE_METERS
        assert meters == pytest.approx(math.pi * 6371000 * 179 / 180, rel=1e-9)

    def test_antipodes_exceed_bound(self):
        # pi * R is slightly above the bound, so exact antipodes are flagged
        with pytest.raises(ComputationAnomalyError):
            distance(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))

    def test_rejects_non_coordinate(self):
        with pytest.raises(InvalidCoordinateError):
            distance((35.0, 139.0), HOME)


class TestCoordinateValidation:
    """Coordinates are rejected, never clamped."""

    @pytest.mark.parametrize(
        "lat,lon",
        [
            (90.0001, 0.0),
            (-91, 0.0),
            (0.0, 180.5),
            (0.0, -181),
            (float("nan"), 0.0),
            (0.0, float("inf")),
            ("35.0", 139.0),
            (None, 139.0),
            (True, 139.0),
        ],
    )
    def test_invalid_coordinates_rejected(self, lat, lon):
        with pytest.raises(InvalidCoordinateError):
            Coordinate(lat, lon)
        assert validate_coordinates(lat, lon) is False

    def test_boundaries_are_valid(self):
        assert validate_coordinates(90, 180)
        assert validate_coordinates(-90.0, -180.0)


class TestFormatting:
    def test_format_distance_meters(self):
        assert format_distance(85.4) == "85m"

    def test_format_distance_kilometers(self):
        assert format_distance(1234) == "1.2km"

    def test_format_distance_invalid(self):
        assert format_distance(-1) == "unknown"
        assert format_distance(float("nan")) == "unknown"

    def test_format_coordinates(self):
        assert format_coordinates(HOME) == "35.681236, 139.767125"

