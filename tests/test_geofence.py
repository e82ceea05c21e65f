"""
Geo math and the clock-in/out gate.
"""
import math
from types import SimpleNamespace

import pytest

from conftest import SITE_LAT, SITE_LNG, north_of
from cleanshift.errors import GeofenceError, ValidationError
from cleanshift.services.geofence import (
    MAX_GPS_ACCURACY_M,
    check_inside_geofence,
    haversine_distance,
)


def _site(lat=SITE_LAT, lng=SITE_LNG, radius=150):
    return SimpleNamespace(lat=lat, lng=lng, radius=radius)


def test_distance_same_point_is_zero():
    assert haversine_distance(SITE_LAT, SITE_LNG, SITE_LAT, SITE_LNG) == 0


def test_one_degree_of_latitude():
    d = haversine_distance(0, 0, 1, 0)
    assert abs(d - 111194.93) < 1


def test_distance_is_symmetric():
    a = haversine_distance(50.45, 30.52, 49.84, 24.03)
    b = haversine_distance(49.84, 24.03, 50.45, 30.52)
    assert a == pytest.approx(b)


def test_nan_in_nan_out():
    assert math.isnan(haversine_distance(float("nan"), 0, 0, 0))


def test_inside_radius_returns_distance():
    d = check_inside_geofence(_site(), north_of(SITE_LAT, 120), SITE_LNG, 50)
    assert d == pytest.approx(120, abs=0.01)


def test_outside_radius_reports_distance():
    with pytest.raises(GeofenceError) as exc:
        check_inside_geofence(_site(), north_of(SITE_LAT, 200), SITE_LNG, 50)
    assert str(exc.value) == "200m > 150m"
    body = exc.value.to_dict()
    assert body["kind"] == "geofence"
    assert body["distance_m"] == 200
    assert body["radius_m"] == 150


def test_boundary_is_inclusive():
    check_inside_geofence(_site(radius=150), north_of(SITE_LAT, 149.9), SITE_LNG, 10)


@pytest.mark.parametrize("accuracy", [80.5, 81, 500])
def test_coarse_gps_rejected_even_on_site(accuracy):
    with pytest.raises(GeofenceError) as exc:
        check_inside_geofence(_site(), SITE_LAT, SITE_LNG, accuracy)
    assert exc.value.max_accuracy_m == MAX_GPS_ACCURACY_M


def test_accuracy_at_limit_is_accepted():
    check_inside_geofence(_site(), SITE_LAT, SITE_LNG, MAX_GPS_ACCURACY_M)


@pytest.mark.parametrize(
    "site",
    [
        _site(lat=None),
        _site(lng=None),
        _site(radius=None),
        _site(radius=0),
        _site(radius=-5),
    ],
)
def test_unconfigured_site_is_a_validation_error(site):
    with pytest.raises(ValidationError) as exc:
        check_inside_geofence(site, SITE_LAT, SITE_LNG, 10)
    assert not isinstance(exc.value, GeofenceError)
