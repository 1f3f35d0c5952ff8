"""Tests for the distance calculator."""

from __future__ import annotations

import pytest

from fleettrack.core.geo import (
    cross_checked_distance,
    haversine_m,
    meters_to_miles,
    path_length_m,
    planar_m,
)


def test_haversine_same_point_is_zero():
    assert haversine_m(36.183115, -94.169488, 36.183115, -94.169488) == 0.0


def test_haversine_one_degree_on_equator():
    assert haversine_m(0.0, 0.0, 0.0, 1.0) == pytest.approx(111_195, abs=1)


def test_haversine_is_symmetric():
    a = haversine_m(36.183115, -94.169488, 36.1873, -94.13121)
    b = haversine_m(36.1873, -94.13121, 36.183115, -94.169488)
    assert a == pytest.approx(b)
    # McRay Shop to Shiloh Museum is roughly 3.5 km.
    assert 3_300 < a < 3_600


def test_planar_one_degree_of_latitude():
    assert planar_m(36.0, -94.0, 37.0, -94.0) == pytest.approx(111_320)


def test_planar_scales_longitude_by_first_latitude():
    # cos(60°) = 0.5
    assert planar_m(60.0, 0.0, 60.0, 1.0) == pytest.approx(55_660, abs=1)


def test_formulas_agree_at_short_range():
    check = cross_checked_distance(36.183115, -94.169488, 36.1840, -94.1690)
    assert check.disagreement_m < 1
    assert not check.mismatch


def test_mismatch_at_long_range_uses_larger_distance():
    check = cross_checked_distance(60.0, 0.0, 60.0, 10.0)
    assert check.mismatch
    assert check.distance_m == max(check.haversine_m, check.planar_m)
    assert check.distance_m == check.planar_m


def test_mismatch_threshold_is_configurable():
    check = cross_checked_distance(60.0, 0.0, 60.0, 10.0, threshold_m=1e9)
    assert not check.mismatch


def test_meters_to_miles():
    assert meters_to_miles(1_609.344) == pytest.approx(1.0)


def test_path_length_sums_segments():
    points = [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)]
    assert path_length_m(points) == pytest.approx(2 * haversine_m(0.0, 0.0, 0.0, 1.0))


def test_path_length_of_single_point_is_zero():
    assert path_length_m([(36.0, -94.0)]) == 0.0
    assert path_length_m([]) == 0.0
