from __future__ import annotations

import math

import pytest

from rangeherd.geo import distance_between, haversine_m


def test_same_point_is_zero() -> None:
    assert haversine_m(32.9565, -96.3893, 32.9565, -96.3893) == 0.0


def test_one_degree_of_latitude() -> None:
    # pi/180 * 6_371_000
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_194.93, rel=1e-6)


def test_distance_is_symmetric() -> None:
    a = (32.9565, -96.3893)
    b = (32.9600, -96.3800)
    assert distance_between(a, b) == pytest.approx(distance_between(b, a))


def test_antipodal_points_do_not_overflow() -> None:
    assert haversine_m(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 6_371_000.0)
