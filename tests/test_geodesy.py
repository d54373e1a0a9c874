from __future__ import annotations

from datetime import datetime, timezone

import numpy as np

from skylog.geodesy import WGS84_A, WGS84_B, WGS84_E2, ecef_to_geodetic, gps_to_datetime


def _geodetic_to_ecef(lat_deg: float, lon_deg: float, alt: float):
    lat = np.radians(lat_deg)
    lon = np.radians(lon_deg)
    n = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
    x = (n + alt) * np.cos(lat) * np.cos(lon)
    y = (n + alt) * np.cos(lat) * np.sin(lon)
    z = (n * (1.0 - WGS84_E2) + alt) * np.sin(lat)
    return x, y, z


def test_equator_prime_meridian() -> None:
    lat, lon, alt = ecef_to_geodetic(WGS84_A, 0.0, 0.0)
    assert np.isclose(lat, 0.0)
    assert np.isclose(lon, 0.0)
    assert np.isclose(alt, 0.0, atol=1e-6)


def test_north_pole() -> None:
    lat, lon, alt = ecef_to_geodetic(0.0, 0.0, WGS84_B + 100.0)
    assert np.isclose(lat, 90.0)
    assert np.isclose(alt, 100.0, atol=1e-3)


def test_round_trip_vectorised() -> None:
    points = [(43.6532, -79.3832, 76.0), (-33.8688, 151.2093, 58.0), (64.1466, -21.9426, 1200.0)]
    xs, ys, zs = zip(*(_geodetic_to_ecef(*p) for p in points))
    lat, lon, alt = ecef_to_geodetic(np.array(xs), np.array(ys), np.array(zs))
    expected = np.array(points)
    assert np.allclose(lat, expected[:, 0], atol=1e-7)
    assert np.allclose(lon, expected[:, 1], atol=1e-7)
    assert np.allclose(alt, expected[:, 2], atol=1e-3)


def test_gps_epoch() -> None:
    assert gps_to_datetime(0, 0, rollovers=0, leap_seconds=0) == datetime(1980, 1, 6, tzinfo=timezone.utc)


def test_week_rollover_and_leap_seconds() -> None:
    # full week 2310 = 2 * 1024 + 262, Sunday 2024-04-14 00:00:00 GPS
    when = gps_to_datetime(262, 3600, rollovers=2, leap_seconds=18)
    assert when == datetime(2024, 4, 14, 0, 59, 42, tzinfo=timezone.utc)
