"""Coordinate and time conversions for decoded logger fixes."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Tuple

import numpy as np

WGS84_A = 6378137.0
WGS84_F = 1.0 / 298.257223563
WGS84_B = WGS84_A * (1.0 - WGS84_F)
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)
WGS84_EP2 = (WGS84_A**2 - WGS84_B**2) / WGS84_B**2

GPS_EPOCH = datetime(1980, 1, 6, tzinfo=timezone.utc)
WEEK_ROLLOVER = 1024
SECONDS_PER_WEEK = 7 * 24 * 3600


def ecef_to_geodetic(x, y, z) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Convert ECEF metres to WGS84 latitude/longitude (degrees) and height (m).

    Uses Bowring's closed form, which is accurate to well below a millimetre
    for points near the Earth's surface. Accepts scalars or arrays.
    """

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    z = np.asarray(z, dtype=float)
    p = np.hypot(x, y)
    theta = np.arctan2(z * WGS84_A, p * WGS84_B)
    lat = np.arctan2(
        z + WGS84_EP2 * WGS84_B * np.sin(theta) ** 3,
        p - WGS84_E2 * WGS84_A * np.cos(theta) ** 3,
    )
    lon = np.arctan2(y, x)
    n = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
    cos_lat = np.cos(lat)
    # near the poles p / cos(lat) is ill-conditioned
    alt = np.where(
        np.abs(cos_lat) > 1e-10,
        p / np.where(cos_lat == 0, 1.0, cos_lat) - n,
        np.abs(z) - WGS84_B,
    )
    return np.degrees(lat), np.degrees(lon), alt


def gps_to_datetime(week: int, time_of_week: int, rollovers: int = 2, leap_seconds: int = 18) -> datetime:
    """UTC time for a 10-bit GPS week number and time of week in seconds."""
    full_week = week % WEEK_ROLLOVER + rollovers * WEEK_ROLLOVER
    return GPS_EPOCH + timedelta(weeks=full_week, seconds=time_of_week - leap_seconds)
