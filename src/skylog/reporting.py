"""Writers for downloaded logger data."""
from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Sequence

import pandas as pd

from .geodesy import ecef_to_geodetic, gps_to_datetime
from .skytraq.records import PositionFix

FIX_COLUMNS = [
    "time_utc",
    "is_point_of_interest",
    "velocity",
    "gps_week",
    "gps_time_of_week",
    "x",
    "y",
    "z",
    "latitude",
    "longitude",
    "altitude",
]


def fixes_to_dataframe(
    fixes: Sequence[PositionFix],
    *,
    rollovers: int = 2,
    leap_seconds: int = 18,
) -> pd.DataFrame:
    """Tabulate *fixes* with geodetic coordinates and UTC timestamps added."""

    if not fixes:
        return pd.DataFrame(columns=FIX_COLUMNS)
    df = pd.DataFrame([asdict(fix) for fix in fixes])
    lat, lon, alt = ecef_to_geodetic(df["x"].to_numpy(), df["y"].to_numpy(), df["z"].to_numpy())
    df["latitude"] = lat
    df["longitude"] = lon
    df["altitude"] = alt
    df["time_utc"] = [
        gps_to_datetime(week, tow, rollovers=rollovers, leap_seconds=leap_seconds)
        for week, tow in zip(df["gps_week"], df["gps_time_of_week"])
    ]
    return df[FIX_COLUMNS]


def export_fixes_csv(
    fixes: Sequence[PositionFix],
    path: Path,
    *,
    rollovers: int = 2,
    leap_seconds: int = 18,
) -> int:
    """Write *fixes* to *path* as CSV and return the number of rows."""

    df = fixes_to_dataframe(fixes, rollovers=rollovers, leap_seconds=leap_seconds)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return len(df)


def write_raw_block(block: bytes, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(block)
