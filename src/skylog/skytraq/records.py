"""
Decoder for the logger's flash record format.

Records are packed back to back in storage order. The top three bits of a
record's first byte select its kind:

    FULL (2) / POINT_OF_INTEREST (3)  18 bytes, absolute fix
    COMPACT (4)                        8 bytes, deltas against previous fix
    EMPTY (7)                          2 bytes, filler (erased flash)

Full / point-of-interest layout (bit 0 is the LSB of each byte):

    byte 0    [7:5] kind, [1:0] velocity[9:8]
    byte 1    velocity[7:0]
    byte 2    week[7:0]
    byte 3    [7:4] tow[3:0], [1:0] week[9:8]
    byte 4    tow[11:4]
    byte 5    tow[19:12]
    6..9      x, 10..13 y, 14..17 z

Each coordinate is a signed 32-bit value stored as two 16-bit words, low
word first, each word high byte first:

    byte n    coord[15:8]
    byte n+1  coord[7:0]
    byte n+2  coord[31:24]
    byte n+3  coord[23:16]

Compact layout:

    byte 0    [7:5] kind, [1:0] velocity[9:8]
    byte 1    velocity[7:0]
    byte 2    dtow[15:8]
    byte 3    dtow[7:0]
    byte 4    dx[9:2]
    byte 5    [7:6] dx[1:0], [5:0] dy[9:4]
    byte 6    [7:4] dy[3:0], [3:0] dz[9:6]
    byte 7    [7:2] dz[5:0]
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .errors import LogDecodeError


class RecordKind(enum.IntEnum):
    FULL = 2
    POINT_OF_INTEREST = 3
    COMPACT = 4
    EMPTY = 7


RECORD_SIZES = {
    RecordKind.FULL: 18,
    RecordKind.POINT_OF_INTEREST: 18,
    RecordKind.COMPACT: 8,
    RecordKind.EMPTY: 2,
}


@dataclass(frozen=True)
class PositionFix:
    """Absolute position fix; velocity in km/h, coordinates in metres (ECEF)."""

    is_point_of_interest: bool
    velocity: int
    gps_week: int
    gps_time_of_week: int
    x: int
    y: int
    z: int


def record_kind(header: int) -> int:
    return header >> 5


def to_signed32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def delta10(raw: int) -> int:
    """Map a raw 10-bit compact delta field to a signed offset."""
    raw &= 0x3FF
    return raw - 512 if raw >= 512 else raw


def _velocity(block: bytes, pos: int) -> int:
    return ((block[pos] & 0x03) << 8) | block[pos + 1]


def _coordinate(block: bytes, pos: int) -> int:
    return to_signed32(
        (block[pos] << 8) | block[pos + 1] | (block[pos + 2] << 24) | (block[pos + 3] << 16)
    )


def _decode_full(block: bytes, pos: int, kind: RecordKind) -> PositionFix:
    week = block[pos + 2] | ((block[pos + 3] & 0x03) << 8)
    tow = (block[pos + 3] >> 4) | (block[pos + 4] << 4) | (block[pos + 5] << 12)
    return PositionFix(
        is_point_of_interest=kind is RecordKind.POINT_OF_INTEREST,
        velocity=_velocity(block, pos),
        gps_week=week,
        gps_time_of_week=tow,
        x=_coordinate(block, pos + 6),
        y=_coordinate(block, pos + 10),
        z=_coordinate(block, pos + 14),
    )


def _decode_compact(block: bytes, pos: int, previous: PositionFix) -> PositionFix:
    dtow = (block[pos + 2] << 8) | block[pos + 3]
    dx = (block[pos + 4] << 2) | (block[pos + 5] >> 6)
    dy = ((block[pos + 5] & 0x3F) << 4) | (block[pos + 6] >> 4)
    dz = ((block[pos + 6] & 0x0F) << 6) | (block[pos + 7] >> 2)
    return PositionFix(
        is_point_of_interest=False,
        velocity=_velocity(block, pos),
        gps_week=previous.gps_week,
        gps_time_of_week=previous.gps_time_of_week + dtow,
        x=previous.x + delta10(dx),
        y=previous.y + delta10(dy),
        z=previous.z + delta10(dz),
    )


def iter_log_records(block: bytes) -> Iterator[PositionFix]:
    block = bytes(block)
    pos = 0
    previous: Optional[PositionFix] = None
    while pos < len(block):
        raw_kind = record_kind(block[pos])
        try:
            kind = RecordKind(raw_kind)
        except ValueError:
            raise LogDecodeError(f"Unknown record kind {raw_kind}", pos) from None
        size = RECORD_SIZES[kind]
        if pos + size > len(block):
            raise LogDecodeError(
                f"Truncated {kind.name} record ({len(block) - pos} of {size} bytes)", pos
            )
        if kind is RecordKind.COMPACT:
            if previous is None:
                raise LogDecodeError("Compact record without a preceding absolute fix", pos)
            previous = _decode_compact(block, pos, previous)
            yield previous
        elif kind is not RecordKind.EMPTY:
            previous = _decode_full(block, pos, kind)
            yield previous
        pos += size


def parse_log_records(block: bytes) -> List[PositionFix]:
    """Decode a raw logger block into absolute fixes in storage order."""
    return list(iter_log_records(block))
