from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .errors import MalformedFrameError

logger = logging.getLogger(__name__)

MSG_START = b"\xA0\xA1"
MSG_END = b"\x0D\x0A"

# start(2) + length(2) + checksum(1) + end(2); the id byte is counted by length
FRAME_OVERHEAD = 7
MAX_PAYLOAD_LEN = 0xFFFF

# system messages
MSG_RESTART = 0x01
MSG_GET_VERSION = 0x02
MSG_GET_CRC = 0x03
MSG_RESET = 0x04
MSG_CONFIG_PORT = 0x05

MSG_VERSION = 0x80
MSG_CRC = 0x81
MSG_ACK = 0x83
MSG_NACK = 0x84

# logger messages
MSG_LOG_GET_STATUS = 0x17
MSG_LOG_CONFIG = 0x18
MSG_LOG_CLEAR = 0x19
MSG_LOG_GET_DATA = 0x1D

MSG_LOG_STATUS = 0x94


@dataclass(frozen=True)
class Message:
    identifier: int
    body: bytes = b""


@dataclass(frozen=True)
class DecodedMessage:
    identifier: int
    body: bytes
    checksum_valid: bool

    @property
    def message(self) -> Message:
        return Message(self.identifier, self.body)


def checksum(identifier: int, body: Iterable[int]) -> int:
    chk = identifier
    for byte in body:
        chk ^= byte
    return chk & 0xFF


def encode_message(message: Message) -> bytes:
    """Wrap *message* in a Skytraq binary frame.

    Layout: ``A0 A1 | len (2, BE) | id | body | checksum | 0D 0A`` where
    ``len = 1 + len(body)``.
    """

    if not 0 <= message.identifier <= 0xFF:
        raise ValueError(f"Message identifier out of range: {message.identifier}")
    payload_len = 1 + len(message.body)
    if payload_len > MAX_PAYLOAD_LEN:
        raise ValueError(f"Message body too long ({len(message.body)} bytes)")
    frame = bytearray(MSG_START)
    frame += payload_len.to_bytes(2, "big")
    frame.append(message.identifier)
    frame += message.body
    frame.append(checksum(message.identifier, message.body))
    frame += MSG_END
    return bytes(frame)


def decode_message(frame: bytes) -> DecodedMessage:
    """Decode exactly one frame.

    A checksum mismatch is reported through ``checksum_valid`` rather than
    raised; the caller decides whether to trust the message.
    """

    if len(frame) < FRAME_OVERHEAD + 1:
        raise MalformedFrameError(f"Frame too short ({len(frame)} bytes)")
    if frame[:2] != MSG_START:
        raise MalformedFrameError("Frame does not begin with start marker")
    payload_len = int.from_bytes(frame[2:4], "big")
    if payload_len < 1 or len(frame) != payload_len + FRAME_OVERHEAD:
        raise MalformedFrameError(
            f"Length field {payload_len} inconsistent with frame size {len(frame)}"
        )
    if frame[-2:] != MSG_END:
        raise MalformedFrameError("Frame does not end with end marker")
    identifier = frame[4]
    body = bytes(frame[5 : 4 + payload_len])
    expected = frame[4 + payload_len]
    valid = checksum(identifier, body) == expected
    if not valid:
        logger.debug("Checksum mismatch on message 0x%02X (frame=%02X)", identifier, expected)
    return DecodedMessage(identifier=identifier, body=body, checksum_valid=valid)
