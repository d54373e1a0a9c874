from __future__ import annotations

import logging
import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from .buffer import FrameBuffer
from .errors import ChecksumMismatchError, NackError, ProtocolError, SessionBusyError, TransportError
from .frames import (
    MSG_ACK,
    MSG_CRC,
    MSG_GET_CRC,
    MSG_GET_VERSION,
    MSG_LOG_CLEAR,
    MSG_LOG_GET_DATA,
    MSG_LOG_GET_STATUS,
    MSG_LOG_STATUS,
    MSG_NACK,
    MSG_VERSION,
    DecodedMessage,
    Message,
    decode_message,
    encode_message,
)

logger = logging.getLogger(__name__)

SECTOR_SIZE = 4096
DATA_TRAILER_LEN = 19
SOFTWARE_TYPE_SYSTEM = 0x01

VERSION_BODY_LEN = 13
CRC_BODY_LEN = 3
STATUS_FORMAT = struct.Struct("<IHHIIIIIIBB")


@dataclass
class SoftwareVersion:
    software_type: int
    kernel: str
    application: str
    revision: str


@dataclass
class LoggerStatus:
    write_pointer: int
    sectors_left: int
    total_sectors: int
    max_time: int
    min_time: int
    max_distance: int
    min_distance: int
    max_speed: int
    min_speed: int
    logging_enabled: bool
    fifo_mode: bool

    @property
    def used_sectors(self) -> int:
        return max(self.total_sectors - self.sectors_left, 0)

    @staticmethod
    def from_body(body: bytes) -> "LoggerStatus":
        if len(body) < STATUS_FORMAT.size:
            raise ProtocolError(
                f"Logger status body too short ({len(body)} of {STATUS_FORMAT.size} bytes)"
            )
        (
            write_pointer,
            sectors_left,
            total_sectors,
            max_time,
            min_time,
            max_distance,
            min_distance,
            max_speed,
            min_speed,
            logging_enabled,
            fifo_mode,
        ) = STATUS_FORMAT.unpack_from(body)
        return LoggerStatus(
            write_pointer=write_pointer,
            sectors_left=sectors_left,
            total_sectors=total_sectors,
            max_time=max_time,
            min_time=min_time,
            max_distance=max_distance,
            min_distance=min_distance,
            max_speed=max_speed,
            min_speed=min_speed,
            logging_enabled=bool(logging_enabled),
            fifo_mode=bool(fifo_mode),
        )


def _dotted(values: bytes) -> str:
    return ".".join(str(value) for value in values)


class Session:
    """
    Request/response engine for one logger connection.

    ``write`` must send the given bytes and return once they are flushed; the
    transport feeds inbound bytes into ``buffer``. Only one request may be in
    flight at a time.
    """

    def __init__(
        self,
        write: Callable[[bytes], None],
        buffer: FrameBuffer,
        *,
        response_timeout: Optional[float] = None,
        strict_checksum: bool = True,
    ):
        self._write = write
        self.buffer = buffer
        self.response_timeout = response_timeout
        self.strict_checksum = strict_checksum
        self._lock = threading.Lock()
        self._log = logging.getLogger(__name__)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("Another request is already in flight on this session")
        try:
            yield
        finally:
            self._lock.release()

    def query(self, message: Message) -> None:
        """Send *message* and wait until the device acknowledges it."""
        with self._exclusive():
            self._query(message)

    def get_software_version(self) -> SoftwareVersion:
        with self._exclusive():
            self._query(Message(MSG_GET_VERSION, bytes([SOFTWARE_TYPE_SYSTEM])))
            body = self._read_response(MSG_VERSION)
        if len(body) != VERSION_BODY_LEN:
            raise ProtocolError(f"Version body has {len(body)} bytes, expected {VERSION_BODY_LEN}")
        # each 4-byte version field carries a reserved leading byte
        return SoftwareVersion(
            software_type=body[0],
            kernel=_dotted(body[2:5]),
            application=_dotted(body[6:9]),
            revision=_dotted(body[10:13]),
        )

    def get_software_crc(self) -> int:
        with self._exclusive():
            self._query(Message(MSG_GET_CRC, bytes([SOFTWARE_TYPE_SYSTEM])))
            body = self._read_response(MSG_CRC)
        if len(body) != CRC_BODY_LEN:
            raise ProtocolError(f"CRC body has {len(body)} bytes, expected {CRC_BODY_LEN}")
        return int.from_bytes(body[1:3], "big")

    def get_logger_status(self) -> LoggerStatus:
        with self._exclusive():
            self._query(Message(MSG_LOG_GET_STATUS))
            body = self._read_response(MSG_LOG_STATUS)
        return LoggerStatus.from_body(body)

    def clear_logger(self) -> None:
        self.query(Message(MSG_LOG_CLEAR))

    def get_logger_data(self, start_sector: int, sector_count: int) -> bytes:
        """Read *sector_count* sectors of logger flash starting at *start_sector*."""
        if not 0 <= start_sector <= 0xFFFF:
            raise ValueError(f"start_sector out of range: {start_sector}")
        if not 1 <= sector_count <= 0xFFFF:
            raise ValueError(f"sector_count out of range: {sector_count}")
        payload_len = sector_count * SECTOR_SIZE
        max_size = self.buffer.max_size
        if max_size is not None and payload_len + DATA_TRAILER_LEN > max_size:
            raise ValueError(
                f"{sector_count} sectors do not fit the {max_size}-byte receive buffer"
            )
        with self._exclusive():
            self._query(Message(MSG_LOG_GET_DATA, struct.pack(">HH", start_sector, sector_count)))
            data = self.buffer.extract_bytes(payload_len + DATA_TRAILER_LEN, self.response_timeout)
        self._log.debug("Read %d sectors from sector %d", sector_count, start_sector)
        return data[:payload_len]

    def download_log(
        self,
        sectors_per_request: int = 8,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> bytes:
        """Read every used logger sector and return the concatenated block."""
        if sectors_per_request < 1:
            raise ValueError("sectors_per_request must be positive")
        status = self.get_logger_status()
        total = status.used_sectors
        logger.debug("Logger reports %d used sectors", total)
        chunks = []
        done = 0
        while done < total:
            count = min(sectors_per_request, total - done)
            chunks.append(self.get_logger_data(done, count))
            done += count
            if progress is not None:
                progress(done, total)
        return b"".join(chunks)

    def _send(self, message: Message) -> None:
        frame = encode_message(message)
        self._log.debug("-> 0x%02X (%d body bytes)", message.identifier, len(message.body))
        try:
            self._write(frame)
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"Write failed: {exc}") from exc

    def _read_message(self) -> DecodedMessage:
        msg = decode_message(self.buffer.extract_frame(self.response_timeout))
        self._log.debug("<- 0x%02X (%d body bytes)", msg.identifier, len(msg.body))
        if not msg.checksum_valid and self.strict_checksum:
            raise ChecksumMismatchError(msg.identifier)
        return msg

    def _query(self, message: Message) -> None:
        self._send(message)
        preliminary_seen = False
        while True:
            msg = self._read_message()
            if msg.identifier == MSG_NACK:
                raise NackError(message.identifier)
            if msg.identifier != MSG_ACK or not msg.body:
                raise ProtocolError(
                    f"Expected ACK for 0x{message.identifier:02X}, got message 0x{msg.identifier:02X}"
                )
            acked = msg.body[0]
            if acked == message.identifier:
                return
            if acked == 0 and not preliminary_seen:
                preliminary_seen = True
                continue
            raise ProtocolError(
                f"ACK for 0x{acked:02X} does not match request 0x{message.identifier:02X}"
            )

    def _read_response(self, expected_id: int) -> bytes:
        msg = self._read_message()
        if msg.identifier != expected_id:
            raise ProtocolError(
                f"Expected message 0x{expected_id:02X}, got 0x{msg.identifier:02X}"
            )
        return msg.body
