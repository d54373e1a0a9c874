from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Type

from .errors import BufferOverflowError, ConnectionClosedError, ResponseTimeoutError, TransportError
from .frames import FRAME_OVERHEAD, MSG_END, MSG_START


class FrameBuffer:
    """
    Byte accumulator between the transport's reader thread and the session.

    The reader thread calls :meth:`append`; the session drains complete frames
    with :meth:`extract_frame` or fixed-size runs with :meth:`extract_bytes`.
    Both extraction calls block on a condition variable until enough data has
    arrived, the buffer is closed, or the optional timeout expires.
    """

    def __init__(self, max_size: Optional[int] = None):
        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._max_size = max_size
        self._failure: Optional[Type[TransportError]] = None
        self._failure_msg = ""
        self._stats: Dict[str, int] = {"frames": 0, "resyncs": 0, "discarded_bytes": 0, "malformed": 0}
        self._log = logging.getLogger(__name__)

    def __len__(self) -> int:
        with self._cond:
            return len(self._buffer)

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._failure is not None

    def append(self, data: bytes) -> None:
        if not data:
            return
        with self._cond:
            if self._failure is not None:
                raise self._failure(self._failure_msg)
            self._buffer.extend(data)
            if self._max_size is not None and len(self._buffer) > self._max_size:
                self._fail(
                    BufferOverflowError,
                    f"Receive buffer exceeded {self._max_size} bytes without a complete read",
                )
                raise BufferOverflowError(self._failure_msg)
            self._cond.notify_all()

    def find(self, pattern: bytes, start: int = 0) -> int:
        with self._cond:
            return self._buffer.find(pattern, start)

    def close(self, reason: str = "Connection closed") -> None:
        with self._cond:
            if self._failure is None:
                self._fail(ConnectionClosedError, reason)

    def reset(self) -> None:
        with self._cond:
            self._buffer.clear()
            self._failure = None
            self._failure_msg = ""

    def stats(self) -> Dict[str, int]:
        with self._cond:
            return dict(self._stats)

    def extract_frame(self, timeout: Optional[float] = None) -> bytes:
        with self._cond:
            return self._wait_for(self._take_frame, timeout)

    def extract_bytes(self, count: int, timeout: Optional[float] = None) -> bytes:
        if count < 0:
            raise ValueError(f"Byte count must be non-negative, got {count}")
        with self._cond:
            return self._wait_for(lambda: self._take_bytes(count), timeout)

    def _fail(self, failure: Type[TransportError], message: str) -> None:
        self._failure = failure
        self._failure_msg = message
        self._cond.notify_all()

    def _wait_for(self, take: Callable[[], Optional[bytes]], timeout: Optional[float]) -> bytes:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            result = take()
            if result is not None:
                return result
            if self._failure is not None:
                raise self._failure(self._failure_msg)
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ResponseTimeoutError(f"No response within {timeout:.1f}s")
            self._cond.wait(remaining)

    def _take_bytes(self, count: int) -> Optional[bytes]:
        if len(self._buffer) < count:
            return None
        data = bytes(self._buffer[:count])
        del self._buffer[:count]
        return data

    def _take_frame(self) -> Optional[bytes]:
        while True:
            start = self._buffer.find(MSG_START)
            if start < 0:
                # a trailing 0xA0 may be the first half of the next start marker
                keep = 1 if self._buffer.endswith(MSG_START[:1]) else 0
                self._discard(len(self._buffer) - keep)
                return None
            if start > 0:
                self._discard(start)
            if len(self._buffer) < 4:
                return None
            payload_len = int.from_bytes(self._buffer[2:4], "big")
            end = payload_len + FRAME_OVERHEAD
            if payload_len == 0:
                self._log.debug("Discarding candidate frame with zero payload length")
                self._discard(len(MSG_START))
                continue
            if len(self._buffer) < end:
                return self._take_truncated_candidate()
            if self._buffer[end - 2 : end] != MSG_END:
                self._log.debug("No end marker at declared frame end (len=%d), resyncing", payload_len)
                self._discard(len(MSG_START))
                continue
            frame = bytes(self._buffer[:end])
            del self._buffer[:end]
            self._stats["frames"] += 1
            return frame

    def _take_truncated_candidate(self) -> Optional[bytes]:
        # Declared end not buffered yet. An end marker directly followed by the
        # next start marker means the length field is corrupt: hand the bytes up
        # to that end marker out as a candidate so decode_message rejects it.
        pos = self._buffer.find(MSG_END, len(MSG_START) + 2)
        while pos >= 0:
            cut = pos + len(MSG_END)
            if self._buffer[cut : cut + len(MSG_START)] == MSG_START:
                candidate = bytes(self._buffer[:cut])
                del self._buffer[:cut]
                self._stats["malformed"] += 1
                self._log.debug("Length field overruns next frame, releasing %d-byte candidate", cut)
                return candidate
            pos = self._buffer.find(MSG_END, pos + 1)
        return None

    def _discard(self, count: int) -> None:
        if count <= 0:
            return
        del self._buffer[:count]
        self._stats["resyncs"] += 1
        self._stats["discarded_bytes"] += count
        self._log.debug("Discarded %d stray bytes before frame start", count)
