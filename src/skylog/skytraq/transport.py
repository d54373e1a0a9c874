from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import serial

from .buffer import FrameBuffer
from .config import SkylogConfig
from .errors import ConnectionClosedError, TransportError
from .session import Session

logger = logging.getLogger(__name__)


class SerialReaderThread(threading.Thread):
    """Pushes every chunk read from the port into ``on_data`` until stopped."""

    def __init__(
        self,
        handle: "serial.Serial",
        on_data: Callable[[bytes], None],
        on_error: Callable[[str], None],
        chunk_size: int = 256,
    ) -> None:
        super().__init__(daemon=True)
        self._handle = handle
        self._on_data = on_data
        self._on_error = on_error
        self._chunk_size = max(chunk_size, 1)
        self._stop_event = threading.Event()
        self.last_exception: Optional[Exception] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                data = self._handle.read(self._chunk_size)
            except serial.SerialException as exc:
                if self._stop_event.is_set():
                    break
                self.last_exception = exc
                self._log.warning("Serial error (%s): %s", getattr(self._handle, "port", "?"), exc)
                self._on_error(f"Serial error: {exc}")
                break
            if not data:
                continue
            try:
                self._on_data(data)
            except TransportError as exc:
                if self._stop_event.is_set():
                    break
                self.last_exception = exc
                self._log.warning("Dropping connection: %s", exc)
                break

    def stop(self) -> None:
        self._stop_event.set()


class SerialTransport:
    """Byte-stream transport over a serial port feeding a :class:`FrameBuffer`."""

    def __init__(self, config: SkylogConfig, buffer: Optional[FrameBuffer] = None):
        self.config = config
        self.buffer = buffer or FrameBuffer(max_size=config.host.buffer_max_bytes)
        self._serial_handle = None
        self._reader: Optional[SerialReaderThread] = None
        self._write_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._serial_handle is not None

    def open(self) -> None:
        if self._serial_handle is not None:
            return
        settings = self.config.serial
        try:
            self._serial_handle = serial.Serial(
                port=settings.port,
                baudrate=settings.baudrate,
                timeout=settings.timeout,
            )
        except serial.SerialException as exc:
            raise TransportError(f"Cannot open {settings.port}: {exc}") from exc
        self.buffer.reset()
        self._reader = SerialReaderThread(
            self._serial_handle,
            on_data=self.buffer.append,
            on_error=self.buffer.close,
            chunk_size=self.config.host.read_chunk_size,
        )
        self._reader.start()
        logger.info("Connected to %s at %d baud", settings.port, settings.baudrate)

    def write(self, data: bytes) -> None:
        handle = self._serial_handle
        if handle is None:
            raise ConnectionClosedError("Transport is not open")
        with self._write_lock:
            try:
                handle.write(data)
                handle.flush()
            except serial.SerialException as exc:
                raise TransportError(f"Write to {self.config.serial.port} failed: {exc}") from exc

    def close(self) -> None:
        handle = self._serial_handle
        if handle is None:
            return
        self._serial_handle = None
        if self._reader is not None:
            self._reader.stop()
        self.buffer.close()
        try:
            handle.close()
        except serial.SerialException:
            logger.debug("Error while closing serial port", exc_info=True)
        if self._reader is not None:
            self._reader.join(timeout=max(self.config.serial.timeout * 10, 1.0))
            self._reader = None
        logger.info("Disconnected from %s", self.config.serial.port)

    def __enter__(self) -> "SerialTransport":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@contextmanager
def open_session(config: SkylogConfig) -> Iterator[Session]:
    """Open the configured port and yield a :class:`Session` bound to it."""
    with SerialTransport(config) as transport:
        yield Session(
            transport.write,
            transport.buffer,
            response_timeout=config.host.response_timeout,
            strict_checksum=config.host.strict_checksum,
        )
