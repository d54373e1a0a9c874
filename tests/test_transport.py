from __future__ import annotations

import queue
import threading
from typing import Callable, List, Optional

import pytest

from skylog.skytraq.config import HostRuntime, SerialSettings, SkylogConfig
from skylog.skytraq.errors import ConnectionClosedError, TransportError
from skylog.skytraq.frames import MSG_ACK, Message, decode_message, encode_message
from skylog.skytraq.session import Session
from skylog.skytraq.transport import SerialTransport, open_session


class FakeSerialException(OSError):
    pass


class FakeSerialInstance:
    def __init__(self, port: str, responder: Optional[Callable[[bytes], List[bytes]]]):
        self.port = port
        self._responder = responder
        self._pending: "queue.Queue[bytes]" = queue.Queue()
        self.written = bytearray()
        self.closed = False
        self.fail_reads = threading.Event()
        self.fail_writes = False

    def read(self, size: int) -> bytes:
        if self.fail_reads.is_set():
            raise FakeSerialException("device reports readiness to read but returned no data")
        try:
            chunk = self._pending.get(timeout=0.01)
        except queue.Empty:
            return b""
        return chunk[:size]

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise FakeSerialException("write timeout")
        self.written += data
        if self._responder is not None:
            for chunk in self._responder(data):
                # deliver in small pieces to exercise reassembly
                for idx in range(0, len(chunk), 3):
                    self._pending.put(chunk[idx : idx + 3])
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeSerialModule:
    SerialException = FakeSerialException

    def __init__(self, responder: Optional[Callable[[bytes], List[bytes]]] = None, fail_open: bool = False):
        self.instances: List[FakeSerialInstance] = []
        self.kwargs: List[dict] = []
        self._responder = responder
        self._fail_open = fail_open

    def Serial(self, **kwargs):
        self.kwargs.append(kwargs)
        if self._fail_open:
            raise self.SerialException("could not open port")
        instance = FakeSerialInstance(kwargs["port"], self._responder)
        self.instances.append(instance)
        return instance


def _config() -> SkylogConfig:
    return SkylogConfig(
        serial=SerialSettings(port="/dev/ttyFAKE", baudrate=38400, timeout=0.01),
        host=HostRuntime(read_chunk_size=16, response_timeout=2.0),
    )


def _version_responder(data: bytes) -> List[bytes]:
    msg = decode_message(data)
    body = bytes([1, 0, 1, 4, 27, 0, 1, 8, 6, 0, 21, 3, 15])
    return [
        encode_message(Message(MSG_ACK, bytes([msg.identifier]))),
        encode_message(Message(0x80, body)),
    ]


def test_open_session_round_trip(monkeypatch):
    fake_serial = FakeSerialModule(_version_responder)
    monkeypatch.setattr("skylog.skytraq.transport.serial", fake_serial)

    with open_session(_config()) as session:
        version = session.get_software_version()

    assert version.kernel == "1.4.27"
    assert fake_serial.kwargs[0] == {"port": "/dev/ttyFAKE", "baudrate": 38400, "timeout": 0.01}
    instance = fake_serial.instances[0]
    assert bytes(instance.written) == encode_message(Message(0x02, b"\x01"))
    assert instance.closed


def test_read_error_unblocks_pending_request(monkeypatch):
    fake_serial = FakeSerialModule()
    monkeypatch.setattr("skylog.skytraq.transport.serial", fake_serial)
    cfg = _config()
    cfg.host.response_timeout = None

    with SerialTransport(cfg) as transport:
        session = Session(transport.write, transport.buffer)
        fake_serial.instances[0].fail_reads.set()
        with pytest.raises(ConnectionClosedError):
            session.get_logger_status()


def test_close_releases_waiter(monkeypatch):
    fake_serial = FakeSerialModule()
    monkeypatch.setattr("skylog.skytraq.transport.serial", fake_serial)
    transport = SerialTransport(_config())
    transport.open()
    errors = []

    def waiter() -> None:
        try:
            transport.buffer.extract_frame()
        except ConnectionClosedError as exc:
            errors.append(exc)

    thread = threading.Thread(target=waiter)
    thread.start()
    transport.close()
    thread.join(timeout=2.0)
    assert not thread.is_alive()
    assert len(errors) == 1
    assert not transport.is_open
    with pytest.raises(ConnectionClosedError):
        transport.write(b"\x00")


def test_write_error_is_wrapped(monkeypatch):
    fake_serial = FakeSerialModule()
    monkeypatch.setattr("skylog.skytraq.transport.serial", fake_serial)
    with SerialTransport(_config()) as transport:
        fake_serial.instances[0].fail_writes = True
        with pytest.raises(TransportError):
            transport.write(b"\xA0\xA1")


def test_open_failure_is_transport_error(monkeypatch):
    monkeypatch.setattr("skylog.skytraq.transport.serial", FakeSerialModule(fail_open=True))
    transport = SerialTransport(_config())
    with pytest.raises(TransportError):
        transport.open()
    assert not transport.is_open
