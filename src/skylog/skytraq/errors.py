from __future__ import annotations


class SkytraqError(Exception):
    """Base class for every failure raised by the Skytraq protocol engine."""


class MalformedFrameError(SkytraqError):
    pass


class ProtocolError(SkytraqError):
    pass


class NackError(ProtocolError):
    def __init__(self, request_id: int) -> None:
        super().__init__(f"Device rejected request 0x{request_id:02X} (NACK)")
        self.request_id = request_id


class ChecksumMismatchError(ProtocolError):
    def __init__(self, message_id: int) -> None:
        super().__init__(f"Checksum mismatch in message 0x{message_id:02X}")
        self.message_id = message_id


class LogDecodeError(SkytraqError):
    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset


class SessionBusyError(SkytraqError):
    pass


class TransportError(SkytraqError):
    pass


class ConnectionClosedError(TransportError):
    pass


class BufferOverflowError(TransportError):
    pass


class ResponseTimeoutError(TransportError, TimeoutError):
    pass
