"""
Skytraq binary protocol engine with the data-logging extension.

The subpackage holds the frame codec, the stream reassembly buffer, the
request/response session, the flash record decoder and the serial transport
used by the command line tools.
"""

from .buffer import FrameBuffer
from .config import DownloadSettings, HostRuntime, SerialSettings, SkylogConfig, load_config
from .errors import (
    BufferOverflowError,
    ChecksumMismatchError,
    ConnectionClosedError,
    LogDecodeError,
    MalformedFrameError,
    NackError,
    ProtocolError,
    ResponseTimeoutError,
    SessionBusyError,
    SkytraqError,
    TransportError,
)
from .frames import DecodedMessage, Message, checksum, decode_message, encode_message
from .records import PositionFix, RecordKind, parse_log_records
from .session import LoggerStatus, Session, SoftwareVersion
from .transport import SerialTransport, open_session

__all__ = [
    "FrameBuffer",
    "DownloadSettings",
    "HostRuntime",
    "SerialSettings",
    "SkylogConfig",
    "load_config",
    "BufferOverflowError",
    "ChecksumMismatchError",
    "ConnectionClosedError",
    "LogDecodeError",
    "MalformedFrameError",
    "NackError",
    "ProtocolError",
    "ResponseTimeoutError",
    "SessionBusyError",
    "SkytraqError",
    "TransportError",
    "DecodedMessage",
    "Message",
    "checksum",
    "decode_message",
    "encode_message",
    "PositionFix",
    "RecordKind",
    "parse_log_records",
    "LoggerStatus",
    "Session",
    "SoftwareVersion",
    "SerialTransport",
    "open_session",
]
