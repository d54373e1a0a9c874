from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .session import DATA_TRAILER_LEN, SECTOR_SIZE


@dataclass
class SerialSettings:
    port: str = "/dev/ttyUSB0"
    baudrate: int = 115200
    timeout: float = 0.1


@dataclass
class HostRuntime:
    read_chunk_size: int = 256
    buffer_max_bytes: int = 8 * 1024 * 1024
    response_timeout: Optional[float] = None
    strict_checksum: bool = True


@dataclass
class DownloadSettings:
    sectors_per_request: int = 8
    gps_week_rollovers: int = 2
    leap_seconds: int = 18


@dataclass
class SkylogConfig:
    serial: SerialSettings = field(default_factory=SerialSettings)
    host: HostRuntime = field(default_factory=HostRuntime)
    download: DownloadSettings = field(default_factory=DownloadSettings)

    def validate(self) -> "SkylogConfig":
        if self.serial.baudrate <= 0:
            raise ValueError("serial.baudrate must be positive")
        if self.serial.timeout <= 0:
            raise ValueError("serial.timeout must be positive")
        if self.host.read_chunk_size <= 0:
            raise ValueError("host.read_chunk_size must be positive")
        if self.host.buffer_max_bytes <= 0:
            raise ValueError("host.buffer_max_bytes must be positive")
        if self.host.response_timeout is not None and self.host.response_timeout <= 0:
            raise ValueError("host.response_timeout must be positive or null")
        if not 1 <= self.download.sectors_per_request <= 0xFFFF:
            raise ValueError("download.sectors_per_request must be in 1..65535")
        if self.download.sectors_per_request * SECTOR_SIZE + DATA_TRAILER_LEN > self.host.buffer_max_bytes:
            raise ValueError(
                "download.sectors_per_request does not fit in host.buffer_max_bytes "
                f"({self.download.sectors_per_request} x {SECTOR_SIZE} + {DATA_TRAILER_LEN} bytes)"
            )
        if self.download.gps_week_rollovers < 0:
            raise ValueError("download.gps_week_rollovers may not be negative")
        return self


def default_config() -> SkylogConfig:
    return SkylogConfig()


SECTIONS = ("serial", "host", "download")


def _read_sections(path: Path) -> Dict[str, Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a JSON object")
    sections: Dict[str, Dict[str, Any]] = {}
    for name, values in data.items():
        if name not in SECTIONS:
            raise ValueError(f"{path}: unknown section '{name}'")
        if not isinstance(values, dict):
            raise ValueError(f"{path}: section '{name}' must be an object")
        sections[name] = dict(values)
    return sections


def _optional_float(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and value.lower() in {"", "none", "null"}):
        return None
    return float(value)


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> SkylogConfig:
    """
    Load logger host configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["serial.baudrate=9600", "host.response_timeout=5"]
    Without *path* the built-in defaults are used as the base.
    """
    sections = _read_sections(Path(path)) if path is not None else {}
    for override in overrides or []:
        _apply_override(sections, override)
    serial_data = sections.get("serial", {})
    host_data = sections.get("host", {})
    download_data = sections.get("download", {})
    defaults = default_config()
    config = SkylogConfig(
        serial=SerialSettings(
            port=str(serial_data.get("port", defaults.serial.port)),
            baudrate=int(serial_data.get("baudrate", defaults.serial.baudrate)),
            timeout=float(serial_data.get("timeout", defaults.serial.timeout)),
        ),
        host=HostRuntime(
            read_chunk_size=int(host_data.get("read_chunk_size", defaults.host.read_chunk_size)),
            buffer_max_bytes=int(host_data.get("buffer_max_bytes", defaults.host.buffer_max_bytes)),
            response_timeout=_optional_float(host_data.get("response_timeout")),
            strict_checksum=bool(host_data.get("strict_checksum", defaults.host.strict_checksum)),
        ),
        download=DownloadSettings(
            sectors_per_request=int(
                download_data.get("sectors_per_request", defaults.download.sectors_per_request)
            ),
            gps_week_rollovers=int(
                download_data.get("gps_week_rollovers", defaults.download.gps_week_rollovers)
            ),
            leap_seconds=int(download_data.get("leap_seconds", defaults.download.leap_seconds)),
        ),
    )
    return config.validate()


def _apply_override(sections: Dict[str, Dict[str, Any]], item: str) -> None:
    key, sep, raw_value = item.partition("=")
    key = key.strip()
    if not sep:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    if not key:
        raise ValueError("Override key may not be empty")
    section, dot, name = key.partition(".")
    if not dot or not name or section not in SECTIONS:
        raise ValueError(f"Override key '{key}' must be <section>.<field>, section one of {SECTIONS}")
    sections.setdefault(section, {})[name] = _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    if raw.lower() in {"null", "none"}:
        return None
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    return raw
