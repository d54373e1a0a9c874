from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pandas as pd
from typer.testing import CliRunner

from skylog.cli import app
from skylog.skytraq.errors import NackError
from skylog.skytraq.session import LoggerStatus, SoftwareVersion

runner = CliRunner()

# one FULL record at the equator followed by a COMPACT record moving +1 m in x
RAW_BLOCK = (
    bytes([0x40, 0x28, 0x06, 0x11, 0x10, 0x0E])
    + bytes([0x37, 0x99, 0x00, 0x61])  # x = 0x00613799 = 6371225
    + bytes(8)
    + bytes([0x80, 0x2A, 0x00, 0x05, 0x00, 0x40, 0x00, 0x00])
    + bytes([0xFF, 0xFF])
)


class FakeSession:
    def __init__(self, fail: bool = False):
        self.fail = fail

    def get_software_version(self) -> SoftwareVersion:
        if self.fail:
            raise NackError(0x02)
        return SoftwareVersion(1, "1.4.27", "1.8.6", "21.3.15")

    def get_software_crc(self) -> int:
        return 0xBEEF

    def get_logger_status(self) -> LoggerStatus:
        return LoggerStatus(0, 90, 100, 3600, 5, 1000, 10, 200, 0, True, False)

    def download_log(self, sectors_per_request, progress=None) -> bytes:
        if progress is not None:
            progress(1, 1)
        return RAW_BLOCK


def _patch_session(monkeypatch, session: FakeSession) -> None:
    @contextmanager
    def fake_open_session(config):
        assert config.serial.port == "/dev/ttyFAKE"
        yield session

    monkeypatch.setattr("skylog.cli.open_session", fake_open_session)


def test_decode_command(tmp_path: Path) -> None:
    raw = tmp_path / "log.bin"
    raw.write_bytes(RAW_BLOCK)
    out = tmp_path / "fixes.csv"
    result = runner.invoke(app, ["decode", "--in", str(raw), "--csv", str(out)])
    assert result.exit_code == 0, result.output
    df = pd.read_csv(out)
    assert df["x"].tolist() == [6371225, 6371226]
    assert df["velocity"].tolist() == [40, 42]
    assert df["gps_time_of_week"].tolist() == [57600 + 1, 57606]


def test_decode_command_reports_bad_block(tmp_path: Path) -> None:
    raw = tmp_path / "log.bin"
    raw.write_bytes(RAW_BLOCK[18:26])
    result = runner.invoke(app, ["decode", "--in", str(raw), "--csv", str(tmp_path / "out.csv")])
    assert result.exit_code == 1
    assert "Decode failed" in result.output


def test_info_command(monkeypatch) -> None:
    _patch_session(monkeypatch, FakeSession())
    result = runner.invoke(app, ["info", "--port", "/dev/ttyFAKE"])
    assert result.exit_code == 0, result.output
    assert "Kernel: 1.4.27" in result.output
    assert "Firmware CRC: 0xBEEF" in result.output
    assert "Sectors used: 10/100" in result.output


def test_info_command_device_error(monkeypatch) -> None:
    _patch_session(monkeypatch, FakeSession(fail=True))
    result = runner.invoke(app, ["info", "--port", "/dev/ttyFAKE"])
    assert result.exit_code == 1


def test_download_command(monkeypatch, tmp_path: Path) -> None:
    _patch_session(monkeypatch, FakeSession())
    out = tmp_path / "log.bin"
    csv_path = tmp_path / "fixes.csv"
    result = runner.invoke(
        app, ["download", "--port", "/dev/ttyFAKE", "--out", str(out), "--csv", str(csv_path)]
    )
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == RAW_BLOCK
    assert len(pd.read_csv(csv_path)) == 2
