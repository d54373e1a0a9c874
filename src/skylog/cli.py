"""Command line interface for the skylog package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .reporting import export_fixes_csv, write_raw_block
from .skytraq.config import SkylogConfig, load_config
from .skytraq.errors import SkytraqError
from .skytraq.records import parse_log_records
from .skytraq.transport import open_session

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Skytraq GPS data logger utilities.",
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_config(
    config_path: Optional[Path],
    port: Optional[str],
    baudrate: Optional[int],
    override: Optional[List[str]],
) -> SkylogConfig:
    overrides = list(override or [])
    if baudrate is not None:
        overrides.append(f"serial.baudrate={baudrate}")
    try:
        cfg = load_config(config_path, overrides or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    # port names are taken verbatim, not coerced like other override values
    if port is not None:
        cfg.serial.port = port
    return cfg


_config_option = typer.Option(None, "--config", "-c", help="Path to JSON host config.")
_port_option = typer.Option(None, "--port", "-p", help="Serial device, e.g. /dev/ttyUSB0.")
_baud_option = typer.Option(None, "--baud", help="Serial baudrate.")
_set_option = typer.Option(None, "--set", help="Override config keys, e.g. --set host.response_timeout=5")


@app.command()
def info(
    config_path: Optional[Path] = _config_option,
    port: Optional[str] = _port_option,
    baudrate: Optional[int] = _baud_option,
    override: Optional[List[str]] = _set_option,
) -> None:
    """Show firmware version and logger status."""

    cfg = _build_config(config_path, port, baudrate, override)
    try:
        with open_session(cfg) as session:
            version = session.get_software_version()
            crc = session.get_software_crc()
            status = session.get_logger_status()
    except SkytraqError as exc:
        typer.echo(f"Device error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Kernel: {version.kernel}")
    typer.echo(f"Application: {version.application}")
    typer.echo(f"Revision: {version.revision}")
    typer.echo(f"Firmware CRC: 0x{crc:04X}")
    typer.echo(f"Sectors used: {status.used_sectors}/{status.total_sectors}")
    typer.echo(f"Logging enabled: {'yes' if status.logging_enabled else 'no'}")
    typer.echo(f"FIFO mode: {'yes' if status.fifo_mode else 'no'}")
    typer.echo(f"Time interval: {status.min_time}-{status.max_time} s")
    typer.echo(f"Distance interval: {status.min_distance}-{status.max_distance} m")
    typer.echo(f"Speed interval: {status.min_speed}-{status.max_speed} km/h")


@app.command()
def download(
    out: Path = typer.Option(Path("skylog.bin"), "--out", "-o", help="Raw logger dump destination."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Also write decoded fixes as CSV."),
    config_path: Optional[Path] = _config_option,
    port: Optional[str] = _port_option,
    baudrate: Optional[int] = _baud_option,
    override: Optional[List[str]] = _set_option,
) -> None:
    """Download the whole log from the device."""

    cfg = _build_config(config_path, port, baudrate, override)

    def report(done: int, total: int) -> None:
        logger.info("Downloaded %d/%d sectors", done, total)

    try:
        with open_session(cfg) as session:
            block = session.download_log(cfg.download.sectors_per_request, progress=report)
    except SkytraqError as exc:
        typer.echo(f"Device error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    write_raw_block(block, out)
    typer.echo(f"Saved {len(block)} bytes to {out}")
    if csv_path is not None:
        _export(block, csv_path, cfg)


@app.command()
def decode(
    input_path: Path = typer.Option(..., "--in", help="Raw logger dump", exists=True, readable=True),
    csv_path: Path = typer.Option(..., "--csv", help="Destination CSV for decoded fixes."),
    config_path: Optional[Path] = _config_option,
    override: Optional[List[str]] = _set_option,
) -> None:
    """Decode a previously downloaded raw dump."""

    cfg = _build_config(config_path, None, None, override)
    _export(input_path.read_bytes(), csv_path, cfg)


def _export(block: bytes, csv_path: Path, cfg: SkylogConfig) -> None:
    try:
        fixes = parse_log_records(block)
    except SkytraqError as exc:
        typer.echo(f"Decode failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    rows = export_fixes_csv(
        fixes,
        csv_path,
        rollovers=cfg.download.gps_week_rollovers,
        leap_seconds=cfg.download.leap_seconds,
    )
    typer.echo(f"Wrote {rows} fixes to {csv_path}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
