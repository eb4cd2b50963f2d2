"""CLI entrypoint: serve expectations from a file and verify them on exit."""

from __future__ import annotations

import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from .config import ConfigError, ExpectationFile, ServerSettings, load_config
from .expectation import Expectation
from .logging_utils import configure_logging
from .output_config import get_log_format
from .server import MockServer
from .verifier import VerificationError

app = typer.Typer(help="Serve HTTP expectations and verify they were met.")


def _load(path: Path) -> ExpectationFile:
    try:
        return load_config(path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _console_summary(server: MockServer, expectations: list[Expectation]) -> list[str]:
    host, port = server.address()
    header = f"[mock-expect] listening on http://{host}:{port}"
    lines = [header, "    expectations:"]
    if expectations:
        lines.extend(
            f"      #{index} {expectation.describe()} times={expectation.constraint}"
            for index, expectation in enumerate(expectations)
        )
    else:
        lines.append("      (no expectations configured)")
    return lines


def _wait_for_shutdown(duration: float | None) -> None:
    stop_requested = threading.Event()
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGTERM, lambda *_: stop_requested.set())
    try:
        stop_requested.wait(duration)
    except KeyboardInterrupt:
        pass
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


@app.command()
def serve(
    config: Path = typer.Option(..., exists=True, readable=True, help="YAML/JSON expectation file."),
    host: Optional[str] = typer.Option(None, help="Bind host (overrides the file)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port; 0 picks a free one."),
    allow_unmatched: bool = typer.Option(False, "--allow-unmatched", help="Do not fail on unmatched requests."),
    duration: Optional[float] = typer.Option(None, help="Stop after this many seconds instead of waiting for Ctrl-C."),
    log_level: str = typer.Option("info", help="Log level."),
    log_format: Optional[str] = typer.Option(None, help="json, console or plain."),
) -> None:
    """Run a mock server until interrupted, then verify every expectation."""

    logger = configure_logging(log_level, get_log_format(log_format))
    document = _load(config)
    overrides = {"host": host, "port": port}
    if allow_unmatched:
        overrides["allow_unmatched"] = True
    settings = ServerSettings.model_validate(
        {**document.settings.model_dump(), **{key: value for key, value in overrides.items() if value is not None}}
    )

    expectations = document.build()
    server = MockServer(settings, logger=logger)
    try:
        server.start()
    except OSError as exc:
        typer.secho(f"cannot bind {settings.host}:{settings.port}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    for expectation in expectations:
        server.expect(expectation)
    for line in _console_summary(server, expectations):
        typer.echo(line)

    _wait_for_shutdown(duration)

    try:
        report = server.stop()
    except VerificationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if report is not None:
        typer.secho(report.render(), fg=typer.colors.GREEN)


@app.command()
def check(
    config: Path = typer.Option(..., exists=True, readable=True, help="YAML/JSON expectation file."),
) -> None:
    """Validate an expectation file and list what it registers."""

    document = _load(config)
    expectations = document.build()
    typer.echo(f"{config}: {len(expectations)} expectation(s)")
    for index, expectation in enumerate(expectations):
        typer.echo(f"  #{index} {expectation.describe()} times={expectation.constraint}")


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
