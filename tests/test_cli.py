from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from mock_expect.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "expectations.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_check_lists_expectations(tmp_path: Path) -> None:
    path = _config(
        tmp_path,
        "expectations:\n"
        "  - request: {method: GET, path: /foo}\n"
        "  - request: {path: /bar}\n"
        "    times: any\n",
    )

    result = runner.invoke(app, ["check", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "2 expectation(s)" in result.output
    assert "#0 AllOf(Method(Eq('GET')), Path(Eq('/foo'))) times=Exactly(1)" in result.output
    assert "#1 AllOf(Path(Eq('/bar'))) times=Any" in result.output


def test_check_rejects_invalid_file(tmp_path: Path) -> None:
    path = _config(tmp_path, "expectations:\n  - times: {between: [3, 1]}\n")

    result = runner.invoke(app, ["check", "--config", str(path)])

    assert result.exit_code != 0


def test_serve_passes_when_expectations_allow_no_traffic(tmp_path: Path) -> None:
    path = _config(tmp_path, "expectations:\n  - request: {path: /foo}\n    times: any\n")

    result = runner.invoke(
        app,
        ["serve", "--config", str(path), "--duration", "0.2", "--log-level", "error", "--log-format", "json"],
    )

    assert result.exit_code == 0, result.output
    assert "[mock-expect] listening on http://127.0.0.1:" in result.output
    assert "all expectations satisfied" in result.output


def test_serve_fails_on_unmet_expectation(tmp_path: Path) -> None:
    path = _config(tmp_path, "expectations:\n  - request: {method: GET, path: /foo}\n")

    result = runner.invoke(
        app,
        ["serve", "--config", str(path), "--duration", "0.2", "--log-level", "error", "--log-format", "plain"],
    )

    assert result.exit_code == 1
    assert "expected Exactly(1), actual 0" in result.output
