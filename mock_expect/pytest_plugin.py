"""pytest fixtures: a fresh verified server per test, or one borrowed from a session pool."""

from __future__ import annotations

from typing import Iterator

import pytest

from .config import ServerSettings
from .pool import ServerPool
from .server import MockServer

DEFAULT_POOL_SIZE = 4

CALL_REPORT_KEY = pytest.StashKey[pytest.TestReport]()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        item.stash[CALL_REPORT_KEY] = report


@pytest.fixture
def mock_server_settings() -> ServerSettings:
    """Override in a conftest.py to change host, unmatched handling, timeouts..."""

    return ServerSettings.from_env()


@pytest.fixture
def mock_server(request: pytest.FixtureRequest, mock_server_settings: ServerSettings) -> Iterator[MockServer]:
    """Running server; teardown fails the test if any expectation is unmet.

    A test that already failed only gets the verification report logged.
    """

    server = MockServer.run(mock_server_settings)
    try:
        yield server
    finally:
        call_report = request.node.stash.get(CALL_REPORT_KEY, None)
        server.stop(check=call_report is None or not call_report.failed)


@pytest.fixture(scope="session")
def mock_server_pool() -> Iterator[ServerPool]:
    pool = ServerPool(DEFAULT_POOL_SIZE, ServerSettings.from_env())
    try:
        yield pool
    finally:
        pool.close()


@pytest.fixture
def pooled_mock_server(mock_server_pool: ServerPool) -> Iterator[MockServer]:
    """Server borrowed from the session pool; verified and cleared on release."""

    with mock_server_pool.get_server() as server:
        yield server
