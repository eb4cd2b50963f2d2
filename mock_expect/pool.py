"""A bounded pool of running mock servers reused across tests."""

from __future__ import annotations

import queue
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from .config import ServerSettings
from .server import MockServer
from .verifier import VerificationError

LOGGER = structlog.get_logger("mock_expect.pool")


class ServerPool:
    """Hands out at most ``max_servers`` servers, starting them lazily.

    A checked-out server is verified and cleared when it is released, and it
    goes back to the pool even when that verification fails. Callers block
    while every server is checked out.
    """

    def __init__(self, max_servers: int, settings: ServerSettings | None = None, **server_kwargs: Any) -> None:
        if max_servers <= 0:
            raise ValueError("max_servers must be positive")
        self.max_servers = max_servers
        self._settings = settings
        self._server_kwargs = server_kwargs
        self._idle: queue.LifoQueue[MockServer] = queue.LifoQueue()
        self._created: list[MockServer] = []
        self._lock = threading.Lock()
        self._closed = False

    @contextmanager
    def get_server(self, timeout: float | None = None) -> Iterator[MockServer]:
        server = self._acquire(timeout)
        try:
            yield server
        finally:
            try:
                server.verify_and_clear()
            finally:
                self._idle.put(server)

    def close(self) -> None:
        """Stop every server the pool created; servers still checked out are stopped too.

        Every server is stopped even when some fail verification; the first
        :class:`VerificationError` is raised afterwards.
        """

        with self._lock:
            if self._closed:
                return
            self._closed = True
            servers = list(self._created)
        failures: list[VerificationError] = []
        for server in servers:
            try:
                server.stop()
            except VerificationError as exc:
                failures.append(exc)
        LOGGER.info("pool_closed", servers=len(servers), failed=len(failures))
        if failures:
            raise failures[0]

    def __enter__(self) -> ServerPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _acquire(self, timeout: float | None) -> MockServer:
        if self._closed:
            raise RuntimeError("server pool is closed")
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass
        with self._lock:
            if len(self._created) < self.max_servers:
                server = MockServer.run(self._settings, **self._server_kwargs)
                self._created.append(server)
                LOGGER.debug("pool_server_created", count=len(self._created), url=server.url())
                return server
        try:
            return self._idle.get(timeout=timeout)
        except queue.Empty as exc:
            raise TimeoutError(f"no pooled server became available within {timeout}s") from exc
