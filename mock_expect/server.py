"""Threaded HTTP runtime serving registered expectations."""

from __future__ import annotations

import socket
import socketserver
import threading
from contextlib import contextmanager
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Iterator

import structlog

from .config import ServerSettings
from .expectation import Expectation
from .logging_utils import null_logger
from .models import HttpRequest, HttpResponse, UnmatchedRequest, VerificationReport
from .registry import ExpectationRegistry
from .responders import ResponderCancelled
from .verifier import VerificationError, verify

LOGGER = structlog.get_logger("mock_expect.server")

_MAX_LINE = 65536


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    """One thread per connection; tracks open sockets so stop() can drop them."""

    daemon_threads = True
    block_on_close = False
    allow_reuse_address = True
    request_queue_size = 128

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        super().__init__(*args, **kwargs)

    def track(self, connection: socket.socket) -> None:
        with self._connections_lock:
            self._connections.add(connection)

    def untrack(self, connection: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(connection)

    def drop_connections(self) -> int:
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for connection in connections:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        return len(connections)


class MockServer:
    """Mock HTTP server verifying its expectations at teardown.

    Use it as a context manager (or the ``mock_server`` pytest fixture) so
    verification always runs::

        with MockServer.run() as server:
            server.expect(Expectation.matching(method_path("GET", "/foo")).respond_with(200))
            urllib.request.urlopen(server.url("/foo"))

    There is no finalizer: a server that is neither stopped nor used as a
    context manager is never verified.
    """

    def __init__(
        self,
        settings: ServerSettings | None = None,
        *,
        logger: Any | None = None,
        **overrides: Any,
    ) -> None:
        settings = settings or ServerSettings()
        unknown = sorted(set(overrides) - set(ServerSettings.model_fields))
        if unknown:
            raise TypeError(f"unknown server settings: {', '.join(unknown)}")
        if overrides:
            settings = settings.model_validate({**settings.model_dump(), **overrides})
        self.settings = settings
        if logger is not None:
            self._logger = logger
        elif settings.log_requests:
            self._logger = LOGGER
        else:
            self._logger = null_logger()
        self._registry = ExpectationRegistry(unmatched_status=settings.unmatched_status, logger=self._logger)
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._cancel = threading.Event()
        self._idle = threading.Condition()
        self._inflight = 0
        self._lifecycle_lock = threading.Lock()
        self._stopped = False

    @classmethod
    def run(cls, settings: ServerSettings | None = None, **kwargs: Any) -> MockServer:
        """Create and start a server bound to an ephemeral localhost port."""

        server = cls(settings, **kwargs)
        server.start()
        return server

    @property
    def running(self) -> bool:
        return self._httpd is not None and not self._stopped

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._httpd is not None or self._stopped:
                raise RuntimeError("server can only be started once")
            try:
                httpd = ThreadedHTTPServer((self.settings.host, self.settings.port), self._build_handler_factory())
            except OSError:
                self._logger.error("server_bind_failed", host=self.settings.host, port=self.settings.port)
                raise
            self._httpd = httpd
            self._thread = threading.Thread(
                target=httpd.serve_forever,
                kwargs={"poll_interval": 0.05},
                name=f"mock-expect-{httpd.server_address[1]}",
                daemon=True,
            )
            self._thread.start()
            self._logger = self._logger.bind(port=httpd.server_address[1])
            self._logger.info("server_started", host=httpd.server_address[0])

    def address(self) -> tuple[str, int]:
        if self._httpd is None:
            raise RuntimeError("server is not started")
        host, port = self._httpd.server_address[:2]
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        return str(host), int(port)

    def url(self, path: str = "/") -> str:
        """Absolute URL for ``path`` (which may carry a query string)."""

        host, port = self.address()
        if not path.startswith("/"):
            path = f"/{path}"
        return f"http://{host}:{port}{path}"

    def expect(self, expectation: Any, times: Any = None, responder: Any = None) -> Expectation:
        """Register an expectation, or build one from ``(matcher, times, responder)``."""

        if not isinstance(expectation, Expectation):
            expectation = Expectation(
                expectation,
                1 if times is None else times,
                200 if responder is None else responder,
            )
        elif times is not None or responder is not None:
            raise TypeError("times/responder are only accepted together with a matcher")
        # _shutdown flips _stopped under the same lock, before verifying
        with self._lifecycle_lock:
            if self._stopped:
                raise RuntimeError("cannot add expectations to a stopped server")
            self._registry.register(expectation)
        return expectation

    @property
    def unmatched_requests(self) -> list[UnmatchedRequest]:
        return self._registry.unmatched()

    def hit_counts(self) -> list[int]:
        return [state.hit_count for state in self._registry.snapshot()]

    def verify(self) -> VerificationReport:
        """Current verification report; never raises."""

        return verify(self._registry, allow_unmatched=self.settings.allow_unmatched)

    def verify_and_clear(self) -> VerificationReport:
        """Verify, then reset expectations and the unmatched log; the server keeps running."""

        report = self.verify()
        self._registry.clear()
        if not report.ok:
            self._logger.warning("verification_failed", report=report.render())
            raise VerificationError(report)
        return report

    def stop(self, drain_timeout: float | None = None, *, check: bool = True) -> VerificationReport | None:
        """Stop serving, drain in-flight requests and verify.

        Only the first call does anything; later calls return ``None``.
        Raises :class:`VerificationError` when verification fails, unless
        ``check`` is false, in which case the failing report is only logged
        and returned.
        """

        report = self._shutdown(drain_timeout)
        if check and report is not None and not report.ok:
            raise VerificationError(report)
        return report

    def __enter__(self) -> MockServer:
        if self._httpd is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.stop()
            return
        # the block already failed; report but let the original error propagate
        self.stop(check=False)

    def _shutdown(self, drain_timeout: float | None) -> VerificationReport | None:
        with self._lifecycle_lock:
            if self._stopped:
                return None
            self._stopped = True
        if drain_timeout is None:
            drain_timeout = self.settings.drain_timeout
        httpd = self._httpd
        if httpd is not None:
            self._logger.info("server_stopping", inflight=self._inflight)
            httpd.shutdown()
            self._cancel.set()
            drained = self._wait_idle(drain_timeout)
            dropped = httpd.drop_connections()
            httpd.server_close()
            if self._thread is not None:
                self._thread.join(timeout=2)
            self._logger.info("server_stopped", drained=drained, dropped_connections=dropped)
        report = self.verify()
        if not report.ok:
            self._logger.warning("verification_failed", report=report.render())
        return report

    def _wait_idle(self, timeout: float) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._inflight == 0, timeout=timeout)

    @contextmanager
    def _track_request(self) -> Iterator[None]:
        with self._idle:
            self._inflight += 1
        try:
            yield
        finally:
            with self._idle:
                self._inflight -= 1
                if self._inflight == 0:
                    self._idle.notify_all()

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        runtime = self
        registry = self._registry
        request_timeout = self.settings.request_timeout

        class Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"
            timeout = request_timeout

            def setup(self) -> None:
                super().setup()
                self.server.track(self.connection)

            def finish(self) -> None:
                try:
                    super().finish()
                finally:
                    self.server.untrack(self.connection)

            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                runtime._logger.debug("http_trace", client_ip=self.client_address[0], message=format % args)

            def __getattr__(self, name: str) -> Any:
                # every verb, standard or not, goes through the registry
                if name.startswith("do_"):
                    return self._handle
                raise AttributeError(name)

            def _handle(self) -> None:
                with runtime._track_request():
                    self._serve()

            def _serve(self) -> None:
                logger = runtime._logger
                try:
                    body = self._read_body()
                except ValueError:
                    logger.warning("request_malformed", method=self.command, target=self.path)
                    self._write(HttpResponse(status=HTTPStatus.BAD_REQUEST, body=b"malformed request body"))
                    self.close_connection = True
                    return
                request = HttpRequest.build(self.command, self.path, self.headers.items(), body)
                logger.info(
                    "request_received",
                    method=request.method,
                    target=request.target,
                    content_length=len(request.body),
                )
                if runtime._cancel.is_set():
                    self._write(HttpResponse(status=HTTPStatus.SERVICE_UNAVAILABLE, body=b"server stopping"))
                    self.close_connection = True
                    return
                try:
                    selection, response = registry.dispatch(request, runtime._cancel)
                except ResponderCancelled:
                    logger.info("response_cancelled", method=request.method, target=request.target)
                    self.close_connection = True
                    return
                except Exception:
                    logger.exception("responder_failed", method=request.method, target=request.target)
                    response = HttpResponse(status=HTTPStatus.INTERNAL_SERVER_ERROR, body=b"responder failed")
                    selection = None
                else:
                    if selection is None:
                        logger.warning("request_unmatched", method=request.method, target=request.target)
                    elif selection.over_limit:
                        logger.warning(
                            "request_unmatched",
                            method=request.method,
                            target=request.target,
                            exhausted_index=selection.index,
                            hit_count=selection.hit_count,
                        )
                    else:
                        logger.info(
                            "request_matched",
                            method=request.method,
                            target=request.target,
                            index=selection.index,
                            expectation=selection.expectation.describe(),
                        )
                self._write(response)
                logger.info("response_sent", method=request.method, target=request.target, status=int(response.status))

            def _read_body(self) -> bytes:
                if "chunked" in (self.headers.get("Transfer-Encoding") or "").lower():
                    return self._read_chunked()
                length = int(self.headers.get("Content-Length") or 0)
                if length < 0:
                    raise ValueError("negative Content-Length")
                return self.rfile.read(length) if length else b""

            def _read_chunked(self) -> bytes:
                chunks: list[bytes] = []
                while True:
                    line = self.rfile.readline(_MAX_LINE)
                    size = int(line.split(b";", 1)[0].strip(), 16)
                    if size == 0:
                        while self.rfile.readline(_MAX_LINE) not in (b"\r\n", b"\n", b""):
                            pass
                        return b"".join(chunks)
                    chunks.append(self.rfile.read(size))
                    self.rfile.readline(_MAX_LINE)

            def _write(self, response: HttpResponse) -> None:
                try:
                    self.send_response(int(response.status))
                    for name, value in response.headers.items():
                        self.send_header(name, value)
                    if "Content-Length" not in response.headers:
                        self.send_header("Content-Length", str(len(response.body)))
                    self.end_headers()
                    if self.command != "HEAD" and response.body:
                        self.wfile.write(response.body)
                    self.wfile.flush()
                except OSError as exc:
                    runtime._logger.debug("connection_lost", error=str(exc))
                    self.close_connection = True

        return Handler
