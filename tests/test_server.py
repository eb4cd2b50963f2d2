from __future__ import annotations

import errno
import http.client
import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from helpers import send, send_json
from mock_expect import Expectation, HttpResponse, MockServer, Times, VerificationError
from mock_expect import matchers as m
from mock_expect import responders as r


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


def test_single_expected_request_passes_teardown() -> None:
    server = MockServer.run()
    server.expect(Expectation.matching(m.method_path("GET", "/foo")).respond_with(r.status_code(200)))

    status, _, _ = send(server, "GET", "/foo")

    assert status == 200
    report = server.stop()
    assert report is not None and report.ok


def test_request_beyond_upper_bound_is_rejected_and_reported() -> None:
    server = MockServer.run()
    server.expect(Expectation.matching(m.method_path("GET", "/foo")).respond_with(200))

    first_status, _, _ = send(server, "GET", "/foo")
    second_status, headers, body = send(server, "GET", "/foo")

    assert first_status == 200
    assert second_status == 500
    assert headers["content-type"].startswith("text/plain")
    assert b"expected Exactly(1)" in body

    with pytest.raises(VerificationError) as excinfo:
        server.stop()
    report = excinfo.value.report
    assert [violation.actual for violation in report.violations] == [2]
    assert "expected Exactly(1), actual 2" in str(excinfo.value)
    assert [record.target for record in report.unmatched] == ["/foo"]


def test_json_post_within_range() -> None:
    with MockServer.run() as server:
        expectation = server.expect(
            Expectation.matching(
                m.all_of(
                    m.method("POST"),
                    m.path("/bar"),
                    m.body(m.json_decoded(m.eq({"foo": "bar"}))),
                )
            )
            .times(Times.between(1, 3))
            .respond_with(r.json_encoded({"result": "success"}))
        )

        for _ in range(2):
            status, headers, body = send_json(server, "POST", "/bar", {"foo": "bar"})
            assert status == 200
            assert headers["content-type"] == "application/json"
            assert json.loads(body) == {"result": "success"}

        assert expectation.hit_count == 2


def test_concurrent_requests_are_all_counted() -> None:
    with MockServer.run() as server:
        server.expect(m.method_path("GET", "/foo"), 12, 204)

        with ThreadPoolExecutor(max_workers=12) as pool:
            statuses = list(pool.map(lambda _: send(server, "GET", "/foo")[0], range(12)))

        assert statuses == [204] * 12
        assert server.hit_counts() == [12]


def test_unmatched_request_fails_teardown() -> None:
    server = MockServer.run()

    status, _, body = send(server, "DELETE", "/nowhere", body=b"payload")

    assert status == 500
    assert b"No expectation matched DELETE /nowhere" in body
    assert len(server.unmatched_requests) == 1
    with pytest.raises(VerificationError, match="1 unexpected request"):
        server.stop()


def test_allow_unmatched_opt_out() -> None:
    server = MockServer.run(allow_unmatched=True, unmatched_status=404)

    status, _, _ = send(server, "GET", "/stray")

    assert status == 404
    assert server.stop().ok


def test_unmet_expectation_fails_context_manager_exit() -> None:
    with pytest.raises(VerificationError, match=r"expected AtLeast\(1\), actual 0"):
        with MockServer.run() as server:
            server.expect(m.path("/never"), (1, None), 200)


def test_error_inside_block_takes_precedence_over_verification() -> None:
    with pytest.raises(KeyError):
        with MockServer.run() as server:
            server.expect(m.path("/never"), 1, 200)
            raise KeyError("boom")
    assert not server.running


def test_stop_is_idempotent() -> None:
    server = MockServer.run()

    assert server.stop().ok
    assert server.stop() is None
    with pytest.raises(RuntimeError):
        server.expect(m.any_value())
    with pytest.raises(RuntimeError):
        server.start()


def test_bind_failure_raises_os_error() -> None:
    with MockServer.run() as first:
        _, port = first.address()
        with pytest.raises(OSError):
            MockServer.run(port=port)


def test_delay_is_cancelled_when_server_stops() -> None:
    server = MockServer.run(drain_timeout=5)
    server.expect(m.path("/slow"), 1, r.delay(30, 200))
    outcome: list[BaseException] = []

    def call() -> None:
        try:
            send(server, "GET", "/slow", timeout=10)
        except (http.client.HTTPException, OSError) as exc:
            outcome.append(exc)

    client = threading.Thread(target=call)
    client.start()
    _wait_for(lambda: server.hit_counts() == [1])

    started = time.monotonic()
    server.stop()
    client.join(timeout=10)

    assert time.monotonic() - started < 5
    assert not client.is_alive()
    assert len(outcome) == 1


def test_head_request_gets_headers_only() -> None:
    with MockServer.run() as server:
        server.expect(m.method("HEAD"), 1, r.status_code(200).body("not sent"))

        status, headers, body = send(server, "HEAD", "/")

        assert status == 200
        assert headers["content-length"] == "8"
        assert body == b""


def test_custom_methods_and_chunked_bodies_reach_matchers() -> None:
    with MockServer.run() as server:
        server.expect(m.all_of(m.method("PURGE"), m.body("abcdef")), 1, 202)

        host, port = server.address()
        connection = http.client.HTTPConnection(host, port, timeout=5)
        try:
            connection.request("PURGE", "/cache", body=iter([b"abc", b"def"]))
            response = connection.getresponse()
            response.read()
        finally:
            connection.close()

        assert response.status == 202


def test_header_and_query_matching_over_the_wire() -> None:
    with MockServer.run() as server:
        server.expect(
            m.all_of(
                m.path("/search"),
                m.query(m.url_decoded(m.contains(("q", "mock server")))),
                m.header("x-api-key", "secret"),
            ),
            1,
            r.url_encoded({"hits": 3}),
        )

        status, _, body = send(server, "GET", "/search?q=mock+server&page=1", headers={"X-Api-Key": "secret"})

        assert status == 200
        assert body == b"hits=3"


def test_verify_and_clear_resets_between_uses() -> None:
    with MockServer.run() as server:
        server.expect(m.path("/a"), 1, 200)
        send(server, "GET", "/a")

        assert server.verify_and_clear().ok
        assert server.hit_counts() == []

        server.expect(m.path("/b"), 1, 200)
        with pytest.raises(VerificationError):
            server.verify_and_clear()
        assert server.running


def test_responder_exception_becomes_500() -> None:
    def explode(request):
        raise RuntimeError("boom")

    with MockServer.run() as server:
        server.expect(m.path("/err"), 1, r.from_fn(explode))

        status, _, body = send(server, "GET", "/err")

        assert status == 500
        assert body == b"responder failed"


def test_misspelled_setting_is_rejected() -> None:
    with pytest.raises(TypeError, match="drian_timeout"):
        MockServer(drian_timeout=1)


def test_expect_racing_stop_is_either_verified_or_refused() -> None:
    server = MockServer.run(log_requests=False)
    registered: list[int] = []

    def register() -> None:
        for attempt in range(500):
            try:
                server.expect(m.path(f"/late/{attempt}"), 1, 200)
            except RuntimeError:
                return
            registered.append(attempt)

    worker = threading.Thread(target=register)
    worker.start()
    report = server.stop(check=False)
    worker.join(timeout=5)

    assert len(report.violations) == len(registered)


class _UnwritableStream:
    def write(self, data: bytes) -> int:
        raise OSError(errno.ENOTCONN, "Transport endpoint is not connected")

    def flush(self) -> None:
        pass


def test_write_on_dropped_connection_closes_quietly() -> None:
    server = MockServer(log_requests=False)
    handler_class = server._build_handler_factory()
    handler = handler_class.__new__(handler_class)
    handler.request_version = "HTTP/1.1"
    handler.requestline = "GET / HTTP/1.1"
    handler.command = "GET"
    handler.client_address = ("127.0.0.1", 0)
    handler.close_connection = False
    handler.wfile = _UnwritableStream()

    handler._write(HttpResponse(status=200, body=b"lost"))

    assert handler.close_connection
