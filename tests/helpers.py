"""HTTP client helpers shared by the runtime tests."""

from __future__ import annotations

import json
from http.client import HTTPConnection
from typing import Any

from mock_expect import MockServer


def send(
    server: MockServer,
    method: str,
    target: str,
    *,
    body: bytes | str | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 5,
) -> tuple[int, dict[str, str], bytes]:
    host, port = server.address()
    connection = HTTPConnection(host, port, timeout=timeout)
    try:
        connection.request(method, target, body=body, headers=headers or {})
        response = connection.getresponse()
        payload = response.read()
        return response.status, {key.lower(): value for key, value in response.getheaders()}, payload
    finally:
        connection.close()


def send_json(server: MockServer, method: str, target: str, payload: Any) -> tuple[int, dict[str, str], bytes]:
    return send(
        server,
        method,
        target,
        body=json.dumps(payload),
        headers={"Content-Type": "application/json"},
    )
