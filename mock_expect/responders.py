"""Responder policies deciding what the server answers to a matched request."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any
from urllib.parse import urlencode

from .headers import Headers
from .models import HttpRequest, HttpResponse


class ResponderCancelled(Exception):
    """Raised when the owning server shuts down while a responder is waiting."""


class Responder:
    """Produces one :class:`HttpResponse` per matched request.

    ``cancel`` is the owning server's shutdown event; responders that wait
    must honour it.
    """

    def respond(self, request: HttpRequest, cancel: threading.Event | None = None) -> HttpResponse:
        raise NotImplementedError


class ResponseBuilder(Responder):
    """Fixed response returned for every request."""

    def __init__(self, status: int = 200, headers: Any = None, body: bytes | str = b"") -> None:
        if not 100 <= status <= 999:
            raise ValueError(f"invalid status code: {status}")
        self._response = HttpResponse(status=status, headers=Headers(headers), body=_as_bytes(body))

    @property
    def status(self) -> int:
        return self._response.status

    def insert_header(self, name: str, value: str) -> ResponseBuilder:
        self._response.headers.set(name, value)
        return self

    def append_header(self, name: str, value: str) -> ResponseBuilder:
        self._response.headers.append(name, value)
        return self

    def body(self, body: bytes | str) -> ResponseBuilder:
        self._response.body = _as_bytes(body)
        return self

    def respond(self, request: HttpRequest, cancel: threading.Event | None = None) -> HttpResponse:
        return self._response.copy()

    def __repr__(self) -> str:
        return f"ResponseBuilder(status={self._response.status})"


class Delay(Responder):
    """Waits before delegating; the wait ends early if the server stops."""

    def __init__(self, seconds: float, inner: Responder) -> None:
        if seconds < 0:
            raise ValueError("delay must be non-negative")
        self.seconds = seconds
        self.inner = inner

    def respond(self, request: HttpRequest, cancel: threading.Event | None = None) -> HttpResponse:
        waiter = cancel or threading.Event()
        if waiter.wait(self.seconds):
            raise ResponderCancelled(f"server stopped during {self.seconds}s delay")
        return self.inner.respond(request, cancel)

    def __repr__(self) -> str:
        return f"Delay({self.seconds}, {self.inner!r})"


class Sequence(Responder):
    """Answers with each responder in turn, then keeps repeating the last one."""

    def __init__(self, responders: Iterable[Any], *, wrap: bool = False) -> None:
        self._responders = [as_responder(item) for item in responders]
        if not self._responders:
            raise ValueError("at least one responder is required")
        self._wrap = wrap
        self._index = 0
        self._lock = threading.Lock()

    def respond(self, request: HttpRequest, cancel: threading.Event | None = None) -> HttpResponse:
        with self._lock:
            current = self._responders[self._index]
            if self._wrap:
                self._index = (self._index + 1) % len(self._responders)
            elif self._index < len(self._responders) - 1:
                self._index += 1
        return current.respond(request, cancel)

    def __repr__(self) -> str:
        name = "Cycle" if self._wrap else "Sequence"
        return f"{name}({', '.join(repr(item) for item in self._responders)})"


class FnResponder(Responder):
    """Delegates to ``func(request)``; the result may be a responder, response or status."""

    def __init__(self, func: Callable[[HttpRequest], Any]) -> None:
        self.func = func

    def respond(self, request: HttpRequest, cancel: threading.Event | None = None) -> HttpResponse:
        result = self.func(request)
        if isinstance(result, HttpResponse):
            return result
        return as_responder(result).respond(request, cancel)

    def __repr__(self) -> str:
        return f"FnResponder({getattr(self.func, '__name__', self.func)!r})"


def status_code(code: int) -> ResponseBuilder:
    return ResponseBuilder(status=code)


def json_encoded(data: Any, status: int = 200) -> ResponseBuilder:
    payload = json.dumps(data).encode("utf-8")
    return ResponseBuilder(status=status, headers={"Content-Type": "application/json"}, body=payload)


def url_encoded(data: Mapping[str, Any] | Iterable[tuple[str, Any]], status: int = 200) -> ResponseBuilder:
    return ResponseBuilder(
        status=status,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body=urlencode(data, doseq=True),
    )


def delay(seconds: float, inner: Any) -> Delay:
    return Delay(seconds, as_responder(inner))


def sequence(*responders: Any) -> Sequence:
    return Sequence(responders)


def cycle(*responders: Any) -> Sequence:
    return Sequence(responders, wrap=True)


def from_fn(func: Callable[[HttpRequest], Any]) -> FnResponder:
    return FnResponder(func)


def as_responder(value: Any) -> Responder:
    if isinstance(value, Responder):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return status_code(value)
    if isinstance(value, HttpResponse):
        return ResponseBuilder(status=value.status, headers=value.headers, body=value.body)
    raise TypeError(f"cannot use {value!r} as a responder")


def _as_bytes(body: bytes | str) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)
