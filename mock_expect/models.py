"""Request/response snapshots and teardown report models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .headers import Headers, HeaderSource


@dataclass(frozen=True)
class HttpRequest:
    """Immutable snapshot of one inbound request."""

    method: str
    target: str
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    @classmethod
    def build(
        cls,
        method: str,
        target: str = "/",
        headers: HeaderSource = None,
        body: bytes | str = b"",
    ) -> HttpRequest:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(method=method.upper(), target=target or "/", headers=Headers(headers), body=body)

    @property
    def path(self) -> str:
        return self.target.split("?", 1)[0]

    @property
    def query(self) -> str:
        if "?" not in self.target:
            return ""
        return self.target.split("?", 1)[1]

    @property
    def json(self) -> Any | None:
        if not self.body:
            return None
        try:
            return json.loads(self.body.decode("utf-8"))
        except ValueError:
            return None


@dataclass
class HttpResponse:
    """Response produced by a responder and written once by the runtime."""

    status: int = 200
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    def copy(self) -> HttpResponse:
        return HttpResponse(status=self.status, headers=self.headers.copy(), body=self.body)


class UnmatchedRequest(BaseModel):
    """Captured copy of a request no expectation was eligible for."""

    method: str
    target: str
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_request(cls, request: HttpRequest) -> UnmatchedRequest:
        return cls(
            method=request.method,
            target=request.target,
            headers=request.headers.items(),
            body=request.body,
        )

    def summary(self) -> str:
        text = f"{self.method} {self.target}"
        if self.body:
            preview = self.body[:120].decode("utf-8", errors="replace")
            text += f" body={preview!r}"
        return text


class Violation(BaseModel):
    """An expectation whose final hit count does not satisfy its constraint."""

    index: int
    description: str
    expected: str
    actual: int

    def summary(self) -> str:
        return f"#{self.index} {self.description}: expected {self.expected}, actual {self.actual}"


class VerificationReport(BaseModel):
    """Aggregated teardown result."""

    violations: list[Violation] = Field(default_factory=list)
    unmatched: list[UnmatchedRequest] = Field(default_factory=list)
    allow_unmatched: bool = False

    @property
    def ok(self) -> bool:
        if self.violations:
            return False
        return self.allow_unmatched or not self.unmatched

    def render(self) -> str:
        lines: list[str] = []
        if self.violations:
            lines.append(f"{len(self.violations)} expectation(s) not satisfied:")
            lines.extend(f"  - {violation.summary()}" for violation in self.violations)
        if self.unmatched and not self.allow_unmatched:
            lines.append(f"{len(self.unmatched)} unexpected request(s) received:")
            lines.extend(f"  - {record.summary()}" for record in self.unmatched)
        return "\n".join(lines) if lines else "all expectations satisfied"
