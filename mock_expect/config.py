"""Server settings and declarative expectation files."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from . import matchers as m
from . import responders as r
from .expectation import Expectation
from .times import Times

ENV_PREFIX = "MOCK_EXPECT_"


class ConfigError(ValueError):
    """Raised when an expectation file cannot be loaded or validated."""


class ServerSettings(BaseModel):
    """Runtime options for one mock server."""

    host: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    allow_unmatched: bool = False
    unmatched_status: int = Field(default=500, ge=100, le=999)
    drain_timeout: float = Field(default=5.0, ge=0)
    request_timeout: float | None = Field(default=30.0, gt=0)
    log_requests: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> ServerSettings:
        """Read ``MOCK_EXPECT_<FIELD>`` variables; explicit overrides win."""

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)


class RequestSpec(BaseModel):
    """Request criteria; every field that is set must match."""

    method: str | None = None
    path: str | None = None
    path_regex: str | None = None
    query: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = Field(default=None, alias="json")
    body: str | None = None
    body_contains: str | None = None

    model_config = {"populate_by_name": True}

    def build(self) -> m.Matcher:
        parts: list[m.Matcher] = []
        if self.method:
            parts.append(m.method(self.method))
        if self.path is not None:
            parts.append(m.path(self.path))
        if self.path_regex is not None:
            parts.append(m.path(m.matches(self.path_regex)))
        for name, value in self.query.items():
            parts.append(m.query(m.url_decoded(m.contains((name, value)))))
        for name, value in self.headers.items():
            parts.append(m.header(name, value))
        if self.json_body is not None:
            parts.append(m.body(m.json_decoded(self.json_body)))
        if self.body is not None:
            parts.append(m.body(self.body))
        if self.body_contains is not None:
            parts.append(m.body(m.contains(self.body_contains)))
        return m.all_of(*parts)


class ResponseSpec(BaseModel):
    """Canned response; ``json`` takes precedence over ``body``."""

    status: int = Field(default=200, ge=100, le=999)
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = Field(default=None, alias="json")
    body: str = ""
    delay_ms: int = Field(default=0, ge=0)

    model_config = {"populate_by_name": True}

    def build(self) -> r.Responder:
        if self.json_body is not None:
            responder = r.json_encoded(self.json_body, status=self.status)
        else:
            responder = r.status_code(self.status).body(self.body)
        for name, value in self.headers.items():
            responder.insert_header(name, value)
        if self.delay_ms:
            return r.delay(self.delay_ms / 1000, responder)
        return responder


class ExpectationSpec(BaseModel):
    """One expectation as written in a YAML/JSON file."""

    name: str | None = None
    request: RequestSpec = Field(default_factory=RequestSpec)
    times: int | Literal["any"] | dict[str, Any] = 1
    response: ResponseSpec | None = None
    responses: list[ResponseSpec] = Field(default_factory=list)
    cycle: bool = False

    @model_validator(mode="after")
    def check_response(self) -> ExpectationSpec:
        if self.response is not None and self.responses:
            raise ValueError("use either 'response' or 'responses', not both")
        return self

    def constraint(self) -> Times:
        spec = self.times
        if spec == "any":
            return Times.any_number()
        if isinstance(spec, int):
            return Times.exactly(spec)
        if "exactly" in spec:
            return Times.exactly(int(spec["exactly"]))
        if "between" in spec:
            low, high = spec["between"]
            return Times.between(int(low), int(high))
        if "at_least" in spec or "at_most" in spec:
            low = spec.get("at_least")
            high = spec.get("at_most")
            return Times(low=int(low or 0), high=None if high is None else int(high))
        raise ValueError(f"unsupported times specification: {spec!r}")

    def build(self) -> Expectation:
        if self.responses:
            items = [item.build() for item in self.responses]
            responder: r.Responder = r.cycle(*items) if self.cycle else r.sequence(*items)
        else:
            responder = (self.response or ResponseSpec()).build()
        return Expectation(self.request.build(), self.constraint(), responder, name=self.name)


class ExpectationFile(BaseModel):
    """Top-level document: optional settings plus the ordered expectations."""

    settings: ServerSettings = Field(default_factory=ServerSettings)
    expectations: list[ExpectationSpec] = Field(default_factory=list)

    def build(self) -> list[Expectation]:
        return [spec.build() for spec in self.expectations]


def load_config(path: Path) -> ExpectationFile:
    """Load and validate an expectation file (YAML, or JSON by suffix)."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    try:
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"{path} is not valid: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expectation file {path} must contain a mapping")
    try:
        document = ExpectationFile.model_validate(data)
        document.build()
    except (ValidationError, ValueError, TypeError, re.error) as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    return document
