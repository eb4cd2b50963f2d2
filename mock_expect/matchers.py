"""Composable request/response matchers.

Matchers form a closed tree of node kinds: value predicates (``Eq``,
``Matches``, ``Contains``...), decoders (``JsonDecoded``, ``UrlDecoded``),
combinators (``AllOf``, ``AnyOf``, ``Not``) and projections that pick a field
out of an :class:`~mock_expect.models.HttpRequest` or
:class:`~mock_expect.models.HttpResponse`. :func:`evaluate` walks the tree.

Evaluation is pure and never raises for malformed input; a body that is not
valid JSON simply does not match ``json_decoded(...)``.

Example::

    from mock_expect import matchers as m

    m.all_of(
        m.method("POST"),
        m.path("/bar"),
        m.body(m.json_decoded({"foo": "bar"})),
    )
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from .models import HttpRequest, HttpResponse


class Matcher:
    """Base class of every node kind."""

    def matches(self, value: Any) -> bool:
        return evaluate(self, value)

    def describe(self) -> str:
        return describe(self)

    def __and__(self, other: Any) -> AllOf:
        return all_of(self, other)

    def __or__(self, other: Any) -> AnyOf:
        return any_of(self, other)

    def __invert__(self) -> Not:
        return Not(self)

    def __str__(self) -> str:
        return describe(self)


# -- value predicates -------------------------------------------------------


@dataclass(frozen=True)
class Anything(Matcher):
    pass


@dataclass(frozen=True)
class Eq(Matcher):
    value: Any


@dataclass(frozen=True)
class Matches(Matcher):
    pattern: re.Pattern


@dataclass(frozen=True)
class Contains(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Len(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Lowercase(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Key(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Value(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class KeyValue(Matcher):
    key: Matcher
    value: Matcher


@dataclass(frozen=True)
class JsonDecoded(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class UrlDecoded(Matcher):
    inner: Matcher


# -- combinators ------------------------------------------------------------


@dataclass(frozen=True)
class AllOf(Matcher):
    children: tuple[Matcher, ...] = ()


@dataclass(frozen=True)
class AnyOf(Matcher):
    children: tuple[Matcher, ...] = ()


@dataclass(frozen=True)
class Not(Matcher):
    child: Matcher


# -- request projections ----------------------------------------------------


@dataclass(frozen=True)
class Method(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Path(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Query(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class RequestHeaders(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class Header(Matcher):
    name: str
    inner: Matcher


@dataclass(frozen=True)
class Body(Matcher):
    inner: Matcher


# -- response projections ---------------------------------------------------


@dataclass(frozen=True)
class StatusCode(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class ResponseHeaders(Matcher):
    inner: Matcher


@dataclass(frozen=True)
class ResponseBody(Matcher):
    inner: Matcher


def coerce(value: Any) -> Matcher:
    """Turn a literal into a matcher: 2-tuples compare pairs, the rest use ``Eq``."""

    if isinstance(value, Matcher):
        return value
    if isinstance(value, tuple) and len(value) == 2:
        return KeyValue(coerce(value[0]), coerce(value[1]))
    return Eq(value)


def any_value() -> Anything:
    return Anything()


def eq(value: Any) -> Eq:
    return Eq(value)


def matches(pattern: str | bytes | re.Pattern) -> Matches:
    if not isinstance(pattern, re.Pattern):
        pattern = re.compile(pattern)
    return Matches(pattern)


def contains(inner: Any) -> Contains:
    return Contains(coerce(inner))


def len_(inner: Any) -> Len:
    return Len(coerce(inner))


def lowercase(inner: Any) -> Lowercase:
    return Lowercase(coerce(inner))


def key(inner: Any) -> Key:
    return Key(coerce(inner))


def value(inner: Any) -> Value:
    return Value(coerce(inner))


def json_decoded(inner: Any) -> JsonDecoded:
    return JsonDecoded(coerce(inner))


def url_decoded(inner: Any) -> UrlDecoded:
    return UrlDecoded(coerce(inner))


def all_of(*children: Any) -> AllOf:
    return AllOf(tuple(coerce(child) for child in children))


def any_of(*children: Any) -> AnyOf:
    return AnyOf(tuple(coerce(child) for child in children))


def not_(child: Any) -> Not:
    return Not(coerce(child))


def method(inner: Any) -> Method:
    if isinstance(inner, str):
        inner = inner.upper()
    return Method(coerce(inner))


def path(inner: Any) -> Path:
    return Path(coerce(inner))


def query(inner: Any) -> Query:
    return Query(coerce(inner))


def headers(inner: Any) -> RequestHeaders:
    return RequestHeaders(coerce(inner))


def header(name: str, inner: Any) -> Header:
    return Header(name.lower(), coerce(inner))


def body(inner: Any) -> Body:
    return Body(coerce(inner))


def method_path(method_value: Any, path_value: Any) -> AllOf:
    return all_of(method(method_value), path(path_value))


def status_code(inner: Any) -> StatusCode:
    return StatusCode(coerce(inner))


def response_headers(inner: Any) -> ResponseHeaders:
    return ResponseHeaders(coerce(inner))


def response_body(inner: Any) -> ResponseBody:
    return ResponseBody(coerce(inner))


def evaluate(matcher: Matcher, value: Any) -> bool:
    """Evaluate ``matcher`` against ``value``."""

    if isinstance(matcher, AllOf):
        return all(evaluate(child, value) for child in matcher.children)
    if isinstance(matcher, AnyOf):
        return any(evaluate(child, value) for child in matcher.children)
    if isinstance(matcher, Not):
        return not evaluate(matcher.child, value)
    if isinstance(matcher, Anything):
        return True
    if isinstance(matcher, Eq):
        return _equals(matcher.value, value)
    if isinstance(matcher, Matches):
        return _search(matcher.pattern, value)
    if isinstance(matcher, Contains):
        return _contains(matcher.inner, value)
    if isinstance(matcher, Len):
        try:
            size = len(value)
        except TypeError:
            return False
        return evaluate(matcher.inner, size)
    if isinstance(matcher, Lowercase):
        if not isinstance(value, (str, bytes)):
            return False
        return evaluate(matcher.inner, value.lower())
    if isinstance(matcher, (Key, Value, KeyValue)):
        return _match_pair(matcher, value)
    if isinstance(matcher, JsonDecoded):
        if not isinstance(value, (str, bytes)):
            return False
        try:
            decoded = json.loads(value)
        except ValueError:
            return False
        return evaluate(matcher.inner, decoded)
    if isinstance(matcher, UrlDecoded):
        pairs = _url_pairs(value)
        if pairs is None:
            return False
        return evaluate(matcher.inner, pairs)
    if isinstance(matcher, (Method, Path, Query, RequestHeaders, Header, Body)):
        if not isinstance(value, HttpRequest):
            return False
        return _match_request(matcher, value)
    if isinstance(matcher, (StatusCode, ResponseHeaders, ResponseBody)):
        if not isinstance(value, HttpResponse):
            return False
        return _match_response(matcher, value)
    raise TypeError(f"unknown matcher kind: {type(matcher).__name__}")


def describe(matcher: Matcher) -> str:
    """Render a matcher tree for diagnostics, e.g. ``AllOf(Method(Eq('GET')), ...)``."""

    kind = type(matcher).__name__
    if isinstance(matcher, (AllOf, AnyOf)):
        return f"{kind}({', '.join(describe(child) for child in matcher.children)})"
    if isinstance(matcher, Not):
        return f"Not({describe(matcher.child)})"
    if isinstance(matcher, Anything):
        return "Any"
    if isinstance(matcher, Eq):
        return f"Eq({matcher.value!r})"
    if isinstance(matcher, Matches):
        return f"Matches({matcher.pattern.pattern!r})"
    if isinstance(matcher, KeyValue):
        return f"KeyValue({describe(matcher.key)}, {describe(matcher.value)})"
    if isinstance(matcher, Header):
        return f"Header({matcher.name!r}, {describe(matcher.inner)})"
    return f"{kind}({describe(matcher.inner)})"


def _equals(expected: Any, actual: Any) -> bool:
    if isinstance(expected, str) and isinstance(actual, bytes):
        try:
            actual = actual.decode("utf-8")
        except UnicodeDecodeError:
            return False
    elif isinstance(expected, bytes) and isinstance(actual, str):
        actual = actual.encode("utf-8")
    return expected == actual


def _search(pattern: re.Pattern, value: Any) -> bool:
    if isinstance(pattern.pattern, str):
        if isinstance(value, bytes):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError:
                return False
        if not isinstance(value, str):
            return False
    else:
        if isinstance(value, str):
            value = value.encode("utf-8")
        if not isinstance(value, bytes):
            return False
    return pattern.search(value) is not None


def _contains(inner: Matcher, value: Any) -> bool:
    if isinstance(value, (str, bytes)):
        if isinstance(inner, Eq) and isinstance(inner.value, (str, bytes)):
            needle = inner.value
            if isinstance(value, bytes) and isinstance(needle, str):
                needle = needle.encode("utf-8")
            elif isinstance(value, str) and isinstance(needle, bytes):
                value = value.encode("utf-8")
            return needle in value
        return False
    if isinstance(value, Mapping):
        return any(evaluate(inner, item) for item in value.items())
    if isinstance(value, Iterable):
        return any(evaluate(inner, item) for item in value)
    return False


def _match_pair(matcher: Key | Value | KeyValue, pair: Any) -> bool:
    if not isinstance(pair, (tuple, list)) or len(pair) != 2:
        return False
    if isinstance(matcher, Key):
        return evaluate(matcher.inner, pair[0])
    if isinstance(matcher, Value):
        return evaluate(matcher.inner, pair[1])
    return evaluate(matcher.key, pair[0]) and evaluate(matcher.value, pair[1])


def _url_pairs(value: Any) -> list[tuple[str, str]] | None:
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    try:
        return parse_qsl(value, keep_blank_values=True)
    except ValueError:
        return None


def _match_request(matcher: Matcher, request: HttpRequest) -> bool:
    if isinstance(matcher, Method):
        return evaluate(matcher.inner, request.method)
    if isinstance(matcher, Path):
        return evaluate(matcher.inner, request.path)
    if isinstance(matcher, Query):
        return evaluate(matcher.inner, request.query)
    if isinstance(matcher, RequestHeaders):
        return evaluate(matcher.inner, request.headers.lowered())
    if isinstance(matcher, Header):
        return any(evaluate(matcher.inner, item) for item in request.headers.get_all(matcher.name))
    return evaluate(matcher.inner, request.body)


def _match_response(matcher: Matcher, response: HttpResponse) -> bool:
    if isinstance(matcher, StatusCode):
        return evaluate(matcher.inner, response.status)
    if isinstance(matcher, ResponseHeaders):
        return evaluate(matcher.inner, response.headers.lowered())
    return evaluate(matcher.inner, response.body)
