"""Expectations: a request matcher, a call-count constraint and a responder."""

from __future__ import annotations

from typing import Any

from .matchers import Matcher, coerce
from .responders import Responder, as_responder
from .times import Times


class Expectation:
    """A registered rule; ``hit_count`` is only mutated by the registry.

    Build one fluently::

        Expectation.matching(method_path("GET", "/foo")).times(2).respond_with(status_code(200))

    Without ``times`` the expectation must be hit exactly once.
    """

    def __init__(self, matcher: Any, times: Any = 1, responder: Any = 200, *, name: str | None = None) -> None:
        self.matcher: Matcher = coerce(matcher)
        self.constraint: Times = Times.coerce(times)
        self.responder: Responder = as_responder(responder)
        self.name = name
        self.hit_count = 0

    @classmethod
    def matching(cls, matcher: Any) -> ExpectationBuilder:
        return ExpectationBuilder(coerce(matcher))

    def describe(self) -> str:
        if self.name:
            return f"{self.name} [{self.matcher.describe()}]"
        return self.matcher.describe()

    def __repr__(self) -> str:
        return f"Expectation({self.describe()}, times={self.constraint}, hits={self.hit_count})"


class ExpectationBuilder:
    """Collects the matcher and constraint until a responder is supplied."""

    def __init__(self, matcher: Matcher) -> None:
        self._matcher = matcher
        self._times = Times.exactly(1)
        self._name: str | None = None

    def times(self, spec: Any) -> ExpectationBuilder:
        self._times = Times.coerce(spec)
        return self

    def named(self, name: str) -> ExpectationBuilder:
        self._name = name
        return self

    def respond_with(self, responder: Any) -> Expectation:
        return Expectation(self._matcher, self._times, responder, name=self._name)
