"""Ordered expectation registry and the request selection algorithm."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import structlog

from .expectation import Expectation
from .headers import Headers
from .models import HttpRequest, HttpResponse, UnmatchedRequest
from .times import Times

LOGGER = structlog.get_logger("mock_expect.registry")

UNMATCHED_STATUS = 500


@dataclass(frozen=True)
class Selection:
    """The expectation chosen for a request.

    ``over_limit`` marks a request that only matched exhausted expectations:
    the hit is still counted against the first of them so teardown reports
    the overflow, but the client gets the unmatched response. ``hit_count``
    is the count right after this request was charged.
    """

    index: int
    expectation: Expectation
    hit_count: int
    over_limit: bool = False


@dataclass(frozen=True)
class ExpectationState:
    """Point-in-time view of one expectation, read under the registry lock."""

    index: int
    description: str
    constraint: Times
    hit_count: int


class ExpectationRegistry:
    """Expectations in registration order plus the log of unmatched requests.

    Selection is first-match: the earliest registered expectation that matches
    and still has room under its upper bound wins, so specific expectations
    must be registered before catch-alls.
    """

    def __init__(self, *, unmatched_status: int = UNMATCHED_STATUS, logger: Any | None = None) -> None:
        self._expectations: list[Expectation] = []
        self._unmatched: list[UnmatchedRequest] = []
        self._lock = threading.Lock()
        self._unmatched_status = unmatched_status
        self._logger = logger if logger is not None else LOGGER

    def register(self, expectation: Expectation) -> int:
        with self._lock:
            self._expectations.append(expectation)
            index = len(self._expectations) - 1
        self._logger.debug(
            "expectation_added",
            index=index,
            matcher=expectation.describe(),
            times=str(expectation.constraint),
        )
        return index

    def select(self, request: HttpRequest) -> Selection | None:
        """Pick the first eligible expectation and count the hit atomically.

        Returns ``None`` when nothing matched at all. When the request only
        matched expectations that reached their upper bound, the first of
        them is charged an over-limit hit and the request is also logged as
        unmatched.
        """

        with self._lock:
            exhausted: tuple[int, Expectation] | None = None
            for index, expectation in enumerate(self._expectations):
                if not self._safe_match(index, expectation, request):
                    continue
                if not expectation.constraint.permits_another(expectation.hit_count):
                    if exhausted is None:
                        exhausted = (index, expectation)
                    continue
                expectation.hit_count += 1
                return Selection(index=index, expectation=expectation, hit_count=expectation.hit_count)
            self._unmatched.append(UnmatchedRequest.from_request(request))
            if exhausted is None:
                return None
            index, expectation = exhausted
            expectation.hit_count += 1
            return Selection(index=index, expectation=expectation, hit_count=expectation.hit_count, over_limit=True)

    def dispatch(self, request: HttpRequest, cancel: threading.Event | None = None) -> tuple[Selection | None, HttpResponse]:
        """Select an expectation and run its responder outside the lock."""

        selection = self.select(request)
        if selection is None or selection.over_limit:
            return selection, self._unmatched_response(request, selection)
        return selection, selection.expectation.responder.respond(request, cancel)

    def snapshot(self) -> list[ExpectationState]:
        with self._lock:
            return [
                ExpectationState(
                    index=index,
                    description=expectation.describe(),
                    constraint=expectation.constraint,
                    hit_count=expectation.hit_count,
                )
                for index, expectation in enumerate(self._expectations)
            ]

    def unmatched(self) -> list[UnmatchedRequest]:
        with self._lock:
            return list(self._unmatched)

    def clear(self) -> None:
        with self._lock:
            self._expectations.clear()
            self._unmatched.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._expectations)

    def _safe_match(self, index: int, expectation: Expectation, request: HttpRequest) -> bool:
        try:
            return expectation.matcher.matches(request)
        except Exception:
            self._logger.exception("matcher_failed", index=index, matcher=expectation.describe())
            return False

    def _unmatched_response(self, request: HttpRequest, selection: Selection | None) -> HttpResponse:
        if selection is None:
            lines = [f"No expectation matched {request.method} {request.target}"]
        else:
            expectation = selection.expectation
            lines = [
                f"Unexpected number of requests for #{selection.index} {expectation.describe()}; "
                f"received {selection.hit_count}; expected {expectation.constraint}"
            ]
        lines.append("Registered expectations:")
        states = self.snapshot()
        if states:
            lines.extend(
                f"  #{state.index} {state.description} (times={state.constraint}, hits={state.hit_count})"
                for state in states
            )
        else:
            lines.append("  (none)")
        return HttpResponse(
            status=self._unmatched_status,
            headers=Headers({"Content-Type": "text/plain; charset=utf-8"}),
            body="\n".join(lines).encode("utf-8"),
        )
