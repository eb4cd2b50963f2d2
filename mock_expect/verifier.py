"""Teardown verification of expectation hit counts."""

from __future__ import annotations

from .models import VerificationReport, Violation
from .registry import ExpectationRegistry


class VerificationError(AssertionError):
    """Raised at teardown when expectations or unmatched traffic fail the run."""

    def __init__(self, report: VerificationReport) -> None:
        super().__init__(report.render())
        self.report = report


def verify(registry: ExpectationRegistry, *, allow_unmatched: bool = False) -> VerificationReport:
    """Check every expectation and collect all violations, not just the first."""

    violations = [
        Violation(
            index=state.index,
            description=state.description,
            expected=str(state.constraint),
            actual=state.hit_count,
        )
        for state in registry.snapshot()
        if not state.constraint.is_satisfied(state.hit_count)
    ]
    return VerificationReport(
        violations=violations,
        unmatched=registry.unmatched(),
        allow_unmatched=allow_unmatched,
    )


def check(registry: ExpectationRegistry, *, allow_unmatched: bool = False) -> VerificationReport:
    """Like :func:`verify` but raises :class:`VerificationError` on failure."""

    report = verify(registry, allow_unmatched=allow_unmatched)
    if not report.ok:
        raise VerificationError(report)
    return report
