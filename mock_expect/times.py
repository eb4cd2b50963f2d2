"""Call-count constraints attached to expectations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Times(BaseModel):
    """Inclusive range of hits an expectation accepts; ``high=None`` is unbounded."""

    model_config = ConfigDict(frozen=True)

    low: int = Field(default=0, ge=0)
    high: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> Times:
        if self.high is not None and self.low > self.high:
            raise ValueError(f"lower bound {self.low} exceeds upper bound {self.high}")
        return self

    @classmethod
    def exactly(cls, n: int) -> Times:
        return cls(low=n, high=n)

    @classmethod
    def at_least(cls, n: int) -> Times:
        return cls(low=n)

    @classmethod
    def at_most(cls, n: int) -> Times:
        return cls(low=0, high=n)

    @classmethod
    def between(cls, low: int, high: int) -> Times:
        return cls(low=low, high=high)

    @classmethod
    def any_number(cls) -> Times:
        return cls()

    @classmethod
    def coerce(cls, spec: Any) -> Times:
        """Accept an int, a ``range``, a ``(low, high)`` tuple or a ``Times``.

        ``range(1, 4)`` is half-open like any Python range and means 1 to 3
        hits. A tuple is inclusive and ``None`` leaves the upper side open.
        """

        if isinstance(spec, Times):
            return spec
        if isinstance(spec, bool):
            raise TypeError("call count must be an int, range, tuple or Times")
        if isinstance(spec, int):
            return cls.exactly(spec)
        if isinstance(spec, range):
            if spec.step != 1 or spec.stop <= spec.start:
                raise ValueError(f"call count range must be non-empty with step 1: {spec!r}")
            return cls.between(spec.start, spec.stop - 1)
        if isinstance(spec, tuple) and len(spec) == 2:
            low, high = spec
            return cls(low=low or 0, high=high)
        raise TypeError(f"cannot interpret {spec!r} as a call count")

    def permits_another(self, hit_count: int) -> bool:
        return self.high is None or hit_count < self.high

    def is_satisfied(self, hit_count: int) -> bool:
        if hit_count < self.low:
            return False
        return self.high is None or hit_count <= self.high

    def __str__(self) -> str:
        if self.high is None:
            return f"AtLeast({self.low})" if self.low else "Any"
        if self.low == self.high:
            return f"Exactly({self.high})"
        if self.low == 0:
            return f"AtMost({self.high})"
        return f"Between({self.low}..={self.high})"
