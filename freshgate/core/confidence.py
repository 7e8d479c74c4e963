"""Confidence model: (extraction method, estimated date, now) -> score in [0, 1].

Each estimator carries its own :class:`ConfidenceModel`. The score is the
method's base rate multiplied by an age factor (how far the estimate lies
behind ``now``) and, optionally, an hour-of-day bonus.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Mapping, Optional, Sequence


@dataclass(frozen=True)
class AgeBand:
    """Estimates at most ``max_hours`` old are scaled by ``factor``."""
    max_hours: float
    factor: float


@dataclass(frozen=True)
class HourBonus:
    """Scale estimates whose hour-of-day falls in ``hours`` by ``factor``."""
    hours: FrozenSet[int]
    factor: float


@dataclass(frozen=True)
class ConfidenceModel:
    """
    Per-estimator confidence parameters.

    Attributes:
        base_rates: Base score per extraction method name.
        age_bands: Ascending bands; the first band covering the estimate's age applies.
        stale_factor: Factor for estimates older than every band.
        future_factor: Factor for estimates lying in the future.
        default_base: Base score for methods missing from ``base_rates``.
        hour_bonus: Optional hour-of-day multiplier.
    """
    base_rates: Mapping[str, float]
    age_bands: Sequence[AgeBand] = field(default_factory=tuple)
    stale_factor: float = 0.5
    future_factor: float = 0.2
    default_base: float = 0.5
    hour_bonus: Optional[HourBonus] = None

    def base_rate(self, method: str) -> float:
        return self.base_rates.get(method, self.default_base)

    def score(self, method: str, estimated: datetime, now: datetime) -> float:
        """Return the clamped confidence for an estimate produced by ``method``."""
        score = self.base_rate(method)

        if self.hour_bonus is not None and estimated.hour in self.hour_bonus.hours:
            score *= self.hour_bonus.factor

        # Whole hours, truncated toward zero: anything under an hour ahead is not "future".
        hours_behind = int((now - estimated).total_seconds() / 3600)
        if hours_behind < 0:
            score *= self.future_factor
        else:
            for band in self.age_bands:
                if hours_behind <= band.max_hours:
                    score *= band.factor
                    break
            else:
                score *= self.stale_factor

        return min(1.0, max(0.0, score))
