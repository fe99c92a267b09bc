import datetime
import math
import unicodedata
from typing import Iterable, List, Tuple

import numpy as np


def normalize_name(name: str | None) -> str:
    """Return the comparison key for an exercise or category name.

    Surrounding whitespace is trimmed, then the text is case-folded and
    stripped of diacritics so ``"  Tríceps "`` and ``"TRICEPS"`` compare equal.
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name.strip())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0
    TREND_MIN_THRESHOLD: float = 1.0
    TREND_RELATIVE_THRESHOLD: float = 0.005

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def sanitize_reps(reps: int | None) -> int:
        """Return ``reps`` as a non-negative integer."""
        if reps is None:
            return 0
        try:
            reps = int(reps)
        except (TypeError, ValueError):
            return 0
        return max(0, reps)

    @staticmethod
    def sanitize_weight(weight: float | None) -> float:
        """Return ``weight`` as a finite, non-negative float.

        Unparseable stored values count as ``0.0``.
        """
        if weight is None:
            return 0.0
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(weight) or weight < 0:
            return 0.0
        return weight

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        weight = cls.sanitize_weight(weight)
        reps = cls.sanitize_reps(reps)
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @staticmethod
    def volume(sets: Iterable[Tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol

    @staticmethod
    def mean(values: List[float]) -> float | None:
        if not values:
            return None
        return float(np.mean(np.array(values, dtype=float)))

    @staticmethod
    def linear_regression_slope(x: List[float], y: List[float]) -> float | None:
        """Return the least-squares slope of ``y`` against ``x``.

        ``None`` signals a degenerate fit (fewer than two points or all ``x``
        identical).
        """
        if len(x) < 2 or len(x) != len(y):
            return None
        x_arr = np.array(x, dtype=float)
        y_arr = np.array(y, dtype=float)
        x_mean = np.mean(x_arr)
        y_mean = np.mean(y_arr)
        num = np.sum((x_arr - x_mean) * (y_arr - y_mean))
        den = np.sum((x_arr - x_mean) ** 2)
        if den == 0:
            return None
        return float(num / den)

    @classmethod
    def trend_threshold(cls, values: List[float]) -> float:
        """Minimum slope magnitude that counts as a real trend."""
        avg = cls.mean(values) or 0.0
        return max(cls.TREND_MIN_THRESHOLD, abs(avg) * cls.TREND_RELATIVE_THRESHOLD)


class LocalCalendar:
    """Calendar used for day and week bucketing in the user's local time."""

    def __init__(
        self,
        tz: datetime.tzinfo | None = None,
        first_weekday: int = 0,
    ) -> None:
        if not 0 <= first_weekday <= 6:
            raise ValueError("first_weekday must be between 0 (Monday) and 6 (Sunday)")
        self.tz = tz
        self.first_weekday = first_weekday

    def localize(self, moment: datetime.datetime) -> datetime.datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=datetime.timezone.utc)
        return moment.astimezone(self.tz)

    def _midnight(self, day: datetime.date) -> datetime.datetime:
        # resolve the offset for that date, not for the input moment (DST)
        naive = datetime.datetime.combine(day, datetime.time())
        if self.tz is None:
            return naive.astimezone()
        return naive.replace(tzinfo=self.tz)

    def start_of_day(self, moment: datetime.datetime) -> datetime.datetime:
        return self._midnight(self.localize(moment).date())

    def start_of_week(self, moment: datetime.datetime) -> datetime.datetime:
        day = self.localize(moment).date()
        offset = (day.weekday() - self.first_weekday) % 7
        return self._midnight(day - datetime.timedelta(days=offset))
