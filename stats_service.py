from __future__ import annotations

import datetime
import enum
import logging
import threading
from typing import Dict, Iterable, List, Optional

import pandas as pd

from db import utcnow
from models import (
    DashboardSnapshot,
    DateInterval,
    ExerciseOption,
    PerformancePoint,
    Session,
    SetEntry,
    TrendDirection,
    WeeklyVolumePoint,
)
from tools import LocalCalendar, MathTools, normalize_name

logger = logging.getLogger(__name__)


class DateRangePreset(enum.Enum):
    FOUR_WEEKS = "4W"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    ALL = "All"

    @property
    def label(self) -> str:
        return self.value

    def interval(self, reference: datetime.datetime | None = None) -> Optional[DateInterval]:
        """Return the window ending at ``reference``; ``None`` means all time."""
        offset = _PRESET_OFFSETS.get(self)
        if offset is None:
            return None
        end = reference or utcnow()
        start = (pd.Timestamp(end) - offset).to_pydatetime()
        return DateInterval(start=start, end=end)


_PRESET_OFFSETS = {
    DateRangePreset.FOUR_WEEKS: pd.DateOffset(weeks=4),
    DateRangePreset.THREE_MONTHS: pd.DateOffset(months=3),
    DateRangePreset.SIX_MONTHS: pd.DateOffset(months=6),
    DateRangePreset.ONE_YEAR: pd.DateOffset(years=1),
}


class StatisticsService:
    """Compute the per-exercise progress dashboard from session history.

    Everything here is a pure function of its arguments: no state is cached
    between calls, so callers can recompute after every data change.
    """

    MIN_TREND_POINTS = 3
    AVERAGE_WINDOW = 4

    def __init__(self, calendar: LocalCalendar | None = None) -> None:
        self.calendar = calendar or LocalCalendar()

    @staticmethod
    def _session_point(session: Session, sets: List[SetEntry]) -> PerformancePoint:
        top = 0.0
        best_1rm = 0.0
        for item in sets:
            weight = MathTools.sanitize_weight(item.weight)
            top = max(top, weight)
            best_1rm = max(best_1rm, MathTools.epley_1rm(weight, item.reps))
        return PerformancePoint(
            session_id=session.id,
            date=session.started_at,
            top_set_weight=top,
            estimated_one_rep_max=best_1rm,
            total_volume=MathTools.volume(
                (MathTools.sanitize_reps(s.reps), MathTools.sanitize_weight(s.weight))
                for s in sets
            ),
            set_count=len(sets),
        )

    def performance_points(
        self,
        sessions: Iterable[Session],
        exercise_name: str,
        interval: DateInterval | None = None,
    ) -> List[PerformancePoint]:
        key = normalize_name(exercise_name)
        if not key:
            return []
        finished = sorted(
            (s for s in sessions if s.ended_at is not None),
            key=lambda s: (s.started_at, s.id),
        )
        points: List[PerformancePoint] = []
        for session in finished:
            if interval is not None and not interval.contains(session.started_at):
                continue
            sets = [
                item
                for entry in session.entries
                if normalize_name(entry.exercise_name) == key
                for item in entry.sets
            ]
            if not sets:
                continue
            points.append(self._session_point(session, sets))
        return points

    def weekly_volume(
        self,
        points: Iterable[PerformancePoint],
        calendar: LocalCalendar | None = None,
    ) -> List[WeeklyVolumePoint]:
        calendar = calendar or self.calendar
        weeks: Dict[datetime.datetime, float] = {}
        for point in points:
            week = calendar.start_of_week(point.date)
            weeks[week] = weeks.get(week, 0.0) + point.total_volume
        return [WeeklyVolumePoint(week_start=w, volume=v) for w, v in sorted(weeks.items())]

    @classmethod
    def classify_trend(cls, top_weights: List[float]) -> TrendDirection:
        if len(top_weights) < cls.MIN_TREND_POINTS:
            return TrendDirection.INSUFFICIENT_DATA
        slope = MathTools.linear_regression_slope(
            list(range(len(top_weights))), top_weights
        )
        if slope is None:
            return TrendDirection.FLAT
        threshold = MathTools.trend_threshold(top_weights)
        if slope > threshold:
            return TrendDirection.UP
        if slope < -threshold:
            return TrendDirection.DOWN
        return TrendDirection.FLAT

    @classmethod
    def block_averages(cls, top_weights: List[float]) -> tuple[Optional[float], Optional[float]]:
        """Return (recent, previous) averages of consecutive top-set blocks."""
        window = cls.AVERAGE_WINDOW
        recent = top_weights[-window:]
        previous = top_weights[:-window][-window:] if len(top_weights) > window else []
        return MathTools.mean(recent), MathTools.mean(previous)

    def make_snapshot(
        self,
        sessions: Iterable[Session],
        exercise_name: str,
        interval: DateInterval | None = None,
        calendar: LocalCalendar | None = None,
    ) -> DashboardSnapshot:
        points = self.performance_points(sessions, exercise_name, interval)
        if not points:
            return DashboardSnapshot()
        top_weights = [p.top_set_weight for p in points]
        recent, previous = self.block_averages(top_weights)
        return DashboardSnapshot(
            performance_points=points,
            weekly_volume_points=self.weekly_volume(points, calendar),
            trend=self.classify_trend(top_weights),
            last_workout_date=points[-1].date,
            best_weight=max(top_weights),
            best_estimated_one_rep_max=max(p.estimated_one_rep_max for p in points),
            recent_average_top_set=recent,
            previous_average_top_set=previous,
        )

    @staticmethod
    def trend_delta(snapshot: DashboardSnapshot) -> Optional[float]:
        if snapshot.recent_average_top_set is None or snapshot.previous_average_top_set is None:
            return None
        return snapshot.recent_average_top_set - snapshot.previous_average_top_set

    @staticmethod
    def exercise_options(sessions: Iterable[Session]) -> List[ExerciseOption]:
        """Distinct exercises with logged sets in finished sessions."""
        mapping: Dict[str, str] = {}
        for session in sessions:
            if session.ended_at is None:
                continue
            for entry in session.ordered_entries():
                if not entry.sets:
                    continue
                key = normalize_name(entry.exercise_name)
                if not key or key in mapping:
                    continue
                trimmed = entry.exercise_name.strip()
                mapping[key] = trimmed or key.title()
        options = [ExerciseOption(id=k, label=v) for k, v in mapping.items()]
        return sorted(options, key=lambda o: (o.label.casefold(), o.id))


class DashboardRecomputer:
    """Explicit recompute entry point with last-request-wins publishing.

    Each request takes a sequence number from :meth:`begin`. A result is only
    published by :meth:`complete` if no newer request has already published,
    so a slow, superseded computation can never overwrite a fresher snapshot.
    """

    def __init__(self, stats: StatisticsService | None = None) -> None:
        self.stats = stats or StatisticsService()
        self._lock = threading.Lock()
        self._issued = 0
        self._applied = 0
        self.snapshot: Optional[DashboardSnapshot] = None

    def begin(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def is_current(self, seq: int) -> bool:
        with self._lock:
            return seq == self._issued

    def complete(self, seq: int, snapshot: DashboardSnapshot) -> bool:
        with self._lock:
            if seq <= self._applied:
                logger.debug("dropping stale dashboard result %d", seq)
                return False
            self._applied = seq
            self.snapshot = snapshot
            return True

    def recompute(
        self,
        sessions: Iterable[Session],
        exercise_name: str,
        interval: DateInterval | None = None,
    ) -> Optional[DashboardSnapshot]:
        seq = self.begin()
        snapshot = self.stats.make_snapshot(list(sessions), exercise_name, interval)
        if self.complete(seq, snapshot):
            return snapshot
        return None
