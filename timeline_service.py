from __future__ import annotations

import datetime
from typing import Dict, Iterable, List, Optional

from models import DayGroup, Session, WeekGroup
from tools import LocalCalendar, MathTools, normalize_name

EMPTY_SUMMARY = "No exercises logged"


class TimelineService:
    """Build the history feed: day and week groups plus card strings."""

    def __init__(self, calendar: LocalCalendar | None = None) -> None:
        self.calendar = calendar or LocalCalendar()

    def _group(self, sessions: Iterable[Session], bucket) -> List[tuple]:
        buckets: Dict[datetime.datetime, List[Session]] = {}
        for session in sessions:
            buckets.setdefault(bucket(session.started_at), []).append(session)
        result = []
        for start in sorted(buckets, reverse=True):
            ordered = sorted(
                buckets[start], key=lambda s: (s.started_at, s.id), reverse=True
            )
            result.append((start, ordered))
        return result

    def group_by_day(self, sessions: Iterable[Session]) -> List[DayGroup]:
        return [
            DayGroup(day_start=start, sessions=items)
            for start, items in self._group(sessions, self.calendar.start_of_day)
        ]

    def group_by_week(self, sessions: Iterable[Session]) -> List[WeekGroup]:
        return [
            WeekGroup(week_start=start, sessions=items)
            for start, items in self._group(sessions, self.calendar.start_of_week)
        ]

    @staticmethod
    def week_label(week_start: datetime.datetime) -> str:
        """Render a week as ``"Mar 3 - Mar 9"``."""
        week_end = week_start + datetime.timedelta(days=6)
        return f"{week_start:%b} {week_start.day} - {week_end:%b} {week_end.day}"

    @staticmethod
    def summary_lines(session: Session, max_lines: int = 3) -> List[str]:
        """One ``"{sets}x {name}"`` line per exercise, capped at ``max_lines``.

        When the cap is exceeded the last visible line becomes
        ``"+N more"`` so the card never grows past ``max_lines`` rows.
        """
        entries = session.ordered_entries()
        if not entries:
            return [EMPTY_SUMMARY]
        lines = [f"{len(entry.sets)}x {entry.exercise_name}" for entry in entries]
        max_lines = max(1, max_lines)
        if len(lines) <= max_lines:
            return lines
        visible = lines[: max_lines - 1]
        visible.append(f"+{len(lines) - len(visible)} more")
        return visible

    @staticmethod
    def duration_label(session: Session) -> Optional[str]:
        duration = session.duration
        if duration is None:
            return None
        minutes = max(0, int(duration.total_seconds() // 60))
        if minutes < 1:
            return "<1m"
        if minutes < 60:
            return f"{minutes}m"
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes:02d}m"

    @staticmethod
    def filter_sessions(
        sessions: Iterable[Session],
        category_id: int | None = None,
        exercise_name: str | None = None,
    ) -> List[Session]:
        """Finished sessions matching the history filters."""
        key = normalize_name(exercise_name)
        result = []
        for session in sessions:
            if session.ended_at is None:
                continue
            if category_id is not None and session.category_id != category_id:
                continue
            if key and not any(
                normalize_name(e.exercise_name) == key for e in session.entries
            ):
                continue
            result.append(session)
        return result

    @staticmethod
    def session_caption(session: Session) -> str:
        exercises = len(session.entries)
        sets = sum(len(e.sets) for e in session.entries)
        volume = MathTools.volume(
            (s.reps, s.weight) for e in session.entries for s in e.sets
        )
        return f"{exercises} exercises • {sets} sets • {volume:,.0f} volume"
