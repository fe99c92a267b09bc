"""Record types shared by the store and the services."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Category:
    """Workout type a session can be filed under."""

    id: int
    name: str
    is_built_in: bool
    is_archived: bool
    created_at: datetime.datetime
    sort_order: int
    color_hex: Optional[str] = None
    icon_token: Optional[str] = None


@dataclass
class SetEntry:
    id: int
    exercise_id: int
    set_index: int
    reps: int
    weight: float
    is_warmup: bool
    notes: str
    logged_at: datetime.datetime

    @property
    def volume(self) -> float:
        return self.reps * self.weight


@dataclass
class ExerciseEntry:
    id: int
    session_id: int
    exercise_name: str
    order_index: int
    notes: str
    sets: List[SetEntry] = field(default_factory=list)

    def ordered_sets(self) -> List[SetEntry]:
        return sorted(self.sets, key=lambda s: (s.set_index, s.logged_at, s.id))


@dataclass
class Session:
    """A workout session; ``ended_at is None`` marks the active one."""

    id: int
    started_at: datetime.datetime
    ended_at: Optional[datetime.datetime]
    category_id: Optional[int]
    notes: str
    entries: List[ExerciseEntry] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def duration(self) -> Optional[datetime.timedelta]:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def ordered_entries(self) -> List[ExerciseEntry]:
        return sorted(self.entries, key=lambda e: (e.order_index, e.id))


@dataclass(frozen=True)
class RemovedSetSnapshot:
    """Values of a deleted set, kept so the delete can be undone."""

    exercise_id: int
    set_index: int
    reps: int
    weight: float
    is_warmup: bool
    notes: str
    logged_at: datetime.datetime


@dataclass(frozen=True)
class PreviousReference:
    weight: float
    reps: int
    logged_at: datetime.datetime
    exercise_name: str
    session_id: int


@dataclass(frozen=True)
class RepairReport:
    sessions_touched: int = 0
    total_fixes: int = 0

    @property
    def has_fixes(self) -> bool:
        return self.total_fixes > 0


class TrendDirection(enum.Enum):
    UP = "up"
    FLAT = "flat"
    DOWN = "down"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class DateInterval:
    """Closed interval ``[start, end]``."""

    start: datetime.datetime
    end: datetime.datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("interval end must not precede its start")

    def contains(self, moment: datetime.datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class PerformancePoint:
    session_id: int
    date: datetime.datetime
    top_set_weight: float
    estimated_one_rep_max: float
    total_volume: float
    set_count: int


@dataclass(frozen=True)
class WeeklyVolumePoint:
    week_start: datetime.datetime
    volume: float


@dataclass(frozen=True)
class DashboardSnapshot:
    performance_points: List[PerformancePoint] = field(default_factory=list)
    weekly_volume_points: List[WeeklyVolumePoint] = field(default_factory=list)
    trend: TrendDirection = TrendDirection.INSUFFICIENT_DATA
    last_workout_date: Optional[datetime.datetime] = None
    best_weight: Optional[float] = None
    best_estimated_one_rep_max: Optional[float] = None
    recent_average_top_set: Optional[float] = None
    previous_average_top_set: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not self.performance_points


@dataclass(frozen=True)
class ExerciseOption:
    id: str
    label: str


@dataclass
class DayGroup:
    day_start: datetime.datetime
    sessions: List[Session]


@dataclass
class WeekGroup:
    week_start: datetime.datetime
    sessions: List[Session]
