from __future__ import annotations

import datetime
import logging
from typing import Callable, List, Optional

from db import Database, SessionRepository, utcnow
from errors import ActiveSessionExistsError, EmptyExerciseNameError
from models import (
    Category,
    ExerciseEntry,
    RemovedSetSnapshot,
    Session,
    SetEntry,
)
from tools import MathTools

logger = logging.getLogger(__name__)


class SessionService:
    """Owns every mutation of sessions, exercises and sets.

    Each public operation runs in a single store transaction. Entity objects
    handed in by the caller are refreshed from the store once the transaction
    has committed, so they never reflect a half-applied change.
    """

    def __init__(
        self,
        db: Database,
        session_repo: SessionRepository | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.db = db
        self.sessions = session_repo or SessionRepository(db)
        self.entries = self.sessions.entries
        self.sets = self.entries.sets
        self.clock = clock or utcnow

    def _refresh_session(self, session: Session) -> Session:
        fresh = self.sessions.fetch(session.id)
        session.started_at = fresh.started_at
        session.ended_at = fresh.ended_at
        session.category_id = fresh.category_id
        session.notes = fresh.notes
        session.entries = fresh.entries
        return session

    def _refresh_entry(self, entry: ExerciseEntry) -> ExerciseEntry:
        fresh = self.entries.fetch(entry.id)
        entry.exercise_name = fresh.exercise_name
        entry.order_index = fresh.order_index
        entry.notes = fresh.notes
        entry.sets = fresh.sets
        return entry

    def _reindex_entries(self, session_id: int) -> None:
        for index, entry in enumerate(self.entries.fetch_for_session(session_id)):
            if entry.order_index != index:
                self.entries.set_order_index(entry.id, index)

    def _reindex_sets(self, exercise_id: int) -> None:
        for index, item in enumerate(self.sets.fetch_for_exercise(exercise_id), start=1):
            if item.set_index != index:
                self.sets.set_index(item.id, index)

    # sessions

    def active_session(self) -> Optional[Session]:
        return self.sessions.fetch_active()

    def start_session(
        self,
        category: Category | None = None,
        notes: str = "",
        started_at: datetime.datetime | None = None,
    ) -> Session:
        return self._open_session(
            category.id if category is not None else None, notes, started_at
        )

    def _open_session(
        self,
        category_id: int | None,
        notes: str,
        started_at: datetime.datetime | None = None,
    ) -> Session:
        with self.db.transaction():
            if self.sessions.fetch_active() is not None:
                raise ActiveSessionExistsError()
            session_id = self.sessions.create(
                started_at or self.clock(), None, category_id, (notes or "").strip()
            )
        logger.info("started session %d", session_id)
        return self.sessions.fetch(session_id)

    def finish_session(
        self, session: Session, ended_at: datetime.datetime | None = None
    ) -> Session:
        """Close ``session``; the end time never precedes the start time."""
        current = self.sessions.fetch(session.id)
        if current.ended_at is not None:
            logger.debug("session %d is already finished", session.id)
            return self._refresh_session(session)
        ended_at = ended_at or self.clock()
        if ended_at < current.started_at:
            ended_at = current.started_at
        with self.db.transaction():
            self.sessions.set_end_time(session.id, ended_at)
        logger.info("finished session %d", session.id)
        return self._refresh_session(session)

    def update_session_notes(self, session: Session, notes: str) -> Session:
        with self.db.transaction():
            self.sessions.set_notes(session.id, (notes or "").strip())
        return self._refresh_session(session)

    def delete_session(self, session: Session) -> None:
        with self.db.transaction():
            self.sessions.delete(session.id)
        logger.info("deleted session %d", session.id)

    def duplicate_session(self, source: Session) -> Session:
        """Copy ``source`` into a finished session of equal length ending now."""
        original = self.sessions.fetch(source.id)
        ended_at = self.clock()
        duration = datetime.timedelta(0)
        if original.ended_at is not None:
            duration = max(datetime.timedelta(0), original.ended_at - original.started_at)
        started_at = ended_at - duration
        with self.db.transaction():
            new_id = self.sessions.create(
                started_at, ended_at, original.category_id, original.notes
            )
            for entry in original.ordered_entries():
                entry_id = self.entries.add(
                    new_id, entry.exercise_name, entry.order_index, entry.notes
                )
                for item in entry.ordered_sets():
                    offset = item.logged_at - original.started_at
                    offset = MathTools.clamp(offset, datetime.timedelta(0), duration)
                    self.sets.add(
                        entry_id,
                        item.set_index,
                        item.reps,
                        item.weight,
                        item.is_warmup,
                        item.notes,
                        started_at + offset,
                    )
        logger.info("duplicated session %d as %d", source.id, new_id)
        return self.sessions.fetch(new_id)

    def start_session_from(self, source: Session) -> Session:
        """Open a new session with the exercises of ``source`` but no sets."""
        original = self.sessions.fetch(source.id)
        with self.db.transaction():
            session = self._open_session(original.category_id, original.notes)
            for entry in original.ordered_entries():
                self.add_exercise(session, entry.exercise_name, entry.notes)
        return self._refresh_session(session)

    # exercises

    def add_exercise(self, session: Session, name: str, notes: str = "") -> ExerciseEntry:
        trimmed = (name or "").strip()
        if not trimmed:
            raise EmptyExerciseNameError()
        with self.db.transaction():
            current = self.entries.max_order_index(session.id)
            order_index = 0 if current is None else current + 1
            entry_id = self.entries.add(
                session.id, trimmed, order_index, (notes or "").strip()
            )
        self._refresh_session(session)
        return self.entries.fetch(entry_id)

    def remove_exercise(self, entry: ExerciseEntry, session: Session) -> Session:
        with self.db.transaction():
            self.entries.remove(entry.id)
            self._reindex_entries(session.id)
        return self._refresh_session(session)

    def rename_exercise(self, entry: ExerciseEntry, name: str) -> ExerciseEntry:
        trimmed = (name or "").strip()
        if not trimmed:
            raise EmptyExerciseNameError()
        with self.db.transaction():
            self.entries.update_name(entry.id, trimmed)
        return self._refresh_entry(entry)

    def update_exercise_notes(self, entry: ExerciseEntry, notes: str) -> ExerciseEntry:
        with self.db.transaction():
            self.entries.update_notes(entry.id, (notes or "").strip())
        return self._refresh_entry(entry)

    # sets

    def add_set(
        self,
        entry: ExerciseEntry,
        reps: int = 0,
        weight: float = 0.0,
        is_warmup: bool = False,
        notes: str = "",
        logged_at: datetime.datetime | None = None,
    ) -> SetEntry:
        with self.db.transaction():
            current = self.sets.max_set_index(entry.id)
            set_index = 1 if current is None else current + 1
            set_id = self.sets.add(
                entry.id,
                set_index,
                MathTools.sanitize_reps(reps),
                MathTools.sanitize_weight(weight),
                bool(is_warmup),
                (notes or "").strip(),
                logged_at or self.clock(),
            )
        self._refresh_entry(entry)
        return self.sets.fetch(set_id)

    def update_set(
        self,
        set_entry: SetEntry,
        reps: int | None = None,
        weight: float | None = None,
        is_warmup: bool | None = None,
        notes: str | None = None,
    ) -> SetEntry:
        current = self.sets.fetch(set_entry.id)
        new_reps = current.reps if reps is None else MathTools.sanitize_reps(reps)
        new_weight = current.weight if weight is None else MathTools.sanitize_weight(weight)
        new_warmup = current.is_warmup if is_warmup is None else bool(is_warmup)
        new_notes = current.notes if notes is None else notes.strip()
        with self.db.transaction():
            self.sets.update(set_entry.id, new_reps, new_weight, new_warmup, new_notes)
        set_entry.reps = new_reps
        set_entry.weight = new_weight
        set_entry.is_warmup = new_warmup
        set_entry.notes = new_notes
        return set_entry

    def repeat_last_set(self, entry: ExerciseEntry) -> Optional[SetEntry]:
        existing = self.sets.fetch_for_exercise(entry.id)
        if not existing:
            return None
        last = max(existing, key=lambda s: (s.logged_at, s.set_index, s.id))
        return self.add_set(
            entry,
            reps=last.reps,
            weight=last.weight,
            is_warmup=last.is_warmup,
            notes=last.notes,
        )

    def remove_set(self, set_entry: SetEntry, entry: ExerciseEntry) -> RemovedSetSnapshot:
        current = self.sets.fetch(set_entry.id)
        snapshot = RemovedSetSnapshot(
            exercise_id=entry.id,
            set_index=current.set_index,
            reps=current.reps,
            weight=current.weight,
            is_warmup=current.is_warmup,
            notes=current.notes,
            logged_at=current.logged_at,
        )
        with self.db.transaction():
            self.sets.remove(set_entry.id)
            self._reindex_sets(entry.id)
        self._refresh_entry(entry)
        return snapshot

    def restore_set(self, snapshot: RemovedSetSnapshot) -> Optional[SetEntry]:
        """Undo a :meth:`remove_set`; ``None`` if the exercise is gone."""
        if not self.entries.exists(snapshot.exercise_id):
            return None
        with self.db.transaction():
            set_id = self.sets.add(
                snapshot.exercise_id,
                snapshot.set_index,
                snapshot.reps,
                snapshot.weight,
                snapshot.is_warmup,
                snapshot.notes,
                snapshot.logged_at,
            )
            self._reindex_sets(snapshot.exercise_id)
        return self.sets.fetch(set_id)

    # totals used by the history cards

    @staticmethod
    def set_count(session: Session) -> int:
        return sum(len(entry.sets) for entry in session.entries)

    @staticmethod
    def total_volume(session: Session) -> float:
        return MathTools.volume(
            (item.reps, item.weight) for entry in session.entries for item in entry.sets
        )

    @staticmethod
    def exercise_names(session: Session) -> List[str]:
        return [entry.exercise_name for entry in session.ordered_entries()]
