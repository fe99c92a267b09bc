from typing import Iterable, Optional

from db import Database, ExerciseEntryRepository
from models import PreviousReference, Session
from tools import normalize_name


def _better(candidate: PreviousReference, best: Optional[PreviousReference]) -> bool:
    return best is None or candidate.logged_at > best.logged_at


class PreviousValueLookup:
    """Find the most recent logged set for an exercise name."""

    def __init__(self, db: Database, entry_repo: ExerciseEntryRepository | None = None) -> None:
        self.db = db
        self.entries = entry_repo or ExerciseEntryRepository(db)

    def latest_reference(
        self,
        exercise_name: str,
        excluding_session_id: int | None = None,
    ) -> Optional[PreviousReference]:
        """Return the latest set across all sessions for ``exercise_name``.

        Sets belonging to ``excluding_session_id`` are ignored so the session
        being edited never reports its own sets as "previous".
        """
        key = normalize_name(exercise_name)
        if not key:
            return None
        matching = {
            entry_id: (session_id, name)
            for entry_id, session_id, name in self.entries.fetch_names()
            if session_id != excluding_session_id and normalize_name(name) == key
        }
        if not matching:
            return None
        best: Optional[PreviousReference] = None
        sets = self.entries.sets.fetch_for_exercises(list(matching))
        for entry_id, items in sets.items():
            session_id, name = matching[entry_id]
            for item in items:
                candidate = PreviousReference(
                    weight=item.weight,
                    reps=item.reps,
                    logged_at=item.logged_at,
                    exercise_name=name,
                    session_id=session_id,
                )
                if _better(candidate, best):
                    best = candidate
        return best

    @staticmethod
    def latest_reference_in(
        sessions: Iterable[Session],
        exercise_name: str,
        excluding_session_id: int | None = None,
    ) -> Optional[PreviousReference]:
        """Same scan as :meth:`latest_reference` over already-fetched sessions."""
        key = normalize_name(exercise_name)
        if not key:
            return None
        best: Optional[PreviousReference] = None
        for session in sessions:
            if session.id == excluding_session_id:
                continue
            for entry in session.entries:
                if normalize_name(entry.exercise_name) != key:
                    continue
                for item in entry.sets:
                    candidate = PreviousReference(
                        weight=item.weight,
                        reps=item.reps,
                        logged_at=item.logged_at,
                        exercise_name=entry.exercise_name,
                        session_id=session.id,
                    )
                    if _better(candidate, best):
                        best = candidate
        return best
