import logging
from collections import defaultdict
from typing import Dict, List, Set, Tuple

from db import Database, SessionRepository, from_db_timestamp
from models import RepairReport
from tools import MathTools

logger = logging.getLogger(__name__)

PLACEHOLDER_EXERCISE_NAME = "Untitled Exercise"


class DataIntegrityService:
    """Startup sweep that brings stored records back within their invariants.

    Earlier schema versions and interrupted writes can leave negative numbers,
    blank names, gaps in ordering or sessions that end before they start. The
    sweep fixes all of these in one transaction and is a no-op on clean data.
    """

    def __init__(self, db: Database, session_repo: SessionRepository | None = None) -> None:
        self.db = db
        self.sessions = session_repo or SessionRepository(db)
        self.entries = self.sessions.entries
        self.sets = self.entries.sets

    def repair(self) -> RepairReport:
        touched: Set[int] = set()
        fixes = 0
        with self.db.transaction():
            fixes += self._repair_sessions(touched)
            entry_sessions, entry_fixes = self._repair_entries(touched)
            fixes += entry_fixes
            fixes += self._repair_sets(entry_sessions, touched)
        report = RepairReport(sessions_touched=len(touched), total_fixes=fixes)
        if report.has_fixes:
            logger.info(
                "repaired %d records across %d sessions",
                report.total_fixes,
                report.sessions_touched,
            )
        else:
            logger.debug("integrity check found nothing to repair")
        return report

    def _repair_sessions(self, touched: Set[int]) -> int:
        fixes = 0
        rows = self.sessions.fetch_all(
            "SELECT id, started_at, ended_at, notes FROM sessions ORDER BY id;"
        )
        for sid, started_at, ended_at, notes in rows:
            clean_notes = (notes or "").strip()
            if clean_notes != notes:
                self.sessions.set_notes(sid, clean_notes)
                fixes += 1
                touched.add(sid)
            start = from_db_timestamp(started_at)
            end = from_db_timestamp(ended_at)
            if end is not None and end < start:
                self.sessions.set_end_time(sid, start)
                fixes += 1
                touched.add(sid)
        return fixes

    def _repair_entries(self, touched: Set[int]) -> Tuple[Dict[int, int], int]:
        fixes = 0
        rows = self.entries.fetch_all(
            "SELECT id, session_id, exercise_name, order_index, notes FROM exercise_entries;"
        )
        entry_sessions: Dict[int, int] = {}
        by_session: Dict[int, List[Tuple[int, int]]] = defaultdict(list)
        for eid, session_id, name, order_index, notes in rows:
            entry_sessions[eid] = session_id
            if not (name or "").strip():
                self.entries.update_name(eid, PLACEHOLDER_EXERCISE_NAME)
                fixes += 1
                touched.add(session_id)
            clean_notes = (notes or "").strip()
            if clean_notes != notes:
                self.entries.update_notes(eid, clean_notes)
                fixes += 1
                touched.add(session_id)
            by_session[session_id].append((order_index, eid))

        for session_id, items in by_session.items():
            ordered = sorted(items, key=lambda item: (item[0] if item[0] is not None else 0, item[1]))
            for index, (order_index, eid) in enumerate(ordered):
                if order_index != index:
                    self.entries.set_order_index(eid, index)
                    fixes += 1
                    touched.add(session_id)
        return entry_sessions, fixes

    def _repair_sets(self, entry_sessions: Dict[int, int], touched: Set[int]) -> int:
        fixes = 0
        rows = self.sets.fetch_all(
            "SELECT id, exercise_id, set_index, reps, weight, is_warmup, notes, logged_at FROM set_entries;"
        )
        by_entry: Dict[int, List[Tuple]] = defaultdict(list)
        for sid, exercise_id, set_index, reps, weight, warmup, notes, logged_at in rows:
            session_id = entry_sessions.get(exercise_id)
            clean_reps = MathTools.sanitize_reps(reps)
            clean_weight = MathTools.sanitize_weight(weight)
            clean_notes = (notes or "").strip()
            changed = 0
            if clean_reps != reps:
                changed += 1
            if clean_weight != weight:
                changed += 1
            if clean_notes != notes:
                changed += 1
            if changed:
                self.sets.update(sid, clean_reps, clean_weight, bool(warmup), clean_notes)
                fixes += changed
                if session_id is not None:
                    touched.add(session_id)
            by_entry[exercise_id].append((set_index, logged_at or "", sid))

        for exercise_id, items in by_entry.items():
            ordered = sorted(items, key=lambda item: (item[0] if item[0] is not None else 0, item[1], item[2]))
            for index, (set_index, _, sid) in enumerate(ordered, start=1):
                if set_index != index:
                    self.sets.set_index(sid, index)
                    fixes += 1
                    session_id = entry_sessions.get(exercise_id)
                    if session_id is not None:
                        touched.add(session_id)
        return fixes
