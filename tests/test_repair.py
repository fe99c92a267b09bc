import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, SessionRepository
from repair_service import DataIntegrityService, PLACEHOLDER_EXERCISE_NAME
from session_service import SessionService

UTC = datetime.timezone.utc
T0 = datetime.datetime(2024, 6, 3, 7, 30, tzinfo=UTC)


class DataIntegrityServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = Database(":memory:")
        self.repo = SessionRepository(self.db)
        self.sessions = SessionService(self.db, self.repo)
        self.service = DataIntegrityService(self.db, self.repo)

        self.session = self.sessions.start_session(started_at=T0)
        self.first = self.sessions.add_exercise(self.session, "Press")
        self.second = self.sessions.add_exercise(self.session, "Pulldown")
        self.set_a = self.sessions.add_set(self.first, 5, 60, logged_at=T0)
        self.set_b = self.sessions.add_set(
            self.first, 5, 62.5, logged_at=T0 + datetime.timedelta(minutes=3)
        )
        self.sessions.finish_session(self.session, ended_at=T0 + datetime.timedelta(hours=1))
        self.other = self.sessions.start_session(started_at=T0 + datetime.timedelta(days=1))
        self.sessions.finish_session(
            self.other, ended_at=T0 + datetime.timedelta(days=1, hours=1)
        )

    def tearDown(self) -> None:
        self.db.close()

    def _corrupt(self) -> None:
        self.repo.set_notes(self.session.id, "  hi  ")
        self.repo.set_end_time(self.session.id, T0 - datetime.timedelta(hours=1))
        self.repo.execute(
            "UPDATE exercise_entries SET exercise_name = '  ', order_index = 5 WHERE id = ?;",
            (self.second.id,),
        )
        self.repo.execute(
            "UPDATE set_entries SET reps = -2, weight = -10 WHERE id = ?;",
            (self.set_a.id,),
        )
        self.repo.execute(
            "UPDATE set_entries SET set_index = 7 WHERE id = ?;", (self.set_b.id,)
        )

    def test_clean_data_is_untouched(self) -> None:
        report = self.service.repair()
        self.assertFalse(report.has_fixes)
        self.assertEqual(report.total_fixes, 0)
        self.assertEqual(report.sessions_touched, 0)

    def test_repairs_in_one_pass(self) -> None:
        self._corrupt()
        report = self.service.repair()
        self.assertTrue(report.has_fixes)
        self.assertEqual(report.total_fixes, 7)
        self.assertEqual(report.sessions_touched, 1)

        session = self.repo.fetch(self.session.id)
        self.assertEqual(session.notes, "hi")
        self.assertEqual(session.ended_at, session.started_at)
        entries = session.ordered_entries()
        self.assertEqual([e.order_index for e in entries], [0, 1])
        self.assertEqual(entries[1].exercise_name, PLACEHOLDER_EXERCISE_NAME)
        sets = entries[0].ordered_sets()
        self.assertEqual([(s.set_index, s.reps, s.weight) for s in sets], [(1, 0, 0.0), (2, 5, 62.5)])

    def test_repair_is_idempotent(self) -> None:
        self._corrupt()
        self.service.repair()
        again = self.service.repair()
        self.assertFalse(again.has_fixes)
        self.assertEqual(again.sessions_touched, 0)

    def test_non_numeric_values_are_zeroed(self) -> None:
        self.repo.execute(
            "UPDATE set_entries SET weight = 'abc', reps = 'x' WHERE id = ?;",
            (self.set_a.id,),
        )
        report = self.service.repair()
        self.assertEqual(report.total_fixes, 2)
        stored = self.repo.entries.sets.fetch(self.set_a.id)
        self.assertEqual((stored.reps, stored.weight), (0, 0.0))
        self.assertFalse(self.service.repair().has_fixes)

    def test_set_index_gaps_ordered_by_log_time(self) -> None:
        self.repo.execute("UPDATE set_entries SET set_index = 3;")
        report = self.service.repair()
        # both sets share index 3, the earlier log time keeps the first slot
        self.assertEqual(report.total_fixes, 2)
        sets = self.repo.entries.sets.fetch_for_exercise(self.first.id)
        self.assertEqual([(s.id, s.set_index) for s in sets], [(self.set_a.id, 1), (self.set_b.id, 2)])


if __name__ == "__main__":
    unittest.main()
