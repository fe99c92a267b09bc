import os
import sqlite3
import sys
import datetime

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, SessionRepository
from errors import PersistenceError, RecordNotFoundError


class TestSchemaMigration:
    def test_upgrades_legacy_sessions_table(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE sessions (id INTEGER PRIMARY KEY AUTOINCREMENT, started_at TEXT NOT NULL, ended_at TEXT)"
        )
        conn.execute(
            "INSERT INTO sessions (started_at, ended_at) VALUES (?, ?)",
            ("2024-01-01T10:00:00.000000+00:00", "2024-01-01T11:00:00.000000+00:00"),
        )
        conn.commit()
        conn.close()

        db = Database(str(db_file))
        session = SessionRepository(db).fetch(1)
        assert session.notes == ""
        assert session.category_id is None
        assert session.started_at == datetime.datetime(2024, 1, 1, 10, tzinfo=datetime.timezone.utc)
        db.close()

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='sessions_old'"
        )
        assert cur.fetchone() is None
        cols = [row[1] for row in conn.execute("PRAGMA table_info(sessions)").fetchall()]
        assert cols == ["id", "started_at", "ended_at", "category_id", "notes"]
        conn.close()

    def test_reopen_keeps_data(self, tmp_path):
        path = str(tmp_path / "workout.db")
        db = Database(path)
        repo = SessionRepository(db)
        sid = repo.create(datetime.datetime(2024, 2, 1, tzinfo=datetime.timezone.utc), notes="legs")
        db.close()
        db = Database(path)
        assert SessionRepository(db).fetch(sid).notes == "legs"
        db.close()


class TestTransactions:
    def setup_method(self):
        self.db = Database(":memory:")
        self.repo = SessionRepository(self.db)
        self.start = datetime.datetime(2024, 2, 1, tzinfo=datetime.timezone.utc)

    def teardown_method(self):
        self.db.close()

    def test_in_memory_flag(self):
        assert self.db.in_memory

    def test_rollback_on_error(self):
        with pytest.raises(RuntimeError):
            with self.db.transaction():
                self.repo.create(self.start)
                raise RuntimeError("boom")
        assert self.repo.fetch_all_sessions() == []

    def test_nested_joins_outer(self):
        with pytest.raises(RuntimeError):
            with self.db.transaction():
                with self.db.transaction():
                    self.repo.create(self.start)
                assert len(self.repo.fetch_all_sessions()) == 1
                raise RuntimeError("boom")
        assert self.repo.fetch_all_sessions() == []

    def test_sqlite_errors_are_wrapped(self):
        with pytest.raises(PersistenceError):
            self.repo.execute("INSERT INTO missing_table VALUES (1);")

    def test_cascade_delete(self):
        sid = self.repo.create(self.start, self.start)
        eid = self.repo.entries.add(sid, "Squat", 0)
        self.repo.entries.sets.add(eid, 1, 5, 100.0, logged_at=self.start)
        self.repo.delete(sid)
        assert self.repo.fetch_all("SELECT COUNT(*) FROM exercise_entries;")[0][0] == 0
        assert self.repo.fetch_all("SELECT COUNT(*) FROM set_entries;")[0][0] == 0

    def test_missing_records(self):
        with pytest.raises(RecordNotFoundError):
            self.repo.fetch(42)
        with pytest.raises(RecordNotFoundError):
            self.repo.delete(42)
