import sqlite3
import datetime
import logging
from contextlib import contextmanager
from typing import Iterable, List, Tuple, Optional, Dict

from errors import PersistenceError, RecordNotFoundError
from models import Category, Session, ExerciseEntry, SetEntry

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


def to_db_timestamp(moment: datetime.datetime | None) -> str | None:
    """Serialize ``moment`` as a sortable UTC ISO string."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(text: str | None) -> datetime.datetime | None:
    """Return ``text`` as timezone-aware datetime in UTC."""
    if not text:
        return None
    dt = datetime.datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "categories": (
            """CREATE TABLE categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    is_built_in INTEGER NOT NULL DEFAULT 0,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    color_hex TEXT,
                    icon_token TEXT
                );""",
            [
                "id",
                "name",
                "is_built_in",
                "is_archived",
                "created_at",
                "sort_order",
                "color_hex",
                "icon_token",
            ],
        ),
        "sessions": (
            """CREATE TABLE sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    category_id INTEGER,
                    notes TEXT NOT NULL DEFAULT '',
                    FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE SET NULL
                );""",
            ["id", "started_at", "ended_at", "category_id", "notes"],
        ),
        "exercise_entries": (
            """CREATE TABLE exercise_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    exercise_name TEXT NOT NULL,
                    order_index INTEGER NOT NULL DEFAULT 0,
                    notes TEXT NOT NULL DEFAULT '',
                    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
                );""",
            ["id", "session_id", "exercise_name", "order_index", "notes"],
        ),
        "set_entries": (
            """CREATE TABLE set_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_id INTEGER NOT NULL,
                    set_index INTEGER NOT NULL DEFAULT 1,
                    reps INTEGER NOT NULL DEFAULT 0,
                    weight REAL NOT NULL DEFAULT 0,
                    is_warmup INTEGER NOT NULL DEFAULT 0,
                    notes TEXT NOT NULL DEFAULT '',
                    logged_at TEXT NOT NULL,
                    FOREIGN KEY(exercise_id) REFERENCES exercise_entries(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "exercise_id",
                "set_index",
                "reps",
                "weight",
                "is_warmup",
                "notes",
                "logged_at",
            ],
        ),
    }

    _INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_sessions_ended ON sessions(ended_at);",
        "CREATE INDEX IF NOT EXISTS idx_entries_session ON exercise_entries(session_id);",
        "CREATE INDEX IF NOT EXISTS idx_sets_exercise ON set_entries(exercise_id);",
    )

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(db_path)
        self._tx_depth = 0
        self._ensure_schema()
        self._conn.execute("PRAGMA foreign_keys=on;")

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def in_memory(self) -> bool:
        return self._db_path == IN_MEMORY

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self):
        """Run the enclosed statements as one all-or-nothing unit.

        Nested calls join the outermost transaction; only the outermost one
        commits or rolls back.
        """
        self._tx_depth += 1
        outermost = self._tx_depth == 1
        try:
            yield self._conn
        except sqlite3.Error as exc:
            self._tx_depth -= 1
            if outermost:
                self._conn.rollback()
            logger.error("store operation failed: %s", exc)
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            self._tx_depth -= 1
            if outermost:
                self._conn.rollback()
            raise
        else:
            self._tx_depth -= 1
            if outermost:
                try:
                    self._conn.commit()
                except sqlite3.Error as exc:
                    self._conn.rollback()
                    logger.error("commit failed: %s", exc)
                    raise PersistenceError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        conn = self._conn
        conn.execute("PRAGMA foreign_keys=off;")
        # keep foreign keys in other tables pointing at the rebuilt table
        conn.execute("PRAGMA legacy_alter_table=on;")
        try:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for sql in self._INDEXES:
                conn.execute(sql)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"schema setup failed: {exc}") from exc
        finally:
            conn.execute("PRAGMA legacy_alter_table=off;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("upgrading table %s from columns %s", table, existing_cols)
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("notes", "exercise_name", "name"):
                        return "''"
                    if col in ("is_built_in", "is_archived", "is_warmup", "reps", "weight"):
                        return "0"
                    if col in ("sort_order", "order_index"):
                        return "0"
                    if col == "set_index":
                        return "1"
                    if col in ("created_at", "started_at", "logged_at"):
                        return "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository:
    """Base repository providing helper methods."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self.db.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self.db.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    @staticmethod
    def _placeholders(values: Iterable) -> str:
        return ", ".join("?" for _ in values)


def _category_from_row(row: Tuple) -> Category:
    (cid, name, built_in, archived, created_at, sort_order, color, icon) = row
    return Category(
        id=int(cid),
        name=name,
        is_built_in=bool(built_in),
        is_archived=bool(archived),
        created_at=from_db_timestamp(created_at),
        sort_order=int(sort_order),
        color_hex=color,
        icon_token=icon,
    )


def _set_from_row(row: Tuple) -> SetEntry:
    (sid, exercise_id, set_index, reps, weight, warmup, notes, logged_at) = row
    return SetEntry(
        id=int(sid),
        exercise_id=int(exercise_id),
        set_index=int(set_index),
        reps=int(reps),
        weight=float(weight),
        is_warmup=bool(warmup),
        notes=notes or "",
        logged_at=from_db_timestamp(logged_at),
    )


def _entry_from_row(row: Tuple) -> ExerciseEntry:
    (eid, session_id, name, order_index, notes) = row
    return ExerciseEntry(
        id=int(eid),
        session_id=int(session_id),
        exercise_name=name or "",
        order_index=int(order_index),
        notes=notes or "",
    )


def _session_from_row(row: Tuple) -> Session:
    (sid, started_at, ended_at, category_id, notes) = row
    return Session(
        id=int(sid),
        started_at=from_db_timestamp(started_at),
        ended_at=from_db_timestamp(ended_at),
        category_id=int(category_id) if category_id is not None else None,
        notes=notes or "",
    )


class CategoryRepository(BaseRepository):
    """Repository for workout type (category) records."""

    _COLUMNS = "id, name, is_built_in, is_archived, created_at, sort_order, color_hex, icon_token"

    def create(
        self,
        name: str,
        sort_order: int,
        is_built_in: bool = False,
        color_hex: str | None = None,
        icon_token: str | None = None,
        created_at: datetime.datetime | None = None,
    ) -> Category:
        created_at = created_at or utcnow()
        cid = self.execute(
            "INSERT INTO categories (name, is_built_in, is_archived, created_at, sort_order, color_hex, icon_token) "
            "VALUES (?, ?, 0, ?, ?, ?, ?);",
            (
                name,
                int(is_built_in),
                to_db_timestamp(created_at),
                sort_order,
                color_hex,
                icon_token,
            ),
        )
        return self.fetch(cid)

    def fetch(self, category_id: int) -> Category:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM categories WHERE id = ?;",
            (category_id,),
        )
        if not rows:
            raise RecordNotFoundError("category", category_id)
        return _category_from_row(rows[0])

    def find(self, category_id: int | None) -> Optional[Category]:
        if category_id is None:
            return None
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM categories WHERE id = ?;",
            (category_id,),
        )
        return _category_from_row(rows[0]) if rows else None

    def fetch_all_categories(self, include_archived: bool = True) -> List[Category]:
        query = f"SELECT {self._COLUMNS} FROM categories"
        if not include_archived:
            query += " WHERE is_archived = 0"
        query += " ORDER BY sort_order, id;"
        return [_category_from_row(r) for r in self.fetch_all(query)]

    def max_sort_order(self) -> int | None:
        rows = self.fetch_all("SELECT MAX(sort_order) FROM categories;")
        value = rows[0][0] if rows else None
        return int(value) if value is not None else None

    def set_name(self, category_id: int, name: str) -> None:
        self.execute(
            "UPDATE categories SET name = ? WHERE id = ?;",
            (name, category_id),
        )

    def set_archived(self, category_id: int, archived: bool = True) -> None:
        self.execute(
            "UPDATE categories SET is_archived = ? WHERE id = ?;",
            (int(archived), category_id),
        )


class SetEntryRepository(BaseRepository):
    """Repository for logged sets."""

    _COLUMNS = "id, exercise_id, set_index, reps, weight, is_warmup, notes, logged_at"

    def add(
        self,
        exercise_id: int,
        set_index: int,
        reps: int,
        weight: float,
        is_warmup: bool = False,
        notes: str = "",
        logged_at: datetime.datetime | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO set_entries (exercise_id, set_index, reps, weight, is_warmup, notes, logged_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                exercise_id,
                set_index,
                reps,
                weight,
                int(is_warmup),
                notes,
                to_db_timestamp(logged_at or utcnow()),
            ),
        )

    def fetch(self, set_id: int) -> SetEntry:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM set_entries WHERE id = ?;",
            (set_id,),
        )
        if not rows:
            raise RecordNotFoundError("set", set_id)
        return _set_from_row(rows[0])

    def fetch_for_exercise(self, exercise_id: int) -> List[SetEntry]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM set_entries WHERE exercise_id = ? "
            "ORDER BY set_index, logged_at, id;",
            (exercise_id,),
        )
        return [_set_from_row(r) for r in rows]

    def fetch_for_exercises(self, exercise_ids: List[int]) -> Dict[int, List[SetEntry]]:
        grouped: Dict[int, List[SetEntry]] = {eid: [] for eid in exercise_ids}
        if not exercise_ids:
            return grouped
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM set_entries "
            f"WHERE exercise_id IN ({self._placeholders(exercise_ids)}) "
            "ORDER BY set_index, logged_at, id;",
            tuple(exercise_ids),
        )
        for row in rows:
            item = _set_from_row(row)
            grouped.setdefault(item.exercise_id, []).append(item)
        return grouped

    def max_set_index(self, exercise_id: int) -> int | None:
        rows = self.fetch_all(
            "SELECT MAX(set_index) FROM set_entries WHERE exercise_id = ?;",
            (exercise_id,),
        )
        value = rows[0][0] if rows else None
        return int(value) if value is not None else None

    def update(
        self,
        set_id: int,
        reps: int,
        weight: float,
        is_warmup: bool,
        notes: str,
    ) -> None:
        self.execute(
            "UPDATE set_entries SET reps = ?, weight = ?, is_warmup = ?, notes = ? WHERE id = ?;",
            (reps, weight, int(is_warmup), notes, set_id),
        )

    def set_index(self, set_id: int, set_index: int) -> None:
        self.execute(
            "UPDATE set_entries SET set_index = ? WHERE id = ?;",
            (set_index, set_id),
        )

    def remove(self, set_id: int) -> None:
        self.execute("DELETE FROM set_entries WHERE id = ?;", (set_id,))


class ExerciseEntryRepository(BaseRepository):
    """Repository for exercises logged inside a session."""

    _COLUMNS = "id, session_id, exercise_name, order_index, notes"

    def __init__(self, db: Database, sets: SetEntryRepository | None = None) -> None:
        super().__init__(db)
        self.sets = sets or SetEntryRepository(db)

    def add(self, session_id: int, name: str, order_index: int, notes: str = "") -> int:
        return self.execute(
            "INSERT INTO exercise_entries (session_id, exercise_name, order_index, notes) VALUES (?, ?, ?, ?);",
            (session_id, name, order_index, notes),
        )

    def _with_sets(self, entries: List[ExerciseEntry]) -> List[ExerciseEntry]:
        sets = self.sets.fetch_for_exercises([e.id for e in entries])
        for entry in entries:
            entry.sets = sets.get(entry.id, [])
        return entries

    def fetch(self, exercise_id: int) -> ExerciseEntry:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercise_entries WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise RecordNotFoundError("exercise", exercise_id)
        return self._with_sets([_entry_from_row(rows[0])])[0]

    def exists(self, exercise_id: int) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM exercise_entries WHERE id = ?;",
            (exercise_id,),
        )
        return bool(rows)

    def fetch_for_session(self, session_id: int) -> List[ExerciseEntry]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercise_entries WHERE session_id = ? "
            "ORDER BY order_index, id;",
            (session_id,),
        )
        return self._with_sets([_entry_from_row(r) for r in rows])

    def fetch_for_sessions(self, session_ids: List[int]) -> Dict[int, List[ExerciseEntry]]:
        grouped: Dict[int, List[ExerciseEntry]] = {sid: [] for sid in session_ids}
        if not session_ids:
            return grouped
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercise_entries "
            f"WHERE session_id IN ({self._placeholders(session_ids)}) "
            "ORDER BY order_index, id;",
            tuple(session_ids),
        )
        entries = self._with_sets([_entry_from_row(r) for r in rows])
        for entry in entries:
            grouped.setdefault(entry.session_id, []).append(entry)
        return grouped

    def fetch_names(self) -> List[Tuple[int, int, str]]:
        """Return ``(id, session_id, exercise_name)`` for every entry."""
        rows = self.fetch_all(
            "SELECT id, session_id, exercise_name FROM exercise_entries ORDER BY id;"
        )
        return [(int(i), int(s), n or "") for i, s, n in rows]

    def max_order_index(self, session_id: int) -> int | None:
        rows = self.fetch_all(
            "SELECT MAX(order_index) FROM exercise_entries WHERE session_id = ?;",
            (session_id,),
        )
        value = rows[0][0] if rows else None
        return int(value) if value is not None else None

    def set_order_index(self, exercise_id: int, order_index: int) -> None:
        self.execute(
            "UPDATE exercise_entries SET order_index = ? WHERE id = ?;",
            (order_index, exercise_id),
        )

    def update_name(self, exercise_id: int, name: str) -> None:
        self.execute(
            "UPDATE exercise_entries SET exercise_name = ? WHERE id = ?;",
            (name, exercise_id),
        )

    def update_notes(self, exercise_id: int, notes: str) -> None:
        self.execute(
            "UPDATE exercise_entries SET notes = ? WHERE id = ?;",
            (notes, exercise_id),
        )

    def remove(self, exercise_id: int) -> None:
        self.execute("DELETE FROM exercise_entries WHERE id = ?;", (exercise_id,))


class SessionRepository(BaseRepository):
    """Repository for workout sessions and their owned entries."""

    _COLUMNS = "id, started_at, ended_at, category_id, notes"
    _SORTABLE = {"id", "started_at", "ended_at"}

    def __init__(
        self, db: Database, entries: ExerciseEntryRepository | None = None
    ) -> None:
        super().__init__(db)
        self.entries = entries or ExerciseEntryRepository(db)

    def create(
        self,
        started_at: datetime.datetime,
        ended_at: datetime.datetime | None = None,
        category_id: int | None = None,
        notes: str = "",
    ) -> int:
        return self.execute(
            "INSERT INTO sessions (started_at, ended_at, category_id, notes) VALUES (?, ?, ?, ?);",
            (
                to_db_timestamp(started_at),
                to_db_timestamp(ended_at),
                category_id,
                notes,
            ),
        )

    def _with_entries(self, sessions: List[Session]) -> List[Session]:
        entries = self.entries.fetch_for_sessions([s.id for s in sessions])
        for session in sessions:
            session.entries = entries.get(session.id, [])
        return sessions

    def fetch(self, session_id: int) -> Session:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise RecordNotFoundError("session", session_id)
        return self._with_entries([_session_from_row(rows[0])])[0]

    def fetch_all_sessions(
        self,
        active: bool | None = None,
        category_id: int | None = None,
        started_from: datetime.datetime | None = None,
        started_to: datetime.datetime | None = None,
        sort_by: str = "started_at",
        descending: bool = False,
    ) -> List[Session]:
        query = f"SELECT {self._COLUMNS} FROM sessions"
        params: list = []
        where_clauses: list[str] = []
        if active is True:
            where_clauses.append("ended_at IS NULL")
        elif active is False:
            where_clauses.append("ended_at IS NOT NULL")
        if category_id is not None:
            where_clauses.append("category_id = ?")
            params.append(category_id)
        if started_from is not None:
            where_clauses.append("started_at >= ?")
            params.append(to_db_timestamp(started_from))
        if started_to is not None:
            where_clauses.append("started_at <= ?")
            params.append(to_db_timestamp(started_to))
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        if sort_by not in self._SORTABLE:
            sort_by = "started_at"
        order = "DESC" if descending else "ASC"
        query += f" ORDER BY {sort_by} {order}, id {order};"
        sessions = [_session_from_row(r) for r in self.fetch_all(query, tuple(params))]
        return self._with_entries(sessions)

    def fetch_active(self) -> Optional[Session]:
        active = self.fetch_all_sessions(active=True, descending=True)
        return active[0] if active else None

    def set_end_time(self, session_id: int, ended_at: datetime.datetime | None) -> None:
        self.execute(
            "UPDATE sessions SET ended_at = ? WHERE id = ?;",
            (to_db_timestamp(ended_at), session_id),
        )

    def set_notes(self, session_id: int, notes: str) -> None:
        self.execute(
            "UPDATE sessions SET notes = ? WHERE id = ?;",
            (notes, session_id),
        )

    def delete(self, session_id: int) -> None:
        rows = self.fetch_all("SELECT id FROM sessions WHERE id = ?;", (session_id,))
        if not rows:
            raise RecordNotFoundError("session", session_id)
        self.execute("DELETE FROM sessions WHERE id = ?;", (session_id,))
