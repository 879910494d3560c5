import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple

from errors import IntegrityError, NotFoundError, StateConflictError, ValidationError
from validation import (
    iso_date,
    month_bounds,
    non_negative_number,
    optional_non_negative_number,
    optional_positive_int,
    optional_text,
    parse_json_array,
    positive_int,
    required_text,
    text_array,
)

logger = logging.getLogger(__name__)

WORKOUT_ACTIVE = "active"
WORKOUT_FINISHED = "finished"

RECORD_TYPES = ("max_reps", "max_weight", "max_volume", "est_1rm")


def _integrity_message(exc: sqlite3.IntegrityError) -> str:
    text = str(exc)
    if text.startswith("UNIQUE constraint failed: "):
        return f"A record with the same {text.split(': ', 1)[1]} already exists"
    if text.startswith("FOREIGN KEY constraint failed"):
        return "Operation conflicts with records that reference it"
    return text


def register_exercise_tags(conn: sqlite3.Connection, names: Iterable[str]) -> None:
    """Add ``names`` to the global tag vocabulary, ignoring known ones."""
    for name in names:
        parsed = name.strip() if isinstance(name, str) else ""
        if parsed:
            conn.execute(
                "INSERT OR IGNORE INTO exercise_tags (name) VALUES (?);", (parsed,)
            )


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "app_meta": """CREATE TABLE IF NOT EXISTS app_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );""",
        "categories": """CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
        "exercises": """CREATE TABLE IF NOT EXISTS exercises (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
        "exercise_variations": """CREATE TABLE IF NOT EXISTS exercise_variations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                exercise_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                grip TEXT,
                stance TEXT,
                notes TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(exercise_id, name),
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
            );""",
        "exercise_categories": """CREATE TABLE IF NOT EXISTS exercise_categories (
                exercise_id INTEGER NOT NULL,
                category_id INTEGER NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (exercise_id, category_id),
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE,
                FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE CASCADE
            );""",
        "exercise_tags": """CREATE TABLE IF NOT EXISTS exercise_tags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
        "groups": """CREATE TABLE IF NOT EXISTS groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
        "group_exercises": """CREATE TABLE IF NOT EXISTS group_exercises (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL,
                exercise_id INTEGER NOT NULL,
                variation_id INTEGER,
                target_sets INTEGER NOT NULL DEFAULT 3,
                target_reps TEXT,
                order_index INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE CASCADE,
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE,
                FOREIGN KEY(variation_id) REFERENCES exercise_variations(id) ON DELETE SET NULL
            );""",
        "workouts": """CREATE TABLE IF NOT EXISTS workouts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL,
                performed_on TEXT NOT NULL,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                started_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                finished_at TEXT,
                FOREIGN KEY(group_id) REFERENCES groups(id) ON DELETE RESTRICT
            );""",
        "workout_sets": """CREATE TABLE IF NOT EXISTS workout_sets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workout_id INTEGER NOT NULL,
                group_exercise_id INTEGER NOT NULL,
                set_number INTEGER NOT NULL,
                reps INTEGER NOT NULL,
                weight REAL NOT NULL DEFAULT 0,
                rpe REAL,
                notes TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(workout_id, group_exercise_id, set_number),
                FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                FOREIGN KEY(group_exercise_id) REFERENCES group_exercises(id) ON DELETE RESTRICT
            );""",
        "personal_records": """CREATE TABLE IF NOT EXISTS personal_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                exercise_id INTEGER NOT NULL,
                variation_id INTEGER,
                variation_key INTEGER NOT NULL DEFAULT 0,
                record_type TEXT NOT NULL,
                value REAL NOT NULL,
                achieved_on TEXT NOT NULL,
                workout_set_id INTEGER NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(exercise_id, variation_key, record_type),
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE,
                FOREIGN KEY(variation_id) REFERENCES exercise_variations(id) ON DELETE SET NULL,
                FOREIGN KEY(workout_set_id) REFERENCES workout_sets(id) ON DELETE CASCADE
            );""",
        "daily_logs": """CREATE TABLE IF NOT EXISTS daily_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                performed_on TEXT NOT NULL,
                exercise_id INTEGER NOT NULL,
                order_index INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(performed_on, exercise_id),
                FOREIGN KEY(exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
            );""",
        "daily_log_sets": """CREATE TABLE IF NOT EXISTS daily_log_sets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                daily_log_id INTEGER NOT NULL,
                set_number INTEGER NOT NULL,
                reps INTEGER,
                weight REAL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(daily_log_id, set_number),
                FOREIGN KEY(daily_log_id) REFERENCES daily_logs(id) ON DELETE CASCADE
            );""",
        "calories_targets": """CREATE TABLE IF NOT EXISTS calories_targets (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                target_kcal REAL NOT NULL DEFAULT 2200,
                target_protein REAL NOT NULL DEFAULT 150,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
        "calories_food_logs": """CREATE TABLE IF NOT EXISTS calories_food_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                consumed_on TEXT NOT NULL,
                food_id TEXT NOT NULL,
                title TEXT NOT NULL,
                grams REAL NOT NULL,
                kcal REAL NOT NULL DEFAULT 0,
                protein REAL NOT NULL DEFAULT 0,
                image_url TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );""",
    }

    # Columns introduced after the first release. Each definition must carry
    # a non-null default so rows of older installations stay valid.
    _COLUMN_DEFINITIONS = [
        ("exercises", "equipment", "TEXT NOT NULL DEFAULT 'bodyweight'"),
        ("exercises", "muscle_groups", "TEXT NOT NULL DEFAULT '[]'"),
        ("exercises", "suboptions", "TEXT NOT NULL DEFAULT '[]'"),
        ("daily_logs", "selected_tags", "TEXT NOT NULL DEFAULT '[]'"),
    ]

    _INDEX_DEFINITIONS = [
        "CREATE INDEX IF NOT EXISTS idx_group_exercises_group ON group_exercises(group_id, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_workouts_group ON workouts(group_id, performed_on);",
        "CREATE INDEX IF NOT EXISTS idx_workout_sets_workout ON workout_sets(workout_id, group_exercise_id, set_number);",
        "CREATE INDEX IF NOT EXISTS idx_daily_logs_date ON daily_logs(performed_on, order_index);",
        "CREATE INDEX IF NOT EXISTS idx_daily_logs_exercise ON daily_logs(exercise_id, performed_on);",
        "CREATE INDEX IF NOT EXISTS idx_daily_log_sets_log ON daily_log_sets(daily_log_id, set_number);",
        "CREATE INDEX IF NOT EXISTS idx_pr_exercise ON personal_records(exercise_id, variation_key, record_type);",
        "CREATE INDEX IF NOT EXISTS idx_exercise_tags_name ON exercise_tags(name COLLATE NOCASE);",
        "CREATE INDEX IF NOT EXISTS idx_calories_food_logs_day ON calories_food_logs(consumed_on, id DESC);",
    ]

    # Seeded once on the very first start; deleting every category later
    # does not bring them back.
    DEFAULT_CATEGORIES = (
        "Push Day",
        "Pull Day",
        "Leg Day",
        "Upper",
        "Lower",
        "Full Body",
    )
    DEFAULT_TARGET_KCAL = 2200.0
    DEFAULT_TARGET_PROTEIN = 150.0

    def __init__(self, db_path: str = "logly.db") -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(
            db_path, isolation_level=None, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL;")
        self.added_columns: List[Tuple[str, str]] = []
        self._ensure_schema()
        self._seed_defaults()
        self._backfill_exercise_tags()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def backup(self, target_path: str) -> None:
        """Copy the live database into ``target_path``."""
        with self._lock:
            target = sqlite3.connect(target_path)
            try:
                self._conn.backup(target)
            finally:
                target.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        Nested use joins the outermost transaction, so a service can wrap
        several repository calls into one unit of work.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN;")
            self._depth += 1
            try:
                yield self._conn
            except BaseException as exc:
                self._depth -= 1
                if outermost and self._conn.in_transaction:
                    self._conn.execute("ROLLBACK;")
                if isinstance(exc, sqlite3.IntegrityError):
                    raise IntegrityError(_integrity_message(exc)) from exc
                raise
            else:
                self._depth -= 1
                if outermost:
                    self._conn.execute("COMMIT;")

    def ensure_column(self, table: str, column: str, definition: str) -> bool:
        """Add ``column`` to ``table`` unless it already exists.

        Returns ``True`` when the table was altered.
        """
        with self.transaction() as conn:
            existing = [
                row["name"] for row in conn.execute(f"PRAGMA table_info({table});")
            ]
            if column in existing:
                return False
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition};")
        logger.info("Added column %s.%s", table, column)
        return True

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            for sql in self._TABLE_DEFINITIONS.values():
                conn.execute(sql)
            for table, column, definition in self._COLUMN_DEFINITIONS:
                if self.ensure_column(table, column, definition):
                    self.added_columns.append((table, column))
            for sql in self._INDEX_DEFINITIONS:
                conn.execute(sql)

    @staticmethod
    def _get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute("SELECT value FROM app_meta WHERE key = ?;", (key,)).fetchone()
        return row["value"] if row else None

    @staticmethod
    def _set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO app_meta (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value;",
            (key, value),
        )

    def _seed_defaults(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO calories_targets (id, target_kcal, target_protein) VALUES (1, ?, ?);",
                (self.DEFAULT_TARGET_KCAL, self.DEFAULT_TARGET_PROTEIN),
            )
            if self._get_meta(conn, "categories_seeded") is not None:
                return
            count = conn.execute("SELECT COUNT(*) FROM categories;").fetchone()[0]
            if count == 0:
                conn.executemany(
                    "INSERT INTO categories (name) VALUES (?);",
                    [(name,) for name in self.DEFAULT_CATEGORIES],
                )
                logger.info("Seeded %d default categories", len(self.DEFAULT_CATEGORIES))
            self._set_meta(conn, "categories_seeded", "1")

    def _backfill_exercise_tags(self) -> None:
        """Register every stored sub-option in the global tag vocabulary.

        Installations created before the vocabulary existed only kept
        sub-options on the exercises themselves.
        """
        with self.transaction() as conn:
            if self._get_meta(conn, "exercise_tags_backfilled") is not None:
                return
            rows = conn.execute(
                "SELECT suboptions FROM exercises WHERE suboptions IS NOT NULL AND TRIM(suboptions) <> '';"
            ).fetchall()
            names: list[str] = []
            for row in rows:
                names.extend(parse_json_array(row["suboptions"]))
            register_exercise_tags(conn, names)
            self._set_meta(conn, "exercise_tags_backfilled", "1")
        if names:
            logger.info("Backfilled exercise tags from %d exercises", len(rows))


class BaseRepository:
    """Base repository providing helper methods."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(query, params)
            return cursor.lastrowid

    def execute_count(self, query: str, params: Tuple = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        with self.db.transaction() as conn:
            cursor = conn.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[dict]:
        with self.db.transaction() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    def fetch_one(self, query: str, params: Tuple = ()) -> Optional[dict]:
        with self.db.transaction() as conn:
            row = conn.execute(query, params).fetchone()
            return dict(row) if row is not None else None

    def _exists(self, table: str, row_id: int) -> bool:
        return self.fetch_one(f"SELECT 1 AS found FROM {table} WHERE id = ?;", (row_id,)) is not None

    def _count(self, table: str) -> int:
        row = self.fetch_one(f"SELECT COUNT(*) AS total FROM {table};")
        return int(row["total"]) if row else 0

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class CategoryRepository(BaseRepository):
    """Repository for exercise categories."""

    def create(self, name: Any) -> dict:
        name = required_text(name, "Category name")
        cid = self.execute("INSERT INTO categories (name) VALUES (?);", (name,))
        return {"id": cid, "name": name}

    def fetch_all_categories(self) -> List[dict]:
        return self.fetch_all(
            "SELECT id, name, created_at FROM categories ORDER BY name ASC;"
        )


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalog."""

    _COLUMNS = "id, name, type, notes, equipment, muscle_groups, suboptions, created_at"

    @staticmethod
    def _normalize(
        name: Any,
        exercise_type: Any,
        notes: Any,
        equipment: Any,
        muscle_groups: Any,
        suboptions: Any,
    ) -> dict:
        return {
            "name": required_text(name, "Exercise name"),
            "type": exercise_type,
            "notes": optional_text(notes),
            "equipment": optional_text(equipment) or "bodyweight",
            "muscle_groups": text_array(muscle_groups, "Muscle groups"),
            "suboptions": text_array(suboptions, "Sub-options"),
        }

    @staticmethod
    def _from_row(row: Mapping[str, Any]) -> dict:
        data = dict(row)
        data["muscle_groups"] = parse_json_array(data.get("muscle_groups"))
        data["suboptions"] = parse_json_array(data.get("suboptions"))
        return data

    def create(
        self,
        name: Any,
        exercise_type: Any,
        notes: Any = None,
        equipment: Any = None,
        muscle_groups: Any = None,
        suboptions: Any = None,
    ) -> dict:
        data = self._normalize(
            name,
            required_text(exercise_type, "Exercise type"),
            notes,
            equipment,
            muscle_groups,
            suboptions,
        )
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO exercises (name, type, notes, equipment, muscle_groups, suboptions) VALUES (?, ?, ?, ?, ?, ?);",
                (
                    data["name"],
                    data["type"],
                    data["notes"],
                    data["equipment"],
                    json.dumps(data["muscle_groups"]),
                    json.dumps(data["suboptions"]),
                ),
            )
            register_exercise_tags(conn, data["suboptions"])
        return {"id": cursor.lastrowid, **data}

    def update(
        self,
        exercise_id: Any,
        name: Any,
        exercise_type: Any = None,
        notes: Any = None,
        equipment: Any = None,
        muscle_groups: Any = None,
        suboptions: Any = None,
    ) -> dict:
        exercise_id = positive_int(exercise_id, "Exercise ID")
        data = self._normalize(
            name,
            optional_text(exercise_type) or "general",
            notes,
            equipment,
            muscle_groups,
            suboptions,
        )
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE exercises SET name = ?, type = ?, notes = ?, equipment = ?, muscle_groups = ?, suboptions = ? WHERE id = ?;",
                (
                    data["name"],
                    data["type"],
                    data["notes"],
                    data["equipment"],
                    json.dumps(data["muscle_groups"]),
                    json.dumps(data["suboptions"]),
                    exercise_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Exercise not found")
            register_exercise_tags(conn, data["suboptions"])
        return {"id": exercise_id, **data}

    def delete(self, exercise_id: Any) -> None:
        exercise_id = positive_int(exercise_id, "Exercise ID")
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM exercises WHERE id = ?;", (exercise_id,)).fetchone() is None:
                raise NotFoundError("Exercise not found")
            # workout_sets -> group_exercises is RESTRICT, so logged sets
            # have to go before the cascade can remove the template slots.
            cursor = conn.execute(
                "DELETE FROM workout_sets WHERE group_exercise_id IN "
                "(SELECT id FROM group_exercises WHERE exercise_id = ?);",
                (exercise_id,),
            )
            conn.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))
        logger.info(
            "Deleted exercise %s with %d logged workout sets", exercise_id, cursor.rowcount
        )

    def exists(self, exercise_id: int) -> bool:
        return self._exists("exercises", exercise_id)

    def count(self) -> int:
        return self._count("exercises")

    def _attach_relations(self, exercises: List[dict]) -> List[dict]:
        if not exercises:
            return exercises
        categories: dict[int, list[str]] = {}
        for row in self.fetch_all(
            "SELECT ec.exercise_id, c.name FROM exercise_categories ec "
            "JOIN categories c ON c.id = ec.category_id ORDER BY c.name ASC;"
        ):
            categories.setdefault(row["exercise_id"], []).append(row["name"])
        variations: dict[int, list[dict]] = {}
        for row in self.fetch_all(
            "SELECT id, exercise_id, name, grip, stance, notes, created_at "
            "FROM exercise_variations ORDER BY name ASC;"
        ):
            variations.setdefault(row["exercise_id"], []).append(row)
        for exercise in exercises:
            names = categories.get(exercise["id"], [])
            exercise["categories"] = ",".join(names)
            exercise["category_names"] = names
            exercise["variations"] = variations.get(exercise["id"], [])
        return exercises

    def fetch_all_exercises(self) -> List[dict]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM exercises ORDER BY name ASC;"
        )
        return self._attach_relations([self._from_row(row) for row in rows])

    def fetch_detail(self, exercise_id: Any) -> dict:
        exercise_id = positive_int(exercise_id, "Exercise ID")
        row = self.fetch_one(
            f"SELECT {self._COLUMNS} FROM exercises WHERE id = ?;", (exercise_id,)
        )
        if row is None:
            raise NotFoundError("Exercise not found")
        return self._attach_relations([self._from_row(row)])[0]

    def assign_category(self, exercise_id: Any, category_id: Any) -> None:
        exercise_id = positive_int(exercise_id, "Exercise ID")
        category_id = positive_int(category_id, "Category ID")
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM exercises WHERE id = ?;", (exercise_id,)).fetchone() is None:
                raise NotFoundError("Exercise not found")
            if conn.execute("SELECT 1 FROM categories WHERE id = ?;", (category_id,)).fetchone() is None:
                raise NotFoundError("Category not found")
            conn.execute(
                "INSERT OR IGNORE INTO exercise_categories (exercise_id, category_id) VALUES (?, ?);",
                (exercise_id, category_id),
            )


class VariationRepository(BaseRepository):
    """Repository for grip/stance variations of an exercise."""

    def create(
        self,
        exercise_id: Any,
        name: Any,
        grip: Any = None,
        stance: Any = None,
        notes: Any = None,
    ) -> dict:
        exercise_id = positive_int(exercise_id, "Exercise ID")
        name = required_text(name, "Variation name")
        grip = optional_text(grip)
        stance = optional_text(stance)
        notes = optional_text(notes)
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM exercises WHERE id = ?;", (exercise_id,)).fetchone() is None:
                raise NotFoundError("Exercise not found")
            cursor = conn.execute(
                "INSERT INTO exercise_variations (exercise_id, name, grip, stance, notes) VALUES (?, ?, ?, ?, ?);",
                (exercise_id, name, grip, stance, notes),
            )
        return {
            "id": cursor.lastrowid,
            "exercise_id": exercise_id,
            "name": name,
            "grip": grip,
            "stance": stance,
            "notes": notes,
        }


class ExerciseTagRepository(BaseRepository):
    """Repository for the global, case-insensitive sub-option vocabulary."""

    def create(self, name: Any) -> dict:
        name = required_text(name, "Tag name")
        with self.db.transaction() as conn:
            register_exercise_tags(conn, [name])
            row = conn.execute(
                "SELECT id, name, created_at FROM exercise_tags WHERE name = ? COLLATE NOCASE LIMIT 1;",
                (name,),
            ).fetchone()
        return dict(row)

    def fetch_all_tags(self) -> List[dict]:
        return self.fetch_all(
            "SELECT id, name, created_at FROM exercise_tags ORDER BY name COLLATE NOCASE ASC;"
        )

    def delete(self, name: Any) -> int:
        """Remove a tag and strip it from every exercise's sub-options.

        Returns the number of exercises whose sub-options changed.
        """
        name = required_text(name, "Tag name")
        key = name.lower()
        changed = 0
        with self.db.transaction() as conn:
            conn.execute(
                "DELETE FROM exercise_tags WHERE name = ? COLLATE NOCASE;", (name,)
            )
            rows = conn.execute(
                "SELECT id, suboptions FROM exercises WHERE suboptions IS NOT NULL AND TRIM(suboptions) <> '';"
            ).fetchall()
            for row in rows:
                current = parse_json_array(row["suboptions"])
                filtered = [value for value in current if value.lower() != key]
                if len(filtered) != len(current):
                    conn.execute(
                        "UPDATE exercises SET suboptions = ? WHERE id = ?;",
                        (json.dumps(filtered), row["id"]),
                    )
                    changed += 1
        logger.info("Deleted exercise tag %r from %d exercises", name, changed)
        return changed


class GroupRepository(BaseRepository):
    """Repository for workout templates (groups)."""

    def create(self, name: Any, description: Any = None) -> dict:
        name = required_text(name, "Group name")
        description = optional_text(description)
        gid = self.execute(
            "INSERT INTO groups (name, description) VALUES (?, ?);",
            (name, description),
        )
        return {"id": gid, "name": name, "description": description}

    def fetch_all_groups(self) -> List[dict]:
        return self.fetch_all(
            "SELECT id, name, description, created_at FROM groups ORDER BY name ASC;"
        )

    def exists(self, group_id: int) -> bool:
        return self._exists("groups", group_id)

    def count(self) -> int:
        return self._count("groups")

    def fetch_items(self, group_id: int) -> List[dict]:
        return self.fetch_all(
            """SELECT
                    ge.id,
                    ge.group_id,
                    ge.exercise_id,
                    ge.variation_id,
                    ge.target_sets,
                    ge.target_reps,
                    ge.order_index,
                    e.name AS exercise_name,
                    e.type AS exercise_type,
                    ev.name AS variation_name,
                    ev.grip,
                    ev.stance
                FROM group_exercises ge
                JOIN exercises e ON e.id = ge.exercise_id
                LEFT JOIN exercise_variations ev ON ev.id = ge.variation_id
                WHERE ge.group_id = ?
                ORDER BY ge.order_index ASC, ge.id ASC;""",
            (group_id,),
        )

    def fetch_detail(self, group_id: Any) -> dict:
        group_id = positive_int(group_id, "Group ID")
        group = self.fetch_one(
            "SELECT id, name, description, created_at FROM groups WHERE id = ?;",
            (group_id,),
        )
        if group is None:
            raise NotFoundError("Template not found")
        return {"group": group, "items": self.fetch_items(group_id)}

    def delete(self, group_id: Any) -> None:
        group_id = positive_int(group_id, "Group ID")
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM groups WHERE id = ?;", (group_id,)).fetchone() is None:
                raise NotFoundError("Template not found")
            # workouts -> groups is RESTRICT; dependents go first.
            conn.execute(
                "DELETE FROM workout_sets WHERE workout_id IN (SELECT id FROM workouts WHERE group_id = ?);",
                (group_id,),
            )
            workouts = conn.execute("DELETE FROM workouts WHERE group_id = ?;", (group_id,))
            conn.execute("DELETE FROM group_exercises WHERE group_id = ?;", (group_id,))
            conn.execute("DELETE FROM groups WHERE id = ?;", (group_id,))
        logger.info("Deleted template %s and %d workouts", group_id, workouts.rowcount)

    def delete_all(self) -> None:
        with self.db.transaction():
            for table in ("workout_sets", "workouts", "group_exercises", "groups"):
                self._delete_all(table)
        logger.info("Cleared all templates and workouts")


class GroupExerciseRepository(BaseRepository):
    """Repository for exercise slots inside a template."""

    def add(
        self,
        group_id: Any,
        exercise_id: Any,
        variation_id: Any = None,
        target_sets: Any = None,
        target_reps: Any = None,
        order_index: Any = None,
    ) -> dict:
        group_id = positive_int(group_id, "Group ID")
        exercise_id = positive_int(exercise_id, "Exercise ID")
        variation_id = positive_int(variation_id, "Variation ID") if variation_id else None
        target_sets = positive_int(target_sets, "Target sets") if target_sets else 3
        target_reps = optional_text(target_reps)
        order_index = positive_int(order_index, "Order index") if order_index else None
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM groups WHERE id = ?;", (group_id,)).fetchone() is None:
                raise NotFoundError("Template not found")
            if conn.execute("SELECT 1 FROM exercises WHERE id = ?;", (exercise_id,)).fetchone() is None:
                raise NotFoundError("Exercise not found")
            if variation_id is not None:
                variation = conn.execute(
                    "SELECT exercise_id FROM exercise_variations WHERE id = ?;",
                    (variation_id,),
                ).fetchone()
                if variation is None:
                    raise NotFoundError("Variation not found")
                if variation["exercise_id"] != exercise_id:
                    raise StateConflictError("Variation does not belong to selected exercise")
            if order_index is None:
                order_index = conn.execute(
                    "SELECT COALESCE(MAX(order_index), 0) + 1 FROM group_exercises WHERE group_id = ?;",
                    (group_id,),
                ).fetchone()[0]
            cursor = conn.execute(
                "INSERT INTO group_exercises (group_id, exercise_id, variation_id, target_sets, target_reps, order_index) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (group_id, exercise_id, variation_id, target_sets, target_reps, order_index),
            )
        return {"id": cursor.lastrowid, "order_index": order_index}

    def remove(self, group_exercise_id: Any) -> None:
        group_exercise_id = positive_int(group_exercise_id, "Group exercise ID")
        removed = self.execute_count(
            "DELETE FROM group_exercises WHERE id = ?;", (group_exercise_id,)
        )
        if removed == 0:
            raise NotFoundError("Group exercise not found")

    def fetch_detail(self, group_exercise_id: int) -> Optional[dict]:
        return self.fetch_one(
            """SELECT
                    ge.id,
                    ge.group_id,
                    ge.exercise_id,
                    ge.variation_id,
                    e.name AS exercise_name,
                    ev.name AS variation_name
                FROM group_exercises ge
                JOIN exercises e ON e.id = ge.exercise_id
                LEFT JOIN exercise_variations ev ON ev.id = ge.variation_id
                WHERE ge.id = ?;""",
            (group_exercise_id,),
        )


class WorkoutRepository(BaseRepository):
    """Repository for performed workout sessions."""

    def create(self, group_id: int, performed_on: str, notes: str | None = None) -> int:
        return self.execute(
            "INSERT INTO workouts (group_id, performed_on, notes, status) VALUES (?, ?, ?, ?);",
            (group_id, performed_on, notes, WORKOUT_ACTIVE),
        )

    def finish(self, workout_id: int) -> bool:
        """Mark an active workout finished. Returns ``False`` if it already was."""
        changed = self.execute_count(
            "UPDATE workouts SET status = ?, finished_at = CURRENT_TIMESTAMP WHERE id = ? AND status = ?;",
            (WORKOUT_FINISHED, workout_id, WORKOUT_ACTIVE),
        )
        return changed > 0

    def fetch_detail(self, workout_id: int) -> Optional[dict]:
        return self.fetch_one(
            """SELECT
                    w.id,
                    w.group_id,
                    w.performed_on,
                    w.notes,
                    w.status,
                    w.started_at,
                    w.finished_at,
                    g.name AS group_name
                FROM workouts w
                JOIN groups g ON g.id = w.group_id
                WHERE w.id = ?;""",
            (workout_id,),
        )

    def fetch_all_workouts(self, limit: int = 30) -> List[dict]:
        return self.fetch_all(
            """SELECT
                    w.id,
                    w.group_id,
                    w.performed_on,
                    w.status,
                    w.started_at,
                    w.finished_at,
                    g.name AS group_name
                FROM workouts w
                JOIN groups g ON g.id = w.group_id
                ORDER BY w.id DESC
                LIMIT ?;""",
            (limit,),
        )

    def fetch_active(self) -> List[dict]:
        return self.fetch_all(
            """SELECT
                    w.id,
                    w.group_id,
                    w.performed_on,
                    w.status,
                    g.name AS group_name
                FROM workouts w
                JOIN groups g ON g.id = w.group_id
                WHERE w.status = ?
                ORDER BY w.started_at DESC, w.id DESC;""",
            (WORKOUT_ACTIVE,),
        )

    def count(self) -> int:
        return self._count("workouts")


class WorkoutSetRepository(BaseRepository):
    """Repository for sets logged during a workout."""

    _SELECT = """SELECT
                    ws.id,
                    ws.set_number,
                    ws.reps,
                    ws.weight,
                    ws.rpe,
                    w.performed_on,
                    g.name AS group_name,
                    e.id AS exercise_id,
                    e.name AS exercise_name,
                    ev.name AS variation_name
                FROM workout_sets ws
                JOIN workouts w ON w.id = ws.workout_id
                JOIN groups g ON g.id = w.group_id
                JOIN group_exercises ge ON ge.id = ws.group_exercise_id
                JOIN exercises e ON e.id = ge.exercise_id
                LEFT JOIN exercise_variations ev ON ev.id = ge.variation_id"""

    def add(
        self,
        workout_id: int,
        group_exercise_id: int,
        reps: Any,
        weight: Any = 0,
        rpe: Any = None,
        notes: Any = None,
    ) -> tuple[int, int]:
        """Insert the next set for the slot and return ``(id, set_number)``."""
        reps = positive_int(reps, "Reps")
        weight = non_negative_number(0 if weight is None else weight, "Weight")
        rpe = None if rpe is None or rpe == "" else non_negative_number(rpe, "RPE")
        notes = optional_text(notes)
        with self.db.transaction() as conn:
            set_number = conn.execute(
                "SELECT COALESCE(MAX(set_number), 0) + 1 FROM workout_sets WHERE workout_id = ? AND group_exercise_id = ?;",
                (workout_id, group_exercise_id),
            ).fetchone()[0]
            cursor = conn.execute(
                "INSERT INTO workout_sets (workout_id, group_exercise_id, set_number, reps, weight, rpe, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?);",
                (workout_id, group_exercise_id, set_number, reps, weight, rpe, notes),
            )
        return cursor.lastrowid, int(set_number)

    def fetch_for_workout(self, workout_id: int) -> List[dict]:
        return self.fetch_all(
            """SELECT
                    ws.id,
                    ws.workout_id,
                    ws.group_exercise_id,
                    ws.set_number,
                    ws.reps,
                    ws.weight,
                    ws.rpe,
                    ws.notes,
                    ws.created_at,
                    e.id AS exercise_id,
                    e.name AS exercise_name,
                    ev.id AS variation_id,
                    ev.name AS variation_name
                FROM workout_sets ws
                JOIN group_exercises ge ON ge.id = ws.group_exercise_id
                JOIN exercises e ON e.id = ge.exercise_id
                LEFT JOIN exercise_variations ev ON ev.id = ge.variation_id
                WHERE ws.workout_id = ?
                ORDER BY ws.group_exercise_id ASC, ws.set_number ASC;""",
            (workout_id,),
        )

    def fetch_recent(self, limit: int = 40, exercise_id: int | None = None) -> List[dict]:
        if exercise_id is not None:
            return self.fetch_all(
                self._SELECT + " WHERE e.id = ? ORDER BY ws.id DESC LIMIT ?;",
                (exercise_id, limit),
            )
        return self.fetch_all(self._SELECT + " ORDER BY ws.id DESC LIMIT ?;", (limit,))


class PersonalRecordRepository(BaseRepository):
    """Repository for best-ever metrics per exercise and variation."""

    _SELECT = """SELECT
                    pr.id,
                    pr.exercise_id,
                    pr.variation_id,
                    pr.record_type,
                    pr.value,
                    pr.achieved_on,
                    pr.workout_set_id,
                    pr.updated_at,
                    e.name AS exercise_name,
                    ev.name AS variation_name
                FROM personal_records pr
                JOIN exercises e ON e.id = pr.exercise_id
                LEFT JOIN exercise_variations ev ON ev.id = pr.variation_id"""

    def upsert(
        self,
        exercise_id: int,
        variation_id: int | None,
        record_type: str,
        value: float,
        achieved_on: str,
        workout_set_id: int,
    ) -> bool:
        """Store ``value`` if it beats the current record.

        Returns ``True`` when a row was inserted or improved.
        """
        if record_type not in RECORD_TYPES:
            raise ValidationError(f"Unknown record type {record_type}")
        changed = self.execute_count(
            """INSERT INTO personal_records (
                    exercise_id, variation_id, variation_key, record_type,
                    value, achieved_on, workout_set_id, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(exercise_id, variation_key, record_type) DO UPDATE SET
                    value = excluded.value,
                    variation_id = excluded.variation_id,
                    achieved_on = excluded.achieved_on,
                    workout_set_id = excluded.workout_set_id,
                    updated_at = CURRENT_TIMESTAMP
                WHERE excluded.value > personal_records.value;""",
            (
                exercise_id,
                variation_id,
                variation_id or 0,
                record_type,
                value,
                achieved_on,
                workout_set_id,
            ),
        )
        return changed > 0

    def fetch_all_records(self, exercise_id: int | None = None) -> List[dict]:
        if exercise_id is not None:
            return self.fetch_all(
                self._SELECT + " WHERE pr.exercise_id = ? ORDER BY pr.record_type ASC;",
                (exercise_id,),
            )
        return self.fetch_all(
            self._SELECT + " ORDER BY e.name ASC, pr.record_type ASC;"
        )

    def count(self) -> int:
        return self._count("personal_records")


class DailyLogRepository(BaseRepository):
    """Repository for the free-form per-day exercise log."""

    def fetch_day(self, performed_on: Any) -> dict:
        performed_on = iso_date(performed_on, "Date")
        with self.db.transaction() as conn:
            rows = conn.execute(
                """SELECT
                        dl.id,
                        dl.exercise_id,
                        dl.selected_tags,
                        dl.order_index,
                        e.name AS exercise_name,
                        e.muscle_groups,
                        e.suboptions
                    FROM daily_logs dl
                    JOIN exercises e ON e.id = dl.exercise_id
                    WHERE dl.performed_on = ?
                    ORDER BY dl.order_index ASC, dl.id ASC;""",
                (performed_on,),
            ).fetchall()
            entries = []
            for row in rows:
                sets = conn.execute(
                    "SELECT set_number, reps, weight FROM daily_log_sets WHERE daily_log_id = ? ORDER BY set_number ASC;",
                    (row["id"],),
                ).fetchall()
                entries.append(
                    {
                        "id": row["id"],
                        "exercise_id": row["exercise_id"],
                        "exercise_name": row["exercise_name"],
                        "muscle_groups": parse_json_array(row["muscle_groups"]),
                        "suboptions": parse_json_array(row["suboptions"]),
                        "selected_tags": parse_json_array(row["selected_tags"]),
                        "order_index": row["order_index"],
                        "sets": [dict(s) for s in sets],
                    }
                )
        return {"performed_on": performed_on, "entries": entries}

    @staticmethod
    def _normalize_entries(raw_entries: Any) -> List[dict]:
        entries: List[dict] = []
        seen: set[int] = set()
        for raw in raw_entries if isinstance(raw_entries, (list, tuple)) else []:
            raw = raw if isinstance(raw, Mapping) else {}
            exercise_id = positive_int(raw.get("exercise_id"), "Exercise ID")
            if exercise_id in seen:
                continue
            seen.add(exercise_id)
            raw_sets = raw.get("sets")
            raw_sets = raw_sets if isinstance(raw_sets, (list, tuple)) else []
            sets = [
                (
                    optional_positive_int(s.get("reps") if isinstance(s, Mapping) else None),
                    optional_non_negative_number(s.get("weight") if isinstance(s, Mapping) else None),
                )
                for s in raw_sets
            ] or [(None, None)]
            entries.append(
                {
                    "exercise_id": exercise_id,
                    "sets": sets,
                    "selected_tags": text_array(raw.get("selected_tags"), "Selected tags"),
                }
            )
        return entries

    def replace_day(self, performed_on: Any, entries: Any) -> dict:
        """Replace everything logged on ``performed_on`` with ``entries``.

        Later entries for an exercise that already appeared are dropped.
        """
        performed_on = iso_date(performed_on, "Date")
        normalized = self._normalize_entries(entries)
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM daily_logs WHERE performed_on = ?;", (performed_on,))
            for order_index, entry in enumerate(normalized, start=1):
                cursor = conn.execute(
                    "INSERT INTO daily_logs (performed_on, exercise_id, selected_tags, order_index) VALUES (?, ?, ?, ?);",
                    (
                        performed_on,
                        entry["exercise_id"],
                        json.dumps(entry["selected_tags"]),
                        order_index,
                    ),
                )
                conn.executemany(
                    "INSERT INTO daily_log_sets (daily_log_id, set_number, reps, weight) VALUES (?, ?, ?, ?);",
                    [
                        (cursor.lastrowid, set_number, reps, weight)
                        for set_number, (reps, weight) in enumerate(entry["sets"], start=1)
                    ],
                )
        return self.fetch_day(performed_on)

    def fetch_analytics_rows(self, exercise_id: int, start_date: str, end_date: str) -> List[dict]:
        return self.fetch_all(
            """SELECT
                    dl.id AS daily_log_id,
                    dl.performed_on,
                    dl.selected_tags,
                    dls.reps,
                    dls.weight
                FROM daily_logs dl
                LEFT JOIN daily_log_sets dls ON dls.daily_log_id = dl.id
                WHERE dl.exercise_id = ?
                  AND dl.performed_on >= ?
                  AND dl.performed_on <= ?
                ORDER BY dl.performed_on ASC, dls.set_number ASC;""",
            (exercise_id, start_date, end_date),
        )


class CaloriesTargetRepository(BaseRepository):
    """Repository for the singleton daily calorie/protein target."""

    def fetch(self) -> dict:
        row = self.fetch_one(
            "SELECT target_kcal, target_protein, updated_at FROM calories_targets WHERE id = 1;"
        )
        if row is not None:
            return row
        self.execute(
            "INSERT OR IGNORE INTO calories_targets (id, target_kcal, target_protein) VALUES (1, ?, ?);",
            (Database.DEFAULT_TARGET_KCAL, Database.DEFAULT_TARGET_PROTEIN),
        )
        return self.fetch_one(
            "SELECT target_kcal, target_protein, updated_at FROM calories_targets WHERE id = 1;"
        )

    def update(self, target_kcal: Any, target_protein: Any) -> dict:
        target_kcal = non_negative_number(target_kcal, "Target kcal")
        target_protein = non_negative_number(target_protein, "Target protein")
        if target_kcal <= 0 or target_protein <= 0:
            raise ValidationError("Target kcal and target protein must be greater than zero")
        self.execute(
            """INSERT INTO calories_targets (id, target_kcal, target_protein, updated_at)
                VALUES (1, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    target_kcal = excluded.target_kcal,
                    target_protein = excluded.target_protein,
                    updated_at = CURRENT_TIMESTAMP;""",
            (target_kcal, target_protein),
        )
        return self.fetch()


class CaloriesFoodLogRepository(BaseRepository):
    """Repository for foods eaten per day."""

    def add(
        self,
        consumed_on: Any,
        food_id: Any,
        title: Any,
        grams: Any,
        kcal: Any,
        protein: Any,
        image_url: Any = None,
    ) -> dict:
        entry = {
            "consumed_on": iso_date(consumed_on, "Date"),
            "food_id": required_text(food_id, "Food ID"),
            "title": required_text(title, "Food title"),
            "grams": non_negative_number(grams, "Grams"),
            "kcal": non_negative_number(kcal, "Calories"),
            "protein": non_negative_number(protein, "Protein"),
            "image_url": optional_text(image_url),
        }
        if entry["grams"] <= 0:
            raise ValidationError("Grams must be greater than zero")
        log_id = self.execute(
            "INSERT INTO calories_food_logs (consumed_on, food_id, title, grams, kcal, protein, image_url) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                entry["consumed_on"],
                entry["food_id"],
                entry["title"],
                entry["grams"],
                entry["kcal"],
                entry["protein"],
                entry["image_url"],
            ),
        )
        return {"id": log_id, **entry}

    def fetch_for_day(self, consumed_on: Any) -> List[dict]:
        consumed_on = iso_date(consumed_on, "Date")
        return self.fetch_all(
            "SELECT id, consumed_on, food_id, title, grams, kcal, protein, image_url, created_at "
            "FROM calories_food_logs WHERE consumed_on = ? ORDER BY id DESC;",
            (consumed_on,),
        )

    def delete(self, log_id: Any, consumed_on: Any) -> dict:
        consumed_on = iso_date(consumed_on, "Date")
        log_id = positive_int(log_id, "Food log ID")
        removed = self.execute_count(
            "DELETE FROM calories_food_logs WHERE id = ? AND consumed_on = ?;",
            (log_id, consumed_on),
        )
        if removed == 0:
            raise NotFoundError("Food log entry not found")
        return {"ok": True, "summary": self.day_summary(consumed_on)}

    def day_summary(self, consumed_on: Any) -> dict:
        consumed_on = iso_date(consumed_on, "Date")
        row = self.fetch_one(
            "SELECT COALESCE(SUM(kcal), 0) AS kcal, COALESCE(SUM(protein), 0) AS protein "
            "FROM calories_food_logs WHERE consumed_on = ?;",
            (consumed_on,),
        )
        return {
            "consumed_on": consumed_on,
            "kcal": float(row["kcal"]) if row else 0.0,
            "protein": float(row["protein"]) if row else 0.0,
        }

    def month_summary(self, month: Any) -> dict:
        """Return per-day totals for the dates of ``month`` that have logs."""
        start_date, end_date = month_bounds(month)
        rows = self.fetch_all(
            """SELECT
                    consumed_on,
                    COALESCE(SUM(kcal), 0) AS kcal,
                    COALESCE(SUM(protein), 0) AS protein
                FROM calories_food_logs
                WHERE consumed_on >= ? AND consumed_on <= ?
                GROUP BY consumed_on
                ORDER BY consumed_on ASC;""",
            (start_date, end_date),
        )
        return {
            "month": start_date[:7],
            "start_date": start_date,
            "end_date": end_date,
            "points": [
                {
                    "date": row["consumed_on"],
                    "kcal": float(row["kcal"]),
                    "protein": float(row["protein"]),
                }
                for row in rows
            ],
        }
