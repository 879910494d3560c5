import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import CategoryRepository, Database, ExerciseRepository, ExerciseTagRepository


def _columns(db_file, table):
    conn = sqlite3.connect(str(db_file))
    cols = [row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()]
    conn.close()
    return cols


class TestSchemaMigration:
    def test_adds_missing_columns_to_legacy_tables(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE exercises (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, "
            "type TEXT NOT NULL, notes TEXT, created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP)"
        )
        conn.execute("INSERT INTO exercises (name, type) VALUES ('Squat', 'strength')")
        conn.commit()
        conn.close()

        db = Database(str(db_file))
        assert ("exercises", "equipment") in db.added_columns
        assert ("exercises", "suboptions") in db.added_columns
        squat = ExerciseRepository(db).fetch_all_exercises()[0]
        assert squat["equipment"] == "bodyweight"
        assert squat["muscle_groups"] == []
        assert squat["suboptions"] == []
        db.close()

        cols = _columns(db_file, "exercises")
        assert {"equipment", "muscle_groups", "suboptions"} <= set(cols)
        assert "selected_tags" in _columns(db_file, "daily_logs")

    def test_reopening_is_idempotent(self, tmp_path):
        db_file = str(tmp_path / "logly.db")
        first = Database(db_file)
        first.close()
        second = Database(db_file)
        assert second.added_columns == []
        assert second.ensure_column("exercises", "equipment", "TEXT") is False
        second.close()

    def test_categories_seeded_once(self, tmp_path):
        db_file = str(tmp_path / "logly.db")
        db = Database(db_file)
        categories = CategoryRepository(db)
        assert len(categories.fetch_all_categories()) == len(Database.DEFAULT_CATEGORIES)
        categories.execute("DELETE FROM categories;")
        db.close()

        db = Database(db_file)
        assert CategoryRepository(db).fetch_all_categories() == []
        db.close()

    def test_existing_categories_are_not_seeded(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE categories (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, "
            "created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP)"
        )
        conn.execute("INSERT INTO categories (name) VALUES ('Mobility')")
        conn.commit()
        conn.close()

        db = Database(str(db_file))
        names = [c["name"] for c in CategoryRepository(db).fetch_all_categories()]
        assert names == ["Mobility"]
        db.close()

    def test_backfills_tag_vocabulary(self, tmp_path):
        db_file = tmp_path / "legacy.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE exercises (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, "
            "type TEXT NOT NULL, notes TEXT, suboptions TEXT NOT NULL DEFAULT '[]', "
            "created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP)"
        )
        conn.execute(
            "INSERT INTO exercises (name, type, suboptions) VALUES (?, ?, ?)",
            ("Bench", "strength", '["Close-Grip", "Paused"]'),
        )
        conn.execute(
            "INSERT INTO exercises (name, type, suboptions) VALUES (?, ?, ?)",
            ("Row", "strength", '["close-grip", "broken'),
        )
        conn.commit()
        conn.close()

        db = Database(str(db_file))
        tags = ExerciseTagRepository(db)
        assert [t["name"] for t in tags.fetch_all_tags()] == ["Close-Grip", "Paused"]
        tags.execute("UPDATE exercises SET suboptions = '[\"Wide\"]' WHERE name = 'Row';")
        db.close()

        db = Database(str(db_file))
        names = [t["name"] for t in ExerciseTagRepository(db).fetch_all_tags()]
        assert names == ["Close-Grip", "Paused"]
        db.close()

    def test_foreign_keys_enforced(self, tmp_path):
        db = Database(str(tmp_path / "logly.db"))
        with db.transaction() as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        db.close()

    def test_nested_transaction_rolls_back_together(self, tmp_path):
        db = Database(str(tmp_path / "logly.db"))
        categories = CategoryRepository(db)
        try:
            with db.transaction():
                categories.create("Mobility")
                with db.transaction():
                    categories.create("Conditioning")
                raise RuntimeError("abort")
        except RuntimeError:
            pass
        names = [c["name"] for c in categories.fetch_all_categories()]
        assert "Mobility" not in names
        assert "Conditioning" not in names
        db.close()

    def test_backup(self, tmp_path):
        db = Database(str(tmp_path / "logly.db"))
        CategoryRepository(db).create("Mobility")
        db.backup(str(tmp_path / "copy.db"))
        db.close()

        copy = Database(str(tmp_path / "copy.db"))
        names = [c["name"] for c in CategoryRepository(copy).fetch_all_categories()]
        assert "Mobility" in names
        copy.close()
