import datetime
import json
import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import backup_db, demo_data, export_day, main, migrate_db, restore_db
from db import CategoryRepository, Database, ExerciseRepository


class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.yaml_path = "test_cli.yaml"
        self.backup_path = "test_cli_backup.db"
        self.export_path = "test_cli_day.json"
        self._cleanup()

    def tearDown(self) -> None:
        self._cleanup()

    def _cleanup(self) -> None:
        for base in [self.db_path, self.backup_path]:
            for suffix in ("", "-wal", "-shm"):
                if os.path.exists(base + suffix):
                    os.remove(base + suffix)
        for path in [self.yaml_path, self.export_path]:
            if os.path.exists(path):
                os.remove(path)

    def test_migrate_creates_schema(self) -> None:
        added = migrate_db(self.db_path)
        self.assertIn(("exercises", "suboptions"), added)
        self.assertEqual(migrate_db(self.db_path), [])

    def test_backup_restore(self) -> None:
        with Database(self.db_path) as db:
            CategoryRepository(db).create("Mobility")
        backup_db(self.db_path, self.backup_path)
        self.assertTrue(os.path.exists(self.backup_path))

        with Database(self.db_path) as db:
            CategoryRepository(db).execute("DELETE FROM categories;")
        restore_db(self.backup_path, self.db_path)
        with Database(self.db_path) as db:
            names = [c["name"] for c in CategoryRepository(db).fetch_all_categories()]
        self.assertIn("Mobility", names)

        with self.assertRaises(FileNotFoundError):
            restore_db("missing_backup.db", self.db_path)

    def test_demo_data_and_export(self) -> None:
        self.assertTrue(demo_data(self.db_path, self.yaml_path))
        self.assertFalse(demo_data(self.db_path, self.yaml_path))
        with Database(self.db_path) as db:
            names = [e["name"] for e in ExerciseRepository(db).fetch_all_exercises()]
        self.assertEqual(names, ["Bench Press", "Pull-up"])

        today = datetime.date.today().isoformat()
        data = json.loads(export_day(self.db_path, today, self.export_path))
        self.assertEqual(data["performed_on"], today)
        self.assertEqual(data["entries"][0]["exercise_name"], "Pull-up")
        with open(self.export_path, encoding="utf-8") as f:
            self.assertEqual(json.load(f), data)

    def test_main_dispatch(self) -> None:
        main(["--yaml", self.yaml_path, "--db", self.db_path, "migrate"])
        self.assertTrue(os.path.exists(self.db_path))
        main(["--yaml", self.yaml_path, "--db", self.db_path, "backup", "--out", self.backup_path])
        self.assertTrue(os.path.exists(self.backup_path))
        main(
            [
                "--yaml",
                self.yaml_path,
                "--db",
                self.db_path,
                "export-day",
                "2024-05-01",
                "--out",
                self.export_path,
            ]
        )
        with open(self.export_path, encoding="utf-8") as f:
            self.assertEqual(json.load(f)["entries"], [])


if __name__ == "__main__":
    unittest.main()
