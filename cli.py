import argparse
import datetime
import json
import logging
import os
import shutil
from typing import Optional

from config import YamlConfig
from db import DailyLogRepository, Database
from rest_api import LoglyAPI

logger = logging.getLogger(__name__)


def migrate_db(db_path: str) -> list[tuple[str, str]]:
    """Open the database, creating or upgrading its schema."""
    with Database(db_path) as db:
        return list(db.added_columns)


def backup_db(db_path: str, backup_path: str) -> None:
    with Database(db_path) as db:
        db.backup(backup_path)
    logger.info("Backed up %s to %s", db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    if not os.path.exists(backup_path):
        raise FileNotFoundError(backup_path)
    for suffix in ("-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)
    shutil.copy(backup_path, db_path)
    logger.info("Restored %s from %s", db_path, backup_path)


def export_day(db_path: str, performed_on: str, out_path: Optional[str] = None) -> str:
    """Return the daily log of ``performed_on`` as JSON, optionally writing it."""
    with Database(db_path) as db:
        data = json.dumps(DailyLogRepository(db).fetch_day(performed_on), indent=2)
    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(data)
    return data


def demo_data(db_path: str, yaml_path: str) -> bool:
    """Populate the database with demo data if it has no exercises."""
    api = LoglyAPI(db_path=db_path, yaml_path=yaml_path)
    try:
        if api.exercises.count():
            print("Database already contains exercises")
            return False
        today = datetime.date.today().isoformat()
        bench = api.exercises.create(
            "Bench Press",
            "strength",
            equipment="barbell",
            muscle_groups=["Chest", "Triceps"],
            suboptions=["close-grip", "paused"],
        )
        pullup = api.exercises.create(
            "Pull-up", "strength", muscle_groups=["Back", "Biceps"]
        )
        group = api.groups.create("Upper A", "Demo template")
        bench_slot = api.group_exercises.add(group["id"], bench["id"], target_reps="5")
        api.group_exercises.add(group["id"], pullup["id"], target_reps="8-10")
        workout = api.workout_service.start_workout(group["id"], today, "Demo session")
        workout_id = workout["workout"]["id"]
        api.workout_service.log_set(workout_id, bench_slot["id"], 5, 80)
        api.workout_service.log_set(workout_id, bench_slot["id"], 5, 85)
        api.workout_service.finish_workout(workout_id)
        api.daily_logs.replace_day(
            today,
            [
                {
                    "exercise_id": pullup["id"],
                    "sets": [{"reps": 10, "weight": 0}, {"reps": 8, "weight": 0}],
                }
            ],
        )
        print("Demo data inserted")
        return True
    finally:
        api.close()


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn

    api = LoglyAPI(db_path=db_path, yaml_path=yaml_path)
    try:
        uvicorn.run(api.app, host=host, port=port)
    finally:
        api.close()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Logly utility commands")
    parser.add_argument("--yaml", default="settings.yaml")
    parser.add_argument("--db", default=None, help="overrides db_path from settings")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    sub.add_parser("migrate")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    sub.add_parser("demo")

    exp = sub.add_parser("export-day")
    exp.add_argument("date")
    exp.add_argument("--out", default=None)

    args = parser.parse_args(argv)
    settings = YamlConfig(args.yaml).settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    db_path = args.db or settings.db_path

    if args.cmd == "serve":
        serve(db_path, args.yaml, args.host, args.port)
    elif args.cmd == "migrate":
        added = migrate_db(db_path)
        if added:
            for table, column in added:
                print(f"Added {table}.{column}")
        else:
            print("Schema is up to date")
    elif args.cmd == "backup":
        backup_db(db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, db_path)
    elif args.cmd == "demo":
        demo_data(db_path, args.yaml)
    elif args.cmd == "export-day":
        data = export_day(db_path, args.date, args.out)
        if not args.out:
            print(data)


if __name__ == "__main__":
    main()
