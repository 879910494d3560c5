import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    DailyLogRepository,
    Database,
    ExerciseRepository,
    GroupRepository,
    PersonalRecordRepository,
    WorkoutRepository,
)
from errors import ValidationError
from stats_service import StatisticsService


class StatisticsServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_stats.db"
        self._cleanup()
        self.db = Database(self.db_path)
        self.exercises = ExerciseRepository(self.db)
        self.groups = GroupRepository(self.db)
        self.workouts = WorkoutRepository(self.db)
        self.logs = DailyLogRepository(self.db)
        self.stats = StatisticsService(
            self.logs,
            self.exercises,
            self.groups,
            self.workouts,
            PersonalRecordRepository(self.db),
        )
        self.bench = self.exercises.create("Bench", "strength", suboptions=["close-grip"])

    def tearDown(self) -> None:
        self.db.close()
        self._cleanup()

    def _cleanup(self) -> None:
        for suffix in ("", "-wal", "-shm"):
            if os.path.exists(self.db_path + suffix):
                os.remove(self.db_path + suffix)

    def _log(self, date: str, sets: list, tags: list | None = None) -> None:
        self.logs.replace_day(
            date,
            [{"exercise_id": self.bench["id"], "sets": sets, "selected_tags": tags or []}],
        )

    def test_daily_aggregates(self) -> None:
        self._log(
            "2024-05-02",
            [
                {"reps": 10, "weight": 50},
                {"reps": 6, "weight": 70},
                {"reps": None, "weight": 80},
                {"reps": 4, "weight": None},
            ],
        )
        self._log("2024-05-01", [{"reps": 8, "weight": 60}])
        result = self.stats.reps_analytics(self.bench["id"], "2024-05-01", "2024-05-31")
        self.assertEqual(result["exercise_id"], self.bench["id"])
        self.assertEqual([p["date"] for p in result["points"]], ["2024-05-01", "2024-05-02"])

        point = result["points"][1]
        self.assertAlmostEqual(point["reps_avg"], 20 / 3)
        self.assertEqual(point["reps_max"], 10)
        self.assertAlmostEqual(point["weight_avg"], 200 / 3)
        self.assertEqual(point["weight_max"], 80)
        self.assertAlmostEqual(point["volume_avg"], (500 + 420) / 2)
        self.assertEqual(point["volume_max"], 500)
        self.assertEqual(point["sets_count"], 3)

    def test_placeholder_day_reports_zeros(self) -> None:
        self._log("2024-05-01", [])
        point = self.stats.reps_analytics(self.bench["id"], "2024-05-01", "2024-05-01")[
            "points"
        ][0]
        self.assertEqual(point["reps_avg"], 0)
        self.assertEqual(point["weight_max"], 0)
        self.assertEqual(point["sets_count"], 0)

    def test_range_is_inclusive(self) -> None:
        for date in ("2024-04-30", "2024-05-01", "2024-05-31", "2024-06-01"):
            self._log(date, [{"reps": 5, "weight": 10}])
        points = self.stats.reps_analytics(self.bench["id"], "2024-05-01", "2024-05-31")[
            "points"
        ]
        self.assertEqual([p["date"] for p in points], ["2024-05-01", "2024-05-31"])

    def test_tag_filter(self) -> None:
        self._log("2024-05-01", [{"reps": 8, "weight": 60}], ["close-grip"])
        self._log("2024-05-02", [{"reps": 10, "weight": 50}])
        points = self.stats.reps_analytics(
            self.bench["id"], "2024-05-01", "2024-05-31", tag="Close-Grip"
        )["points"]
        self.assertEqual(len(points), 1)
        self.assertEqual(points[0]["date"], "2024-05-01")
        all_points = self.stats.reps_analytics(
            self.bench["id"], "2024-05-01", "2024-05-31", tag="  "
        )["points"]
        self.assertEqual(len(all_points), 2)

    def test_invalid_arguments(self) -> None:
        with self.assertRaises(ValidationError):
            self.stats.reps_analytics(0, "2024-05-01", "2024-05-31")
        with self.assertRaises(ValidationError):
            self.stats.reps_analytics(self.bench["id"], "May", "2024-05-31")

    def test_dashboard(self) -> None:
        group = self.groups.create("Push")
        first = self.workouts.create(group["id"], "2024-05-01")
        self.workouts.finish(first)
        second = self.workouts.create(group["id"], "2024-05-02")
        dashboard = self.stats.dashboard()
        self.assertEqual(
            dashboard["counts"],
            {"exercises": 1, "groups": 1, "workouts": 2, "records": 0},
        )
        self.assertEqual([w["id"] for w in dashboard["active_workouts"]], [second])
        self.assertEqual([w["id"] for w in dashboard["recent_workouts"]], [second, first])


if __name__ == "__main__":
    unittest.main()
