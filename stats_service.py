from __future__ import annotations

from typing import Any

from db import (
    DailyLogRepository,
    ExerciseRepository,
    GroupRepository,
    PersonalRecordRepository,
    WorkoutRepository,
)
from tools import MathTools
from validation import iso_date, optional_text, parse_json_array, positive_int


class StatisticsService:
    """Compute progress statistics for analysis."""

    def __init__(
        self,
        daily_log_repo: DailyLogRepository,
        exercise_repo: ExerciseRepository | None = None,
        group_repo: GroupRepository | None = None,
        workout_repo: WorkoutRepository | None = None,
        record_repo: PersonalRecordRepository | None = None,
    ) -> None:
        self.daily_logs = daily_log_repo
        self.exercises = exercise_repo
        self.groups = group_repo
        self.workouts = workout_repo
        self.records = record_repo

    @staticmethod
    def _valid_reps(value: Any) -> int | None:
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
        return None

    @staticmethod
    def _valid_weight(value: Any) -> float | None:
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            return float(value)
        return None

    def reps_analytics(
        self,
        exercise_id: Any,
        start_date: Any,
        end_date: Any,
        tag: Any = None,
    ) -> dict:
        """Return per-day reps, weight and volume aggregates for an exercise.

        Days are daily log entries in the inclusive range, optionally only
        those tagged ``tag`` (case-insensitive). Blank reps or weights are
        left out of their aggregates instead of counting as zero.
        """
        exercise_id = positive_int(exercise_id, "Exercise ID")
        start_date = iso_date(start_date, "Start date")
        end_date = iso_date(end_date, "End date")
        tag = optional_text(tag)
        tag_key = tag.lower() if tag else ""

        days: dict[int, dict] = {}
        for row in self.daily_logs.fetch_analytics_rows(exercise_id, start_date, end_date):
            day = days.get(row["daily_log_id"])
            if day is None:
                day = {
                    "date": row["performed_on"],
                    "tags": parse_json_array(row["selected_tags"]),
                    "reps": [],
                    "weight": [],
                    "volume": [],
                }
                days[row["daily_log_id"]] = day
            reps = self._valid_reps(row["reps"])
            weight = self._valid_weight(row["weight"])
            if reps is not None:
                day["reps"].append(reps)
            if weight is not None:
                day["weight"].append(weight)
            if reps is not None and weight is not None:
                day["volume"].append(reps * weight)

        selected = [
            day
            for day in days.values()
            if not tag_key or any(value.lower() == tag_key for value in day["tags"])
        ]
        selected.sort(key=lambda day: day["date"])

        points = [
            {
                "date": day["date"],
                "reps_avg": MathTools.mean(day["reps"]),
                "reps_max": MathTools.maximum(day["reps"]),
                "weight_avg": MathTools.mean(day["weight"]),
                "weight_max": MathTools.maximum(day["weight"]),
                "volume_avg": MathTools.mean(day["volume"]),
                "volume_max": MathTools.maximum(day["volume"]),
                "sets_count": len(day["reps"]),
            }
            for day in selected
        ]
        return {
            "exercise_id": exercise_id,
            "start_date": start_date,
            "end_date": end_date,
            "points": points,
        }

    def dashboard(self) -> dict:
        """Return catalog and training counts with the latest workouts."""
        return {
            "counts": {
                "exercises": self.exercises.count() if self.exercises else 0,
                "groups": self.groups.count() if self.groups else 0,
                "workouts": self.workouts.count() if self.workouts else 0,
                "records": self.records.count() if self.records else 0,
            },
            "active_workouts": self.workouts.fetch_active() if self.workouts else [],
            "recent_workouts": (
                self.workouts.fetch_all_workouts(5) if self.workouts else []
            ),
        }
