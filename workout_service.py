import logging
from typing import Any

from db import (
    WORKOUT_ACTIVE,
    Database,
    GroupExerciseRepository,
    GroupRepository,
    WorkoutRepository,
    WorkoutSetRepository,
)
from errors import NotFoundError, StateConflictError
from records_service import PersonalRecordService
from validation import iso_date, optional_text, positive_int

logger = logging.getLogger(__name__)


class WorkoutService:
    """Run workout sessions from templates and log their sets."""

    def __init__(
        self,
        db: Database,
        group_repo: GroupRepository,
        group_exercise_repo: GroupExerciseRepository,
        workout_repo: WorkoutRepository,
        set_repo: WorkoutSetRepository,
        record_service: PersonalRecordService,
    ) -> None:
        self.db = db
        self.groups = group_repo
        self.group_exercises = group_exercise_repo
        self.workouts = workout_repo
        self.sets = set_repo
        self.records = record_service

    def start_workout(self, group_id: Any, performed_on: Any, notes: Any = None) -> dict:
        group_id = positive_int(group_id, "Group ID")
        performed_on = iso_date(performed_on, "Workout date")
        notes = optional_text(notes)
        with self.db.transaction():
            if not self.groups.exists(group_id):
                raise NotFoundError("Template not found")
            workout_id = self.workouts.create(group_id, performed_on, notes)
        logger.info("Started workout %s from template %s", workout_id, group_id)
        return self.workout_detail(workout_id)

    def workout_detail(self, workout_id: Any) -> dict:
        workout_id = positive_int(workout_id, "Workout ID")
        workout = self.workouts.fetch_detail(workout_id)
        if workout is None:
            raise NotFoundError("Workout not found")
        return {
            "workout": workout,
            "group_items": self.groups.fetch_items(workout["group_id"]),
            "sets": self.sets.fetch_for_workout(workout_id),
        }

    def log_set(
        self,
        workout_id: Any,
        group_exercise_id: Any,
        reps: Any,
        weight: Any = 0,
        rpe: Any = None,
        notes: Any = None,
    ) -> dict:
        """Append a set to an active workout and update personal records.

        The set and the record updates are committed together.
        """
        workout_id = positive_int(workout_id, "Workout ID")
        group_exercise_id = positive_int(group_exercise_id, "Group exercise ID")
        with self.db.transaction():
            workout = self.workouts.fetch_detail(workout_id)
            if workout is None:
                raise NotFoundError("Workout not found")
            slot = self.group_exercises.fetch_detail(group_exercise_id)
            if slot is None:
                raise NotFoundError("Group exercise not found")
            if workout["status"] != WORKOUT_ACTIVE:
                raise StateConflictError("Workout is already finished")
            if slot["group_id"] != workout["group_id"]:
                raise StateConflictError("Group exercise does not belong to this workout")
            set_id, set_number = self.sets.add(
                workout_id, group_exercise_id, reps, weight, rpe, notes
            )
            stored = self.sets.fetch_one(
                "SELECT reps, weight FROM workout_sets WHERE id = ?;", (set_id,)
            )
            new_records = self.records.record_set(
                set_id, workout_id, group_exercise_id, stored["reps"], stored["weight"]
            )
        return {"id": set_id, "set_number": set_number, "new_records": new_records}

    def finish_workout(self, workout_id: Any) -> dict:
        workout_id = positive_int(workout_id, "Workout ID")
        with self.db.transaction():
            if self.workouts.fetch_detail(workout_id) is None:
                raise NotFoundError("Workout not found")
            if self.workouts.finish(workout_id):
                logger.info("Finished workout %s", workout_id)
        return {"ok": True}

    def list_active(self) -> list[dict]:
        return self.workouts.fetch_active()

    def list_workouts(self, limit: int = 30) -> list[dict]:
        return self.workouts.fetch_all_workouts(positive_int(limit, "Limit"))

    def recent_sets(self, limit: int = 40, exercise_id: Any = None) -> list[dict]:
        limit = positive_int(limit, "Limit")
        if exercise_id is not None:
            exercise_id = positive_int(exercise_id, "Exercise ID")
        return self.sets.fetch_recent(limit, exercise_id)
