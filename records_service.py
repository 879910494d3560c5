import logging

from db import GroupExerciseRepository, PersonalRecordRepository, WorkoutRepository
from errors import NotFoundError
from tools import MathTools

logger = logging.getLogger(__name__)


class PersonalRecordService:
    """Keep personal records monotonic as sets are logged."""

    def __init__(
        self,
        record_repo: PersonalRecordRepository,
        group_exercise_repo: GroupExerciseRepository,
        workout_repo: WorkoutRepository,
    ) -> None:
        self.records = record_repo
        self.group_exercises = group_exercise_repo
        self.workouts = workout_repo

    @staticmethod
    def candidates(reps: int, weight: float) -> dict[str, float]:
        """Return the record values a set with ``reps`` and ``weight`` reaches.

        Bodyweight sets (``weight == 0``) only compete for ``max_reps``.
        """
        values = {"max_reps": float(reps)}
        if weight > 0:
            values["max_weight"] = float(weight)
            values["max_volume"] = MathTools.volume([(reps, weight)])
            values["est_1rm"] = MathTools.epley_1rm(weight, reps)
        return values

    def record_set(
        self,
        set_id: int,
        workout_id: int,
        group_exercise_id: int,
        reps: int,
        weight: float,
    ) -> list[str]:
        """Apply a logged set to the records and return the improved types."""
        slot = self.group_exercises.fetch_detail(group_exercise_id)
        if slot is None:
            raise NotFoundError("Group exercise not found")
        workout = self.workouts.fetch_detail(workout_id)
        if workout is None:
            raise NotFoundError("Workout not found")
        improved = []
        for record_type, value in self.candidates(reps, weight).items():
            if self.records.upsert(
                slot["exercise_id"],
                slot["variation_id"],
                record_type,
                value,
                workout["performed_on"],
                set_id,
            ):
                improved.append(record_type)
        if improved:
            logger.info(
                "New records for %s: %s", slot["exercise_name"], ", ".join(improved)
            )
        return improved

    def list_records(self, exercise_id: int | None = None) -> list[dict]:
        return self.records.fetch_all_records(exercise_id)
