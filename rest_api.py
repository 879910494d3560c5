import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import APP_VERSION, YamlConfig
from db import (
    CaloriesFoodLogRepository,
    CaloriesTargetRepository,
    CategoryRepository,
    DailyLogRepository,
    Database,
    ExerciseRepository,
    ExerciseTagRepository,
    GroupExerciseRepository,
    GroupRepository,
    PersonalRecordRepository,
    VariationRepository,
    WorkoutRepository,
    WorkoutSetRepository,
)
from errors import (
    IntegrityError,
    NotFoundError,
    NutritionQueryError,
    NutritionUnavailableError,
    StateConflictError,
    ValidationError,
)
from nutrition_client import NutritionClient
from nutrition_service import NutritionService
from records_service import PersonalRecordService
from stats_service import StatisticsService
from workout_service import WorkoutService

logger = logging.getLogger(__name__)

CLEAR_ALL_CONFIRMATION = "Yes, I confirm"

ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (StateConflictError, 409),
    (IntegrityError, 409),
    (NutritionQueryError, 400),
    (NutritionUnavailableError, 503),
)


class ExerciseIn(BaseModel):
    name: str
    type: Optional[str] = None
    notes: Optional[str] = None
    equipment: Optional[str] = None
    muscle_groups: List[str] = []
    suboptions: List[str] = []


class DailyLogSetIn(BaseModel):
    reps: Any = None
    weight: Any = None


class DailyLogEntryIn(BaseModel):
    exercise_id: int
    sets: List[DailyLogSetIn] = []
    selected_tags: List[str] = []


class FoodLogIn(BaseModel):
    consumed_on: str
    food_id: str
    grams: float
    title: Optional[str] = None


class LoglyAPI:
    """Provides REST endpoints for training and nutrition logging."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        nutrition_client: NutritionClient | None = None,
    ) -> None:
        self.config = YamlConfig(yaml_path).settings()
        self.db_path = db_path or self.config.db_path
        self.db = Database(self.db_path)
        self.categories = CategoryRepository(self.db)
        self.exercises = ExerciseRepository(self.db)
        self.variations = VariationRepository(self.db)
        self.exercise_tags = ExerciseTagRepository(self.db)
        self.groups = GroupRepository(self.db)
        self.group_exercises = GroupExerciseRepository(self.db)
        self.workouts = WorkoutRepository(self.db)
        self.workout_sets = WorkoutSetRepository(self.db)
        self.personal_records = PersonalRecordRepository(self.db)
        self.daily_logs = DailyLogRepository(self.db)
        self.calories_targets = CaloriesTargetRepository(self.db)
        self.food_logs = CaloriesFoodLogRepository(self.db)
        self.records = PersonalRecordService(
            self.personal_records, self.group_exercises, self.workouts
        )
        self.workout_service = WorkoutService(
            self.db,
            self.groups,
            self.group_exercises,
            self.workouts,
            self.workout_sets,
            self.records,
        )
        self.nutrition_client = nutrition_client or NutritionClient(
            base_url=self.config.nutrition_base_url,
            timeout=self.config.nutrition_timeout,
            max_redirects=self.config.nutrition_max_redirects,
            retries=self.config.nutrition_retries,
            search_limit=self.config.food_search_limit,
        )
        self.nutrition = NutritionService(
            self.calories_targets, self.food_logs, self.nutrition_client
        )
        self.statistics = StatisticsService(
            self.daily_logs,
            self.exercises,
            self.groups,
            self.workouts,
            self.personal_records,
        )
        self.app = FastAPI(
            title="Logly API",
            description="REST API for workout, daily log and calorie tracking",
            version=APP_VERSION,
        )
        self._setup_error_handlers()
        self._setup_routes()

    def close(self) -> None:
        self.db.close()

    def _setup_error_handlers(self) -> None:
        def make_handler(status_code: int):
            async def handler(request: Request, exc: Exception):
                if status_code >= 500:
                    logger.warning(
                        "%s %s failed: %s", request.method, request.url.path, exc
                    )
                return JSONResponse(status_code=status_code, content={"detail": str(exc)})

            return handler

        for exc_class, status_code in ERROR_STATUS:
            self.app.add_exception_handler(exc_class, make_handler(status_code))

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    def _setup_routes(self) -> None:
        catalog_router = APIRouter(tags=["Catalog"])
        calories_router = APIRouter(prefix="/calories", tags=["Calories"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            self.workouts.count()
            return {"status": "ok", "version": APP_VERSION}

        @self.app.get("/dashboard")
        def dashboard():
            return self.statistics.dashboard()

        @catalog_router.get("/categories")
        def list_categories():
            return self.categories.fetch_all_categories()

        @catalog_router.post("/categories")
        def add_category(name: str):
            return self.categories.create(name)

        @catalog_router.get("/exercises")
        def list_exercises():
            return self.exercises.fetch_all_exercises()

        @catalog_router.post("/exercises")
        def add_exercise(exercise: ExerciseIn):
            return self.exercises.create(
                exercise.name,
                exercise.type,
                exercise.notes,
                exercise.equipment,
                exercise.muscle_groups,
                exercise.suboptions,
            )

        @catalog_router.get("/exercises/{exercise_id}")
        def get_exercise(exercise_id: int):
            return self.exercises.fetch_detail(exercise_id)

        @catalog_router.put("/exercises/{exercise_id}")
        def update_exercise(exercise_id: int, exercise: ExerciseIn):
            return self.exercises.update(
                exercise_id,
                exercise.name,
                exercise.type,
                exercise.notes,
                exercise.equipment,
                exercise.muscle_groups,
                exercise.suboptions,
            )

        @catalog_router.delete("/exercises/{exercise_id}")
        def delete_exercise(exercise_id: int):
            self.exercises.delete(exercise_id)
            return {"status": "deleted"}

        @catalog_router.post("/exercises/{exercise_id}/categories")
        def assign_category(exercise_id: int, category_id: int):
            self.exercises.assign_category(exercise_id, category_id)
            return {"status": "assigned"}

        @catalog_router.post("/exercises/{exercise_id}/variations")
        def add_variation(
            exercise_id: int,
            name: str,
            grip: str | None = None,
            stance: str | None = None,
            notes: str | None = None,
        ):
            return self.variations.create(exercise_id, name, grip, stance, notes)

        @catalog_router.get("/exercise_tags")
        def list_exercise_tags():
            return self.exercise_tags.fetch_all_tags()

        @catalog_router.post("/exercise_tags")
        def add_exercise_tag(name: str):
            return self.exercise_tags.create(name)

        @catalog_router.delete("/exercise_tags/{name}")
        def delete_exercise_tag(name: str):
            updated = self.exercise_tags.delete(name)
            return {"status": "deleted", "updated_exercises": updated}

        @self.app.get("/groups")
        def list_groups():
            return self.groups.fetch_all_groups()

        @self.app.post("/groups")
        def add_group(name: str, description: str | None = None):
            return self.groups.create(name, description)

        @self.app.post("/groups/clear_all")
        def clear_groups(confirmation: str = Body(..., embed=True)):
            if confirmation != CLEAR_ALL_CONFIRMATION:
                raise HTTPException(status_code=400, detail="Confirmation required")
            self.groups.delete_all()
            return {"status": "cleared"}

        @self.app.get("/groups/{group_id}")
        def get_group(group_id: int):
            return self.groups.fetch_detail(group_id)

        @self.app.delete("/groups/{group_id}")
        def delete_group(group_id: int):
            self.groups.delete(group_id)
            return {"status": "deleted"}

        @self.app.post("/groups/{group_id}/exercises")
        def add_group_exercise(
            group_id: int,
            exercise_id: int,
            variation_id: int | None = None,
            target_sets: int | None = None,
            target_reps: str | None = None,
            order_index: int | None = None,
        ):
            return self.group_exercises.add(
                group_id, exercise_id, variation_id, target_sets, target_reps, order_index
            )

        @self.app.delete("/group_exercises/{group_exercise_id}")
        def delete_group_exercise(group_exercise_id: int):
            self.group_exercises.remove(group_exercise_id)
            return {"status": "deleted"}

        @self.app.post("/workouts")
        def start_workout(group_id: int, performed_on: str, notes: str | None = None):
            return self.workout_service.start_workout(group_id, performed_on, notes)

        @self.app.get("/workouts")
        def list_workouts(limit: int | None = None):
            return self.workout_service.list_workouts(
                limit or self.config.workouts_page_size
            )

        @self.app.get("/workouts/active")
        def list_active_workouts():
            return self.workout_service.list_active()

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: int):
            return self.workout_service.workout_detail(workout_id)

        @self.app.post("/workouts/{workout_id}/finish")
        def finish_workout(workout_id: int):
            return self.workout_service.finish_workout(workout_id)

        @self.app.post("/workouts/{workout_id}/sets")
        def log_set(
            workout_id: int,
            group_exercise_id: int,
            reps: int,
            weight: float = 0,
            rpe: float | None = None,
            notes: str | None = None,
        ):
            return self.workout_service.log_set(
                workout_id, group_exercise_id, reps, weight, rpe, notes
            )

        @self.app.get("/records")
        def list_records(exercise_id: int | None = None):
            return self.records.list_records(exercise_id)

        @self.app.get("/sets/recent")
        def recent_sets(limit: int | None = None, exercise_id: int | None = None):
            return self.workout_service.recent_sets(
                limit or self.config.recent_sets_limit, exercise_id
            )

        @self.app.get("/daily_logs/{performed_on}")
        def get_daily_log(performed_on: str):
            return self.daily_logs.fetch_day(performed_on)

        @self.app.put("/daily_logs/{performed_on}")
        def replace_daily_log(performed_on: str, entries: List[DailyLogEntryIn]):
            return self.daily_logs.replace_day(
                performed_on, [entry.model_dump() for entry in entries]
            )

        @self.app.get("/analytics/reps")
        def reps_analytics(
            exercise_id: int,
            start_date: str,
            end_date: str,
            tag: str | None = None,
        ):
            return self.statistics.reps_analytics(exercise_id, start_date, end_date, tag)

        @calories_router.get("/targets")
        def get_targets():
            return self.calories_targets.fetch()

        @calories_router.put("/targets")
        def set_targets(target_kcal: float, target_protein: float):
            return self.calories_targets.update(target_kcal, target_protein)

        @calories_router.get("/foods/search")
        def search_foods(query: str):
            return self.nutrition.search_food(query)

        @calories_router.get("/foods/{food_id}/units")
        def food_units(food_id: str):
            return self.nutrition.unit_options(food_id)

        @calories_router.get("/logs/{consumed_on}")
        def list_food_logs(consumed_on: str):
            return self.food_logs.fetch_for_day(consumed_on)

        @calories_router.post("/logs")
        def add_food_log(food: FoodLogIn):
            return self.nutrition.add_food(
                food.consumed_on, food.food_id, food.grams, food.title
            )

        @calories_router.delete("/logs/{consumed_on}/{log_id}")
        def delete_food_log(consumed_on: str, log_id: int):
            return self.food_logs.delete(log_id, consumed_on)

        @calories_router.get("/summary/month/{month}")
        def month_summary(month: str):
            return self.food_logs.month_summary(month)

        @calories_router.get("/summary/{consumed_on}")
        def day_summary(consumed_on: str):
            return self.food_logs.day_summary(consumed_on)

        self.app.include_router(catalog_router)
        self.app.include_router(calories_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(LoglyAPI().app)
