import logging
from typing import Any

from db import CaloriesFoodLogRepository, CaloriesTargetRepository
from nutrition_client import NutritionClient
from validation import iso_date

logger = logging.getLogger(__name__)


class NutritionService:
    """Combine the remote food database with the local calorie ledger."""

    def __init__(
        self,
        target_repo: CaloriesTargetRepository,
        food_log_repo: CaloriesFoodLogRepository,
        client: NutritionClient,
    ) -> None:
        self.targets = target_repo
        self.food_logs = food_log_repo
        self.client = client

    def search_food(self, query: Any) -> list[dict]:
        return self.client.search_food(query)

    def unit_options(self, food_id: Any) -> list[str]:
        return self.client.unit_options(food_id)

    def add_food(self, consumed_on: Any, food_id: Any, grams: Any, title: Any = None) -> dict:
        """Look up ``grams`` of a food and log it for ``consumed_on``.

        The lookup happens before anything is written, so a failed request
        leaves the ledger untouched.
        """
        consumed_on = iso_date(consumed_on, "Date")
        nutrition = self.client.fetch_nutrition(food_id, grams, title)
        entry = self.food_logs.add(
            consumed_on,
            nutrition["food_id"],
            nutrition["title"],
            nutrition["grams"],
            nutrition["kcal"],
            nutrition["protein"],
            nutrition["image_url"],
        )
        logger.info("Logged %sg of %s on %s", entry["grams"], entry["title"], consumed_on)
        return {"entry": entry, "summary": self.food_logs.day_summary(consumed_on)}
