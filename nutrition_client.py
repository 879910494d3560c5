"""Client for the kaloricketabulky.sk food database.

Only three read endpoints are used: the autocomplete search, the per-gram
food detail and the serving-unit form. Nothing is cached.
"""

import logging
import math
import re
from typing import Any, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import NutritionQueryError, NutritionUnavailableError
from validation import positive_number, required_text

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.kaloricketabulky.sk"
DEFAULT_TIMEOUT = 9.0
DEFAULT_MAX_REDIRECTS = 3
DEFAULT_RETRIES = 2
DEFAULT_SEARCH_LIMIT = 5

USER_AGENT = "Logly/1.0 (+https://logly.local)"

_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def parse_locale_number(value: Any) -> float:
    """Parse ``"12,5"`` style numbers. Anything unusable becomes ``0.0``."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    normalized = re.sub(r"\s+", "", str(value)).replace(",", ".", 1)
    match = _NUMBER_PREFIX_RE.match(normalized)
    return float(match.group(0)) if match else 0.0


def _format_grams(grams: float) -> str:
    return str(int(grams)) if float(grams).is_integer() else repr(float(grams))


class NutritionClient:
    """Look up foods and their nutrition values over HTTP."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        retries: int = DEFAULT_RETRIES,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.search_limit = search_limit
        if session is None:
            session = requests.Session()
            retry = Retry(
                total=retries,
                backoff_factor=0.3,
                status_forcelist=(502, 503, 504),
                allowed_methods=frozenset({"GET"}),
                raise_on_status=False,
            )
            session.mount("https://", HTTPAdapter(max_retries=retry))
            session.mount("http://", HTTPAdapter(max_retries=retry))
        session.max_redirects = max_redirects
        self.session = session
        self.headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "Referer": f"{self.base_url}/",
        }

    def thumbnail_url(self, food_id: str) -> str:
        return f"{self.base_url}/file/image/thumb/foodstuff/{quote(str(food_id), safe='')}"

    def _get_json(self, path: str, params: dict) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(
                url, params=params, headers=self.headers, timeout=self.timeout
            )
        except requests.Timeout as exc:
            logger.warning("Nutrition request to %s timed out", path)
            raise NutritionUnavailableError("Calories API request timed out") from exc
        except requests.RequestException as exc:
            logger.warning("Nutrition request to %s failed: %s", path, exc)
            raise NutritionUnavailableError(f"Calories API request error: {exc}") from exc
        status = resp.status_code
        if status >= 500:
            logger.warning("Nutrition request to %s returned %s", path, status)
            raise NutritionUnavailableError(f"Calories API request failed ({status})")
        if status < 200 or status >= 300:
            raise NutritionQueryError(f"Calories API request failed ({status})")
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("Nutrition response from %s is not JSON", path)
            raise NutritionUnavailableError(
                f"Calories API returned invalid JSON: {exc}"
            ) from exc

    def search_food(self, query: Any) -> list[dict]:
        """Return up to ``search_limit`` foodstuff matches for ``query``."""
        query = required_text(query, "Search query")
        payload = self._get_json(
            "/autocomplete/foodstuff-activity-meal",
            {"query": query, "format": "json"},
        )
        if not isinstance(payload, list):
            return []
        results = []
        for item in payload:
            if not isinstance(item, dict) or item.get("clazz") != "foodstuff":
                continue
            if not item.get("id") or not item.get("title"):
                continue
            food_id = str(item["id"])
            results.append(
                {
                    "id": food_id,
                    "title": str(item["title"]),
                    "image_url": self.thumbnail_url(food_id),
                }
            )
            if len(results) >= self.search_limit:
                break
        return results

    def fetch_nutrition(self, food_id: Any, grams: Any, title: Any = None) -> dict:
        """Return kcal and protein of ``grams`` of the food."""
        food_id = required_text(food_id, "Food ID")
        grams = positive_number(grams, "Grams")
        payload = self._get_json(
            f"/foodstuff/detail/{quote(food_id, safe='')}/{_format_grams(grams)}/0000000000000001",
            {"format": "json"},
        )
        food = payload.get("foodstuff") if isinstance(payload, dict) else None
        if not isinstance(food, dict):
            raise NutritionQueryError("Food detail is unavailable for this item")
        resolved = food.get("title")
        if not isinstance(resolved, str) or not resolved.strip():
            resolved = title if isinstance(title, str) else ""
        resolved = resolved.strip()
        if not resolved:
            raise NutritionQueryError("Food detail did not provide a valid title")
        return {
            "food_id": food_id,
            "title": resolved,
            "grams": grams,
            "kcal": parse_locale_number(food.get("energy")),
            "protein": parse_locale_number(food.get("protein")),
            "image_url": self.thumbnail_url(food_id),
        }

    def unit_options(self, food_id: Any) -> list[str]:
        food_id = required_text(food_id, "Food ID")
        payload = self._get_json(
            f"/foodstuff/detail/form/{quote(food_id, safe='')}",
            {"format": "json", "default": "true"},
        )
        options = payload.get("unitOptions") if isinstance(payload, dict) else None
        titles: list[str] = []
        seen: set[str] = set()
        for option in options if isinstance(options, list) else []:
            value = option.get("title") if isinstance(option, dict) else None
            value = value.strip() if isinstance(value, str) else ""
            if not value or value.lower() in seen:
                continue
            seen.add(value.lower())
            titles.append(value)
        return titles
