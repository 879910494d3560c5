from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    db_path: str = "logly.db"
    log_level: str = "INFO"
    workouts_page_size: int = Field(30, gt=0)
    recent_sets_limit: int = Field(40, gt=0)
    nutrition_base_url: str = "https://www.kaloricketabulky.sk"
    nutrition_timeout: float = Field(9.0, gt=0)
    nutrition_max_redirects: int = Field(3, ge=0)
    nutrition_retries: int = Field(2, ge=0)
    food_search_limit: int = Field(5, gt=0)


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
