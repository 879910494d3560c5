import os
import sys

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from settings_schema import SettingsSchema, validate_settings


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.delenv("LOGLY_DB_PATH", raising=False)
    monkeypatch.delenv("LOGLY_LOG_LEVEL", raising=False)
    settings = YamlConfig(str(tmp_path / "missing.yaml")).settings()
    assert settings == SettingsSchema()
    assert settings.db_path == "logly.db"
    assert settings.nutrition_timeout == 9.0
    assert settings.nutrition_max_redirects == 3
    assert settings.food_search_limit == 5


def test_save_and_load(tmp_path, monkeypatch):
    monkeypatch.delenv("LOGLY_DB_PATH", raising=False)
    path = str(tmp_path / "settings.yaml")
    cfg = YamlConfig(path)
    cfg.save({"db_path": "custom.db", "workouts_page_size": 10})
    assert cfg.load() == {"db_path": "custom.db", "workouts_page_size": 10}
    settings = cfg.settings()
    assert settings.db_path == "custom.db"
    assert settings.workouts_page_size == 10


def test_environment_overrides(tmp_path, monkeypatch):
    path = str(tmp_path / "settings.yaml")
    YamlConfig(path).save({"db_path": "file.db"})
    monkeypatch.setenv("LOGLY_DB_PATH", "env.db")
    monkeypatch.setenv("LOGLY_LOG_LEVEL", "DEBUG")
    settings = YamlConfig(path).settings()
    assert settings.db_path == "env.db"
    assert settings.log_level == "DEBUG"


def test_invalid_values(tmp_path):
    with pytest.raises(ValueError):
        validate_settings({"workouts_page_size": 0})
    with pytest.raises(ValueError):
        validate_settings({"nutrition_timeout": "soon"})
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(["not", "a", "mapping"]), encoding="utf-8")
    with pytest.raises(ValueError):
        YamlConfig(str(path)).load()
