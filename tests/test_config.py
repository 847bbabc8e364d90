from __future__ import annotations

from pathlib import Path

import pytest

from trivia_progression.config import load_settings
from trivia_progression.policy import ProgressionPolicy, load_policy

ENV_KEYS = (
    "DATABASE_PATH",
    "STORAGE_BACKEND",
    "SNAPSHOT_PATH",
    "TZ",
    "AUTO_SAVE_ENABLED",
    "AUTO_SAVE_MINUTES",
    "TICK_SECONDS",
    "POLICY_CONFIG",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_settings_defaults(clean_env, tmp_path) -> None:
    settings = load_settings(tmp_path / "missing.env")
    assert settings.database_path == Path("./data/progress.db")
    assert settings.storage_backend == "sqlite"
    assert settings.tz == "UTC"
    assert settings.auto_save_enabled is True
    assert settings.auto_save_minutes == 30
    assert settings.tick_seconds == 60
    assert settings.log_level == "INFO"


def test_env_file_does_not_override_environment(clean_env, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local overrides\n"
        "TZ='Europe/Oslo'\n"
        "STORAGE_BACKEND=json\n"
        "AUTO_SAVE_MINUTES=5\n",
        encoding="utf-8",
    )
    clean_env.setenv("AUTO_SAVE_MINUTES", "15")

    settings = load_settings(env_file)
    assert settings.tz == "Europe/Oslo"
    assert settings.storage_backend == "json"
    assert settings.auto_save_minutes == 15


def test_bad_values_fall_back_to_defaults(clean_env, tmp_path) -> None:
    clean_env.setenv("AUTO_SAVE_MINUTES", "soon")
    clean_env.setenv("TICK_SECONDS", "0")
    clean_env.setenv("STORAGE_BACKEND", "mongo")
    clean_env.setenv("AUTO_SAVE_ENABLED", "off")

    settings = load_settings(tmp_path / "missing.env")
    assert settings.auto_save_minutes == 30
    assert settings.tick_seconds == 60
    assert settings.storage_backend == "sqlite"
    assert settings.auto_save_enabled is False


def test_missing_policy_file_gives_defaults(tmp_path) -> None:
    assert load_policy(tmp_path / "nope.yaml") == ProgressionPolicy()


def test_policy_file_overrides_known_keys(tmp_path) -> None:
    path = tmp_path / "progression.yaml"
    path.write_text(
        """
rewards:
  completion_bonus: 75
  streak_step_days: lots
  grace_replenish_days: 14
  surprise: 1
generation:
  difficulty_mix:
    easy: 3
    medium: 1
    hard: 1
  completion_task_enabled: false
rating:
  k_provisional: 48
  bands:
    0: Rookie
    1500: Pro
""",
        encoding="utf-8",
    )

    policy = load_policy(path)
    assert policy.rewards.completion_bonus == 75
    assert policy.rewards.streak_step_days == 5
    assert policy.rewards.grace_replenish_days == 14
    assert policy.generation.difficulty_mix == {"easy": 3, "medium": 1, "hard": 1}
    assert policy.generation.subset_size == 5
    assert policy.generation.completion_task_enabled is False
    assert policy.rating.k_provisional == 48
    assert policy.rating.bands == ((0, "Rookie"), (1500, "Pro"))


def test_non_mapping_policy_file_gives_defaults(tmp_path) -> None:
    path = tmp_path / "progression.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    assert load_policy(path) == ProgressionPolicy()
