"""Tests for environment-driven settings."""

import pytest

from fews.config import Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.port == 8000
    assert settings.store_path is None
    assert settings.ai_think_delay == 1.5
    assert settings.enforce_step_order is True


def test_overrides():
    settings = Settings.from_env(
        {
            "FEWS_PORT": "9001",
            "FEWS_LOG_LEVEL": "debug",
            "FEWS_STORE_PATH": "/tmp/progress.json",
            "FEWS_AI_THINK_DELAY": "0",
            "FEWS_ENFORCE_STEP_ORDER": "no",
        }
    )
    assert settings.port == 9001
    assert settings.log_level == "DEBUG"
    assert settings.store_path == "/tmp/progress.json"
    assert settings.ai_think_delay == 0.0
    assert settings.enforce_step_order is False


@pytest.mark.parametrize(
    "env",
    [
        {"FEWS_PORT": "eighty"},
        {"FEWS_AI_THINK_DELAY": "-1"},
        {"FEWS_ENFORCE_STEP_ORDER": "maybe"},
    ],
)
def test_malformed_values_raise(env):
    with pytest.raises(ValueError):
        Settings.from_env(env)
