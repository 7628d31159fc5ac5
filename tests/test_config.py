import dataclasses
import os

import pytest

from retirement_runway.config import DEFAULT_CONFIG, SimulationConfig, load_config, validate_assumptions
from retirement_runway.errors import InputValidationError


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("RUNWAY_"):
            monkeypatch.delenv(key)
    yield monkeypatch
    for key in list(os.environ):
        if key.startswith("RUNWAY_"):
            del os.environ[key]


def test_defaults():
    cfg = SimulationConfig()
    assert cfg.real_return == 0.05
    assert cfg.volatility == 0.12
    assert cfg.plan_to_age == 95
    assert cfg.target_success_rate == 0.90
    assert cfg.iterations == 1000
    assert cfg.cache_ttl_seconds == 86_400


def test_config_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_CONFIG.real_return = 0.1


def test_no_overrides_returns_base(clean_env):
    assert load_config() is DEFAULT_CONFIG


def test_environment_overrides(clean_env):
    clean_env.setenv("RUNWAY_REAL_RETURN", "0.04")
    clean_env.setenv("RUNWAY_ITERATIONS", "2000")
    cfg = load_config()
    assert cfg.real_return == 0.04
    assert cfg.iterations == 2000
    assert isinstance(cfg.iterations, int)
    assert cfg.volatility == DEFAULT_CONFIG.volatility


def test_env_file_loaded_without_overriding(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("RUNWAY_PLAN_TO_AGE=100\nRUNWAY_VOLATILITY=0.2\n")
    clean_env.setenv("RUNWAY_VOLATILITY", "0.15")
    cfg = load_config(str(env_file))
    assert cfg.plan_to_age == 100
    assert cfg.volatility == 0.15


def test_bad_number_rejected(clean_env):
    clean_env.setenv("RUNWAY_REAL_RETURN", "five percent")
    with pytest.raises(InputValidationError) as exc:
        load_config()
    assert exc.value.fields == ["RUNWAY_REAL_RETURN"]


def test_out_of_range_rejected(clean_env):
    clean_env.setenv("RUNWAY_VOLATILITY", "0.9")
    with pytest.raises(InputValidationError) as exc:
        load_config()
    assert exc.value.fields == ["volatility"]


def test_validate_assumptions_collects_everything():
    with pytest.raises(InputValidationError) as exc:
        validate_assumptions(0.5, -0.1, 60, 1.0)
    assert exc.value.fields == ["real_return", "volatility", "plan_to_age", "target_success_rate"]
