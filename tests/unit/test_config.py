"""
Unit Tests for Model Configuration

Tests verify:
1. Loading from YAML
2. Built-in defaults
3. FDNL_CONFIG environment override
4. Rejection of invalid values
"""

import sys
from datetime import timedelta
from pathlib import Path

import pydantic
import pytest

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from common.config import DEFAULT_CONFIG_PATH, ModelConfig, load_default_config


def test_defaults():
    config = ModelConfig()

    assert config.calibration.sensor_value_resolution == 0.001
    assert config.window == timedelta(minutes=5)
    assert config.series.interval == "1h"
    assert config.evaluation.same_group_size is False
    assert config.evaluation.seed is None


def test_repository_config_matches_defaults():
    """The shipped config/model.yaml loads and agrees with the defaults"""
    assert ModelConfig.from_yaml(DEFAULT_CONFIG_PATH) == ModelConfig()


def test_from_yaml_partial(tmp_path):
    """Sections not in the file keep their defaults"""
    path = tmp_path / "model.yaml"
    path.write_text("prediction:\n  window_minutes: 10\nevaluation:\n  seed: 7\n")

    config = ModelConfig.from_yaml(path)

    assert config.window == timedelta(minutes=10)
    assert config.evaluation.seed == 7
    assert config.series.log_every == 24


def test_from_yaml_empty_file(tmp_path):
    path = tmp_path / "model.yaml"
    path.write_text("")

    assert ModelConfig.from_yaml(path) == ModelConfig()


def test_from_yaml_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ModelConfig.from_yaml(tmp_path / "missing.yaml")


def test_invalid_window_rejected(tmp_path):
    path = tmp_path / "model.yaml"
    path.write_text("prediction:\n  window_minutes: 0\n")

    with pytest.raises(pydantic.ValidationError):
        ModelConfig.from_yaml(path)


def test_env_override(tmp_path, monkeypatch):
    """FDNL_CONFIG points to an alternative file"""
    path = tmp_path / "custom.yaml"
    path.write_text("series:\n  interval: 30min\n")
    monkeypatch.setenv("FDNL_CONFIG", str(path))

    config = load_default_config()

    assert config.series.interval == "30min"


def test_default_config_without_env(monkeypatch):
    monkeypatch.delenv("FDNL_CONFIG", raising=False)
    monkeypatch.setattr("common.config.load_dotenv", lambda: None)

    assert load_default_config() == ModelConfig()
