"""
Model Configuration for the FDNL engine

Loads the model tunables from config/model.yaml.

Design Principles:
- Config-driven tunables (no scattered magic numbers)
- Environment (.env) can point to an alternative config file
- Missing file falls back to built-in defaults, invalid values fail loudly
"""

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "model.yaml"


class CalibrationSettings(BaseModel):
    sensor_value_resolution: float = Field(0.001, ge=0)


class PredictionSettings(BaseModel):
    window_minutes: float = Field(5, gt=0)


class SeriesSettings(BaseModel):
    interval: str = "1h"
    log_every: int = Field(24, ge=0)


class EvaluationSettings(BaseModel):
    same_group_size: bool = False
    seed: Optional[int] = None


class IOSettings(BaseModel):
    datetime_format: str = "%Y-%m-%d %H:%M:%S"


class ModelConfig(BaseModel):
    """
    Configuration for calibration, prediction, series and evaluation.

    Attributes:
        calibration: Threshold calibration settings
        prediction: Reading lookup settings
        series: FDNL series settings
        evaluation: Evaluation settings
        io: Output formatting
    """

    calibration: CalibrationSettings = Field(default_factory=CalibrationSettings)
    prediction: PredictionSettings = Field(default_factory=PredictionSettings)
    series: SeriesSettings = Field(default_factory=SeriesSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    io: IOSettings = Field(default_factory=IOSettings)

    @property
    def window(self) -> timedelta:
        """Reading lookup half-window as a timedelta"""
        return timedelta(minutes=self.prediction.window_minutes)

    @classmethod
    def from_yaml(cls, config_path: Path) -> 'ModelConfig':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to model.yaml

        Returns:
            ModelConfig instance

        Raises:
            FileNotFoundError: If the file doesn't exist
            pydantic.ValidationError: If a value is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Model config not found: {config_path}")

        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        return cls(**config)


def load_default_config() -> ModelConfig:
    """
    Load the model configuration.

    Looks for FDNL_CONFIG in the environment (after loading .env), then for
    config/model.yaml, and falls back to built-in defaults.

    Returns:
        ModelConfig instance
    """
    load_dotenv()

    env_path = os.getenv('FDNL_CONFIG')
    if env_path:
        logger.info(f"Loading model config from FDNL_CONFIG={env_path}")
        return ModelConfig.from_yaml(Path(env_path))

    if DEFAULT_CONFIG_PATH.exists():
        return ModelConfig.from_yaml(DEFAULT_CONFIG_PATH)

    logger.warning(f"No model config at {DEFAULT_CONFIG_PATH}, using defaults")
    return ModelConfig()
