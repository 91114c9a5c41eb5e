"""
Model Runner

End-to-end orchestration of the FDNL model:
1. Load stream reaches, training observations and sensor measurements
2. Calibrate thresholds (or load a previous calibration) and write them
3. Evaluate against held-out observations (optional) and write the metrics
4. Compute the FDNL series over an interval and write it
5. Plot the series (optional)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from calibration.thresholds import calibrate_thresholds
from common.config import ModelConfig, load_default_config
from evaluation.evaluator import EvaluationResult, evaluate
from ingest.loaders import (
    PathLike,
    load_observations,
    load_reaches,
    load_sensor_measurements,
    load_thresholds,
    write_evaluation,
    write_fdnl_series,
    write_thresholds,
)
from ingest.validators import ValidationError
from network.fdnl import fdnl_series
from normalize.readings import TimestampLike
from normalize.schemas import FdnlPoint, ThresholdTable

logger = logging.getLogger(__name__)

THRESHOLDS_FILE = "thresholds.csv"
EVALUATION_FILE = "evaluation_results.csv"
FDNL_FILE = "fdnl_series.csv"
PLOT_FILE = "fdnl_series.png"


@dataclass
class RunResult:
    """Outputs of one model run."""
    thresholds: ThresholdTable
    series: List[FdnlPoint]
    evaluation: Optional[EvaluationResult] = None
    outputs: Dict[str, Path] = field(default_factory=dict)


def run_model(
    reaches_path: PathLike,
    measurements_path: PathLike,
    output_dir: PathLike,
    training_path: Optional[PathLike] = None,
    evaluation_path: Optional[PathLike] = None,
    thresholds_path: Optional[PathLike] = None,
    start: Optional[TimestampLike] = None,
    end: Optional[TimestampLike] = None,
    interval: Optional[str] = None,
    plot: bool = False,
    config: Optional[ModelConfig] = None
) -> RunResult:
    """
    Run the model end to end.

    Args:
        reaches_path: CSV of stream reaches
        measurements_path: CSV of sensor measurements
        output_dir: Directory for the output files
        training_path: CSV of training observations (required unless
            thresholds_path is given)
        evaluation_path: CSV of held-out observations (skip evaluation if None)
        thresholds_path: CSV of a previous calibration to reuse
        start: Start of the FDNL interval (default: first measurement)
        end: End of the FDNL interval (default: last measurement)
        interval: FDNL step (default from config)
        plot: Also write a PNG plot of the series
        config: Model configuration (default: load_default_config())

    Returns:
        RunResult with thresholds, evaluation, series and output paths

    Raises:
        ValidationError: If an input table is malformed
        ValueError: If neither training_path nor thresholds_path is given
    """
    config = config or load_default_config()
    output_dir = Path(output_dir)
    outputs = {}

    reaches = load_reaches(reaches_path)
    readings = load_sensor_measurements(measurements_path)

    if thresholds_path is not None:
        thresholds = load_thresholds(thresholds_path)
        logger.info(f"Using {len(thresholds)} thresholds from {thresholds_path}")
    elif training_path is not None:
        training = load_observations(training_path)
        thresholds = calibrate_thresholds(
            reaches,
            training,
            readings,
            resolution=config.calibration.sensor_value_resolution
        )
        outputs['thresholds'] = write_thresholds(thresholds, output_dir / THRESHOLDS_FILE)
    else:
        raise ValueError("Either training_path or thresholds_path must be provided")

    evaluation = None
    if evaluation_path is not None:
        evaluation = evaluate(
            reaches,
            readings,
            thresholds,
            load_observations(evaluation_path),
            same_group_size=config.evaluation.same_group_size,
            seed=config.evaluation.seed,
            window=config.window
        )
        outputs['evaluation'] = write_evaluation(evaluation, output_dir / EVALUATION_FILE)

    if start is None or end is None:
        time_range = readings.time_range()
        if time_range is None:
            raise ValidationError("sensor measurements: table is empty, cannot derive FDNL interval")
        start = start if start is not None else time_range[0]
        end = end if end is not None else time_range[1]

    series = fdnl_series(
        start,
        end,
        interval or config.series.interval,
        reaches,
        readings,
        thresholds,
        window=config.window,
        log_every=config.series.log_every
    )
    outputs['fdnl'] = write_fdnl_series(
        series, output_dir / FDNL_FILE, datetime_format=config.io.datetime_format
    )

    if plot:
        # matplotlib is only needed when plotting
        from network.plotting import plot_fdnl_series
        outputs['plot'] = plot_fdnl_series(series, output_dir / PLOT_FILE)

    logger.info(f"✅ Model run complete. Outputs: {', '.join(str(p) for p in outputs.values())}")
    return RunResult(thresholds=thresholds, series=series, evaluation=evaluation, outputs=outputs)
