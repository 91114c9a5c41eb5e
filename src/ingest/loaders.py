"""
CSV Loaders and Writers

Reads the model inputs from delimited files into validated records and tables,
and writes the model outputs back to CSV.

Inputs:
- Stream reaches: location_id, length
- Field observations: location_id, sensor, state, water_level, observed_at
- Sensor measurements: observed_at + one column per sensor
- Thresholds (previous calibration output): location_id, sensor, value, score

Design Principles:
- Parse and validate at the boundary, reject malformed rows with the row number
- Ids are always read as strings
"""

import logging
from pathlib import Path
from typing import Iterable, List, Union

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from calibration.thresholds import thresholds_to_dataframe
from evaluation.evaluator import EvaluationResult, evaluation_to_dataframe
from ingest.validators import (
    OBSERVATION_COLUMNS,
    REACH_COLUMNS,
    THRESHOLD_COLUMNS,
    ValidationError,
    validate_columns,
    validate_numeric,
    validate_states,
    validate_timestamps,
    validate_unique_pairs,
)
from network.fdnl import series_to_dataframe
from normalize.readings import SensorReadings
from normalize.schemas import FdnlPoint, FieldObservation, Reach, Threshold, ThresholdTable

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Id columns must stay text ('007' is not 7)
_ID_DTYPES = {'location_id': str, 'sensor': str}


def _read_csv(path: PathLike, table: str, **kwargs) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{table} file not found: {path}")
    df = pd.read_csv(path, **kwargs)
    logger.info(f"Loaded {len(df)} rows of {table} from {path}")
    return df


def _ids(series: pd.Series, table: str) -> pd.Series:
    if series.isna().any():
        rows = (series[series.isna()].index[:5] + 1).tolist()
        raise ValidationError(f"{table}: missing '{series.name}' at rows {rows}")
    return series.astype(str)


def _to_records(df: pd.DataFrame, model, table: str) -> list:
    records = []
    for i, row in enumerate(df.to_dict(orient='records'), start=1):
        try:
            records.append(model(**row))
        except PydanticValidationError as e:
            raise ValidationError(f"{table}: invalid row {i}: {e}") from e
    return records


def parse_reaches(df: pd.DataFrame) -> List[Reach]:
    """
    Parse a stream reach table into Reach records.

    Raises:
        ValidationError: If columns are missing, a length is not numeric or
            a reach id appears twice
    """
    table = "stream reaches"
    validate_columns(df, REACH_COLUMNS, table)

    df = df[REACH_COLUMNS].copy()
    df['location_id'] = _ids(df['location_id'], table)
    df['length'] = validate_numeric(df['length'], table)

    duplicates = df['location_id'][df['location_id'].duplicated()].unique().tolist()
    if duplicates:
        raise ValidationError(f"{table}: duplicate location_id values {duplicates}")

    return _to_records(df, Reach, table)


def parse_observations(df: pd.DataFrame) -> List[FieldObservation]:
    """
    Parse a field observation table into FieldObservation records.

    Missing water levels are kept (None); calibration rejects them where a
    level is required.

    Raises:
        ValidationError: If columns are missing, a label is unknown, a water
            level is not numeric or a timestamp cannot be parsed
    """
    table = "stream observations"
    validate_columns(df, OBSERVATION_COLUMNS, table)

    df = df[OBSERVATION_COLUMNS].copy()
    df['location_id'] = _ids(df['location_id'], table)
    df['sensor'] = _ids(df['sensor'], table)
    validate_states(df['state'], table)
    df['water_level'] = validate_numeric(df['water_level'], table)
    df['observed_at'] = validate_timestamps(df['observed_at'], table)

    return _to_records(df, FieldObservation, table)


def parse_thresholds(df: pd.DataFrame) -> ThresholdTable:
    """
    Parse a thresholds table (calibration output) into a ThresholdTable.

    Raises:
        ValidationError: If columns are missing, values are not numeric or a
            (location_id, sensor) pair appears twice
    """
    table = "thresholds"
    validate_columns(df, THRESHOLD_COLUMNS, table)

    df = df[THRESHOLD_COLUMNS].copy()
    df['location_id'] = _ids(df['location_id'], table)
    df['sensor'] = _ids(df['sensor'], table)
    df['value'] = validate_numeric(df['value'], table)
    df['score'] = validate_numeric(df['score'], table)
    validate_unique_pairs(df, table)

    return ThresholdTable(_to_records(df, Threshold, table))


def load_reaches(path: PathLike) -> List[Reach]:
    """Load stream reaches from CSV."""
    return parse_reaches(_read_csv(path, "stream reaches", dtype={'location_id': str}))


def load_observations(path: PathLike) -> List[FieldObservation]:
    """Load field observations from CSV."""
    return parse_observations(_read_csv(path, "stream observations", dtype=_ID_DTYPES))


def load_sensor_measurements(path: PathLike) -> SensorReadings:
    """Load the wide sensor measurement table from CSV."""
    return SensorReadings(_read_csv(path, "sensor measurements"))


def load_thresholds(path: PathLike) -> ThresholdTable:
    """Load a thresholds table written by write_thresholds."""
    return parse_thresholds(_read_csv(path, "thresholds", dtype=_ID_DTYPES))


def write_thresholds(thresholds: Iterable[Threshold], path: PathLike) -> Path:
    """Write thresholds as location_id, sensor, value, score."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    thresholds_to_dataframe(thresholds).to_csv(path, index=False)
    logger.info(f"Wrote thresholds to {path}")
    return path


def write_evaluation(result: EvaluationResult, path: PathLike) -> Path:
    """Write the evaluation metrics as a single-row CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    evaluation_to_dataframe(result).to_csv(path, index=False)
    logger.info(f"Wrote evaluation results to {path}")
    return path


def write_fdnl_series(
    points: Iterable[FdnlPoint],
    path: PathLike,
    datetime_format: str = DEFAULT_DATETIME_FORMAT
) -> Path:
    """Write an FDNL series as datetime, fdnl (undefined values left empty)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    series_to_dataframe(points).to_csv(path, index=False, date_format=datetime_format)
    logger.info(f"Wrote FDNL series to {path}")
    return path
