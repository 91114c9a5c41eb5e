"""
Input Table Validators

Validates the tabular inputs of the model (stream reaches, field observations,
sensor measurements, thresholds) before they are parsed into records.

Design Principles:
- Fail fast with explicit error messages
- Log all validation failures for debugging
- Never coerce a malformed value silently (missing is allowed, garbage is not)
"""

import logging
from typing import Iterable

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when data validation fails"""
    pass


# Required columns per input table
REACH_COLUMNS = ["location_id", "length"]
OBSERVATION_COLUMNS = ["location_id", "sensor", "state", "water_level", "observed_at"]
THRESHOLD_COLUMNS = ["location_id", "sensor", "value", "score"]
TIMESTAMP_COLUMN = "observed_at"

# Valid field observation labels ("wt" = weakly trickling)
VALID_STATES = ["flow", "no_flow", "wt"]


def validate_columns(df: pd.DataFrame, required: Iterable[str], table: str) -> bool:
    """
    Validate that a DataFrame has all required columns.

    Args:
        df: Input table
        required: Column names that must be present
        table: Table name used in the error message

    Returns:
        True if valid

    Raises:
        ValidationError: If any column is missing
    """
    missing = [col for col in required if col not in df.columns]
    if missing:
        logger.error(f"❌ {table}: missing required columns {missing}")
        raise ValidationError(
            f"{table} is missing required columns: {missing}. "
            f"Found: {list(df.columns)}"
        )
    return True


def validate_numeric(series: pd.Series, table: str) -> pd.Series:
    """
    Convert a column to float, keeping missing cells as NaN.

    Empty strings and NaN are treated as missing. Anything else that cannot be
    parsed as a number is rejected.

    Args:
        series: Column to convert
        table: Table name used in the error message

    Returns:
        Float series

    Raises:
        ValidationError: If a non-missing cell is not numeric
    """
    if pd.api.types.is_bool_dtype(series):
        raise ValidationError(f"{table}: column '{series.name}' must be numeric, got booleans")

    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)

    cleaned = series.replace(r"^\s*$", np.nan, regex=True)
    converted = pd.to_numeric(cleaned, errors="coerce")

    bad = cleaned.notna() & converted.isna()
    if bad.any():
        examples = cleaned[bad].head(5).tolist()
        rows = (cleaned[bad].index[:5] + 1).tolist()
        logger.error(f"❌ {table}: non-numeric values in '{series.name}': {examples}")
        raise ValidationError(
            f"{table}: column '{series.name}' must be numeric. "
            f"Non-numeric values {examples} at rows {rows}"
        )

    return converted.astype(float)


def validate_timestamps(series: pd.Series, table: str) -> pd.Series:
    """
    Parse a timestamp column (ISO-8601 local date-time, e.g. '2021-07-01 12:00').

    Raises:
        ValidationError: If any timestamp is missing or cannot be parsed
    """
    if series.isna().any():
        rows = (series[series.isna()].index[:5] + 1).tolist()
        raise ValidationError(f"{table}: missing '{series.name}' at rows {rows}")

    if pd.api.types.is_datetime64_any_dtype(series):
        return series

    try:
        return pd.to_datetime(series, format="ISO8601")
    except (ValueError, TypeError) as e:
        logger.error(f"❌ {table}: unparseable timestamps in '{series.name}': {e}")
        raise ValidationError(f"{table}: cannot parse column '{series.name}' as date-time: {e}") from e


def validate_states(series: pd.Series, table: str) -> bool:
    """
    Validate that every observation label is one of VALID_STATES.

    Raises:
        ValidationError: If an unknown label is found
    """
    unknown = sorted(set(series.dropna().astype(str)) - set(VALID_STATES))
    if unknown or series.isna().any():
        raise ValidationError(
            f"{table}: invalid state labels {unknown or ['<missing>']}. "
            f"Must be one of: {VALID_STATES}"
        )
    return True


def validate_unique_pairs(df: pd.DataFrame, table: str) -> bool:
    """
    Validate that (location_id, sensor) pairs are unique.

    Raises:
        ValidationError: If a pair appears more than once
    """
    duplicates = df.duplicated(subset=["location_id", "sensor"], keep=False)
    if duplicates.any():
        pairs = df.loc[duplicates, ["location_id", "sensor"]].drop_duplicates().head(5)
        examples = list(pairs.itertuples(index=False, name=None))
        raise ValidationError(
            f"{table}: found duplicate (location_id, sensor) pairs: {examples}. "
            f"Each pair must appear once."
        )
    return True


def validate_sensor_measurements(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate the wide sensor measurement table.

    Checks for:
    - observed_at column present and parseable
    - At least one sensor column
    - Every sensor column numeric (missing cells allowed)

    Args:
        df: Raw table with 'observed_at' and one column per sensor

    Returns:
        Table with parsed timestamps and float sensor columns

    Raises:
        ValidationError: If any check fails
    """
    table = "sensor measurements"
    validate_columns(df, [TIMESTAMP_COLUMN], table)

    sensors = [col for col in df.columns if col != TIMESTAMP_COLUMN]
    if not sensors:
        raise ValidationError(f"{table}: no sensor columns found")

    validated = pd.DataFrame({TIMESTAMP_COLUMN: validate_timestamps(df[TIMESTAMP_COLUMN], table)})
    for sensor in sensors:
        validated[str(sensor)] = validate_numeric(df[sensor], table)

    # Flag sensors that never measured anything (they will never vote)
    empty = [str(s) for s in sensors if validated[str(s)].isna().all()]
    if empty:
        logger.warning(f"Sensors without any measurement: {empty}")

    logger.info(f"✅ Sensor measurements validated: {len(validated)} rows, {len(sensors)} sensors")
    return validated
