"""
Sensor Readings Table

Wraps the wide sensor measurement table (observed_at + one column per sensor)
behind a small read-only API used by calibration and prediction.

Design Principles:
- Validated once at construction, never mutated afterwards
- Rows are sorted by observed_at so window lookups are binary searches
- Missing cells stay NaN inside the frame and surface as None to callers
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from ingest.validators import TIMESTAMP_COLUMN, validate_sensor_measurements

logger = logging.getLogger(__name__)

TimestampLike = Union[datetime, pd.Timestamp, str]


def to_timestamp(value: TimestampLike) -> pd.Timestamp:
    """Parse a timestamp given as datetime or as 'YYYY-mm-dd HH:MM[:SS]' text."""
    return pd.Timestamp(value)


class SensorReadings:
    """
    Time-ordered water level readings, one column per sensor.

    Example:
        >>> df = pd.DataFrame({
        ...     'observed_at': ['2021-07-01 12:00', '2021-07-01 13:00'],
        ...     'X1': [10.2, 11.0],
        ... })
        >>> readings = SensorReadings(df)
        >>> readings.sensors
        ['X1']
    """

    def __init__(self, frame: pd.DataFrame):
        validated = validate_sensor_measurements(frame)
        validated = validated.sort_values(TIMESTAMP_COLUMN, kind="mergesort").reset_index(drop=True)
        self._frame = validated
        self._times = validated[TIMESTAMP_COLUMN].to_numpy(dtype="datetime64[ns]")
        self._sensors = [col for col in validated.columns if col != TIMESTAMP_COLUMN]

    @property
    def sensors(self) -> List[str]:
        """Sensor ids in column order."""
        return list(self._sensors)

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the validated table."""
        return self._frame.copy()

    def __len__(self) -> int:
        return len(self._frame)

    def history(self, sensor_id: str) -> pd.Series:
        """
        All readings of one sensor (NaN for missing cells).

        Raises:
            KeyError: If the sensor has no column
        """
        if sensor_id not in self._sensors:
            raise KeyError(f"Unknown sensor '{sensor_id}'")
        return self._frame[sensor_id].copy()

    def row_near(
        self,
        timestamp: TimestampLike,
        window: timedelta
    ) -> Optional[Dict[str, Optional[float]]]:
        """
        Find the reading row within +/- window of timestamp.

        When several rows fall inside the window the earliest one is used.

        Args:
            timestamp: Query time
            window: Half width of the lookup window

        Returns:
            Dict sensor_id -> water level (None if missing), or None if no row
            falls inside the window
        """
        ts = to_timestamp(timestamp)
        start = np.datetime64(ts - window, "ns")
        end = np.datetime64(ts + window, "ns")

        position = int(np.searchsorted(self._times, start, side="left"))
        if position >= len(self._times) or self._times[position] > end:
            return None

        row = self._frame.iloc[position]
        return {
            sensor: (None if pd.isna(row[sensor]) else row[sensor])
            for sensor in self._sensors
        }

    def time_range(self) -> Optional[tuple]:
        """(first, last) observed_at, or None when the table is empty"""
        if len(self._frame) == 0:
            return None
        return self._frame[TIMESTAMP_COLUMN].iloc[0], self._frame[TIMESTAMP_COLUMN].iloc[-1]
