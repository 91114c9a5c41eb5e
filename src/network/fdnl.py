"""
Flowing Drainage Network Length (FDNL) for the FDNL engine

Aggregates reach predictions into the total length of the stream network
that is flowing at a given instant, and over a time interval.

Design Principles:
- A network value is only reported when every reach is decided
- Unknown reach lengths count as zero
- A failing timestamp never aborts a series (recorded as undefined)
"""

import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Union

import pandas as pd

from normalize.readings import SensorReadings, TimestampLike, to_timestamp
from normalize.schemas import FdnlPoint, FlowState, Reach, ThresholdTable
from prediction.reach_state import PREDICTION_WINDOW, predict_reach_state

logger = logging.getLogger(__name__)


def fdnl_at(
    timestamp: TimestampLike,
    reaches: Iterable[Reach],
    readings: SensorReadings,
    thresholds: ThresholdTable,
    window: timedelta = PREDICTION_WINDOW
) -> Optional[float]:
    """
    Compute the flowing drainage network length at one instant.

    Args:
        timestamp: Time of the prediction, e.g. '2021-09-23 12:00'
        reaches: Stream reaches with their lengths
        readings: Sensor readings
        thresholds: Calibrated thresholds
        window: Half width of the reading lookup window

    Returns:
        Sum of the lengths of flowing reaches, or None if any reach is
        undecidable

    Examples:
        >>> fdnl_at('2021-09-23 12:00', reaches, readings, thresholds)
        54.0
    """
    ts = to_timestamp(timestamp)
    total = 0.0

    for reach in reaches:
        prediction = predict_reach_state(reach.reach_id, ts, readings, thresholds, window=window)

        if prediction.state == FlowState.UNDECIDABLE:
            logger.debug(
                f"Could not predict reach state for reach {reach.reach_id} on {ts} "
                f"({prediction.reason.value})"
            )
            return None

        if prediction.state == FlowState.FLOW:
            total += reach.length if reach.length is not None else 0.0

    return total


def series_timestamps(
    start: TimestampLike,
    end: TimestampLike,
    step: Union[timedelta, str]
) -> List[pd.Timestamp]:
    """
    Timestamps from start to end (inclusive) at a fixed step.

    Args:
        start: First timestamp
        end: Last timestamp (included when reached exactly)
        step: timedelta or pandas timedelta string ('1h', '30min', '1 hour')

    Raises:
        ValueError: If step is not positive
    """
    step = pd.Timedelta(step)
    if step <= pd.Timedelta(0):
        raise ValueError(f"step must be positive, got {step}")

    return list(pd.date_range(to_timestamp(start), to_timestamp(end), freq=step))


def fdnl_series(
    start: TimestampLike,
    end: TimestampLike,
    step: Union[timedelta, str],
    reaches: Iterable[Reach],
    readings: SensorReadings,
    thresholds: ThresholdTable,
    window: timedelta = PREDICTION_WINDOW,
    log_every: int = 24
) -> List[FdnlPoint]:
    """
    Compute FDNL for every step of a time interval.

    Args:
        start: Start of the interval, e.g. '2021-06-01 00:00'
        end: End of the interval (inclusive), e.g. '2021-10-26 00:00'
        step: Interval between timestamps, e.g. '1h'
        reaches: Stream reaches with their lengths
        readings: Sensor readings
        thresholds: Calibrated thresholds
        window: Half width of the reading lookup window
        log_every: Log progress every N steps

    Returns:
        One FdnlPoint per timestamp, in time order (fdnl None when undefined
        or when the step failed)
    """
    reaches = list(reaches)
    timestamps = series_timestamps(start, end, step)

    points = []
    failed = 0
    for i, ts in enumerate(timestamps, start=1):
        try:
            fdnl = fdnl_at(ts, reaches, readings, thresholds, window=window)
        except Exception as e:
            logger.warning(f"FDNL failed on {ts}: {e}")
            failed += 1
            fdnl = None

        points.append(FdnlPoint(timestamp=ts, fdnl=fdnl))

        if log_every and i % log_every == 0:
            logger.info(f"{ts:%Y-%m-%d %H:%M:%S} fdnl={fdnl}")

    defined = sum(1 for p in points if p.fdnl is not None)
    logger.info(
        f"FDNL series: {len(points)} steps, {defined} defined, "
        f"{len(points) - defined - failed} undecidable, {failed} failed"
    )
    return points


def series_to_dataframe(points: Iterable[FdnlPoint]) -> pd.DataFrame:
    """
    Convert an FDNL series to the output table (datetime, fdnl).
    """
    rows = [{'datetime': p.timestamp, 'fdnl': p.fdnl} for p in points]
    df = pd.DataFrame(rows, columns=['datetime', 'fdnl'])
    df['datetime'] = pd.to_datetime(df['datetime'])
    df['fdnl'] = df['fdnl'].astype(float)
    return df
