"""
Sensor Threshold Calibration for the FDNL engine

Derives, for every (reach, sensor) pair, the water level above which the
reach is considered flowing, together with a reliability score.

The calibration uses the field observations of the pair:
- Only flow observed -> threshold = lowest level the sensor ever measured
- Only no flow observed -> threshold = highest level the sensor ever measured
- Both observed -> the threshold minimizing misclassified observations
- Nothing observed -> no threshold

Design Principles:
- Deterministic and reproducible (independent of observation order)
- Ties between equally good thresholds are resolved by averaging
- Each pair is calibrated independently of every other pair
- Missing water levels in labeled observations are rejected, not skipped
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from ingest.validators import ValidationError
from normalize.readings import SensorReadings
from normalize.schemas import FieldObservation, ObservedState, Reach, Threshold, ThresholdTable

logger = logging.getLogger(__name__)


# Smallest water level difference a sensor can resolve
SENSOR_VALUE_RESOLUTION = 0.001


def split_observations(
    observations: Iterable[FieldObservation]
) -> Tuple[List[FieldObservation], List[FieldObservation]]:
    """
    Split labeled observations into (flow, no_flow); weak trickle counts as flow.
    """
    flow = []
    no_flow = []
    for observation in observations:
        if observation.state.is_flowing:
            flow.append(observation)
        else:
            no_flow.append(observation)
    return flow, no_flow


def candidate_threshold(
    observation: FieldObservation,
    resolution: float = SENSOR_VALUE_RESOLUTION
) -> float:
    """
    Threshold candidate derived from a single observation.

    Flow observations are shifted down by one resolution step so that the
    observation itself is classified as flow by the strict '>' comparison.

    Examples:
        >>> obs = FieldObservation(location_id="EX1", sensor="X1", state="flow",
        ...                        water_level=12.0, observed_at="2021-07-01 12:00")
        >>> candidate_threshold(obs)
        11.999
    """
    if observation.state.is_flowing:
        return observation.water_level - resolution
    return observation.water_level


def misclassification_score(
    threshold: float,
    flow_levels: Sequence[float],
    no_flow_levels: Sequence[float]
) -> int:
    """
    Count observations a threshold classifies incorrectly.

    A no flow observation above the threshold, or a flow observation at or
    below it, is a misclassification.

    Examples:
        >>> misclassification_score(5.0, flow_levels=[6.0, 4.0], no_flow_levels=[3.0, 5.5])
        2
    """
    wrong_no_flow = sum(1 for level in no_flow_levels if level > threshold)
    wrong_flow = sum(1 for level in flow_levels if level <= threshold)
    return wrong_no_flow + wrong_flow


def calibrate_threshold(
    reach_id: str,
    sensor_id: str,
    observations: Iterable[FieldObservation],
    sensor_history: Iterable[Optional[float]],
    resolution: float = SENSOR_VALUE_RESOLUTION
) -> Threshold:
    """
    Calibrate the threshold of one sensor for one reach.

    Algorithm (both classes observed):
    1. Every labeled observation yields a candidate threshold (its water
       level, minus `resolution` for flow / weak trickle observations)
    2. Each candidate is scored by the number of observations it misclassifies
    3. The final threshold is the mean of all candidates with the lowest
       score; the final score is that lowest score

    Args:
        reach_id: Reach (anchor point) id
        sensor_id: Sensor id
        observations: Field observations; only those of this pair are used
        sensor_history: Every reading of the sensor (None/NaN = missing)
        resolution: Downward shift applied to flow candidates

    Returns:
        Threshold for the pair (value and score None if the pair was never
        observed)

    Raises:
        ValidationError: If an observation of the pair has no water level

    Examples:
        >>> obs = [
        ...     FieldObservation(location_id="EX1", sensor="X1", state="no_flow",
        ...                      water_level=2.0, observed_at="2021-07-01 12:00"),
        ...     FieldObservation(location_id="EX1", sensor="X1", state="flow",
        ...                      water_level=6.0, observed_at="2021-07-02 12:00"),
        ... ]
        >>> t = calibrate_threshold("EX1", "X1", obs, [1.0, 2.0, 6.0])
        >>> (t.value, t.score)
        (3.9995, 0)
    """
    pair_observations = [
        o for o in observations
        if o.reach_id == reach_id and o.sensor_id == sensor_id
    ]

    missing = [o for o in pair_observations if o.water_level is None]
    if missing:
        raise ValidationError(
            f"Observation water level must be a number: reach '{reach_id}', "
            f"sensor '{sensor_id}', {len(missing)} observation(s) without water level "
            f"(first at {missing[0].observed_at})"
        )

    flow, no_flow = split_observations(pair_observations)
    logger.debug(f"Calibrating {reach_id}/{sensor_id}: flow={len(flow)} no_flow={len(no_flow)}")

    if not flow and not no_flow:
        # Pair never observed: no decision possible
        return Threshold(reach_id=reach_id, sensor_id=sensor_id, value=None, score=None)

    if not flow or not no_flow:
        history = pd.Series(list(sensor_history), dtype=float).dropna()
        if history.empty:
            logger.warning(f"Sensor '{sensor_id}' has no readings; threshold for {reach_id} left undefined")
            value = None
        elif not no_flow:
            # Always flowing when observed: any reading means flow
            value = float(history.min())
        else:
            # Never flowing when observed: no reading means flow
            value = float(history.max())
        return Threshold(reach_id=reach_id, sensor_id=sensor_id, value=value, score=0)

    flow_levels = [o.water_level for o in flow]
    no_flow_levels = [o.water_level for o in no_flow]

    scored = []
    for observation in pair_observations:
        candidate = candidate_threshold(observation, resolution)
        score = misclassification_score(candidate, flow_levels, no_flow_levels)
        scored.append((candidate, score))
        logger.debug(
            f"  candidate={candidate:.4f} state={observation.state.value} "
            f"level={observation.water_level} score={score}"
        )

    best_score = min(score for _, score in scored)
    best = [candidate for candidate, score in scored if score == best_score]

    # fsum is exactly rounded, so the mean does not depend on observation order
    value = math.fsum(best) / len(best)

    logger.debug(f"  threshold={value:.4f} score={best_score} tied_candidates={len(best)}")
    return Threshold(reach_id=reach_id, sensor_id=sensor_id, value=value, score=best_score)


def calibrate_thresholds(
    reaches: Iterable[Reach],
    observations: Iterable[FieldObservation],
    readings: SensorReadings,
    resolution: float = SENSOR_VALUE_RESOLUTION
) -> ThresholdTable:
    """
    Calibrate a threshold for every reach and every sensor in the readings table.

    Pairs without observations get an undefined threshold so that the table
    always holds exactly one entry per (reach, sensor) pair.

    Args:
        reaches: Stream reaches
        observations: Labeled training observations
        readings: Sensor readings (provides the sensor list and histories)
        resolution: Downward shift applied to flow candidates

    Returns:
        ThresholdTable with len(reaches) * len(readings.sensors) entries
    """
    reaches = list(reaches)

    by_pair = {}
    for observation in observations:
        by_pair.setdefault((observation.reach_id, observation.sensor_id), []).append(observation)

    histories = {sensor: readings.history(sensor) for sensor in readings.sensors}

    thresholds = []
    for reach in reaches:
        for sensor in readings.sensors:
            thresholds.append(
                calibrate_threshold(
                    reach.reach_id,
                    sensor,
                    by_pair.get((reach.reach_id, sensor), []),
                    histories[sensor],
                    resolution=resolution
                )
            )

    table = ThresholdTable(thresholds)
    for threshold in table:
        logger.debug(explain_threshold(threshold))

    defined = sum(1 for t in table if t.value is not None)
    reliable = sum(1 for t in table if t.score == 0 and t.value is not None)
    logger.info(
        f"✅ Calibrated {len(table)} thresholds for {len(reaches)} reaches and "
        f"{len(readings.sensors)} sensors ({defined} defined, {reliable} with score 0)"
    )
    return table


def thresholds_to_dataframe(thresholds: Iterable[Threshold]) -> pd.DataFrame:
    """
    Convert thresholds to the output table (location_id, sensor, value, score).
    """
    rows = [
        {
            'location_id': t.reach_id,
            'sensor': t.sensor_id,
            'value': t.value,
            'score': t.score
        }
        for t in thresholds
    ]
    df = pd.DataFrame(rows, columns=['location_id', 'sensor', 'value', 'score'])
    df['value'] = df['value'].astype(float)
    df['score'] = df['score'].astype('Int64')
    return df


def explain_threshold(threshold: Threshold) -> str:
    """
    Generate human-readable explanation of a calibrated threshold.

    Examples:
        >>> explain_threshold(Threshold(location_id="EX1", sensor="X1", value=None, score=None))
        'EX1/X1: no threshold (never observed in the field).'
    """
    label = f"{threshold.reach_id}/{threshold.sensor_id}"
    if threshold.value is None and threshold.score is None:
        return f"{label}: no threshold (never observed in the field)."
    if threshold.value is None:
        return f"{label}: no threshold (sensor never measured a water level)."
    if threshold.score == 0:
        return (
            f"{label}: flowing above {threshold.value:.3f}. "
            f"Every field observation is classified correctly."
        )
    return (
        f"{label}: flowing above {threshold.value:.3f}. "
        f"{threshold.score} field observation(s) misclassified, lower reliability."
    )
