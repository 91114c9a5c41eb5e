"""
Reach State Prediction for the FDNL engine

Predicts whether a stream reach is flowing at a given instant by letting every
sensor vote with its calibrated threshold and taking the majority.

Voting rules:
- A sensor with a reading above its threshold votes flow (1)
- A sensor with a reading at or below its threshold votes no flow (0)
- A sensor without a usable threshold abstains (-1)
- A sensor without a reading does not take part at all

A tie between flow and no flow is broken by discarding the vote of the least
reliable sensor (highest calibration score), preferring the one whose reading
is closest to its threshold.

Design Principles:
- Deterministic (same inputs -> same output)
- Insufficient data and unresolved ties are kept apart for debugging
- Malformed readings fail loudly instead of abstaining
"""

import logging
import numbers
from datetime import timedelta
from typing import List, Optional

from ingest.validators import ValidationError
from normalize.readings import SensorReadings, TimestampLike, to_timestamp
from normalize.schemas import (
    FlowState,
    ReachPrediction,
    ThresholdTable,
    UndecidableReason,
    Vote,
    VoteRecord,
)

logger = logging.getLogger(__name__)


# Readings are matched to the query time within +/- this window
PREDICTION_WINDOW = timedelta(minutes=5)


def cast_vote(water_level: float, threshold: Optional[float]) -> Vote:
    """
    Vote of a single sensor.

    Examples:
        >>> cast_vote(5.2, 5.0)
        <Vote.FLOW: 1>
        >>> cast_vote(5.0, 5.0)
        <Vote.NO_FLOW: 0>
        >>> cast_vote(5.0, None)
        <Vote.ABSTAIN: -1>
    """
    if threshold is None:
        return Vote.ABSTAIN
    if water_level > threshold:
        return Vote.FLOW
    return Vote.NO_FLOW


def collect_votes(
    reach_id: str,
    row: dict,
    thresholds: ThresholdTable
) -> List[VoteRecord]:
    """
    Build one vote record per sensor with a reading.

    Args:
        reach_id: Reach being predicted
        row: sensor_id -> water level (None = missing)
        thresholds: Calibrated thresholds

    Returns:
        Vote records in sensor order

    Raises:
        ValidationError: If a reading is not numeric
    """
    votes = []
    for sensor_id, water_level in row.items():
        if water_level is None:
            continue

        if isinstance(water_level, bool) or not isinstance(water_level, numbers.Real):
            raise ValidationError(
                f"Sensor's water level measurement must be a number: sensor '{sensor_id}' "
                f"has {water_level!r}"
            )

        water_level = float(water_level)
        threshold = thresholds.get(reach_id, sensor_id)
        value = threshold.value if threshold is not None else None
        reliability = threshold.score if threshold is not None else None

        vote = cast_vote(water_level, value)
        votes.append(VoteRecord(
            sensor_id=sensor_id,
            water_level=water_level,
            threshold=value,
            reliability=reliability,
            distance=abs(water_level - value) if value is not None else None,
            vote=vote
        ))
        logger.debug(
            f"  {reach_id}/{sensor_id}: level={water_level} threshold={value} "
            f"score={reliability} vote={int(vote)}"
        )

    return votes


def _unreliability(record: VoteRecord) -> float:
    # Unknown score ranks as least reliable
    if record.reliability is None:
        return float("inf")
    return float(record.reliability)


def find_less_reliable_vote(votes: List[VoteRecord]) -> Optional[Vote]:
    """
    Find which side (flow or no flow) should lose a vote to break a tie.

    Among non-abstaining votes:
    1. Keep the votes with the highest score (least reliable)
    2. Of those, keep the votes closest to their threshold
    3. If the survivors split evenly between flow and no flow, the tie cannot
       be broken (None)
    4. Otherwise the side holding the majority of the survivors loses a vote

    Args:
        votes: Vote records of one prediction

    Returns:
        Vote.FLOW or Vote.NO_FLOW to discard, or None if irresolvable
    """
    pool = [v for v in votes if v.vote != Vote.ABSTAIN]
    if not pool:
        return None

    worst_reliability = max(_unreliability(v) for v in pool)
    pool = [v for v in pool if _unreliability(v) == worst_reliability]

    worst_distance = min(v.distance for v in pool)
    pool = [v for v in pool if v.distance == worst_distance]

    flow = sum(1 for v in pool if v.vote == Vote.FLOW)
    no_flow = sum(1 for v in pool if v.vote == Vote.NO_FLOW)
    logger.debug(
        f"  tie-break pool: score={worst_reliability} distance={worst_distance} "
        f"flow={flow} no_flow={no_flow}"
    )

    if flow == no_flow:
        return None
    if flow > no_flow:
        return Vote.FLOW
    return Vote.NO_FLOW


def predict_reach_state(
    reach_id: str,
    timestamp: TimestampLike,
    readings: SensorReadings,
    thresholds: ThresholdTable,
    window: timedelta = PREDICTION_WINDOW
) -> ReachPrediction:
    """
    Predict the state of a reach at a given time.

    Args:
        reach_id: Reach (anchor point) id, e.g. 'EX1'
        timestamp: Time of the prediction, e.g. '2021-08-12 19:25'
        readings: Sensor readings
        thresholds: Calibrated thresholds
        window: Half width of the reading lookup window

    Returns:
        ReachPrediction with state FLOW, NO_FLOW or UNDECIDABLE (reason
        NO_DATA when no reading/vote is available, TIE when the vote could not
        be resolved)

    Raises:
        ValidationError: If a reading is not numeric

    Examples:
        >>> prediction = predict_reach_state('EX1', '2021-07-01 12:00', readings, thresholds)
        >>> prediction.state
        <FlowState.FLOW: 'flow'>
    """
    ts = to_timestamp(timestamp)
    logger.debug(f"Predicting reach state: reach={reach_id} time={ts}")

    row = readings.row_near(ts, window)
    if row is None:
        logger.debug(f"No sensor measurements for {reach_id} within {window} of {ts}")
        return ReachPrediction(
            reach_id=reach_id,
            timestamp=ts,
            state=FlowState.UNDECIDABLE,
            reason=UndecidableReason.NO_DATA
        )

    votes = collect_votes(reach_id, row, thresholds)

    flow = sum(1 for v in votes if v.vote == Vote.FLOW)
    no_flow = sum(1 for v in votes if v.vote == Vote.NO_FLOW)

    if flow == 0 and no_flow == 0:
        logger.debug(f"No sensor could vote for {reach_id} at {ts}")
        return ReachPrediction(
            reach_id=reach_id,
            timestamp=ts,
            state=FlowState.UNDECIDABLE,
            reason=UndecidableReason.NO_DATA,
            votes=votes
        )

    if flow == no_flow:
        discarded = find_less_reliable_vote(votes)
        if discarded == Vote.FLOW:
            flow -= 1
        elif discarded == Vote.NO_FLOW:
            no_flow -= 1

    if flow > no_flow:
        state, reason = FlowState.FLOW, None
    elif flow < no_flow:
        state, reason = FlowState.NO_FLOW, None
    else:
        state, reason = FlowState.UNDECIDABLE, UndecidableReason.TIE

    logger.debug(f"  {reach_id} at {ts}: flow={flow} no_flow={no_flow} -> {state.value}")
    return ReachPrediction(
        reach_id=reach_id,
        timestamp=ts,
        state=state,
        reason=reason,
        votes=votes,
        flow_votes=flow,
        no_flow_votes=no_flow
    )


def explain_prediction(prediction: ReachPrediction) -> str:
    """
    Generate human-readable explanation of a reach prediction.

    Returns:
        Explanation string describing how the vote resolved
    """
    header = f"{prediction.reach_id} at {prediction.timestamp:%Y-%m-%d %H:%M}"

    if prediction.reason == UndecidableReason.NO_DATA and not prediction.votes:
        return f"{header}: undecidable, no sensor measurement within the lookup window."
    if prediction.reason == UndecidableReason.NO_DATA:
        return (
            f"{header}: undecidable, {len(prediction.votes)} sensor(s) measured "
            f"but none has a threshold for this reach."
        )

    abstained = sum(1 for v in prediction.votes if v.vote == Vote.ABSTAIN)
    votes = f"{prediction.flow_votes} flow vs {prediction.no_flow_votes} no flow"
    if abstained:
        votes += f", {abstained} abstained"

    if prediction.reason == UndecidableReason.TIE:
        return f"{header}: undecidable, sensors tied ({votes}) and the tie could not be broken."
    return f"{header}: {prediction.state.value} ({votes})."
