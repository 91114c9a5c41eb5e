"""
Model Evaluation for the FDNL engine

Compares predicted reach states with the states observed by humans in the
field and summarizes the agreement as confusion-matrix metrics.

Outcome classes:
- true_positive / false_positive / true_negative / false_negative
- failure: no prediction because data was missing
- no_decision: no prediction because the sensor vote was tied

Design Principles:
- One survey label per reach and instant (first observation wins)
- Optional class balancing is reproducible when a seed is given
- A zero denominator is reported explicitly, never as 0 or as a crash
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from normalize.readings import SensorReadings
from normalize.schemas import (
    FieldObservation,
    FlowState,
    ObservedState,
    Reach,
    ReachPrediction,
    SurveyRow,
    ThresholdTable,
    UndecidableReason,
)
from prediction.reach_state import PREDICTION_WINDOW, explain_prediction, predict_reach_state

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Comparison of one prediction with its field label."""
    TRUE_POSITIVE = "true_positive"
    FALSE_POSITIVE = "false_positive"
    TRUE_NEGATIVE = "true_negative"
    FALSE_NEGATIVE = "false_negative"
    FAILURE = "failure"
    NO_DECISION = "no_decision"


METRIC_COLUMNS = [
    'sensitivity',
    'specificity',
    'accuracy',
    'true_positive',
    'false_positive',
    'false_negative',
    'true_negative',
    'failure',
    'no_decision',
    'total',
]


class EvaluationResult(BaseModel):
    """
    Evaluation metrics of the model.

    Ratios are rounded to 3 decimals; a ratio with a zero denominator is None
    and its name is listed in degenerate_metrics.
    """

    sensitivity: Optional[float] = Field(None, description="TP / (TP + FN)")
    specificity: Optional[float] = Field(None, description="TN / (TN + FP)")
    accuracy: Optional[float] = Field(None, description="(TP + TN) / (TP + FP + FN + TN)")
    true_positive: int = 0
    false_positive: int = 0
    false_negative: int = 0
    true_negative: int = 0
    failure: int = Field(0, description="No prediction: missing sensor data")
    no_decision: int = Field(0, description="No prediction: tied sensor vote")
    total: int = 0
    degenerate_metrics: List[str] = Field(default_factory=list)

    class Config:
        frozen = True

    def to_row(self) -> Dict[str, Optional[float]]:
        """The 10 named metrics as a flat dict"""
        return {name: getattr(self, name) for name in METRIC_COLUMNS}

    def __str__(self):
        return (
            f"Sensitivity: {self.sensitivity} Specificity: {self.specificity} "
            f"Accuracy: {self.accuracy} Failure: {self.failure} "
            f"No_decision: {self.no_decision} Total: {self.total}"
        )


def build_survey_rows(observations: Iterable[FieldObservation]) -> List[SurveyRow]:
    """
    Collapse field observations to one label per (reach, instant).

    Observations list one row per sensor; the first row of each
    (reach_id, observed_at) pair provides the label.
    """
    seen = set()
    rows = []
    for observation in observations:
        key = (observation.reach_id, observation.observed_at)
        if key in seen:
            continue
        seen.add(key)
        rows.append(SurveyRow(
            reach_id=observation.reach_id,
            observed_at=observation.observed_at,
            state=observation.state
        ))
    return rows


def balance_survey_rows(
    rows: Sequence[SurveyRow],
    reach_ids: Optional[Iterable[str]] = None,
    seed: Optional[int] = None
) -> List[SurveyRow]:
    """
    Down-sample flow and no flow survey rows to the same size.

    Both classes are reduced to the size of the smaller one by uniform random
    sampling without replacement.

    Args:
        rows: Survey rows
        reach_ids: If given, rows of other reaches are dropped first
        seed: Random seed (None = non-deterministic)

    Returns:
        Flow rows followed by no flow rows
    """
    if reach_ids is not None:
        known = set(reach_ids)
        rows = [r for r in rows if r.reach_id in known]

    flow = [r for r in rows if r.state.is_flowing]
    no_flow = [r for r in rows if not r.state.is_flowing]
    size = min(len(flow), len(no_flow))
    logger.info(f"Balancing survey rows: flow={len(flow)} no_flow={len(no_flow)} -> {size} each")

    rng = np.random.default_rng(seed)
    flow_idx = rng.choice(len(flow), size=size, replace=False)
    no_flow_idx = rng.choice(len(no_flow), size=size, replace=False)

    return [flow[i] for i in flow_idx] + [no_flow[i] for i in no_flow_idx]


def classify_outcome(label: ObservedState, prediction: ReachPrediction) -> Outcome:
    """
    Classify one prediction against its field label.

    Examples:
        >>> classify_outcome(ObservedState.WEAK_TRICKLE, flow_prediction)
        <Outcome.TRUE_POSITIVE: 'true_positive'>
    """
    if prediction.state == FlowState.UNDECIDABLE:
        if prediction.reason == UndecidableReason.TIE:
            return Outcome.NO_DECISION
        return Outcome.FAILURE

    predicted_flow = prediction.state == FlowState.FLOW
    if label.is_flowing:
        return Outcome.TRUE_POSITIVE if predicted_flow else Outcome.FALSE_NEGATIVE
    return Outcome.FALSE_POSITIVE if predicted_flow else Outcome.TRUE_NEGATIVE


def _ratio(numerator: int, denominator: int) -> Optional[float]:
    if denominator == 0:
        return None
    return round(numerator / denominator, 3)


def summarize_outcomes(outcomes: Iterable[Outcome]) -> EvaluationResult:
    """
    Compute evaluation metrics from classified outcomes.

    Examples:
        >>> result = summarize_outcomes(
        ...     [Outcome.TRUE_POSITIVE] * 8 + [Outcome.FALSE_NEGATIVE] * 2
        ...     + [Outcome.TRUE_NEGATIVE] * 5 + [Outcome.FALSE_POSITIVE] * 5
        ... )
        >>> (result.sensitivity, result.specificity, result.accuracy)
        (0.8, 0.5, 0.65)
    """
    counts = {outcome: 0 for outcome in Outcome}
    total = 0
    for outcome in outcomes:
        counts[outcome] += 1
        total += 1

    tp = counts[Outcome.TRUE_POSITIVE]
    fp = counts[Outcome.FALSE_POSITIVE]
    fn = counts[Outcome.FALSE_NEGATIVE]
    tn = counts[Outcome.TRUE_NEGATIVE]

    ratios = {
        'sensitivity': _ratio(tp, tp + fn),
        'specificity': _ratio(tn, tn + fp),
        'accuracy': _ratio(tp + tn, tp + fp + fn + tn),
    }
    degenerate = [name for name, value in ratios.items() if value is None]
    if degenerate:
        logger.warning(f"Degenerate metrics (zero denominator): {degenerate}")

    return EvaluationResult(
        **ratios,
        true_positive=tp,
        false_positive=fp,
        false_negative=fn,
        true_negative=tn,
        failure=counts[Outcome.FAILURE],
        no_decision=counts[Outcome.NO_DECISION],
        total=total,
        degenerate_metrics=degenerate
    )


def evaluate(
    reaches: Iterable[Reach],
    readings: SensorReadings,
    thresholds: ThresholdTable,
    observations: Iterable[FieldObservation],
    same_group_size: bool = False,
    seed: Optional[int] = None,
    window: timedelta = PREDICTION_WINDOW
) -> EvaluationResult:
    """
    Evaluate the model against field observations.

    Args:
        reaches: Stream reaches; survey rows of other reaches are ignored
        readings: Sensor readings
        thresholds: Calibrated thresholds
        observations: Held-out field observations
        same_group_size: Balance flow / no flow rows before evaluating
        seed: Random seed for balancing
        window: Half width of the reading lookup window

    Returns:
        EvaluationResult with counts and ratios
    """
    reaches = list(reaches)
    rows = build_survey_rows(observations)
    if same_group_size:
        rows = balance_survey_rows(rows, [r.reach_id for r in reaches], seed=seed)

    by_reach: Dict[str, List[SurveyRow]] = {}
    for row in rows:
        by_reach.setdefault(row.reach_id, []).append(row)

    outcomes = []
    for i, reach in enumerate(reaches, start=1):
        for row in by_reach.get(reach.reach_id, []):
            prediction = predict_reach_state(
                reach.reach_id, row.observed_at, readings, thresholds, window=window
            )
            outcome = classify_outcome(row.state, prediction)
            outcomes.append(outcome)
            logger.debug(
                f"{i}/{len(reaches)}. Evaluating at anchor point {reach.reach_id} on "
                f"{row.observed_at}: observed={row.state.value} -> {outcome.value}. "
                f"{explain_prediction(prediction)}"
            )

    result = summarize_outcomes(outcomes)
    logger.info(str(result))
    return result


def evaluation_to_dataframe(result: EvaluationResult) -> pd.DataFrame:
    """
    Convert an evaluation result to a one-row output table.
    """
    return pd.DataFrame([result.to_row()], columns=METRIC_COLUMNS)
