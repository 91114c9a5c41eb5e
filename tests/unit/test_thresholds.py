"""
Unit Tests for Threshold Calibration

Tests verify:
1. Single-class pairs use the sensor's historical min / max with score 0
2. Unobserved pairs have no threshold
3. Misclassification minimization with averaging of tied candidates
4. Independence from observation order
5. Rejection of observations without water level
6. One threshold per (reach, sensor) pair in calibrate_thresholds
"""

import itertools
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from calibration.thresholds import (
    SENSOR_VALUE_RESOLUTION,
    calibrate_threshold,
    calibrate_thresholds,
    candidate_threshold,
    explain_threshold,
    misclassification_score,
    thresholds_to_dataframe
)
from ingest.validators import ValidationError
from normalize.readings import SensorReadings
from normalize.schemas import FieldObservation, Reach, Threshold, ThresholdTable
from prediction.reach_state import predict_reach_state


def obs(state, level, time="2021-07-01 12:00", reach="EX1", sensor="X1"):
    """Build a field observation"""
    return FieldObservation(
        location_id=reach,
        sensor=sensor,
        state=state,
        water_level=level,
        observed_at=time
    )


@pytest.fixture
def history():
    """Historical readings of sensor X1 (with a gap)"""
    return pd.Series([3.0, np.nan, 1.5, 7.0, 4.2])


# Test Cases: Candidates and Scores

def test_candidate_flow_is_shifted_down():
    """Flow candidates sit one resolution step below the observation"""
    assert candidate_threshold(obs("flow", 5.0)) == pytest.approx(5.0 - SENSOR_VALUE_RESOLUTION)
    assert candidate_threshold(obs("wt", 5.0)) == pytest.approx(4.999)


def test_candidate_no_flow_is_unchanged():
    """No flow candidates equal the observed level"""
    assert candidate_threshold(obs("no_flow", 5.0)) == 5.0


def test_misclassification_score_counts_both_sides():
    """No flow above and flow at/below the threshold are both errors"""
    assert misclassification_score(5.0, flow_levels=[6.0, 4.0], no_flow_levels=[3.0, 5.5]) == 2
    assert misclassification_score(5.0, flow_levels=[5.0], no_flow_levels=[5.0]) == 1
    assert misclassification_score(5.0, flow_levels=[], no_flow_levels=[]) == 0


# Test Cases: Single Class and Unobserved Pairs

def test_only_flow_uses_history_min(history):
    """Always flowing when observed -> lowest level ever measured"""
    threshold = calibrate_threshold("EX1", "X1", [obs("flow", 5.0), obs("wt", 6.0)], history)

    assert threshold.value == 1.5
    assert threshold.score == 0


def test_only_no_flow_uses_history_max(history):
    """Never flowing when observed -> highest level ever measured"""
    threshold = calibrate_threshold("EX1", "X1", [obs("no_flow", 2.0)], history)

    assert threshold.value == 7.0
    assert threshold.score == 0


def test_unobserved_pair_has_no_threshold(history):
    """No observations -> value and score undefined"""
    threshold = calibrate_threshold("EX1", "X1", [], history)

    assert threshold.value is None
    assert threshold.score is None


def test_single_class_without_history():
    """A sensor that never measured anything cannot provide a value"""
    threshold = calibrate_threshold("EX1", "X1", [obs("flow", 5.0)], [None, np.nan])

    assert threshold.value is None
    assert threshold.score == 0


def test_observations_of_other_pairs_are_ignored(history):
    """Only the observations of the requested pair are used"""
    observations = [
        obs("flow", 5.0),
        obs("no_flow", 9.0, reach="EX2"),
        obs("no_flow", 9.0, sensor="X2"),
    ]
    threshold = calibrate_threshold("EX1", "X1", observations, history)

    assert threshold.value == 1.5
    assert threshold.score == 0


# Test Cases: Both Classes

def test_separable_observations():
    """Perfectly separable labels give score 0 and the mean of the best candidates"""
    observations = [
        obs("no_flow", 2.0),
        obs("no_flow", 3.0),
        obs("flow", 5.0),
        obs("flow", 6.0),
    ]
    threshold = calibrate_threshold("EX1", "X1", observations, [])

    # Candidates 3.0 and 4.999 both misclassify nothing
    assert threshold.score == 0
    assert threshold.value == pytest.approx((3.0 + 4.999) / 2)


def test_noisy_observations_average_all_tied_candidates():
    """When every candidate misclassifies one observation, all are averaged"""
    observations = [
        obs("no_flow", 4.0),
        obs("flow", 3.0),
        obs("flow", 5.0),
        obs("no_flow", 2.0),
    ]
    threshold = calibrate_threshold("EX1", "X1", observations, [])

    assert threshold.score == 1
    assert threshold.value == pytest.approx((4.0 + 2.999 + 4.999 + 2.0) / 4)


def test_weak_trickle_counts_as_flow():
    """wt observations behave exactly like flow observations"""
    with_flow = calibrate_threshold("EX1", "X1", [obs("no_flow", 2.0), obs("flow", 6.0)], [])
    with_wt = calibrate_threshold("EX1", "X1", [obs("no_flow", 2.0), obs("wt", 6.0)], [])

    assert with_flow == with_wt


def test_duplicate_candidates_are_counted():
    """Repeated observations weigh repeatedly in the mean"""
    observations = [obs("no_flow", 2.0), obs("no_flow", 2.0), obs("flow", 8.0)]
    threshold = calibrate_threshold("EX1", "X1", observations, [])

    assert threshold.score == 0
    assert threshold.value == pytest.approx((2.0 + 2.0 + 7.999) / 3)


def test_threshold_is_invariant_under_reordering():
    """Every permutation of the observations yields the identical threshold"""
    observations = [
        obs("no_flow", 4.1),
        obs("flow", 3.3),
        obs("flow", 5.7),
        obs("no_flow", 2.2),
        obs("wt", 4.4),
    ]
    reference = calibrate_threshold("EX1", "X1", observations, [])

    for permutation in itertools.permutations(observations):
        threshold = calibrate_threshold("EX1", "X1", list(permutation), [])
        assert threshold.value == reference.value
        assert threshold.score == reference.score


# Test Cases: Validation

def test_missing_water_level_is_rejected(history):
    """An observation of the pair without water level aborts calibration"""
    observations = [obs("flow", 5.0), obs("no_flow", None)]

    with pytest.raises(ValidationError, match="water level must be a number"):
        calibrate_threshold("EX1", "X1", observations, history)


def test_missing_water_level_of_weak_trickle_is_rejected(history):
    """wt observations without water level are rejected like the others"""
    with pytest.raises(ValidationError):
        calibrate_threshold("EX1", "X1", [obs("wt", None)], history)


def test_missing_water_level_of_other_pair_is_ignored(history):
    """Only the pair being calibrated is validated"""
    threshold = calibrate_threshold("EX1", "X1", [obs("flow", 5.0), obs("flow", None, sensor="X2")], history)

    assert threshold.value == 1.5


# Test Cases: Whole Network

@pytest.fixture
def readings():
    return SensorReadings(pd.DataFrame({
        'observed_at': ['2021-07-01 12:00', '2021-07-01 13:00', '2021-07-01 14:00'],
        'X1': [1.0, 4.0, 8.0],
        'X2': [2.0, np.nan, 9.0],
    }))


def test_calibrate_thresholds_covers_every_pair(readings):
    """One threshold per reach and sensor, including unobserved pairs"""
    reaches = [Reach(location_id="EX1", length=10), Reach(location_id="EX2", length=None)]
    observations = [obs("flow", 4.0, reach="EX1", sensor="X1")]

    table = calibrate_thresholds(reaches, observations, readings)

    assert len(table) == 4
    assert table.get("EX1", "X1").value == 1.0
    assert table.get("EX1", "X2").value is None
    assert table.get("EX2", "X1").score is None
    assert ("EX2", "X2") in table


def test_single_class_thresholds_reproduce_training_labels(readings):
    """Single-class thresholds fed back to the predictor classify training data correctly"""
    reaches = [Reach(location_id="EX1", length=10), Reach(location_id="EX2", length=5)]
    observations = [
        obs("flow", 4.0, time="2021-07-01 13:00", reach="EX1", sensor="X1"),
        obs("flow", 8.0, time="2021-07-01 14:00", reach="EX1", sensor="X1"),
        obs("no_flow", 1.0, time="2021-07-01 12:00", reach="EX2", sensor="X1"),
        obs("no_flow", 4.0, time="2021-07-01 13:00", reach="EX2", sensor="X1"),
    ]
    table = calibrate_thresholds(reaches, observations, readings)

    for o in observations:
        prediction = predict_reach_state(o.reach_id, o.observed_at, readings, table)
        assert prediction.value == (1 if o.state.is_flowing else 0)


# Test Cases: Output

def test_thresholds_to_dataframe():
    """Output table has the fixed column names and nullable types"""
    df = thresholds_to_dataframe([
        Threshold(location_id="EX1", sensor="X1", value=4.5, score=2),
        Threshold(location_id="EX1", sensor="X2", value=None, score=None),
    ])

    assert list(df.columns) == ['location_id', 'sensor', 'value', 'score']
    assert df.loc[0, 'value'] == 4.5
    assert df.loc[0, 'score'] == 2
    assert pd.isna(df.loc[1, 'value'])
    assert pd.isna(df.loc[1, 'score'])


def test_explain_threshold():
    """Explanations mention reliability"""
    reliable = explain_threshold(Threshold(location_id="EX1", sensor="X1", value=4.5, score=0))
    noisy = explain_threshold(Threshold(location_id="EX1", sensor="X1", value=4.5, score=3))

    assert "4.500" in reliable
    assert "classified correctly" in reliable
    assert "3 field observation(s) misclassified" in noisy


# Test Cases: Threshold Table

def test_threshold_table_rejects_duplicate_pairs():
    """At most one threshold per (reach, sensor)"""
    with pytest.raises(ValidationError, match="Duplicate threshold"):
        ThresholdTable([
            Threshold(location_id="EX1", sensor="X1", value=1.0, score=0),
            Threshold(location_id="EX1", sensor="X1", value=2.0, score=0),
        ])


def test_threshold_table_lookup():
    table = ThresholdTable([
        Threshold(location_id="EX1", sensor="X1", value=1.0, score=0),
        Threshold(location_id="EX1", sensor="X2", value=None, score=None),
        Threshold(location_id="EX2", sensor="X1", value=3.0, score=1),
    ])

    assert table.get("EX1", "X1").value == 1.0
    assert table.get("EX3", "X1") is None
    assert [t.sensor_id for t in table.for_reach("EX1")] == ["X1", "X2"]
    assert repr(table) == "ThresholdTable(3 thresholds)"
