"""
Reach State Prediction for the FDNL engine

Majority vote of sensor thresholds with a reliability-based tie-break.
"""

from .reach_state import (
    PREDICTION_WINDOW,
    predict_reach_state,
    find_less_reliable_vote,
    explain_prediction
)

__all__ = [
    'PREDICTION_WINDOW',
    'predict_reach_state',
    'find_less_reliable_vote',
    'explain_prediction'
]
