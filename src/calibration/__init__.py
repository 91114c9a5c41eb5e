"""
Threshold Calibration for the FDNL engine

Derives a water level threshold and a reliability score for every
(reach, sensor) pair from field observations.
"""

from .thresholds import (
    SENSOR_VALUE_RESOLUTION,
    calibrate_threshold,
    calibrate_thresholds,
    candidate_threshold,
    misclassification_score,
    explain_threshold,
    thresholds_to_dataframe
)

__all__ = [
    'SENSOR_VALUE_RESOLUTION',
    'calibrate_threshold',
    'calibrate_thresholds',
    'candidate_threshold',
    'misclassification_score',
    'explain_threshold',
    'thresholds_to_dataframe'
]
