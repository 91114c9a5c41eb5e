"""
Unit Tests for the Flowing Drainage Network Length

Tests verify:
1. FDNL sums the lengths of flowing reaches
2. Undefined FDNL when any reach is undecidable
3. Unknown lengths count as zero
4. Series over an interval, including failing steps
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

import network.fdnl as fdnl_module
from network.fdnl import fdnl_at, fdnl_series, series_timestamps, series_to_dataframe
from normalize.readings import SensorReadings
from normalize.schemas import FdnlPoint, Reach, Threshold, ThresholdTable


@pytest.fixture
def reaches():
    return [Reach(location_id="A", length=10), Reach(location_id="B", length=20)]


@pytest.fixture
def thresholds():
    return ThresholdTable([
        Threshold(location_id="A", sensor="XA", value=5.0, score=0),
        Threshold(location_id="B", sensor="XB", value=5.0, score=0),
    ])


@pytest.fixture
def readings():
    """Hourly readings of XA and XB; 14:00 is missing"""
    return SensorReadings(pd.DataFrame({
        'observed_at': ['2021-07-01 12:00', '2021-07-01 13:00', '2021-07-01 15:00'],
        'XA': [6.0, 6.0, 1.0],
        'XB': [4.0, 7.0, np.nan],
    }))


# Test Cases: Single Instant

def test_fdnl_sums_flowing_reaches(reaches, readings, thresholds):
    """A flows, B does not -> length of A"""
    assert fdnl_at("2021-07-01 12:00", reaches, readings, thresholds) == 10.0


def test_fdnl_all_flowing(reaches, readings, thresholds):
    """Both reaches flow -> total network length"""
    assert fdnl_at("2021-07-01 13:00", reaches, readings, thresholds) == 30.0


def test_fdnl_undefined_when_a_reach_is_undecidable(reaches, readings, thresholds):
    """B has no reading at 15:00 -> whole network undefined"""
    assert fdnl_at("2021-07-01 15:00", reaches, readings, thresholds) is None


def test_fdnl_unknown_length_counts_as_zero(readings, thresholds):
    """A flowing reach of unknown length adds nothing"""
    reaches = [Reach(location_id="A", length=None), Reach(location_id="B", length=20)]

    assert fdnl_at("2021-07-01 13:00", reaches, readings, thresholds) == 20.0


def test_fdnl_empty_network(readings, thresholds):
    """No reaches -> zero"""
    assert fdnl_at("2021-07-01 12:00", [], readings, thresholds) == 0.0


def test_fdnl_is_zero_when_nothing_flows(reaches, thresholds):
    """Every reach decided as no flow -> zero, not undefined"""
    readings = SensorReadings(pd.DataFrame({
        'observed_at': ['2021-07-01 12:00'],
        'XA': [1.0],
        'XB': [2.0],
    }))

    assert fdnl_at("2021-07-01 12:00", reaches, readings, thresholds) == 0.0


# Test Cases: Series

def test_series_timestamps_inclusive():
    """Both ends are included"""
    timestamps = series_timestamps("2021-07-01 12:00", "2021-07-01 14:00", "1h")

    assert [ts.hour for ts in timestamps] == [12, 13, 14]


def test_series_timestamps_rejects_bad_step():
    """Zero or negative steps are rejected"""
    with pytest.raises(ValueError):
        series_timestamps("2021-07-01 12:00", "2021-07-01 14:00", "0h")
    with pytest.raises(ValueError):
        series_timestamps("2021-07-01 12:00", "2021-07-01 14:00", "-1h")


def test_fdnl_series(reaches, readings, thresholds):
    """12:00 -> 10, 13:00 -> 30, 14:00 (no row) -> undefined"""
    points = fdnl_series("2021-07-01 12:00", "2021-07-01 14:00", "1h", reaches, readings, thresholds)

    assert [p.fdnl for p in points] == [10.0, 30.0, None]
    assert points[0].timestamp == pd.Timestamp("2021-07-01 12:00")


def test_fdnl_series_isolates_failures(monkeypatch, reaches, readings, thresholds):
    """An error at one step is recorded as undefined and the series continues"""
    original = fdnl_module.fdnl_at

    def flaky(ts, *args, **kwargs):
        if ts.hour == 13:
            raise RuntimeError("sensor table corrupted")
        return original(ts, *args, **kwargs)

    monkeypatch.setattr(fdnl_module, "fdnl_at", flaky)

    points = fdnl_series("2021-07-01 12:00", "2021-07-01 14:00", "1h", reaches, readings, thresholds)

    assert [p.fdnl for p in points] == [10.0, None, None]


def test_series_to_dataframe():
    """Output table has datetime and fdnl columns, undefined as NaN"""
    df = series_to_dataframe([
        FdnlPoint(timestamp=pd.Timestamp("2021-07-01 12:00"), fdnl=10.0),
        FdnlPoint(timestamp=pd.Timestamp("2021-07-01 13:00"), fdnl=None),
    ])

    assert list(df.columns) == ['datetime', 'fdnl']
    assert df.loc[0, 'fdnl'] == 10.0
    assert pd.isna(df.loc[1, 'fdnl'])
    assert pd.api.types.is_datetime64_any_dtype(df['datetime'])
