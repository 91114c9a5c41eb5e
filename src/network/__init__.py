"""
Network Aggregation for the FDNL engine

Flowing drainage network length at one instant and over an interval.
Plotting lives in network.plotting (requires matplotlib).
"""

from .fdnl import (
    fdnl_at,
    fdnl_series,
    series_timestamps,
    series_to_dataframe
)

__all__ = [
    'fdnl_at',
    'fdnl_series',
    'series_timestamps',
    'series_to_dataframe'
]
