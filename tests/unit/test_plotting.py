"""
Unit Tests for FDNL Plotting
"""

import sys
from pathlib import Path

import pandas as pd

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from network.plotting import plot_fdnl_series
from normalize.schemas import FdnlPoint


def test_plot_fdnl_series_writes_png(tmp_path):
    """A series with undefined steps is plotted to a PNG file"""
    points = [
        FdnlPoint(timestamp=pd.Timestamp("2021-07-01 12:00"), fdnl=10.0),
        FdnlPoint(timestamp=pd.Timestamp("2021-07-01 13:00"), fdnl=None),
        FdnlPoint(timestamp=pd.Timestamp("2021-07-01 14:00"), fdnl=30.0),
    ]

    path = plot_fdnl_series(points, tmp_path / "plots" / "fdnl.png", title="Test")

    assert path.exists()
    assert path.read_bytes()[:4] == b"\x89PNG"


def test_plot_fully_defined_series(tmp_path):
    points = [FdnlPoint(timestamp=pd.Timestamp("2021-07-01 12:00"), fdnl=1.0)]

    assert plot_fdnl_series(points, tmp_path / "fdnl.png").exists()
