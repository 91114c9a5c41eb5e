"""Plotting utilities for FDNL series."""

from pathlib import Path
from typing import Iterable, Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt

from network.fdnl import series_to_dataframe
from normalize.schemas import FdnlPoint


def plot_fdnl_series(
    points: Iterable[FdnlPoint],
    output_path: Path,
    title: Optional[str] = None,
) -> Path:
    """Plot FDNL over time as a line; undefined steps are left as gaps.

    Args:
        points: FDNL series from fdnl_series().
        output_path: Path to save the plot (PNG).
        title: Optional plot title.

    Returns:
        The output path.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    df = series_to_dataframe(points)

    fig, ax = plt.subplots(figsize=(14, 5))
    ax.plot(df["datetime"], df["fdnl"], color="#2196F3", linewidth=1.0)

    undefined = df["fdnl"].isna()
    if undefined.any():
        ax.scatter(
            df.loc[undefined, "datetime"],
            [0.0] * int(undefined.sum()),
            marker="|",
            color="#FF5722",
            label="Undefined",
        )
        ax.legend()

    ax.set_xlabel("Time")
    ax.set_ylabel("Flowing drainage network length")
    ax.set_title(title or "Flowing Drainage Network Length")
    fig.autofmt_xdate()
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    return output_path
