"""
Lightweight visualizations of a replayed clinic day.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib

# Use a non-interactive backend to avoid display issues in headless environments.
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd

from .config import STATUSES


def plot_day(df: pd.DataFrame, timeline: pd.DataFrame, outfile: Optional[Path] = None) -> None:
    fig, axes = plt.subplots(2, 2, figsize=(12, 8))

    # Propagated delay over the day
    timeline.plot(x="time", y="delay_minutes", ax=axes[0, 0], color="tab:red", legend=False)
    axes[0, 0].set_title("Propagated doctor delay")
    axes[0, 0].set_ylabel("Minutes")

    # Status mix over time
    present = [s for s in STATUSES if s in timeline.columns]
    timeline.set_index("time")[present].plot.area(ax=axes[0, 1], linewidth=0)
    axes[0, 1].set_title("Appointment statuses")

    # Arrived queue length
    timeline.plot(x="time", y="queue_length", ax=axes[1, 0], color="tab:blue", legend=False)
    axes[1, 0].set_title("Arrived queue length")

    # Final outcome by token type
    if not df.empty:
        kinds = df["token_number"].str[0]
        pd.crosstab(kinds, df["status"]).plot(kind="bar", stacked=True, ax=axes[1, 1])
    axes[1, 1].set_title("Final status by token type")

    plt.tight_layout()
    if outfile:
        plt.savefig(outfile, dpi=150)
    else:
        plt.show()
    plt.close(fig)
