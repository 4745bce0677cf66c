"""
Plots of a kite run, read back from the CSVLogger output.

Both figures take the CSV path rather than a live simulation so they can be
regenerated from an old run.
"""
from __future__ import annotations

from pathlib import Path
from typing import List

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from mpl_toolkits.mplot3d import Axes3D  # noqa: F401  (registers 3D projection)

ASYMMETRY_GUIDE = 10.0  # %, default dominant-side threshold

LEFT_COLOR = "#1a73e8"
RIGHT_COLOR = "#ea4335"


def _read_log(csv_path: str) -> pd.DataFrame:
    df = pd.read_csv(csv_path)
    if len(df.columns) == 0 or df.columns[0] != "t":
        raise ValueError(f"First column of {csv_path} must be time 't'.")
    return df


def _series(df: pd.DataFrame, names: List[str]) -> List[np.ndarray]:
    missing = [n for n in names if n not in df.columns]
    if missing:
        raise KeyError(f"Columns {missing} not found in log.")
    return [df[n].to_numpy(dtype=float) for n in names]


def _finish(fig: Figure, save_path: str | None, show: bool) -> Figure:
    fig.tight_layout()
    if save_path:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    if show:
        plt.show()
    return fig


def plot_trajectory_3d(
    csv_path: str,
    body_name: str = "kite",
    save_path: str | None = None,
    show: bool = True,
) -> Figure:
    """
    Flight path in 3D above a time trace of altitude and ground range.

    Parameters
    ----------
    csv_path : str
        Path to the logger CSV.
    body_name : str
        Column prefix used by the logger.
    save_path : str | None
        Where to save the figure, if anywhere.
    show : bool
        Whether to call ``plt.show()``.
    """
    df = _read_log(csv_path)
    t = df["t"].to_numpy(dtype=float)
    x, y, z = _series(df, [f"{body_name}.p_{c}" for c in "xyz"])
    ground_range = np.hypot(x, y)

    fig = plt.figure(figsize=(9, 8))
    ax3d = fig.add_subplot(2, 1, 1, projection="3d")
    ax_t = fig.add_subplot(2, 1, 2)

    ax3d.plot(x, y, z, color=LEFT_COLOR, lw=1.5)
    ax3d.scatter([x[0]], [y[0]], [z[0]], color="#34a853", s=30, label="release")
    ax3d.scatter([x[-1]], [y[-1]], [z[-1]], color=RIGHT_COLOR, s=30, label="final")
    ax3d.scatter([0.0], [0.0], [0.0], color="#202124", marker="^", s=30, label="pilot")
    ax3d.set_xlabel("x [m]")
    ax3d.set_ylabel("y [m]")
    ax3d.set_zlabel("z [m]")
    ax3d.set_title(f"Flight path: {body_name}")
    ax3d.legend(loc="upper left")

    ax_t.plot(t, z, color=LEFT_COLOR, label="altitude")
    ax_t.plot(t, ground_range, color="#5f6368", ls="--", label="ground range")
    ax_t.set_xlabel("t [s]")
    ax_t.set_ylabel("[m]")
    ax_t.grid(True, alpha=0.3)
    ax_t.legend(loc="best")

    return _finish(fig, save_path, show)


def plot_line_tensions(
    csv_path: str,
    save_path: str | None = None,
    show: bool = True,
) -> Figure:
    """Left and right line tension, and their asymmetry against the dominance threshold."""
    df = _read_log(csv_path)
    t = df["t"].to_numpy(dtype=float)
    left, right, asym = _series(df, ["T_left", "T_right", "asym"])

    fig, (ax_tension, ax_asym) = plt.subplots(2, 1, figsize=(9, 6), sharex=True)

    ax_tension.plot(t, left, color=LEFT_COLOR, label="left")
    ax_tension.plot(t, right, color=RIGHT_COLOR, label="right")
    ax_tension.fill_between(t, left, right, where=left > right, color=LEFT_COLOR, alpha=0.15)
    ax_tension.fill_between(t, left, right, where=right > left, color=RIGHT_COLOR, alpha=0.15)
    ax_tension.set_ylabel("tension [N]")
    ax_tension.grid(True, alpha=0.3)
    ax_tension.legend(loc="best")

    ax_asym.plot(t, asym, color="#fbbc05")
    ax_asym.axhline(ASYMMETRY_GUIDE, color="#5f6368", ls=":", lw=1.0)
    ax_asym.set_xlabel("t [s]")
    ax_asym.set_ylabel("asymmetry [%]")
    ax_asym.set_ylim(bottom=0.0)
    ax_asym.grid(True, alpha=0.3)

    return _finish(fig, save_path, show)
