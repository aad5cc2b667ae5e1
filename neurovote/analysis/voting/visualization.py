"""
Plotting utilities for ensemble vote outcomes.

Provides a two-panel vote summary (tied-set sizes and winner frequencies)
and a performance panel comparing the ensemble vote with its estimators.
"""

import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

_DPI = 150

_WINNER_COLOR = "#1b9e77"
_TIE_COLOR = "#d95f02"


def plot_vote_summary(
    summary: pd.DataFrame,
    label_names: Optional[Sequence[str]] = None,
    title: str = "Vote Summary",
    out_path: Optional[Path] = None,
) -> None:
    """Bar charts of tied-set sizes and winner frequencies.

    Parameters
    ----------
    summary : DataFrame
        Output of :func:`neurovote.analysis.voting.winners.summarize_votes`.
    label_names : sequence of str, optional
        Names for winner classes 1..K. Raw class values are used otherwise.
    title : str
        Figure title.
    out_path : Path, optional
        Save figure to this path.
    """
    fig, (ax_tie, ax_win) = plt.subplots(1, 2, figsize=(10, 4))

    tie_sizes = summary.loc[summary["n_votes"] > 0, "n_tied"].value_counts().sort_index()
    ax_tie.bar(
        [str(k) for k in tie_sizes.index], tie_sizes.values,
        color=[_WINNER_COLOR if k == 1 else _TIE_COLOR for k in tie_sizes.index],
    )
    ax_tie.set_xlabel("Classes sharing the maximum count")
    ax_tie.set_ylabel("Samples")
    ax_tie.set_title("Tied-set size", fontsize=11)
    ax_tie.grid(True, axis="y", alpha=0.3)

    winners = summary.loc[summary["winner"] > 0, "winner"].value_counts().sort_index()
    if label_names is not None:
        tick_labels = [
            label_names[k - 1] if 0 < k <= len(label_names) else str(k)
            for k in winners.index
        ]
    else:
        tick_labels = [str(k) for k in winners.index]
    ax_win.bar(tick_labels, winners.values, color=_WINNER_COLOR)
    ax_win.set_xlabel("Winning class")
    ax_win.set_ylabel("Samples")
    n_no_winner = int((summary["winner"] <= 0).sum())
    ax_win.set_title(f"Winners (no winner: {n_no_winner})", fontsize=11)
    ax_win.grid(True, axis="y", alpha=0.3)

    fig.suptitle(title, fontsize=12)
    fig.tight_layout()

    if out_path is not None:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=_DPI, bbox_inches="tight")
        logger.info("Saved vote summary: %s", out_path)
    plt.close(fig)


def plot_ensemble_performance(
    cm: np.ndarray,
    label_names: Sequence[str],
    accuracies: Mapping[str, float],
    title: str = "Ensemble Performance",
    out_path: Optional[Path] = None,
) -> None:
    """Ensemble confusion matrix next to per-estimator accuracies.

    Parameters
    ----------
    cm : ndarray, shape (n_classes, n_classes)
        Ensemble confusion matrix (rows=true, columns=voted).
    label_names : sequence of str
        Class names.
    accuracies : mapping of str to float
        Accuracy per estimator; the key ``"ensemble"`` is highlighted.
    title : str
        Figure title.
    out_path : Path, optional
        Save figure to this path.
    """
    fig, (ax_cm, ax_acc) = plt.subplots(
        1, 2, figsize=(10, 4.5), gridspec_kw={"width_ratios": [1, 1.2]},
    )

    # Recall per true class; empty rows stay at 0
    totals = cm.sum(axis=1, keepdims=True)
    recall = np.divide(cm, totals, out=np.zeros(cm.shape, dtype=float),
                       where=totals > 0)

    ax_cm.imshow(recall, cmap="Greens", vmin=0, vmax=1, aspect="auto")
    ticks = range(len(label_names))
    ax_cm.set_xticks(ticks)
    ax_cm.set_yticks(ticks)
    ax_cm.set_xticklabels(label_names, fontsize=9)
    ax_cm.set_yticklabels(label_names, fontsize=9)
    ax_cm.set_xlabel("Voted class")
    ax_cm.set_ylabel("True class")
    ax_cm.set_title("Ensemble votes", fontsize=11)
    for (i, j), n in np.ndenumerate(cm):
        ax_cm.text(j, i, f"{n}", ha="center", va="center", fontsize=9,
                   color="white" if recall[i, j] > 0.5 else "black")

    names = list(accuracies)
    values = [accuracies[n] for n in names]
    colors = [_TIE_COLOR if n == "ensemble" else _WINNER_COLOR for n in names]
    ax_acc.barh(names, values, color=colors)
    ax_acc.set_xlim(0, 1)
    ax_acc.invert_yaxis()
    ax_acc.set_xlabel("Cross-validated accuracy")
    ax_acc.set_title("Estimators vs. vote", fontsize=11)
    ax_acc.grid(True, axis="x", alpha=0.3)
    for y_pos, value in enumerate(values):
        ax_acc.text(min(value + 0.01, 0.9), y_pos, f"{value:.2f}",
                    va="center", fontsize=9)

    fig.suptitle(title, fontsize=12)
    fig.tight_layout()

    if out_path is not None:
        Path(out_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=_DPI, bbox_inches="tight")
        logger.info("Saved ensemble performance: %s", out_path)
    plt.close(fig)
