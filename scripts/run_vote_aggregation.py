#!/usr/bin/env python3
"""
Aggregate a matrix of ensemble predictions into one winner per sample.

Reads a prediction matrix (rows = samples, columns = predictors; values <= 0
mean "no vote") from .npy, .csv, .tsv or whitespace-delimited .txt and
writes the winners, the class vocabulary and a per-sample vote summary.

Usage:
    uv run python scripts/run_vote_aggregation.py \
        --predictions /data/study/cv_predictions.csv \
        --output-dir /data/study/analysis/votes

    # Write 0-based indices into the class vocabulary instead of labels:
    uv run python scripts/run_vote_aggregation.py \
        --predictions preds.npy --output-dir out --output indices
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from neurovote.analysis.voting.visualization import plot_vote_summary
from neurovote.analysis.voting.winners import (
    VoteAggregator,
    summarize_votes,
)
from neurovote.config import (
    VOTING_OUTPUTS,
    ConfigurationError,
    get_config_value,
    load_config,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_prediction_matrix(path: Path) -> np.ndarray:
    """Load a samples x predictors matrix without header."""
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix == ".csv":
        return pd.read_csv(path, header=None).to_numpy()
    if suffix == ".tsv":
        return pd.read_csv(path, sep="\t", header=None).to_numpy()
    if suffix == ".txt":
        return pd.read_csv(path, sep=r"\s+", header=None).to_numpy()
    raise ValueError(f"Unsupported prediction file extension: {suffix}")


def main():
    parser = argparse.ArgumentParser(
        description="Deterministic plurality vote over ensemble predictions"
    )
    parser.add_argument(
        "--predictions", type=Path, required=True,
        help="Prediction matrix (.npy, .csv, .tsv or .txt), samples x predictors",
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None,
        help="Output directory (default: paths.votes from config)",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="Study YAML config merged over configs/default.yaml",
    )
    parser.add_argument(
        "--output", choices=VOTING_OUTPUTS, default=None,
        help="Write class labels or 0-based class indices (default: voting.output)",
    )
    parser.add_argument(
        "--no-plot", action="store_true",
        help="Skip the vote summary figure",
    )

    args = parser.parse_args()

    if not args.predictions.exists():
        logger.error("Prediction file not found: %s", args.predictions)
        sys.exit(1)

    try:
        config = load_config(args.config)
        pred = load_prediction_matrix(args.predictions)

        aggregator = VoteAggregator()
        output = args.output or get_config_value(config, "voting.output", "classes")
        if output == "indices":
            winners, classes = aggregator.winner_indices(pred)
        else:
            winners, classes = aggregator.aggregate(pred)
        summary = summarize_votes(pred)
    except (ConfigurationError, ValueError) as exc:
        logger.error("%s", exc)
        sys.exit(1)

    output_dir = args.output_dir or Path(get_config_value(config, "paths.votes", "votes"))
    output_dir.mkdir(parents=True, exist_ok=True)

    n_samples, n_predictors = pred.shape
    logger.info(
        "Aggregated %d samples x %d predictors: %d classes, %d contested, %d without winner",
        n_samples, n_predictors, len(classes),
        aggregator.n_contested, aggregator.n_no_winner,
    )

    np.savetxt(output_dir / "winners.txt", winners, fmt="%d")
    np.savetxt(output_dir / "classes.txt", classes, fmt="%d")
    summary.to_csv(output_dir / "vote_summary.csv", index=False)

    run_info = {
        "generated": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "predictions": str(args.predictions),
        "config": str(args.config) if args.config else None,
        "output": output,
        "n_samples": int(n_samples),
        "n_predictors": int(n_predictors),
        "classes": [int(c) for c in classes],
        "n_contested": aggregator.n_contested,
        "n_no_winner": aggregator.n_no_winner,
    }
    with open(output_dir / "vote_results.json", "w") as f:
        json.dump(run_info, f, indent=2)

    if not args.no_plot and get_config_value(config, "voting.plot", True):
        plot_vote_summary(summary, out_path=output_dir / "vote_summary.png")

    logger.info("Saved vote results to %s", output_dir)


if __name__ == "__main__":
    main()
