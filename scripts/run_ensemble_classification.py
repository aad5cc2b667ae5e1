#!/usr/bin/env python3
"""
Cross-validated ensemble classification by deterministic plurality vote.

Fits several classifiers per stratified fold on a feature table and combines
their test-fold predictions per sample by vote.

Usage:
    uv run python scripts/run_ensemble_classification.py \
        --features /data/study/roi_features.csv \
        --label-column group \
        --output-dir /data/study/analysis/ensemble \
        --estimators svm logistic lda
"""

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd
from sklearn.preprocessing import StandardScaler

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from neurovote.analysis.voting.ensemble import (
    ESTIMATOR_FACTORIES,
    run_ensemble_classification,
)
from neurovote.config import ConfigurationError, get_config_value, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Cross-validated ensemble classification with vote aggregation"
    )
    parser.add_argument(
        "--features", type=Path, required=True,
        help="CSV with one row per sample: feature columns plus a label column",
    )
    parser.add_argument(
        "--label-column", default="group",
        help="Column holding the class labels (default: group)",
    )
    parser.add_argument(
        "--drop-columns", nargs="*", default=[],
        help="Non-feature columns to ignore (e.g. subject session)",
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None,
        help="Output directory (default: paths.ensemble from config)",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="Study YAML config merged over configs/default.yaml",
    )
    parser.add_argument(
        "--estimators", nargs="+", choices=sorted(ESTIMATOR_FACTORIES), default=None,
        help="Classifiers in the ensemble (default: ensemble.estimators)",
    )
    parser.add_argument(
        "--cv-folds", type=int, default=None,
        help="Stratified folds (default: ensemble.cv_folds)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Random seed (default: ensemble.seed)",
    )

    args = parser.parse_args()

    if not args.features.exists():
        logger.error("Feature table not found: %s", args.features)
        sys.exit(1)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    df = pd.read_csv(args.features)
    if args.label_column not in df.columns:
        logger.error("Label column '%s' not in %s", args.label_column, args.features)
        sys.exit(1)

    df = df.dropna(subset=[args.label_column])
    feature_cols = [
        c for c in df.columns
        if c != args.label_column and c not in args.drop_columns
    ]
    X = StandardScaler().fit_transform(df[feature_cols].to_numpy(dtype=float))
    y = df[args.label_column].astype(str).tolist()

    output_dir = args.output_dir or Path(
        get_config_value(config, "paths.ensemble", "ensemble")
    )

    try:
        run_ensemble_classification(
            X, y,
            estimators=args.estimators or get_config_value(config, "ensemble.estimators"),
            cv_folds=args.cv_folds or get_config_value(config, "ensemble.cv_folds", 5),
            seed=args.seed if args.seed is not None
            else get_config_value(config, "ensemble.seed", 42),
            output_dir=output_dir,
        )
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
