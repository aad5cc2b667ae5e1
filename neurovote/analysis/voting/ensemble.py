"""
Ensemble classification by plurality vote.

Combines the predictions of several scikit-learn classifiers (or of the
binary classifiers of a one-vs-one scheme) into one label per sample using
the deterministic winner selection in
:mod:`neurovote.analysis.voting.winners`.
"""

import json
import logging
from itertools import combinations
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import balanced_accuracy_score, confusion_matrix
from sklearn.model_selection import StratifiedKFold
from sklearn.neighbors import KNeighborsClassifier
from sklearn.svm import SVC

from neurovote.analysis.voting.visualization import (
    plot_ensemble_performance,
    plot_vote_summary,
)
from neurovote.analysis.voting.winners import (
    NO_WINNER_CLASS,
    aggregate,
    summarize_votes,
)

logger = logging.getLogger(__name__)

# Estimators available by name (config: ensemble.estimators)
ESTIMATOR_FACTORIES = {
    "svm": lambda seed: SVC(kernel="linear", C=1.0, max_iter=10000, random_state=seed),
    "logistic": lambda seed: LogisticRegression(
        solver="lbfgs", max_iter=5000, random_state=seed,
    ),
    # Deterministic fits; no random_state to pass
    "lda": lambda seed: LinearDiscriminantAnalysis(),
    "knn": lambda seed: KNeighborsClassifier(n_neighbors=3),
}

DEFAULT_ESTIMATORS = ["svm", "logistic", "lda"]


def build_estimators(names: Sequence[str], seed: int = 42) -> Dict[str, object]:
    """Instantiate unfitted estimators by name."""
    unknown = [n for n in names if n not in ESTIMATOR_FACTORIES]
    if unknown:
        raise ValueError(
            f"Unknown estimator(s) {unknown}; choose from {sorted(ESTIMATOR_FACTORIES)}"
        )
    return {name: ESTIMATOR_FACTORIES[name](seed) for name in names}


def encode_labels(labels) -> Tuple[np.ndarray, list]:
    """Encode arbitrary labels as positive integer codes.

    Returns (codes, label_names) where ``label_names[c - 1]`` is the label
    of code ``c``. Codes start at 1 because values <= 0 mean "no vote".
    """
    label_names = sorted(set(labels))
    label_map = {lbl: i + 1 for i, lbl in enumerate(label_names)}
    codes = np.array([label_map[lbl] for lbl in labels], dtype=np.int64)
    return codes, label_names


def decode_labels(winners, label_names: Sequence) -> List:
    """Map winning codes back to labels; ``NO_WINNER_CLASS`` becomes ``None``."""
    return [label_names[w - 1] if w != NO_WINNER_CLASS else None for w in winners]


def stack_predictions(
    estimators: Mapping[str, object],
    X: np.ndarray,
    label_names: Sequence,
) -> np.ndarray:
    """Prediction matrix (n_samples x n_estimators) of fitted estimators.

    Predicted labels are encoded with the codes of :func:`encode_labels`;
    labels not in ``label_names`` become sentinels (0).
    """
    if not estimators:
        raise ValueError("Need at least one estimator to stack predictions")

    label_map = {lbl: i + 1 for i, lbl in enumerate(label_names)}
    columns = []
    for name, est in estimators.items():
        y_pred = est.predict(X)
        codes = [label_map.get(lbl, NO_WINNER_CLASS) for lbl in y_pred]
        n_unknown = sum(1 for c in codes if c == NO_WINNER_CLASS)
        if n_unknown:
            logger.warning(
                "%s predicted %d label(s) outside the known classes; ignored",
                name, n_unknown,
            )
        columns.append(codes)

    return np.column_stack(columns).astype(np.int64)


def majority_vote(
    estimators: Mapping[str, object],
    X: np.ndarray,
    label_names: Sequence,
) -> List:
    """Plurality-vote label per sample over fitted estimators.

    Samples where no estimator produced a known label get ``None``.
    """
    pred = stack_predictions(estimators, X, label_names)
    winners, _ = aggregate(pred)
    return decode_labels(winners, label_names)


def pairwise_vote_predict(
    estimator,
    X_train: np.ndarray,
    y_train,
    X_test: np.ndarray,
) -> List:
    """One-vs-one classification combined by plurality vote.

    Fits one clone of ``estimator`` per pair of classes on the training
    samples of that pair, predicts every test sample with each of them and
    lets the pairwise decisions vote.

    Parameters
    ----------
    estimator : sklearn classifier
        Binary classifier template (not modified).
    X_train : ndarray, shape (n_train, n_features)
    y_train : sequence, shape (n_train,)
        Training labels; at least two distinct values.
    X_test : ndarray, shape (n_test, n_features)

    Returns
    -------
    list of predicted labels, one per test sample.
    """
    X_train = np.asarray(X_train)
    X_test = np.asarray(X_test)
    codes, label_names = encode_labels(list(y_train))
    n_classes = len(label_names)
    if n_classes < 2:
        raise ValueError(f"Need at least 2 classes for pairwise voting, got {n_classes}")

    columns = []
    for code_a, code_b in combinations(range(1, n_classes + 1), 2):
        pair_mask = (codes == code_a) | (codes == code_b)
        clf = clone(estimator)
        clf.fit(X_train[pair_mask], codes[pair_mask])
        columns.append(clf.predict(X_test))

    logger.debug("Pairwise voting: %d classes, %d binary classifiers",
                 n_classes, len(columns))

    winners, _ = aggregate(np.column_stack(columns))
    return decode_labels(winners, label_names)


def _score(codes: np.ndarray, y_pred: np.ndarray, n_classes: int) -> dict:
    return {
        "accuracy": float(np.mean(y_pred == codes)),
        "balanced_accuracy": float(balanced_accuracy_score(codes, y_pred)),
        "confusion_matrix": confusion_matrix(
            codes, y_pred, labels=list(range(1, n_classes + 1))
        ),
    }


def run_ensemble_classification(
    X: np.ndarray,
    y,
    estimators: Optional[Sequence[str]] = None,
    cv_folds: int = 5,
    seed: int = 42,
    output_dir: Optional[Path] = None,
) -> dict:
    """Cross-validated ensemble classification by plurality vote.

    Every estimator is fitted on each training fold; their test-fold
    predictions are combined per sample by deterministic plurality vote.

    Parameters
    ----------
    X : ndarray, shape (n_samples, n_features)
        Feature matrix.
    y : sequence, shape (n_samples,)
        Group labels (any hashable, sortable type).
    estimators : sequence of str, optional
        Names from ``ESTIMATOR_FACTORIES`` (default: svm, logistic, lda).
    cv_folds : int
        Number of stratified folds.
    seed : int
        Random seed for fold assignment and the estimators that accept one.
    output_dir : Path, optional
        If set, save results.json, vote_summary.csv and plots.

    Returns
    -------
    dict with keys:
        ensemble : dict of accuracy, balanced_accuracy, confusion_matrix
        estimators : dict of the same metrics per estimator
        y_pred : list of ensemble-predicted labels
        vote_summary : DataFrame (see ``summarize_votes``), indexed by sample
        n_contested : int
        label_names : list
    """
    X = np.asarray(X)
    codes, label_names = encode_labels(list(y))
    n_samples = len(codes)
    n_classes = len(label_names)

    if X.ndim != 2 or X.shape[0] != n_samples:
        raise ValueError(
            f"X must be 2-D with {n_samples} rows to match y, got shape {X.shape}"
        )
    if n_classes < 2:
        raise ValueError(f"Need at least 2 classes, got {n_classes}")

    names = list(estimators) if estimators is not None else list(DEFAULT_ESTIMATORS)
    templates = build_estimators(names, seed=seed)
    code_names = list(range(1, n_classes + 1))

    cv = StratifiedKFold(n_splits=min(cv_folds, n_samples), shuffle=True,
                         random_state=seed)

    logger.info(
        "Ensemble classification: n=%d, classes=%d, estimators=%s, cv=%d-fold",
        n_samples, n_classes, names, cv.n_splits,
    )

    y_pred = np.zeros(n_samples, dtype=np.int64)
    per_estimator_pred = {name: np.zeros(n_samples, dtype=np.int64) for name in names}
    fold_summaries = []

    for fold, (train_idx, test_idx) in enumerate(cv.split(X, codes)):
        fitted = {}
        for name, template in templates.items():
            clf = clone(template)
            clf.fit(X[train_idx], codes[train_idx])
            fitted[name] = clf

        pred = stack_predictions(fitted, X[test_idx], code_names)
        for j, name in enumerate(names):
            per_estimator_pred[name][test_idx] = pred[:, j]

        summary = summarize_votes(pred)
        summary["sample"] = test_idx
        summary["fold"] = fold
        fold_summaries.append(summary)
        y_pred[test_idx] = summary["winner"].to_numpy()

    vote_summary = (
        pd.concat(fold_summaries, ignore_index=True)
        .sort_values("sample")
        .set_index("sample")
    )
    n_contested = int(vote_summary["contested"].sum())

    ensemble_metrics = _score(codes, y_pred, n_classes)
    estimator_metrics = {
        name: _score(codes, per_estimator_pred[name], n_classes) for name in names
    }

    logger.info(
        "Ensemble: accuracy=%.3f, balanced=%.3f, contested=%d/%d",
        ensemble_metrics["accuracy"], ensemble_metrics["balanced_accuracy"],
        n_contested, n_samples,
    )
    for name, metrics in estimator_metrics.items():
        logger.info("  %s: accuracy=%.3f", name, metrics["accuracy"])

    results = {
        "ensemble": ensemble_metrics,
        "estimators": estimator_metrics,
        "y_pred": decode_labels(y_pred, label_names),
        "vote_summary": vote_summary,
        "n_contested": n_contested,
        "n_samples": n_samples,
        "cv_folds": cv.n_splits,
        "label_names": label_names,
    }

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        vote_summary.to_csv(output_dir / "vote_summary.csv")

        def _jsonable(metrics):
            return {
                k: (v.tolist() if isinstance(v, np.ndarray) else v)
                for k, v in metrics.items()
            }

        results_json = {
            "ensemble": _jsonable(ensemble_metrics),
            "estimators": {n: _jsonable(m) for n, m in estimator_metrics.items()},
            "n_contested": n_contested,
            "n_samples": n_samples,
            "cv_folds": cv.n_splits,
            "label_names": [str(n) for n in label_names],
        }
        with open(output_dir / "results.json", "w") as f:
            json.dump(results_json, f, indent=2)

        str_names = [str(n) for n in label_names]
        accuracies = {n: m["accuracy"] for n, m in estimator_metrics.items()}
        accuracies["ensemble"] = ensemble_metrics["accuracy"]
        plot_ensemble_performance(
            ensemble_metrics["confusion_matrix"], str_names, accuracies,
            title=f"Ensemble Performance (acc={ensemble_metrics['accuracy']:.2f})",
            out_path=output_dir / "ensemble_performance.png",
        )
        plot_vote_summary(
            vote_summary, label_names=str_names,
            title="Ensemble Vote Summary",
            out_path=output_dir / "vote_summary.png",
        )

        logger.info("Saved ensemble results to %s", output_dir)

    return results
