"""
Winner selection for ensembles of class predictions.

Given a prediction matrix (rows = samples, columns = independent predictors)
returns, per sample, the class that was predicted most often. Values <= 0 are
sentinels ("no vote") and can never win.

Ties are broken pseudo-randomly but deterministically: the choice is driven by
an integer counter seeded from the total tie volume of the input and advanced
while contested samples are visited in ascending order. Calling any function
here twice with the same input yields identical output.

Example
-------
>>> pred = [[1, 1, 1], [1, 2, 3], [1, 2, 3], [1, 2, 3], [3, 0, 0], [1, 2, 2]]
>>> winners, classes = aggregate(pred)
>>> classes.tolist(), winners.tolist()
([1, 2, 3], [1, 1, 2, 3, 3, 2])
"""

import logging
from typing import Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Marker for samples without any valid vote
NO_WINNER_CLASS = 0
NO_WINNER_INDEX = -1


def _as_prediction_matrix(pred) -> np.ndarray:
    """Validate input and return it as a 2-D int64 array."""
    try:
        arr = np.asarray(pred)
    except ValueError as exc:
        raise ValueError(f"Prediction matrix must be rectangular: {exc}") from exc

    if arr.dtype == object:
        raise ValueError("Prediction matrix must be rectangular and numeric")
    if arr.ndim != 2:
        raise ValueError(
            f"Prediction matrix must be 2-D (samples x predictors), got {arr.ndim}-D"
        )
    if arr.shape[0] == 0:
        raise ValueError("Prediction matrix must contain at least one sample")
    if arr.shape[1] == 0:
        raise ValueError("Prediction matrix must contain at least one predictor")
    if arr.dtype == bool or not np.issubdtype(arr.dtype, np.number) \
            or np.issubdtype(arr.dtype, np.complexfloating):
        raise ValueError(f"Prediction matrix must hold integer labels, got {arr.dtype}")

    if np.issubdtype(arr.dtype, np.floating):
        if not np.all(np.isfinite(arr)):
            raise ValueError("Prediction matrix contains NaN or infinite values")
        if np.any(arr != np.round(arr)):
            raise ValueError("Prediction matrix contains non-integer labels")
        # 2**63 is exactly representable; int64 holds [-2**63, 2**63)
        if arr.max() >= 2.0 ** 63 or arr.min() < -(2.0 ** 63):
            raise ValueError("Prediction matrix contains labels outside the int64 range")
    elif np.issubdtype(arr.dtype, np.unsignedinteger):
        if int(arr.max()) > np.iinfo(np.int64).max:
            raise ValueError("Prediction matrix contains labels outside the int64 range")

    return arr.astype(np.int64)


def _bincount_rows(
    rows: np.ndarray,
    codes: np.ndarray,
    n_samples: int,
    n_classes: int,
) -> np.ndarray:
    """Count (row, code) occurrences into an n_samples x n_classes table."""
    flat = rows * n_classes + codes
    counts = np.bincount(flat, minlength=n_samples * n_classes)
    return counts.reshape(n_samples, n_classes)


def _count_votes(pred: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Vote count table and class vocabulary for a validated matrix."""
    n_samples = pred.shape[0]
    valid = pred > 0
    n_valid = int(valid.sum())

    if n_valid == 0:
        return (np.zeros((n_samples, 0), dtype=np.int64),
                np.zeros(0, dtype=np.int64))

    # Boolean indexing and nonzero both walk the matrix row-major
    rows = np.nonzero(valid)[0]
    values = pred[valid]
    max_label = int(values.max())

    if max_label <= n_valid:
        # Labels are small: bin directly into 1..max_label
        logger.debug("Counting %d votes over labels 1..%d", n_valid, max_label)
        counts = _bincount_rows(rows, values - 1, n_samples, max_label)
        observed = counts.sum(axis=0) > 0
        if observed.all():
            classes = np.arange(1, max_label + 1, dtype=np.int64)
        else:
            classes = (np.flatnonzero(observed) + 1).astype(np.int64)
            counts = counts[:, observed]
    else:
        logger.debug("Counting %d votes over sparse labels (max=%d)", n_valid, max_label)
        classes, codes = np.unique(values, return_inverse=True)
        counts = _bincount_rows(rows, codes.ravel(), n_samples, len(classes))

    return counts, classes


def _resolve_winners(counts: np.ndarray) -> Tuple[np.ndarray, int]:
    """Pick one column index per row of a vote count table.

    Returns the winner indices (``NO_WINNER_INDEX`` for rows without votes)
    and the number of contested rows.
    """
    n_samples, n_classes = counts.shape
    winners = np.full(n_samples, NO_WINNER_INDEX, dtype=np.intp)
    if n_classes == 0:
        return winners, 0

    max_count = counts.max(axis=1)
    has_vote = max_count > 0
    tied = (counts == max_count[:, None]) & has_vote[:, None]
    n_tied = tied.sum(axis=1)

    unique = n_tied == 1
    winners[unique] = counts[unique].argmax(axis=1)

    contested = np.flatnonzero(n_tied > 1)
    if contested.size == 0:
        return winners, 0

    # Tied (sample, class) pairs laid out class-major; each contested sample
    # consumes the next n_tied entries of this layout.
    layout = np.nonzero(tied[contested].T)[0]

    seed = int(n_tied[contested].sum())
    offset = 0
    for sample in contested:
        n = int(n_tied[sample])
        seed += n
        position = seed % n

        candidate = layout[offset + position]
        if not tied[sample, candidate]:
            candidate = np.flatnonzero(tied[sample])[position]

        winners[sample] = candidate
        offset += n

    return winners, int(contested.size)


def _aggregate(pred) -> Tuple[np.ndarray, np.ndarray, np.ndarray, int]:
    pred = _as_prediction_matrix(pred)
    counts, classes = _count_votes(pred)
    indices, n_contested = _resolve_winners(counts)

    logger.debug(
        "Aggregated %d samples x %d predictors: %d classes, %d contested",
        pred.shape[0], pred.shape[1], len(classes), n_contested,
    )
    return indices, classes, counts, n_contested


def _indices_to_classes(indices: np.ndarray, classes: np.ndarray) -> np.ndarray:
    winners = np.full(len(indices), NO_WINNER_CLASS, dtype=np.int64)
    has_winner = indices != NO_WINNER_INDEX
    winners[has_winner] = classes[indices[has_winner]]
    return winners


def vote_counts(pred) -> Tuple[np.ndarray, np.ndarray]:
    """Count how often each class was predicted for each sample.

    Parameters
    ----------
    pred : array-like, shape (n_samples, n_predictors)
        Integer class labels; values <= 0 mean "no vote".

    Returns
    -------
    counts : ndarray, shape (n_samples, n_classes)
        ``counts[s, c]`` is the number of predictors voting ``classes[c]``
        for sample ``s``.
    classes : ndarray, shape (n_classes,)
        Sorted unique positive labels across the whole matrix.
    """
    counts, classes = _count_votes(_as_prediction_matrix(pred))
    return counts, classes


def winner_indices(pred) -> Tuple[np.ndarray, np.ndarray]:
    """With multiple predictions per sample, return the most frequent ones.

    Parameters
    ----------
    pred : array-like, shape (n_samples, n_predictors)
        Integer class labels; values <= 0 are ignored and never win.

    Returns
    -------
    winners : ndarray, shape (n_samples,)
        0-based indices into ``classes``. ``winners[k] == w`` means no value
        in ``pred[k]`` occurs more often than ``classes[w]``. Samples without
        any valid vote get ``NO_WINNER_INDEX`` (-1).
    classes : ndarray, shape (n_classes,)
        Sorted unique positive labels across all of ``pred``.

    Raises
    ------
    ValueError
        If ``pred`` is not a non-empty 2-D matrix of integer labels.
    """
    indices, classes, _, _ = _aggregate(pred)
    return indices, classes


def aggregate(pred) -> Tuple[np.ndarray, np.ndarray]:
    """Like :func:`winner_indices` but return the winning class labels.

    Samples without any valid vote get ``NO_WINNER_CLASS`` (0).
    """
    indices, classes, _, _ = _aggregate(pred)
    return _indices_to_classes(indices, classes), classes


def summarize_votes(pred) -> pd.DataFrame:
    """Per-sample breakdown of the vote.

    Returns
    -------
    DataFrame with one row per sample and columns:
        sample, n_votes, max_count, n_tied, contested, winner
    """
    indices, classes, counts, _ = _aggregate(pred)

    if counts.shape[1] > 0:
        max_count = counts.max(axis=1)
        n_tied = np.where(
            max_count > 0, (counts == max_count[:, None]).sum(axis=1), 0
        )
    else:
        max_count = np.zeros(counts.shape[0], dtype=np.int64)
        n_tied = np.zeros(counts.shape[0], dtype=np.int64)

    return pd.DataFrame({
        "sample": np.arange(counts.shape[0]),
        "n_votes": counts.sum(axis=1),
        "max_count": max_count,
        "n_tied": n_tied,
        "contested": n_tied > 1,
        "winner": _indices_to_classes(indices, classes),
    })


class VoteAggregator:
    """Deterministic plurality vote over a prediction matrix.

    Thin stateful wrapper around :func:`aggregate` that keeps diagnostics
    of the most recent call.

    Attributes
    ----------
    n_contested : int
        Samples whose maximum count was shared by several classes.
    n_no_winner : int
        Samples without any valid vote.
    """

    def __init__(self):
        self.n_contested = 0
        self.n_no_winner = 0

    def _run(self, pred) -> Tuple[np.ndarray, np.ndarray]:
        indices, classes, _, n_contested = _aggregate(pred)
        self.n_contested = n_contested
        self.n_no_winner = int(np.sum(indices == NO_WINNER_INDEX))
        return indices, classes

    def aggregate(self, pred) -> Tuple[np.ndarray, np.ndarray]:
        """Return (winning class labels, classes); see :func:`aggregate`."""
        indices, classes = self._run(pred)
        return _indices_to_classes(indices, classes), classes

    def winner_indices(self, pred) -> Tuple[np.ndarray, np.ndarray]:
        """Return (winner indices, classes); see :func:`winner_indices`."""
        return self._run(pred)
