#!/usr/bin/env python3
"""
Unit tests for deterministic winner selection.

Tests vote counting, class vocabulary, tie-breaking order, sentinel
handling and input validation.
"""

import numpy as np
import pytest

from neurovote.analysis.voting.winners import (
    NO_WINNER_CLASS,
    NO_WINNER_INDEX,
    VoteAggregator,
    aggregate,
    summarize_votes,
    vote_counts,
    winner_indices,
)


@pytest.fixture
def example_pred():
    """Six samples with three predictions each, three of them tied."""
    return np.array([
        [1, 1, 1],
        [1, 2, 3],
        [1, 2, 3],
        [1, 2, 3],
        [3, 0, 0],
        [1, 2, 2],
    ])


@pytest.fixture
def random_pred():
    """Random predictions with sentinels and a sparse label range."""
    rng = np.random.default_rng(42)
    pred = rng.integers(-1, 6, size=(300, 7))
    pred[pred == 4] = 9
    return pred


class TestAggregate:
    def test_documented_example(self, example_pred):
        winners, classes = aggregate(example_pred)
        np.testing.assert_array_equal(classes, [1, 2, 3])
        np.testing.assert_array_equal(winners, [1, 1, 2, 3, 3, 2])

    def test_indices_match_classes(self, example_pred):
        indices, classes = winner_indices(example_pred)
        np.testing.assert_array_equal(indices, [0, 0, 1, 2, 2, 1])
        winners, _ = aggregate(example_pred)
        np.testing.assert_array_equal(classes[indices], winners)

    def test_accepts_nested_lists(self, example_pred):
        winners, _ = aggregate(example_pred.tolist())
        np.testing.assert_array_equal(winners, [1, 1, 2, 3, 3, 2])

    def test_accepts_integral_floats(self, example_pred):
        winners, classes = aggregate(example_pred.astype(float))
        np.testing.assert_array_equal(winners, [1, 1, 2, 3, 3, 2])
        assert classes.dtype == np.int64

    def test_deterministic(self, random_pred):
        w1, c1 = winner_indices(random_pred)
        w2, c2 = winner_indices(random_pred)
        np.testing.assert_array_equal(w1, w2)
        np.testing.assert_array_equal(c1, c2)

    def test_input_not_modified(self, example_pred):
        original = example_pred.copy()
        aggregate(example_pred)
        np.testing.assert_array_equal(example_pred, original)

    def test_single_predictor(self):
        winners, classes = aggregate([[2], [0], [5]])
        np.testing.assert_array_equal(classes, [2, 5])
        np.testing.assert_array_equal(winners, [2, NO_WINNER_CLASS, 5])


class TestVocabulary:
    def test_strictly_increasing_positive(self, random_pred):
        _, classes = winner_indices(random_pred)
        assert np.all(classes > 0)
        assert np.all(np.diff(classes) > 0)

    def test_every_valid_value_in_vocabulary(self, random_pred):
        _, classes = winner_indices(random_pred)
        valid = np.unique(random_pred[random_pred > 0])
        np.testing.assert_array_equal(classes, valid)

    def test_gaps_in_label_range(self):
        pred = np.array([[5, 5, 1], [1, 1, 5]])
        counts, classes = vote_counts(pred)
        np.testing.assert_array_equal(classes, [1, 5])
        np.testing.assert_array_equal(counts, [[1, 2], [2, 1]])

    def test_dense_and_sparse_labels_agree(self):
        """Relabelling classes monotonically keeps the winning indices."""
        rng = np.random.default_rng(3)
        dense = rng.integers(0, 4, size=(100, 5))
        sparse = np.where(dense > 0, dense * 1000, dense)

        w_dense, c_dense = winner_indices(dense)
        w_sparse, c_sparse = winner_indices(sparse)

        np.testing.assert_array_equal(w_dense, w_sparse)
        np.testing.assert_array_equal(c_dense * 1000, c_sparse)


class TestVoteCounts:
    def test_example_counts(self, example_pred):
        counts, classes = vote_counts(example_pred)
        np.testing.assert_array_equal(classes, [1, 2, 3])
        np.testing.assert_array_equal(counts, [
            [3, 0, 0],
            [1, 1, 1],
            [1, 1, 1],
            [1, 1, 1],
            [0, 0, 1],
            [1, 2, 0],
        ])

    def test_row_sums_equal_valid_votes(self, random_pred):
        counts, _ = vote_counts(random_pred)
        np.testing.assert_array_equal(counts.sum(axis=1), (random_pred > 0).sum(axis=1))
        assert np.all(counts >= 0)
        assert np.all(counts.sum(axis=1) <= random_pred.shape[1])


class TestWinnerInvariant:
    def test_winner_has_maximum_count(self, random_pred):
        indices, classes = winner_indices(random_pred)
        has_winner = indices != NO_WINNER_INDEX
        counts, _ = vote_counts(random_pred)

        rows = np.flatnonzero(has_winner)
        winner_counts = counts[rows, indices[rows]]
        np.testing.assert_array_equal(winner_counts, counts[rows].max(axis=1))

    def test_no_winner_only_without_votes(self, random_pred):
        indices, _ = winner_indices(random_pred)
        no_votes = ~np.any(random_pred > 0, axis=1)
        np.testing.assert_array_equal(indices == NO_WINNER_INDEX, no_votes)

    def test_differing_tied_sets_stay_valid(self):
        # Sample 0 ties {2, 3}, sample 1 ties {1, 2}
        pred = np.array([[2, 3], [1, 2]])
        winners, classes = aggregate(pred)
        np.testing.assert_array_equal(classes, [1, 2, 3])
        np.testing.assert_array_equal(winners, [2, 2])


class TestTieBreaking:
    def test_identical_ties_cycle_through_classes(self):
        winners, _ = aggregate([[1, 2], [1, 2], [1, 2]])
        np.testing.assert_array_equal(winners, [1, 1, 2])

    def test_reversed_sample_order(self, example_pred):
        winners, _ = aggregate(example_pred[::-1])
        np.testing.assert_array_equal(winners, [2, 3, 1, 2, 3, 1])

    def test_unique_winners_ignore_contested_rows(self):
        base = np.array([[1, 1, 2], [2, 2, 3], [3, 3, 1]])
        extended = np.vstack([[1, 2, 3], base[:1], [2, 3, 1], base[1:], [3, 1, 2]])

        w_base, _ = aggregate(base)
        w_ext, _ = aggregate(extended)
        np.testing.assert_array_equal(w_ext[[1, 3, 4]], w_base)

    def test_single_valid_vote_wins(self):
        pred = np.array([[0, 0, 4], [-3, 7, 0], [0, 2, -1]])
        winners, classes = aggregate(pred)
        np.testing.assert_array_equal(classes, [2, 4, 7])
        np.testing.assert_array_equal(winners, [4, 7, 2])


class TestSentinels:
    def test_all_sentinel_row(self):
        winners, classes = aggregate([[0, 0, 0], [1, 1, 2]])
        np.testing.assert_array_equal(classes, [1, 2])
        np.testing.assert_array_equal(winners, [NO_WINNER_CLASS, 1])

        indices, _ = winner_indices([[0, 0, 0], [1, 1, 2]])
        np.testing.assert_array_equal(indices, [NO_WINNER_INDEX, 0])

    def test_sentinel_rows_do_not_shift_ties(self):
        alone, _ = aggregate([[1, 2]])
        padded, _ = aggregate([[1, 2], [0, -5]])
        assert padded[0] == alone[0]
        assert padded[1] == NO_WINNER_CLASS

    def test_negative_values_never_win(self):
        winners, classes = aggregate([[-2, -2, 1], [-1, -1, -1]])
        np.testing.assert_array_equal(classes, [1])
        np.testing.assert_array_equal(winners, [1, NO_WINNER_CLASS])

    def test_empty_vocabulary(self):
        winners, classes = aggregate([[0, -1], [0, 0]])
        assert classes.size == 0
        np.testing.assert_array_equal(winners, [NO_WINNER_CLASS, NO_WINNER_CLASS])

        indices, _ = winner_indices([[0, -1], [0, 0]])
        np.testing.assert_array_equal(indices, [NO_WINNER_INDEX, NO_WINNER_INDEX])

        counts, _ = vote_counts([[0, -1], [0, 0]])
        assert counts.shape == (2, 0)


class TestValidation:
    def test_one_dimensional_rejected(self):
        with pytest.raises(ValueError, match="2-D"):
            aggregate([1, 2, 3])

    def test_three_dimensional_rejected(self):
        with pytest.raises(ValueError, match="2-D"):
            aggregate(np.ones((2, 2, 2), dtype=int))

    def test_ragged_rejected(self):
        with pytest.raises(ValueError, match="rectangular"):
            aggregate([[1, 2], [1]])

    def test_no_samples_rejected(self):
        with pytest.raises(ValueError, match="at least one sample"):
            aggregate(np.zeros((0, 3), dtype=int))

    def test_no_predictors_rejected(self):
        with pytest.raises(ValueError, match="at least one predictor"):
            aggregate(np.zeros((3, 0), dtype=int))

    def test_non_integer_rejected(self):
        with pytest.raises(ValueError, match="non-integer"):
            aggregate([[1.5, 2.0]])

    def test_nan_rejected(self):
        with pytest.raises(ValueError, match="NaN"):
            aggregate([[1.0, np.nan]])

    def test_float_beyond_int64_rejected(self):
        with pytest.raises(ValueError, match="int64 range"):
            aggregate(np.array([[1e20, 1e20, 1.0]]))

    def test_negative_float_beyond_int64_rejected(self):
        with pytest.raises(ValueError, match="int64 range"):
            aggregate(np.array([[-1e20, 2.0]]))

    def test_large_unsigned_rejected(self):
        pred = np.array([[2**63 + 5, 2**63 + 5, 1]], dtype=np.uint64)
        with pytest.raises(ValueError, match="int64 range"):
            aggregate(pred)

    def test_unsigned_within_range_accepted(self):
        winners, classes = aggregate(np.array([[3, 3, 1], [0, 2, 2]], dtype=np.uint8))
        np.testing.assert_array_equal(classes, [1, 2, 3])
        np.testing.assert_array_equal(winners, [3, 2])

    def test_strings_rejected(self):
        with pytest.raises(ValueError, match="integer labels"):
            aggregate([["a", "b"]])


class TestSummarizeVotes:
    def test_example_summary(self, example_pred):
        df = summarize_votes(example_pred)
        assert list(df.columns) == [
            "sample", "n_votes", "max_count", "n_tied", "contested", "winner",
        ]
        assert df["n_votes"].tolist() == [3, 3, 3, 3, 1, 3]
        assert df["max_count"].tolist() == [3, 1, 1, 1, 1, 2]
        assert df["n_tied"].tolist() == [1, 3, 3, 3, 1, 1]
        assert df["contested"].tolist() == [False, True, True, True, False, False]
        assert df["winner"].tolist() == [1, 1, 2, 3, 3, 2]

    def test_sentinel_row_summary(self):
        df = summarize_votes([[0, 0], [2, 2]])
        assert df["n_votes"].tolist() == [0, 2]
        assert df["n_tied"].tolist() == [0, 1]
        assert df["winner"].tolist() == [NO_WINNER_CLASS, 2]


class TestVoteAggregator:
    def test_matches_functions(self, example_pred):
        agg = VoteAggregator()
        winners, classes = agg.aggregate(example_pred)
        expected, expected_classes = aggregate(example_pred)
        np.testing.assert_array_equal(winners, expected)
        np.testing.assert_array_equal(classes, expected_classes)

        indices, _ = agg.winner_indices(example_pred)
        np.testing.assert_array_equal(indices, winner_indices(example_pred)[0])

    def test_diagnostics(self, example_pred):
        agg = VoteAggregator()
        agg.aggregate(example_pred)
        assert agg.n_contested == 3
        assert agg.n_no_winner == 0

        agg.winner_indices([[0, 0], [1, 2], [3, 3]])
        assert agg.n_contested == 1
        assert agg.n_no_winner == 1
