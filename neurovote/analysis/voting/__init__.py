"""
Ensemble voting module.

Combines several independent class predictions per sample into a single
winner with deterministic, input-derived tie-breaking.

Public API:
    aggregate: Winning class label per sample.
    winner_indices: Winning index into the class vocabulary per sample.
    vote_counts: Per-sample vote count table and class vocabulary.
    summarize_votes: Per-sample vote breakdown as a DataFrame.
    VoteAggregator: Object wrapper keeping diagnostics of the last call.
    majority_vote: Plurality vote over fitted scikit-learn estimators.
    pairwise_vote_predict: One-vs-one classification combined by vote.
    run_ensemble_classification: Cross-validated ensemble classification.
"""

from neurovote.analysis.voting.ensemble import (
    majority_vote,
    pairwise_vote_predict,
    run_ensemble_classification,
)
from neurovote.analysis.voting.winners import (
    NO_WINNER_CLASS,
    NO_WINNER_INDEX,
    VoteAggregator,
    aggregate,
    summarize_votes,
    vote_counts,
    winner_indices,
)

__all__ = [
    "NO_WINNER_CLASS",
    "NO_WINNER_INDEX",
    "VoteAggregator",
    "aggregate",
    "winner_indices",
    "vote_counts",
    "summarize_votes",
    "majority_vote",
    "pairwise_vote_predict",
    "run_ensemble_classification",
]
