"""
Neurovote Analysis Module

Analysis utilities for multivariate pattern analysis.

Submodules:
    voting: Ensemble vote aggregation (deterministic plurality vote,
        one-vs-one pairwise voting, cross-validated ensembles)
"""
