"""
Prediction Reconciliation Engine for SafeScore.
Resolves pending predictions against football-data.org results, with a
BBC scores-page fallback, and writes back only the days that changed.
"""
from verifier.engine import ReconciliationEngine, build_engine
from verifier.errors import ReconciliationFailed
from verifier.matcher import match
from verifier.resolver import resolve

__all__ = [
    "ReconciliationEngine",
    "ReconciliationFailed",
    "build_engine",
    "match",
    "resolve",
]
