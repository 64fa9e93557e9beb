from verifier.sources.base import FallbackSource, ResultSource
from verifier.sources.bbc import BBCScoresSource
from verifier.sources.football_data import FootballDataSource

__all__ = [
    "BBCScoresSource",
    "FallbackSource",
    "FootballDataSource",
    "ResultSource",
]
