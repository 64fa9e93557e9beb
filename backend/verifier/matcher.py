"""
Prediction → result matching.

Identifier equality wins over team names. Within each strategy the first
qualifying candidate in pool order is returned.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from shared.models.domain import PredictionRecord, ResultCandidate

from verifier.team_names import canonical_team_name

# pred-{MATCH_ID}-{TIMESTAMP}-{INDEX}
_PREDICTION_ID_RE = re.compile(r"^pred-(\d+)-\d+-\d+$")


def extract_match_id(prediction_id: str) -> Optional[str]:
    """Source match id embedded in a generated prediction id, if any."""
    m = _PREDICTION_ID_RE.match(prediction_id or "")
    return m.group(1) if m else None


def prediction_match_ids(prediction: PredictionRecord) -> list[str]:
    ids: list[str] = []
    if prediction.match_id:
        ids.append(prediction.match_id)
    embedded = extract_match_id(prediction.id)
    if embedded and embedded not in ids:
        ids.append(embedded)
    return ids


def match(
    prediction: PredictionRecord,
    pool: Iterable[ResultCandidate],
) -> Optional[ResultCandidate]:
    """Find the result for one prediction, or None."""
    candidates = list(pool)
    if not candidates:
        return None

    ids = prediction_match_ids(prediction)
    if ids:
        for candidate in candidates:
            if candidate.id in ids:
                return candidate

    home = canonical_team_name(prediction.home_team)
    away = canonical_team_name(prediction.away_team)
    if not home or not away:
        return None
    for candidate in candidates:
        if (
            canonical_team_name(candidate.home_team) == home
            and canonical_team_name(candidate.away_team) == away
        ):
            return candidate
    return None
