"""
Team name normalization for matching predictions to upstream results.

Predictions carry whatever name the generator produced ("Man Utd", "Inter"),
result sources carry their own ("Manchester United FC", "FC Internazionale
Milano"). Both sides go through ``canonical_team_name`` before comparison.
"""
from __future__ import annotations

import re
import unicodedata
from functools import lru_cache

_SAFE_ORG_TOKENS = re.compile(
    r"\b(fc|cf|sc|afc|ssc|ac|as|cd|ud|rc|sv|vfb|tsv|fk|sk|club)\b"
)

# Canonical (normalized) name -> known aliases from generators and scrapers.
TEAM_ALIASES: dict[str, list[str]] = {
    # England
    "manchester united": ["Man Utd", "Man United", "Man. United", "Manchester Utd", "Man U"],
    "manchester city": ["Man City", "Man. City", "Mancity"],
    "tottenham hotspur": ["Tottenham", "Spurs"],
    "wolverhampton wanderers": ["Wolves", "Wolverhampton"],
    "brighton and hove albion": ["Brighton", "Brighton Hove Albion"],
    "nottingham forest": ["Nott'm Forest", "Nottm Forest", "Nott Forest"],
    "west ham united": ["West Ham", "West Ham Utd"],
    "newcastle united": ["Newcastle", "Newcastle Utd"],
    "bournemouth": ["AFC Bournemouth"],
    "leicester city": ["Leicester"],
    "ipswich town": ["Ipswich"],
    "west bromwich albion": ["West Brom", "WBA"],
    "sheffield united": ["Sheffield Utd", "Sheff Utd"],
    "queens park rangers": ["QPR"],
    "leeds united": ["Leeds"],
    # Spain
    "atletico de madrid": ["Atletico Madrid", "Atlético Madrid", "Club Atlético de Madrid", "Atleti"],
    "athletic": ["Athletic Bilbao", "Athletic Club"],
    "real betis balompie": ["Real Betis", "Betis"],
    "celta de vigo": ["Celta Vigo", "Celta", "RC Celta"],
    "rcd espanyol de barcelona": ["Espanyol", "RCD Espanyol"],
    # Italy
    "internazionale milano": ["Inter", "Inter Milan", "Internazionale", "FC Internazionale Milano"],
    "milan": ["AC Milan"],
    "napoli": ["SSC Napoli"],
    "juventus": ["Juventus FC", "Juve"],
    "roma": ["AS Roma"],
    # Germany
    "bayern munchen": ["Bayern Munich", "Bayern", "FC Bayern München"],
    "bayer 04 leverkusen": ["Bayer Leverkusen", "Leverkusen"],
    "borussia monchengladbach": ["Gladbach", "Borussia M'gladbach", "M'gladbach"],
    "borussia dortmund": ["Dortmund", "BVB"],
    "rb leipzig": ["Leipzig", "RasenBallsport Leipzig"],
    # France
    "paris saint germain": ["PSG", "Paris SG"],
    "olympique de marseille": ["Marseille", "OM"],
    "olympique lyonnais": ["Lyon", "OL"],
    # Portugal / Netherlands
    "porto": ["FC Porto"],
    "sport lisboa e benfica": ["Benfica", "SL Benfica"],
    "sporting clube de portugal": ["Sporting CP", "Sporting Lisbon", "Sporting"],
    "psv": ["PSV Eindhoven"],
    "ajax": ["AFC Ajax", "Ajax Amsterdam"],
}


def normalize_team_name(name: str) -> str:
    """
    Normalize team name for exact comparison.

    Steps:
    1. Lowercase + trim
    2. Strip diacritics (NFKD)
    3. ``&`` becomes ``and``; other punctuation becomes a space
    4. Remove organizational tokens only (fc, afc, club...), never
       distinguishing words such as 'real', 'united', 'city'
    5. Collapse whitespace

    Examples:
        "Manchester United FC" -> "manchester united"
        "Brighton & Hove Albion FC" -> "brighton and hove albion"
        "Bodø/Glimt" -> "bodo glimt"
    """
    if not name:
        return ""
    name = name.lower().strip()
    name = name.replace("ø", "o").replace("æ", "ae").replace("ð", "d").replace("ß", "ss")
    name = unicodedata.normalize("NFKD", name)
    name = "".join(c for c in name if not unicodedata.combining(c))
    name = name.replace("&", " and ")
    name = re.sub(r"[^\w\s]", " ", name)
    name = _SAFE_ORG_TOKENS.sub("", name)
    return " ".join(name.split())


@lru_cache(maxsize=1)
def _alias_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for canonical, aliases in TEAM_ALIASES.items():
        for alias in aliases:
            index[normalize_team_name(alias)] = canonical
    return index


def canonical_team_name(name: str) -> str:
    """Normalized name with known aliases folded onto one canonical spelling."""
    normalized = normalize_team_name(name)
    return _alias_index().get(normalized, normalized)


def same_team(a: str, b: str) -> bool:
    ca = canonical_team_name(a)
    return bool(ca) and ca == canonical_team_name(b)
