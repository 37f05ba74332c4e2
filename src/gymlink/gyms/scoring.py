"""
Gym name normalization and match scoring.

Gym names come in many shapes across orgs:
- JJWL: "Gracie Humaita Austin"
- IBJJF: "GRACIE HUMAITA"
- With extra whitespace: "Alliance  Jiu-Jitsu  Atlanta "

A confidence score (0-100) is built from three independent signals:
1. Name similarity: Levenshtein distance over the normalized names (0-100)
2. City boost: +15 when both gyms list the same city
3. Affiliation boost: +10 when both gyms mention the same known team

The sum is clamped to 100. The classifier then decides what to do with it.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from gymlink.db.models import SourceGym
from gymlink.gyms.candidates import CandidateGym
from gymlink.types import MatchSignals

CITY_BOOST = 15
AFFILIATION_BOOST = 10

# Major BJJ teams whose name shows up in many affiliate gym names.
# Matched as whole words, so "unity" never matches "community".
KNOWN_AFFILIATIONS = [
    "gracie barra",
    "alliance",
    "atos",
    "checkmat",
    "carlson gracie",
    "nova uniao",
    "brazilian top team",
    "btt",
    "ribeiro",
    "zenith",
    "unity",
    "renzo gracie",
    "marcelo garcia",
    "arte suave",
    "gracie humaita",
    "gracie academy",
    "10th planet",
    "tenth planet",
]

_AFFILIATION_PATTERNS = {
    token: re.compile(r"\b" + re.escape(token) + r"\b") for token in KNOWN_AFFILIATIONS
}


def normalize_gym_name(name: Optional[str]) -> str:
    """
    Normalize a gym name for comparison.

    Lowercases, trims and collapses internal whitespace. Nothing else is
    removed: "Atos Jiu-Jitsu" and "Atos" stay different names.

    Examples:
        >>> normalize_gym_name("  Gracie   Barra ")
        'gracie barra'
    """
    if not name:
        return ""
    return " ".join(name.lower().split())


def name_similarity(name_a: Optional[str], name_b: Optional[str]) -> int:
    """
    Levenshtein-based similarity of two gym names, 0-100.

    100 * (1 - distance / longer_length), rounded half-up. Identical
    normalized names score 100; an empty name never matches anything.
    """
    a = normalize_gym_name(name_a)
    b = normalize_gym_name(name_b)

    if not a or not b:
        return 0
    if a == b:
        return 100

    longest = max(len(a), len(b))
    distance = Levenshtein.distance(a, b)

    # Integer half-up rounding of 100 * (longest - distance) / longest
    return (200 * (longest - distance) + longest) // (2 * longest)


def city_boost(city_a: Optional[str], city_b: Optional[str]) -> int:
    """+15 when both cities are present and equal ignoring case/padding."""
    if not city_a or not city_b:
        return 0
    a = city_a.strip().casefold()
    b = city_b.strip().casefold()
    if a and a == b:
        return CITY_BOOST
    return 0


def find_affiliations(*texts: Optional[str]) -> set[str]:
    """Known affiliation tokens mentioned anywhere in the given texts."""
    haystack = " ".join(normalize_gym_name(t) for t in texts if t)
    if not haystack:
        return set()
    return {token for token, pattern in _AFFILIATION_PATTERNS.items() if pattern.search(haystack)}


def affiliation_boost(gym_a: SourceGym | CandidateGym, gym_b: SourceGym | CandidateGym) -> int:
    """+10 when both gyms mention at least one common known affiliation."""
    tokens_a = find_affiliations(gym_a.name, gym_a.address, gym_a.affiliation)
    if not tokens_a:
        return 0
    tokens_b = find_affiliations(gym_b.name, gym_b.address, gym_b.affiliation)
    return AFFILIATION_BOOST if tokens_a & tokens_b else 0


@dataclass(frozen=True)
class ScoredCandidate:
    """One candidate gym with the signals and confidence it scored."""
    candidate: CandidateGym | SourceGym
    signals: MatchSignals
    confidence: int  # 0-100

    def __repr__(self) -> str:
        return (
            f"<ScoredCandidate({self.candidate.org}#{self.candidate.external_id}, "
            f"conf={self.confidence})>"
        )


def score_match(incoming: SourceGym, candidate: CandidateGym | SourceGym) -> ScoredCandidate:
    """
    Score an incoming gym against one candidate.

    Args:
        incoming: Gym from the incoming org
        candidate: Gym from the stable org's candidate pool

    Returns:
        ScoredCandidate with confidence = clamp(sum of signals, 0, 100)
    """
    signals = MatchSignals(
        name_similarity=name_similarity(incoming.name, candidate.name),
        city_boost=city_boost(incoming.city, candidate.city),
        affiliation_boost=affiliation_boost(incoming, candidate),
    )
    confidence = max(0, min(100, signals.total))
    return ScoredCandidate(candidate=candidate, signals=signals, confidence=confidence)


def select_best_candidate(
    incoming: SourceGym,
    candidates: Iterable[CandidateGym | SourceGym],
) -> Optional[ScoredCandidate]:
    """
    Score every candidate and keep the best one.

    Highest confidence wins. Ties go to the candidate with the lowest
    external_id so repeated passes pick the same gym. A candidate that is
    the incoming gym itself is skipped.

    Returns:
        Best ScoredCandidate, or None when there are no candidates
    """
    best: Optional[ScoredCandidate] = None

    for candidate in candidates:
        if candidate.org == incoming.org and candidate.external_id == incoming.external_id:
            continue

        scored = score_match(incoming, candidate)
        if best is None:
            best = scored
        elif scored.confidence > best.confidence:
            best = scored
        elif (
            scored.confidence == best.confidence
            and candidate.external_id < best.candidate.external_id
        ):
            best = scored

    return best
