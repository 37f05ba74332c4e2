"""
Confidence classification.

Maps a 0-100 confidence onto what the matching pass should do:

    confidence >= 85       -> auto_link       (merge without review)
    60 <= confidence < 85  -> pending_review  (queue for an admin)
    confidence < 60        -> no_match        (drop)

The thresholds are fixed. Changing them changes which gyms get merged
unsupervised, so they are constants rather than settings.
"""

from enum import Enum

AUTO_LINK_THRESHOLD = 85
REVIEW_THRESHOLD = 60


class MatchDecision(str, Enum):
    AUTO_LINK = "auto_link"
    PENDING_REVIEW = "pending_review"
    NO_MATCH = "no_match"


def classify(confidence: int) -> MatchDecision:
    """
    Classify a confidence score.

    Raises:
        ValueError: If confidence is outside 0-100
    """
    if confidence < 0 or confidence > 100:
        raise ValueError(f"Confidence must be between 0 and 100, got {confidence}")

    if confidence >= AUTO_LINK_THRESHOLD:
        return MatchDecision.AUTO_LINK
    if confidence >= REVIEW_THRESHOLD:
        return MatchDecision.PENDING_REVIEW
    return MatchDecision.NO_MATCH
