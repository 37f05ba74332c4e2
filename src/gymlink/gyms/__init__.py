"""
Gym identity resolution module.

Each org publishes its own gym list with no shared identifier, so the
same physical gym appears once per org under slightly different names.
This module decides which source gyms are the same gym and links them
to one master gym.

Key components:
- CandidateIndex: US gyms of the stable org (IBJJF) to compare against
- score_match / select_best_candidate: 0-100 confidence per pair
- classify: auto-link / pending-review / no-match
- MergeEngine: idempotent link and unlink
- PendingReviewQueue: deduplicated review items
- AdminReviewWorkflow: approve / reject / unlink for admins
- run_matching_pass: the batch job tying it all together

The decision thresholds:
1. confidence >= 85 - auto-link without review
2. 60 <= confidence < 85 - queue the pair for an admin
3. confidence < 60 - no match, gym stays unlinked
"""

from gymlink.gyms.admin import AdminReviewWorkflow
from gymlink.gyms.candidates import CandidateGym, CandidateIndex
from gymlink.gyms.classifier import (
    AUTO_LINK_THRESHOLD,
    REVIEW_THRESHOLD,
    MatchDecision,
    classify,
)
from gymlink.gyms.matching import MatchingPassStats, run_matching_pass
from gymlink.gyms.merge import MergeEngine
from gymlink.gyms.review_queue import PendingReviewQueue
from gymlink.gyms.scoring import (
    ScoredCandidate,
    normalize_gym_name,
    score_match,
    select_best_candidate,
)

__all__ = [
    "AdminReviewWorkflow",
    "CandidateGym",
    "CandidateIndex",
    "AUTO_LINK_THRESHOLD",
    "REVIEW_THRESHOLD",
    "MatchDecision",
    "classify",
    "MatchingPassStats",
    "run_matching_pass",
    "MergeEngine",
    "PendingReviewQueue",
    "ScoredCandidate",
    "normalize_gym_name",
    "score_match",
    "select_best_candidate",
]
