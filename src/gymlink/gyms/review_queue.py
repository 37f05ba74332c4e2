"""
Review queue for gym pairs that scored in the review band.

A pair is identified by its two SRCGYM#<ORG>#<id> keys with no ordering:
(A, B) and (B, A) are the same pair. The matching pass calls enqueue()
for every review-band pair it scores, so enqueue() has to find an
existing pending row before inserting, or repeated passes would stack
up duplicate review items.

Resolution is guarded by the match status alone: the UPDATE that marks a
match approved/rejected only applies while the row is still 'pending'.
A request that loses the race gets a ValidationError and changes nothing.
"""

import builtins
import logging
from typing import Optional

from sqlalchemy.orm import Session

from gymlink.db.models import REVIEWER_MAX_LENGTH, PendingMatch, SourceGym, utc_now
from gymlink.db.store import SourceGymStore, fetch_page, flush_or_raise, with_storage_retry
from gymlink.errors import NotFoundError, ValidationError
from gymlink.gyms.merge import MergeEngine, resolve_master_gym_id
from gymlink.types import (
    Approved,
    MatchSignals,
    MatchStatus,
    Pending,
    Rejected,
    SourceGymKey,
    review_state_columns,
)

logger = logging.getLogger(__name__)


class PendingReviewQueue:
    """
    Stores scored pairs awaiting admin review and resolves them.

    Usage:
        queue = PendingReviewQueue(session)
        match, created = queue.enqueue(jjwl_gym, ibjjf_gym, 77, signals)

        # Later, from the admin workflow
        master_gym_id = queue.resolve(match.id, MatchStatus.APPROVED, "alice")
    """

    def __init__(self, db: Session, merge: Optional[MergeEngine] = None):
        self.db = db
        self.source_gyms = SourceGymStore(db)
        self.merge = merge or MergeEngine(db)

    # =========================================================================
    # Enqueue
    # =========================================================================

    def find_existing(
        self,
        key_a: SourceGymKey,
        key_b: SourceGymKey,
        page_size: Optional[int] = None,
    ) -> Optional[PendingMatch]:
        """
        Find the pending match for an unordered pair, if any.

        Scans every pending match page by page and compares the pair as a
        set, so the stored order of source_gym_1/source_gym_2 is irrelevant.
        """
        wanted = frozenset((str(key_a), str(key_b)))
        query = self.db.query(PendingMatch).filter(
            PendingMatch.status == MatchStatus.PENDING.value
        )
        token = None

        while True:
            page = fetch_page(
                self.db,
                query,
                PendingMatch.id,
                limit=page_size,
                after=token,
                description="Pending match scan",
            )
            for match in page.items:
                if frozenset((match.source_gym_1_id, match.source_gym_2_id)) == wanted:
                    return match

            if page.next_token is None:
                return None
            token = page.next_token

    def enqueue(
        self,
        gym_a: SourceGym,
        gym_b: SourceGym,
        confidence: int,
        signals: MatchSignals,
    ) -> tuple[PendingMatch, bool]:
        """
        Queue a pair for review unless it is already pending.

        Don't commit - let caller handle transaction.

        Returns:
            Tuple of (match, created) where created is False when an
            existing pending match for the pair was returned instead

        Raises:
            ValidationError: If both sides are the same gym or confidence
                             is outside 0-100
        """
        key_a, key_b = gym_a.key, gym_b.key
        if key_a == key_b:
            raise ValidationError(f"Cannot queue {key_a} against itself")
        if not 0 <= confidence <= 100:
            raise ValidationError(f"Confidence must be between 0 and 100, got {confidence}")

        existing = self.find_existing(key_a, key_b)
        if existing is not None:
            logger.debug("Pending match %s already exists for %s / %s", existing.id, key_a, key_b)
            return existing, False

        match = PendingMatch(
            source_gym_1_id=str(key_a),
            source_gym_2_id=str(key_b),
            confidence=confidence,
            name_similarity=signals.name_similarity,
            city_boost=signals.city_boost,
            affiliation_boost=signals.affiliation_boost,
            status=MatchStatus.PENDING.value,
        )
        self.db.add(match)
        flush_or_raise(self.db, f"Enqueue {key_a} / {key_b}")
        return match, True

    # =========================================================================
    # Read
    # =========================================================================

    def get(self, match_id: str) -> Optional[PendingMatch]:
        return with_storage_retry(
            lambda: self.db.get(PendingMatch, match_id),
            description=f"Get pending match {match_id}",
            session=self.db,
        )

    def list(self, status: MatchStatus, limit: Optional[int] = None) -> builtins.list[PendingMatch]:
        """Matches with exactly this status, oldest first."""
        status = MatchStatus.parse(status)
        query = (
            self.db.query(PendingMatch)
            .filter(PendingMatch.status == status.value)
            .order_by(PendingMatch.created_at, PendingMatch.id)
        )
        if limit is not None:
            query = query.limit(limit)

        return with_storage_retry(
            query.all,
            description=f"List {status.value} matches",
            session=self.db,
        )

    # =========================================================================
    # Resolve
    # =========================================================================

    def resolve(self, match_id: str, outcome: MatchStatus, reviewer: str) -> Optional[str]:
        """
        Approve or reject a pending match.

        Everything is validated before anything is written. Then the match
        is claimed with a conditional update (status must still be
        'pending') and, on approve, the two gyms are linked.

        Don't commit - let caller handle transaction.

        Args:
            match_id: PendingMatch id
            outcome: MatchStatus.APPROVED or MatchStatus.REJECTED
            reviewer: Who made the decision

        Returns:
            Master gym id on approve, None on reject

        Raises:
            NotFoundError: Match or one of its source gyms does not exist
            ValidationError: Match already reviewed, bad outcome/reviewer,
                             or gyms linked to different masters
        """
        outcome = MatchStatus.parse(outcome)
        if outcome not in (MatchStatus.APPROVED, MatchStatus.REJECTED):
            raise ValidationError("Outcome must be approved or rejected")
        if not reviewer or not reviewer.strip():
            raise ValidationError("Reviewer is required")
        reviewer = reviewer.strip()
        if len(reviewer) > REVIEWER_MAX_LENGTH:
            raise ValidationError(f"Reviewer must be at most {REVIEWER_MAX_LENGTH} characters")

        match = self.get(match_id)
        if match is None:
            raise NotFoundError("Pending match")
        if not isinstance(match.review_state, Pending):
            raise ValidationError("Match has already been reviewed")

        gym_1 = gym_2 = None
        if outcome is MatchStatus.APPROVED:
            gym_1 = self._load_source_gym(match.source_gym_1_id)
            gym_2 = self._load_source_gym(match.source_gym_2_id)
            # Surface a merge conflict before the match is claimed
            resolve_master_gym_id(gym_1, gym_2)

        reviewed_at = utc_now()
        state = (
            Approved(reviewed_at=reviewed_at, reviewed_by=reviewer)
            if outcome is MatchStatus.APPROVED
            else Rejected(reviewed_at=reviewed_at, reviewed_by=reviewer)
        )
        columns = review_state_columns(state)
        columns["updated_at"] = reviewed_at

        claimed = (
            self.db.query(PendingMatch)
            .filter(
                PendingMatch.id == match_id,
                PendingMatch.status == MatchStatus.PENDING.value,
            )
            .update(columns, synchronize_session=False)
        )
        if claimed == 0:
            raise ValidationError("Match has already been reviewed")

        self.db.refresh(match)
        logger.info("Match %s %s by %s", match_id, outcome.value, reviewer)

        if outcome is MatchStatus.REJECTED:
            return None
        return self.merge.link(gym_1, gym_2)

    def _load_source_gym(self, source_gym_id: str) -> SourceGym:
        gym = self.source_gyms.get_by_key(SourceGymKey.parse(source_gym_id))
        if gym is None:
            raise NotFoundError("Source gym")
        return gym
