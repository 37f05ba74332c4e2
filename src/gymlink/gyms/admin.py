"""
Admin review workflow.

The operations behind the admin endpoints: list matches by status,
approve, reject and unlink. Each one validates its inputs, does its work
through the review queue / merge engine and then commits. Any failure
rolls the whole operation back, so an admin action never leaves a half
applied change behind.

Responses are plain dicts in the camelCase shape the admin UI expects.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gymlink.db.models import PendingMatch, SourceGym
from gymlink.db.store import SourceGymStore
from gymlink.errors import StorageError, ValidationError
from gymlink.gyms.merge import MergeEngine
from gymlink.gyms.review_queue import PendingReviewQueue
from gymlink.types import Approved, MatchStatus, Rejected, SourceGymKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LIST_LIMIT = 50


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def validate_uuid(value: Optional[str], label: str) -> str:
    """
    Check that an id is a well-formed UUID.

    Raises:
        ValidationError: If the id is missing or malformed
    """
    if not value or not value.strip():
        raise ValidationError(f"{label} is required")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise ValidationError(f"Invalid {label} format") from None


class AdminReviewWorkflow:
    """
    Admin-facing operations on pending matches and master gym links.

    Usage:
        workflow = AdminReviewWorkflow(session)
        result = workflow.approve(match_id, reviewer="alice")
        # {'masterGymId': '...', 'message': 'Match approved and gyms linked'}
    """

    def __init__(self, db: Session):
        self.db = db
        self.merge = MergeEngine(db)
        self.queue = PendingReviewQueue(db, merge=self.merge)
        self.source_gyms = SourceGymStore(db)

    # =========================================================================
    # Read
    # =========================================================================

    def list_matches(
        self,
        status: Optional[str] = MatchStatus.PENDING.value,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> dict[str, Any]:
        """
        Matches with one status, oldest first, with both gym names filled in.

        Raises:
            ValidationError: Unknown status or non-positive limit
        """
        parsed = MatchStatus.parse(status or MatchStatus.PENDING.value)
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        matches = self.queue.list(parsed, limit=limit)
        names = self._source_gym_names(matches)

        return {
            "matches": [self._match_to_dict(match, names) for match in matches],
        }

    # =========================================================================
    # Mutations
    # =========================================================================

    def approve(self, match_id: str, reviewer: str) -> dict[str, str]:
        """Approve a pending match and link its two gyms."""
        match_id = validate_uuid(match_id, "match id")
        master_gym_id = self._in_transaction(
            lambda: self.queue.resolve(match_id, MatchStatus.APPROVED, reviewer),
            description=f"Approve match {match_id}",
        )
        return {"masterGymId": master_gym_id, "message": "Match approved and gyms linked"}

    def reject(self, match_id: str, reviewer: str) -> dict[str, str]:
        """Reject a pending match. Neither gym is touched."""
        match_id = validate_uuid(match_id, "match id")
        self._in_transaction(
            lambda: self.queue.resolve(match_id, MatchStatus.REJECTED, reviewer),
            description=f"Reject match {match_id}",
        )
        return {"message": "Match rejected"}

    def unlink(self, master_gym_id: str, source_gym_id: Optional[str]) -> dict[str, str]:
        """Detach one source gym from a master gym (no-op if already unlinked)."""
        master_gym_id = validate_uuid(master_gym_id, "master gym id")
        if not source_gym_id:
            raise ValidationError("sourceGymId is required in request body")
        SourceGymKey.parse(source_gym_id)

        removed = self._in_transaction(
            lambda: self.merge.unlink(master_gym_id, source_gym_id),
            description=f"Unlink {source_gym_id} from {master_gym_id}",
        )
        if not removed:
            return {"message": "Source gym was not linked"}
        return {"message": "Source gym unlinked from master"}

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _in_transaction(self, operation: Callable[[], T], description: str) -> T:
        """Run an operation, commit on success, roll back on any failure."""
        try:
            result = operation()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("%s failed: %s", description, e)
            raise StorageError(f"{description} failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise
        return result

    def _source_gym_names(self, matches: list[PendingMatch]) -> dict[str, Optional[str]]:
        """Map every referenced SRCGYM key to the gym's name (None if gone)."""
        names: dict[str, Optional[str]] = {}
        for match in matches:
            for raw in (match.source_gym_1_id, match.source_gym_2_id):
                if raw in names:
                    continue
                gym: Optional[SourceGym] = None
                try:
                    gym = self.source_gyms.get_by_key(SourceGymKey.parse(raw))
                except ValidationError:
                    logger.warning("Pending match %s references malformed id '%s'", match.id, raw)
                names[raw] = gym.name if gym else None
        return names

    @staticmethod
    def _match_to_dict(match: PendingMatch, names: dict[str, Optional[str]]) -> dict[str, Any]:
        state = match.review_state
        reviewed = state if isinstance(state, (Approved, Rejected)) else None
        return {
            "id": match.id,
            "sourceGym1Id": match.source_gym_1_id,
            "sourceGym1Name": names.get(match.source_gym_1_id),
            "sourceGym2Id": match.source_gym_2_id,
            "sourceGym2Name": names.get(match.source_gym_2_id),
            "confidence": match.confidence,
            "signals": match.signals.to_dict(),
            "status": state.status.value,
            "createdAt": _isoformat(match.created_at),
            "reviewedAt": _isoformat(reviewed.reviewed_at) if reviewed else None,
            "reviewedBy": reviewed.reviewed_by if reviewed else None,
        }
