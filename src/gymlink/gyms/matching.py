"""
Matching pass: scores incoming-org gyms against the stable-org pool.

For every incoming gym that is not linked yet:
1. Score it against every candidate in the CandidateIndex
2. Keep the single best candidate
3. Classify its confidence
4. Auto-link (>= 85), queue for review (60-84, deduplicated) or drop

Each gym is committed on its own. A failure on one gym is rolled back,
recorded in the stats and the pass moves on to the next gym, so one bad
record never aborts the batch. The pass can also be stopped between
gyms (should_stop) without leaving anything half done.

Usage:
    from gymlink.gyms.matching import run_matching_pass

    with get_session() as session:
        stats = run_matching_pass(session)
        print(stats.summary())
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from itertools import islice
from typing import Callable, Iterable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gymlink.config import settings
from gymlink.db.models import SourceGym
from gymlink.db.store import SourceGymStore
from gymlink.errors import GymLinkError, NotFoundError
from gymlink.gyms.candidates import INCOMING_ORG, CandidateGym, CandidateIndex
from gymlink.gyms.classifier import MatchDecision, classify
from gymlink.gyms.merge import MergeEngine
from gymlink.gyms.review_queue import PendingReviewQueue
from gymlink.gyms.scoring import ScoredCandidate, select_best_candidate

logger = logging.getLogger(__name__)


@dataclass
class MatchingPassStats:
    """Statistics from a matching pass."""
    total_incoming: int = 0
    processed: int = 0
    auto_linked: int = 0
    pending_created: int = 0
    pending_existing: int = 0
    no_match: int = 0
    skipped_linked: int = 0
    aborted: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        """First captured error, if any."""
        return self.errors[0] if self.errors else None

    def summary(self) -> str:
        """Return a human-readable summary of the pass."""
        lines = [
            "Gym matching pass complete:" if not self.aborted else "Gym matching pass aborted:",
            f"  Incoming gyms:            {self.total_incoming}",
            f"  Processed:                {self.processed}",
            f"  Auto-linked:              {self.auto_linked}",
            f"  Pending created:          {self.pending_created}",
            f"  Pending (already queued): {self.pending_existing}",
            f"  No match:                 {self.no_match}",
            f"  Skipped (already linked): {self.skipped_linked}",
        ]
        if self.errors:
            lines.append(f"  Errors: {len(self.errors)}")
            for err in self.errors[:5]:
                lines.append(f"    - {err}")
            if len(self.errors) > 5:
                lines.append(f"    ... and {len(self.errors) - 5} more")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return asdict(self)


def iter_unlinked_incoming(
    store: SourceGymStore,
    page_size: Optional[int] = None,
) -> Iterator[SourceGym]:
    """Page through every incoming-org gym that has no master gym yet."""
    token = None
    while True:
        page = store.page_by_org(
            INCOMING_ORG,
            unlinked_only=True,
            limit=page_size,
            after=token,
        )
        yield from page.items
        if page.next_token is None:
            return
        token = page.next_token


def run_matching_pass(
    session: Session,
    incoming: Optional[Iterable[SourceGym]] = None,
    *,
    candidate_index: Optional[CandidateIndex] = None,
    dry_run: bool = False,
    should_stop: Optional[Callable[[], bool]] = None,
    page_size: Optional[int] = None,
    limit: Optional[int] = None,
) -> MatchingPassStats:
    """
    Run one matching pass.

    Args:
        session: SQLAlchemy session; committed once per gym
        incoming: Incoming gyms to match. Defaults to every unlinked
                  incoming-org gym in the store.
        candidate_index: Pre-loaded pool (loaded from the store if omitted)
        dry_run: Score and classify only, write nothing
        should_stop: Checked before each gym; returning True ends the pass
        page_size: Store page size for loading
        limit: Only take the first N incoming gyms

    Returns:
        MatchingPassStats. Failures are recorded there, never raised.
    """
    stats = MatchingPassStats()
    store = SourceGymStore(session)
    started = time.monotonic()

    try:
        if candidate_index is None:
            candidate_index = CandidateIndex.load(store, page_size=page_size)
        if incoming is None:
            incoming = iter_unlinked_incoming(store, page_size=page_size)
        if limit is not None:
            incoming = islice(incoming, limit)
        incoming = list(incoming)
        # Error messages must not touch expired rows after a rollback
        labels = [f"{gym.key} ({gym.name})" for gym in incoming]
    except (GymLinkError, SQLAlchemyError) as e:
        session.rollback()
        stats.errors.append(f"Loading gyms failed: {e}")
        logger.error("Matching pass could not load gyms: %s", e)
        return stats

    stats.total_incoming = len(incoming)
    logger.info(
        "Matching %d incoming gyms against %d candidates (loaded in %.1fs)%s",
        stats.total_incoming, len(candidate_index), time.monotonic() - started,
        " [dry run]" if dry_run else "",
    )

    merge = MergeEngine(session)
    queue = PendingReviewQueue(session, merge=merge)
    progress_interval = max(1, settings.matching_progress_interval)

    for i, gym in enumerate(incoming, start=1):
        if should_stop is not None and should_stop():
            stats.aborted = True
            logger.warning("Matching pass stopped after %d of %d gyms", i - 1, stats.total_incoming)
            break

        try:
            _match_one(gym, candidate_index, store, merge, queue, stats, dry_run)
            if not dry_run:
                session.commit()
        except (GymLinkError, SQLAlchemyError) as e:
            session.rollback()
            message = f"{labels[i - 1]}: {e}"
            stats.errors.append(message)
            logger.error("Failed to match %s", message)
            continue

        stats.processed += 1
        if i % progress_interval == 0:
            logger.info(
                "Progress: %d/%d gyms (%d auto-linked, %d pending)",
                i, stats.total_incoming, stats.auto_linked, stats.pending_created,
            )

    logger.info(stats.summary())
    return stats


def _match_one(
    gym: SourceGym,
    candidate_index: CandidateIndex,
    store: SourceGymStore,
    merge: MergeEngine,
    queue: PendingReviewQueue,
    stats: MatchingPassStats,
    dry_run: bool,
) -> None:
    """Score, classify and act on a single incoming gym."""
    if gym.master_gym_id is not None:
        stats.skipped_linked += 1
        return

    best = select_best_candidate(gym, candidate_index)
    if best is None:
        stats.no_match += 1
        return

    decision = classify(best.confidence)

    if decision is MatchDecision.AUTO_LINK:
        _auto_link(gym, best, store, merge, dry_run)
        stats.auto_linked += 1
    elif decision is MatchDecision.PENDING_REVIEW:
        if _queue_for_review(gym, best, store, queue, dry_run):
            stats.pending_created += 1
        else:
            stats.pending_existing += 1
    else:
        stats.no_match += 1


def _load_candidate(store: SourceGymStore, candidate: CandidateGym) -> SourceGym:
    """Fetch the current row for a pooled candidate."""
    row = store.get_by_key(candidate.key)
    if row is None:
        raise NotFoundError(f"Candidate gym {candidate.key}")
    return row


def _auto_link(
    gym: SourceGym,
    best: ScoredCandidate,
    store: SourceGymStore,
    merge: MergeEngine,
    dry_run: bool,
) -> None:
    if dry_run:
        logger.info("[dry run] Would auto-link %s -> %s (%d)", gym.key, best.candidate.key, best.confidence)
        return
    master_gym_id = merge.link(gym, _load_candidate(store, best.candidate))
    logger.info(
        "Auto-linked %s '%s' + %s '%s' (%d) -> master %s",
        gym.key, gym.name, best.candidate.key, best.candidate.name,
        best.confidence, master_gym_id,
    )


def _queue_for_review(
    gym: SourceGym,
    best: ScoredCandidate,
    store: SourceGymStore,
    queue: PendingReviewQueue,
    dry_run: bool,
) -> bool:
    """Queue the pair unless already pending. Returns True if a row was created."""
    if dry_run:
        if queue.find_existing(gym.key, best.candidate.key) is not None:
            return False
        logger.info("[dry run] Would queue %s / %s (%d)", gym.key, best.candidate.key, best.confidence)
        return True

    candidate = _load_candidate(store, best.candidate)
    match, created = queue.enqueue(gym, candidate, best.confidence, best.signals)
    if created:
        logger.info(
            "Queued %s '%s' / %s '%s' for review (%d)",
            gym.key, gym.name, candidate.key, candidate.name, best.confidence,
        )
    return created
