"""
Merge engine: links source gyms to a shared master gym and unlinks them.

A link is two independent writes (one per source gym). Each write is
skipped when the gym already points at the resolved master, so calling
link() again after a partial failure finishes the job instead of creating
a second master gym.

Nothing here commits. The caller (matching pass or admin workflow) owns
the transaction.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from gymlink.db.models import MasterGym, SourceGym
from gymlink.db.store import MasterGymStore, SourceGymStore
from gymlink.errors import NotFoundError, ValidationError
from gymlink.types import SourceGymKey

logger = logging.getLogger(__name__)


def resolve_master_gym_id(gym_a: SourceGym, gym_b: SourceGym) -> Optional[str]:
    """
    Master gym id the pair should share, or None if a new one is needed.

    Raises:
        ValidationError: If the gyms are already linked to different masters
    """
    if (
        gym_a.master_gym_id
        and gym_b.master_gym_id
        and gym_a.master_gym_id != gym_b.master_gym_id
    ):
        raise ValidationError(
            f"{gym_a.key} and {gym_b.key} are already linked to different master gyms "
            f"({gym_a.master_gym_id}, {gym_b.master_gym_id})"
        )
    return gym_a.master_gym_id or gym_b.master_gym_id


def _first_present(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


class MergeEngine:
    """
    Creates and removes source gym -> master gym links.

    Usage:
        merge = MergeEngine(session)
        master_gym_id = merge.link(jjwl_gym, ibjjf_gym)
        session.commit()
    """

    def __init__(self, db: Session):
        self.db = db
        self.source_gyms = SourceGymStore(db)
        self.master_gyms = MasterGymStore(db)

    def link(self, gym_a: SourceGym, gym_b: SourceGym) -> str:
        """
        Make both gyms point at the same master gym.

        Reuses gym_a's master if it has one, else gym_b's. Only when
        neither is linked is a new master created, named after gym_a.

        Returns:
            The master gym id both gyms now point at

        Raises:
            ValidationError: If the gyms are the same record or already
                             linked to different masters
        """
        if gym_a.key == gym_b.key:
            raise ValidationError(f"Cannot link {gym_a.key} to itself")

        master_gym_id = resolve_master_gym_id(gym_a, gym_b)

        if master_gym_id is None:
            master = self._create_master(gym_a, gym_b)
            master_gym_id = master.id
            logger.info(
                "Created master gym %s '%s' for %s + %s",
                master_gym_id, master.canonical_name, gym_a.key, gym_b.key,
            )

        for gym in (gym_a, gym_b):
            if gym.master_gym_id != master_gym_id:
                self.source_gyms.set_master_gym_id(gym, master_gym_id)

        return master_gym_id

    def unlink(self, master_gym_id: str, source_gym_id: str) -> bool:
        """
        Detach one source gym from a master gym.

        The master gym and any other linked gyms are left as they are.

        Args:
            master_gym_id: Master gym the source gym should currently point at
            source_gym_id: Boundary id like 'SRCGYM#JJWL#123'

        Returns:
            True if a link was removed, False if the gym was already unlinked

        Raises:
            ValidationError: Malformed source id, or gym linked to another master
            NotFoundError: Master gym or source gym does not exist
        """
        key = SourceGymKey.parse(source_gym_id)

        if self.master_gyms.get(master_gym_id) is None:
            raise NotFoundError("Master gym")

        gym = self.source_gyms.get_by_key(key)
        if gym is None:
            raise NotFoundError("Source gym")

        if gym.master_gym_id is None:
            logger.info("%s is already unlinked", key)
            return False

        if gym.master_gym_id != master_gym_id:
            raise ValidationError(
                f"{key} is linked to master gym {gym.master_gym_id}, not {master_gym_id}"
            )

        self.source_gyms.set_master_gym_id(gym, None)
        logger.info("Unlinked %s from master gym %s", key, master_gym_id)
        return True

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _create_master(self, gym_a: SourceGym, gym_b: SourceGym) -> MasterGym:
        """
        Create a master gym seeded from the pair.

        Don't commit - let caller handle transaction.
        """
        return self.master_gyms.create(
            canonical_name=gym_a.name,
            city=_first_present(gym_a.city, gym_b.city),
            country=_first_present(gym_a.country, gym_b.country),
            address=_first_present(gym_a.address, gym_b.address),
        )
