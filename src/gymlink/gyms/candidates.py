"""
Candidate pool for the matching pass.

Every incoming gym is compared against the same pool: all US gyms of the
stable org. The pool is loaded once per pass by paging through the store,
so memory per page stays bounded even though the whole pool is held.

The pool holds CandidateGym snapshots rather than session-bound rows. A
rollback in the pass expires every ORM instance, and the pool must stay
usable afterwards without re-reading each candidate.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from gymlink.db.models import SourceGym
from gymlink.db.store import SourceGymStore
from gymlink.types import Org, SourceGymKey

logger = logging.getLogger(__name__)

STABLE_ORG = Org.IBJJF
INCOMING_ORG = Org.JJWL

# A gym is "in the US" if either field says so (orgs fill one or the other)
CANDIDATE_COUNTRY_CODE = "US"
CANDIDATE_COUNTRY_NAME = "United States"


def is_candidate_country(gym: SourceGym) -> bool:
    return gym.country_code == CANDIDATE_COUNTRY_CODE or gym.country == CANDIDATE_COUNTRY_NAME


@dataclass(frozen=True)
class CandidateGym:
    """Read-only copy of the source gym fields that scoring uses."""
    org: str
    external_id: str
    name: str
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    address: Optional[str] = None
    affiliation: Optional[str] = None

    @property
    def key(self) -> SourceGymKey:
        return SourceGymKey(org=Org(self.org), external_id=self.external_id)

    @classmethod
    def from_model(cls, gym: SourceGym) -> "CandidateGym":
        return cls(
            org=gym.org,
            external_id=gym.external_id,
            name=gym.name,
            city=gym.city,
            country=gym.country,
            country_code=gym.country_code,
            address=gym.address,
            affiliation=gym.affiliation,
        )


class CandidateIndex:
    """
    In-memory pool of stable-org gyms that incoming gyms are scored against.

    Usage:
        index = CandidateIndex.load(SourceGymStore(session))
        best = select_best_candidate(incoming, index)
    """

    def __init__(self, org: Org = STABLE_ORG):
        self.org = Org(org)
        self._gyms: dict[SourceGymKey, CandidateGym] = {}
        self._ordered: Optional[list[CandidateGym]] = None

    @classmethod
    def load(
        cls,
        store: SourceGymStore,
        org: Org = STABLE_ORG,
        page_size: Optional[int] = None,
    ) -> "CandidateIndex":
        """
        Page through the store until the continuation token runs out.

        Raises:
            StorageError: If a page could not be read after retries
        """
        index = cls(org)
        token = None
        pages = 0

        while True:
            page = store.page_by_country(
                index.org,
                country_code=CANDIDATE_COUNTRY_CODE,
                country_name=CANDIDATE_COUNTRY_NAME,
                limit=page_size,
                after=token,
            )
            pages += 1
            for gym in page.items:
                index.add(gym)

            if page.next_token is None:
                break
            token = page.next_token

        logger.info(
            "Loaded %d %s candidate gyms in %s (%d pages)",
            len(index), index.org.value, CANDIDATE_COUNTRY_CODE, pages,
        )
        return index

    def add(self, gym: SourceGym) -> bool:
        """Snapshot a gym if it passes the org and country rule. Returns True if kept."""
        if gym.org != self.org.value or not is_candidate_country(gym):
            return False
        self._gyms[gym.key] = CandidateGym.from_model(gym)
        self._ordered = None
        return True

    def get(self, key: SourceGymKey) -> Optional[CandidateGym]:
        return self._gyms.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._gyms

    def __len__(self) -> int:
        return len(self._gyms)

    def __iter__(self) -> Iterator[CandidateGym]:
        # Stable order so tie-breaking and logs are reproducible
        if self._ordered is None:
            self._ordered = sorted(self._gyms.values(), key=lambda g: g.external_id)
        return iter(self._ordered)
