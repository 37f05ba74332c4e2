"""
Storage adapters for source and master gyms.

All reads that can scan an unbounded number of rows go through
fetch_page(), which uses keyset pagination (continuation token = last
primary key seen) so that per-page memory stays bounded. Transient
database failures are retried with exponential backoff before being
surfaced as StorageError.

Usage:
    store = SourceGymStore(session)
    token = None
    while True:
        page = store.page_by_country(Org.IBJJF, country_code="US",
                                     country_name="United States", after=token)
        ...
        if page.next_token is None:
            break
        token = page.next_token
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from gymlink.config import settings
from gymlink.db.models import MasterGym, SourceGym, utc_now
from gymlink.errors import StorageError, ValidationError
from gymlink.types import Org, SourceGymKey

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of rows plus the token to fetch the next one (None = done)."""
    items: list[T] = field(default_factory=list)
    next_token: Optional[Any] = None


# =============================================================================
# Retry + Pagination Helpers
# =============================================================================

def with_storage_retry(
    operation: Callable[[], T],
    *,
    description: str = "Storage operation",
    session: Optional[Session] = None,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> T:
    """
    Run a storage read with exponential backoff retry.

    Only OperationalError (connection lost, lock timeout, throttling) is
    retried. Any other SQLAlchemy error fails immediately. Both end up as
    StorageError.

    Args:
        operation: Zero-argument callable performing the read
        description: Description for logging and the error message
        session: Session to roll back between attempts (its transaction is
                 unusable after an OperationalError)
        max_attempts: Attempts before giving up (default from settings)
        base_delay: Initial delay in seconds, doubling each attempt

    Returns:
        Result of the operation

    Raises:
        StorageError: If every attempt failed
    """
    if max_attempts is None:
        max_attempts = settings.storage_max_retries
    if base_delay is None:
        base_delay = settings.storage_retry_base_delay

    last_error: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            return operation()
        except OperationalError as e:
            last_error = e
            if session is not None:
                session.rollback()

            if attempt < max_attempts - 1:
                delay = base_delay * (2 ** attempt)
                # Jitter so concurrent passes don't retry in lockstep
                delay += random.uniform(0, base_delay)
                logger.warning(
                    "[Retry %d/%d] %s failed: %s. Retrying in %.1fs...",
                    attempt + 1, max_attempts, description, e, delay,
                )
                time.sleep(delay)
        except SQLAlchemyError as e:
            raise StorageError(f"{description} failed: {e}") from e

    raise StorageError(
        f"{description} failed after {max_attempts} attempts: {last_error}"
    ) from last_error


def fetch_page(
    session: Session,
    query: Query,
    id_column,
    *,
    limit: Optional[int] = None,
    after: Optional[Any] = None,
    description: str = "Page read",
) -> Page:
    """
    Fetch one keyset page of a query ordered by id_column.

    Args:
        session: Session the query is bound to (rolled back on retry)
        query: Base query with filters applied, no ordering or limit
        id_column: Unique, sortable column used as the continuation token
        limit: Page size (default settings.storage_page_size)
        after: Continuation token from the previous page

    Returns:
        Page whose next_token is None once the final page is reached
    """
    limit = limit or settings.storage_page_size
    if after is not None:
        query = query.filter(id_column > after)

    rows = with_storage_retry(
        lambda: query.order_by(id_column).limit(limit).all(),
        description=description,
        session=session,
    )

    next_token = getattr(rows[-1], id_column.key) if len(rows) == limit else None
    return Page(items=rows, next_token=next_token)


def flush_or_raise(session: Session, description: str) -> None:
    """Flush pending writes, converting database failures to StorageError."""
    try:
        session.flush()
    except SQLAlchemyError as e:
        raise StorageError(f"{description} failed: {e}") from e


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# =============================================================================
# Source Gyms
# =============================================================================

class SourceGymStore:
    """
    Read/write access to per-org gym records.

    Org sync jobs write through upsert(); the matching engine reads pages
    and only ever changes master_gym_id via set_master_gym_id().
    """

    def __init__(self, db: Session):
        self.db = db

    def upsert(
        self,
        org: Org,
        external_id: str,
        name: str,
        city: Optional[str] = None,
        country: Optional[str] = None,
        country_code: Optional[str] = None,
        address: Optional[str] = None,
        affiliation: Optional[str] = None,
    ) -> SourceGym:
        """
        Insert or refresh a source gym.

        Descriptive fields are overwritten with the latest sync values.
        An existing master_gym_id is preserved: a resync must never undo
        a link.

        Raises:
            ValidationError: If external_id or name is blank
        """
        org = Org(org)
        external_id = _clean(external_id)
        name = _clean(name)
        if not external_id:
            raise ValidationError("externalId is required")
        if not name:
            raise ValidationError("name is required")

        gym = self.get(org, external_id)
        if gym is None:
            gym = SourceGym(org=org.value, external_id=external_id, name=name)
            self.db.add(gym)

        gym.name = name
        gym.city = _clean(city)
        gym.country = _clean(country)
        gym.country_code = _clean(country_code.upper()) if country_code else None
        gym.address = _clean(address)
        gym.affiliation = _clean(affiliation)

        flush_or_raise(self.db, f"Upsert of {org.value}#{external_id}")
        return gym

    def get(self, org: Org, external_id: str) -> Optional[SourceGym]:
        """Get a source gym by org and external id."""
        org = Org(org)
        return with_storage_retry(
            lambda: self.db.query(SourceGym)
            .filter(SourceGym.org == org.value, SourceGym.external_id == external_id)
            .first(),
            description=f"Get source gym {org.value}#{external_id}",
            session=self.db,
        )

    def get_by_key(self, key: SourceGymKey) -> Optional[SourceGym]:
        return self.get(key.org, key.external_id)

    def page_by_country(
        self,
        org: Org,
        *,
        country_code: str,
        country_name: str,
        limit: Optional[int] = None,
        after: Optional[int] = None,
    ) -> Page[SourceGym]:
        """
        One page of an org's gyms located in a country.

        A gym qualifies if its country_code equals country_code OR its
        country equals country_name (orgs fill one or the other).
        """
        org = Org(org)
        query = self.db.query(SourceGym).filter(
            SourceGym.org == org.value,
            or_(
                SourceGym.country_code == country_code,
                SourceGym.country == country_name,
            ),
        )
        return fetch_page(
            self.db,
            query,
            SourceGym.id,
            limit=limit,
            after=after,
            description=f"Page of {org.value} gyms in {country_code}",
        )

    def page_by_org(
        self,
        org: Org,
        *,
        unlinked_only: bool = False,
        limit: Optional[int] = None,
        after: Optional[int] = None,
    ) -> Page[SourceGym]:
        """One page of all gyms for an org, optionally only unlinked ones."""
        org = Org(org)
        query = self.db.query(SourceGym).filter(SourceGym.org == org.value)
        if unlinked_only:
            query = query.filter(SourceGym.master_gym_id.is_(None))
        return fetch_page(
            self.db,
            query,
            SourceGym.id,
            limit=limit,
            after=after,
            description=f"Page of {org.value} gyms",
        )

    def set_master_gym_id(self, gym: SourceGym, master_gym_id: Optional[str]) -> None:
        """Point a source gym at a master gym (or clear the link with None)."""
        gym.master_gym_id = master_gym_id
        gym.updated_at = utc_now()
        flush_or_raise(self.db, f"Link update for {gym.org}#{gym.external_id}")

    def link_counts(
        self,
        org: Org,
        *,
        country_code: Optional[str] = None,
        country_name: Optional[str] = None,
    ) -> dict[str, int]:
        """
        Count linked vs unlinked gyms for an org.

        When country_code/country_name are given, only gyms passing the
        same country rule as page_by_country() are counted.
        """
        org = Org(org)
        query = self.db.query(
            func.count(SourceGym.id),
            func.count(SourceGym.master_gym_id),
        ).filter(SourceGym.org == org.value)
        if country_code or country_name:
            query = query.filter(
                or_(
                    SourceGym.country_code == country_code,
                    SourceGym.country == country_name,
                )
            )

        total, linked = with_storage_retry(
            query.one,
            description=f"Link counts for {org.value}",
            session=self.db,
        )
        return {"total": total, "linked": linked, "unlinked": total - linked}


# =============================================================================
# Master Gyms
# =============================================================================

class MasterGymStore:
    """Persistence for canonical master gyms."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        canonical_name: str,
        city: Optional[str] = None,
        country: Optional[str] = None,
        address: Optional[str] = None,
        website: Optional[str] = None,
    ) -> MasterGym:
        master = MasterGym(
            canonical_name=canonical_name,
            city=city,
            country=country,
            address=address,
            website=website,
        )
        self.db.add(master)
        flush_or_raise(self.db, f"Create master gym '{canonical_name}'")
        return master

    def get(self, master_gym_id: str) -> Optional[MasterGym]:
        return with_storage_retry(
            lambda: self.db.get(MasterGym, master_gym_id),
            description=f"Get master gym {master_gym_id}",
            session=self.db,
        )

    def search(self, name_prefix: str, limit: int = 20) -> list[MasterGym]:
        """Case-insensitive canonical-name prefix search."""
        prefix = name_prefix.strip().lower()
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return with_storage_retry(
            lambda: self.db.query(MasterGym)
            .filter(func.lower(MasterGym.canonical_name).like(f"{escaped}%", escape="\\"))
            .order_by(func.lower(MasterGym.canonical_name), MasterGym.id)
            .limit(limit)
            .all(),
            description=f"Search master gyms '{prefix}'",
            session=self.db,
        )

    def linked_source_gyms(self, master_gym_id: str) -> list[SourceGym]:
        return with_storage_retry(
            lambda: self.db.query(SourceGym)
            .filter(SourceGym.master_gym_id == master_gym_id)
            .order_by(SourceGym.org, SourceGym.external_id)
            .all(),
            description=f"Source gyms of master {master_gym_id}",
            session=self.db,
        )
