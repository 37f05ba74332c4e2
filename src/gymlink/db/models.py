"""
SQLAlchemy ORM models for gymlink.

The schema is built around a canonical "master gym" that source gyms from
each sanctioning org point at. Orgs publish their own gym lists with no
shared identifier, so links are created by the matching pass or by an
admin approving a pending match.

Key design decisions:
- Source gyms are keyed by (org, external_id); the link lives on the
  source gym as a nullable master_gym_id
- Master gyms are never deleted; unlinking only clears the source side
- Pending matches reference source gyms by their SRCGYM#<ORG>#<id> key
- Review status and reviewer/timestamp are kept consistent by CHECK
  constraints (pending <=> no reviewer, terminal <=> reviewer + timestamp)

Tables:
- source_gyms: Gym records as published by each org
- master_gyms: Canonical, org-agnostic gyms
- pending_matches: Scored pairs awaiting (or past) admin review
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from gymlink.types import (
    MatchSignals,
    Org,
    ReviewState,
    SourceGymKey,
    review_state_from_columns,
)


REVIEWER_MAX_LENGTH = 100


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Gym Models
# =============================================================================

class MasterGym(Base):
    """
    Canonical gym record.

    One master gym may be linked from any number of source gyms (usually
    one per org). The canonical_name is the display name; matching never
    reads it.
    """
    __tablename__ = "master_gyms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    canonical_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    source_gyms: Mapped[list["SourceGym"]] = relationship(back_populates="master_gym")

    __table_args__ = (
        Index("idx_master_gyms_canonical_name", "canonical_name"),
    )

    def __repr__(self) -> str:
        return f"<MasterGym(id='{self.id}', name='{self.canonical_name}')>"


class SourceGym(Base):
    """
    Gym as published by one sanctioning org.

    Rows are written by the org sync jobs (upsert by org + external_id).
    The matching engine only ever touches master_gym_id.
    """
    __tablename__ = "source_gyms"

    id: Mapped[int] = mapped_column(primary_key=True)

    org: Mapped[str] = mapped_column(String(10), nullable=False)  # 'IBJJF', 'JJWL'
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Location and branding (IBJJF publishes these, JJWL mostly doesn't)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    affiliation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    master_gym_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("master_gyms.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    master_gym: Mapped[Optional["MasterGym"]] = relationship(back_populates="source_gyms")

    __table_args__ = (
        UniqueConstraint("org", "external_id", name="uq_source_gym_org_external_id"),
        CheckConstraint("org IN ('IBJJF', 'JJWL')", name="ck_source_gym_org"),
        Index("idx_source_gyms_org_country_code", "org", "country_code"),
        Index("idx_source_gyms_org_country", "org", "country"),
        Index("idx_source_gyms_master_gym", "master_gym_id"),
    )

    @property
    def key(self) -> SourceGymKey:
        """SourceGymKey for this row."""
        return SourceGymKey(org=Org(self.org), external_id=self.external_id)

    def __repr__(self) -> str:
        return f"<SourceGym(org='{self.org}', external_id='{self.external_id}', name='{self.name}')>"


class PendingMatch(Base):
    """
    A scored source-gym pair that landed in the review band.

    Created by the matching pass, resolved exactly once by an admin
    (approved -> gyms linked, rejected -> gyms untouched). At most one
    row per unordered pair may be 'pending' at a time; the matching pass
    checks before inserting.
    """
    __tablename__ = "pending_matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    # SRCGYM#<ORG>#<external_id> references (not foreign keys: the pair
    # outlives any single sync of the source rows)
    source_gym_1_id: Mapped[str] = mapped_column(String(150), nullable=False)
    source_gym_2_id: Mapped[str] = mapped_column(String(150), nullable=False)

    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    name_similarity: Mapped[int] = mapped_column(Integer, nullable=False)
    city_boost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    affiliation_boost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(10), nullable=False, default="pending")
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(REVIEWER_MAX_LENGTH), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("confidence BETWEEN 0 AND 100", name="ck_pending_match_confidence"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_pending_match_status",
        ),
        CheckConstraint(
            "(status = 'pending' AND reviewed_at IS NULL AND reviewed_by IS NULL) OR "
            "(status IN ('approved', 'rejected') AND reviewed_at IS NOT NULL "
            "AND reviewed_by IS NOT NULL)",
            name="ck_pending_match_review_state",
        ),
        CheckConstraint(
            "source_gym_1_id <> source_gym_2_id",
            name="ck_pending_match_distinct_gyms",
        ),
        Index("idx_pending_matches_status", "status", "created_at"),
        Index("idx_pending_matches_gym_1", "source_gym_1_id"),
        Index("idx_pending_matches_gym_2", "source_gym_2_id"),
    )

    @property
    def signals(self) -> MatchSignals:
        """MatchSignals recorded when the pair was scored."""
        return MatchSignals(
            name_similarity=self.name_similarity,
            city_boost=self.city_boost,
            affiliation_boost=self.affiliation_boost,
        )

    @property
    def review_state(self) -> ReviewState:
        """Pending / Approved / Rejected rebuilt from the status columns."""
        return review_state_from_columns(self.status, self.reviewed_at, self.reviewed_by)

    def __repr__(self) -> str:
        return f"<PendingMatch(id='{self.id}', confidence={self.confidence}, status='{self.status}')>"
