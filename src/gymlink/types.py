"""
Core value types for gym identity resolution.

- Org: the two sanctioning organizations (closed set)
- SourceGymKey: (org, external_id) reference, rendered as SRCGYM#<ORG>#<id>
- MatchSignals: the three independent scoring signals
- Review states: Pending / Approved / Rejected

Review state is modelled as a sum type so that a terminal state always
carries both its reviewer and timestamp. The database row stores flat
columns; convert with review_state_columns() / review_state_from_columns().
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from gymlink.errors import ValidationError


class Org(str, Enum):
    """Sanctioning organization that published a source gym."""

    IBJJF = "IBJJF"
    JJWL = "JJWL"

    @property
    def other(self) -> "Org":
        return Org.JJWL if self is Org.IBJJF else Org.IBJJF

    @classmethod
    def parse(cls, raw: str) -> "Org":
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            valid = ", ".join(org.value for org in cls)
            raise ValidationError(f"Unknown org '{raw}'. Must be one of: {valid}") from None


SOURCE_GYM_KEY_PREFIX = "SRCGYM"
_SOURCE_GYM_KEY_RE = re.compile(r"^SRCGYM#(?P<org>[A-Z]+)#(?P<external_id>.+)$")


@dataclass(frozen=True, order=True)
class SourceGymKey:
    """Stable reference to one org's gym record."""

    org: Org
    external_id: str

    def __str__(self) -> str:
        return f"{SOURCE_GYM_KEY_PREFIX}#{self.org.value}#{self.external_id}"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SourceGymKey":
        """
        Parse a boundary id like 'SRCGYM#IBJJF#1234'.

        Raises:
            ValidationError: If the id is missing, malformed or names an unknown org
        """
        if not raw or not isinstance(raw, str):
            raise ValidationError("Source gym id is required")

        match = _SOURCE_GYM_KEY_RE.match(raw.strip())
        if not match:
            raise ValidationError(f"Invalid source gym id format: '{raw}'")

        external_id = match.group("external_id").strip()
        if not external_id:
            raise ValidationError(f"Invalid source gym id format: '{raw}'")

        return cls(org=Org.parse(match.group("org")), external_id=external_id)


@dataclass(frozen=True)
class MatchSignals:
    """Independent similarity signals behind a confidence score."""

    name_similarity: int  # 0-100
    city_boost: int  # 0 or 15
    affiliation_boost: int  # 0 or 10

    @property
    def total(self) -> int:
        return self.name_similarity + self.city_boost + self.affiliation_boost

    def to_dict(self) -> dict[str, int]:
        return {
            "nameSimilarity": self.name_similarity,
            "cityBoost": self.city_boost,
            "affiliationBoost": self.affiliation_boost,
        }


# =============================================================================
# Review State
# =============================================================================

class MatchStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "MatchStatus":
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            raise ValidationError(
                "Invalid status. Must be pending, approved, or rejected"
            ) from None


@dataclass(frozen=True)
class Pending:
    status = MatchStatus.PENDING


@dataclass(frozen=True)
class _Reviewed:
    reviewed_at: datetime
    reviewed_by: str

    def __post_init__(self) -> None:
        if self.reviewed_at is None:
            raise ValueError("reviewed_at is required for a reviewed match")
        if not self.reviewed_by or not self.reviewed_by.strip():
            raise ValueError("reviewed_by is required for a reviewed match")


@dataclass(frozen=True)
class Approved(_Reviewed):
    status = MatchStatus.APPROVED


@dataclass(frozen=True)
class Rejected(_Reviewed):
    status = MatchStatus.REJECTED


ReviewState = Union[Pending, Approved, Rejected]


def review_state_columns(state: ReviewState) -> dict[str, Any]:
    """Flatten a review state into pending_matches column values."""
    if isinstance(state, Pending):
        return {"status": MatchStatus.PENDING.value, "reviewed_at": None, "reviewed_by": None}
    return {
        "status": state.status.value,
        "reviewed_at": state.reviewed_at,
        "reviewed_by": state.reviewed_by,
    }


def review_state_from_columns(
    status: str,
    reviewed_at: Optional[datetime],
    reviewed_by: Optional[str],
) -> ReviewState:
    """
    Rebuild the review state from stored columns.

    Raises:
        ValueError: If the columns are inconsistent (e.g. approved without reviewer)
    """
    parsed = MatchStatus(status)
    if parsed is MatchStatus.PENDING:
        if reviewed_at is not None or reviewed_by is not None:
            raise ValueError("Pending match must not carry review details")
        return Pending()
    if parsed is MatchStatus.APPROVED:
        return Approved(reviewed_at=reviewed_at, reviewed_by=reviewed_by)
    return Rejected(reviewed_at=reviewed_at, reviewed_by=reviewed_by)
