"""Create source_gyms, master_gyms and pending_matches tables

Revision ID: 4f1a9c2e7b30
Revises:
Create Date: 2026-10-17 12:00:00.000000+00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic.
revision: str = "4f1a9c2e7b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "master_gyms",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("website", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_master_gyms_canonical_name", "master_gyms", ["canonical_name"], unique=False)

    op.create_table(
        "source_gyms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org", sa.String(length=10), nullable=False),
        sa.Column("external_id", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("country_code", sa.String(length=2), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("affiliation", sa.String(length=255), nullable=True),
        sa.Column("master_gym_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["master_gym_id"], ["master_gyms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org", "external_id", name="uq_source_gym_org_external_id"),
        sa.CheckConstraint("org IN ('IBJJF', 'JJWL')", name="ck_source_gym_org"),
    )
    op.create_index("idx_source_gyms_org_country_code", "source_gyms", ["org", "country_code"], unique=False)
    op.create_index("idx_source_gyms_org_country", "source_gyms", ["org", "country"], unique=False)
    op.create_index("idx_source_gyms_master_gym", "source_gyms", ["master_gym_id"], unique=False)

    op.create_table(
        "pending_matches",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("source_gym_1_id", sa.String(length=150), nullable=False),
        sa.Column("source_gym_2_id", sa.String(length=150), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False),
        sa.Column("name_similarity", sa.Integer(), nullable=False),
        sa.Column("city_boost", sa.Integer(), nullable=False),
        sa.Column("affiliation_boost", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="pending"),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("confidence BETWEEN 0 AND 100", name="ck_pending_match_confidence"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_pending_match_status",
        ),
        sa.CheckConstraint(
            "(status = 'pending' AND reviewed_at IS NULL AND reviewed_by IS NULL) OR "
            "(status IN ('approved', 'rejected') AND reviewed_at IS NOT NULL "
            "AND reviewed_by IS NOT NULL)",
            name="ck_pending_match_review_state",
        ),
        sa.CheckConstraint(
            "source_gym_1_id <> source_gym_2_id",
            name="ck_pending_match_distinct_gyms",
        ),
    )
    op.create_index("idx_pending_matches_status", "pending_matches", ["status", "created_at"], unique=False)
    op.create_index("idx_pending_matches_gym_1", "pending_matches", ["source_gym_1_id"], unique=False)
    op.create_index("idx_pending_matches_gym_2", "pending_matches", ["source_gym_2_id"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_pending_matches_gym_2", table_name="pending_matches")
    op.drop_index("idx_pending_matches_gym_1", table_name="pending_matches")
    op.drop_index("idx_pending_matches_status", table_name="pending_matches")
    op.drop_table("pending_matches")

    op.drop_index("idx_source_gyms_master_gym", table_name="source_gyms")
    op.drop_index("idx_source_gyms_org_country", table_name="source_gyms")
    op.drop_index("idx_source_gyms_org_country_code", table_name="source_gyms")
    op.drop_table("source_gyms")

    op.drop_index("idx_master_gyms_canonical_name", table_name="master_gyms")
    op.drop_table("master_gyms")
