"""Initial schema — users, visits

Revision ID: 0001
Revises: —
Create Date: 2026-10-19 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────────
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ── Enum types ────────────────────────────────────────────────────────────
    op.execute("CREATE TYPE visit_type AS ENUM ('neighborhood', 'country')")
    op.execute("CREATE TYPE visit_category AS ENUM ('Bad', 'Mid', 'Good')")
    op.execute("CREATE TYPE rating_type AS ENUM ('pairwise', 'elo')")

    # ── Trigger function (auto-update updated_at) ─────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
          NEW.updated_at = now();
          RETURN NEW;
        END;
        $$
    """)

    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("username", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.execute("""
        CREATE TRIGGER trg_users_updated_at
        BEFORE UPDATE ON users
        FOR EACH ROW EXECUTE FUNCTION set_updated_at()
    """)

    # ── visits ────────────────────────────────────────────────────────────────
    op.create_table(
        "visits",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("visit_type", ENUM(
            "neighborhood", "country", name="visit_type", create_type=False,
        ), nullable=False),
        sa.Column("place_name", sa.String(200), nullable=False),
        # Borough/city for neighborhoods, continent for countries
        sa.Column("location", sa.String(200), nullable=False, server_default=""),
        sa.Column("visited", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("visit_date", sa.Date, nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("elo_rating", sa.Integer, nullable=True),
        sa.Column("rating_type", ENUM(
            "pairwise", "elo", name="rating_type", create_type=False,
        ), nullable=True),
        sa.Column("category", ENUM(
            "Bad", "Mid", "Good", name="visit_category", create_type=False,
        ), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint(
            "user_id", "visit_type", "place_name", "location",
            name="uq_user_visit_place",
        ),
        sa.CheckConstraint(
            "rating IS NULL OR (rating >= 0.0 AND rating <= 10.0)",
            name="chk_visit_rating_0_10",
        ),
        sa.CheckConstraint(
            "elo_rating IS NULL OR (elo_rating >= 800 AND elo_rating <= 2200)",
            name="chk_visit_elo_range",
        ),
        sa.CheckConstraint(
            "(rating IS NULL) = (category IS NULL)",
            name="chk_visit_rating_has_category",
        ),
    )
    op.create_index("ix_visits_user_id", "visits", ["user_id"])
    # Covering index: one user's comparison pool for one scope/category
    op.create_index(
        "idx_visits_user_scope_category",
        "visits",
        ["user_id", "visit_type", "location", "category"],
    )
    op.execute("""
        CREATE TRIGGER trg_visits_updated_at
        BEFORE UPDATE ON visits
        FOR EACH ROW EXECUTE FUNCTION set_updated_at()
    """)


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("visits")
    op.drop_table("users")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")
    op.execute("DROP TYPE IF EXISTS rating_type")
    op.execute("DROP TYPE IF EXISTS visit_category")
    op.execute("DROP TYPE IF EXISTS visit_type")
    op.execute("DROP EXTENSION IF EXISTS pgcrypto")
