"""
SQLAlchemy ORM models.

Schema mirrors alembic/versions/0001_initial_schema.py — column names,
constraints and Postgres-specific types (UUID) are all intentional.

A Visit is the item the ranking engine ranks: one user's rating of one place.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, relationship


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ─────────────────────────────────────────────────────────────────────

class CategoryEnum(str, PyEnum):
    BAD = "Bad"
    MID = "Mid"
    GOOD = "Good"


class VisitTypeEnum(str, PyEnum):
    NEIGHBORHOOD = "neighborhood"
    COUNTRY = "country"


class RatingTypeEnum(str, PyEnum):
    PAIRWISE = "pairwise"
    ELO = "elo"


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ────────────────────────────────────────────────────────────────────

class User(Base):
    """
    Account owning visits. Rows are provisioned by the auth service; this API
    only reads them to resolve bearer tokens.
    """
    __tablename__ = "users"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key — UUID v4",
    )
    username = Column(String(32), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    visits = relationship(
        "Visit",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


class Visit(Base):
    """
    A user's visit to (and rating of) a neighborhood or a country.

    rating      — 0.0–10.0 score shown to the user. Written by the binary
                  insertion ranker directly, or mapped from elo_rating.
    elo_rating  — internal Elo score (800–2200), NULL until the visit has
                  been ranked with the Elo strategy or migrated.
    category    — Bad / Mid / Good label; must agree with rating's interval.
    location    — parent area: borough or city for neighborhoods, continent
                  for countries. Neighborhood comparison pools are scoped by it.
    """
    __tablename__ = "visits"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    visit_type = Column(
        SAEnum(VisitTypeEnum, name="visit_type", create_type=False,
               values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    place_name = Column(String(200), nullable=False)
    location = Column(String(200), nullable=False, default="")
    visited = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)
    visit_date = Column(Date, nullable=True)
    rating = Column(Float, nullable=True)
    elo_rating = Column(Integer, nullable=True)
    rating_type = Column(
        SAEnum(RatingTypeEnum, name="rating_type", create_type=False,
               values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    category = Column(
        SAEnum(CategoryEnum, name="visit_category", create_type=False,
               values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    __table_args__ = (
        # A user visits each place once
        UniqueConstraint(
            "user_id", "visit_type", "place_name", "location",
            name="uq_user_visit_place",
        ),
        # Covering index: one user's pool for one scope/category, best first
        Index("idx_visits_user_scope_category", "user_id", "visit_type", "location", "category"),
        CheckConstraint(
            "rating IS NULL OR (rating >= 0.0 AND rating <= 10.0)",
            name="chk_visit_rating_0_10",
        ),
        CheckConstraint(
            "elo_rating IS NULL OR (elo_rating >= 800 AND elo_rating <= 2200)",
            name="chk_visit_elo_range",
        ),
        CheckConstraint(
            "(rating IS NULL) = (category IS NULL)",
            name="chk_visit_rating_has_category",
        ),
    )

    user = relationship("User", back_populates="visits")

    def __repr__(self) -> str:
        return (
            f"<Visit user={self.user_id} place={self.place_name!r} "
            f"category={self.category} rating={self.rating}>"
        )
