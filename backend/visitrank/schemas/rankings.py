"""
Ranking request/response schemas.
"""
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator


class CategoryEnum(str, Enum):
    """Valid category values — must match DB enum."""

    GOOD = "Good"
    MID = "Mid"
    BAD = "Bad"


class VisitTypeEnum(str, Enum):
    NEIGHBORHOOD = "neighborhood"
    COUNTRY = "country"


class StrategyEnum(str, Enum):
    BINARY = "binary"
    ELO = "elo"


class StartSessionRequest(BaseModel):
    """Payload for POST /rankings/sessions."""

    place_name: str = Field(min_length=1, max_length=200)
    visit_type: VisitTypeEnum
    location: str | None = Field(default=None, max_length=200)
    category: CategoryEnum | None = None
    strategy: StrategyEnum | None = None
    notes: str | None = None

    @field_validator("place_name", "location")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = " ".join(v.split())
        return v or None

    @field_validator("notes")
    @classmethod
    def cap_notes_length(cls, v: str | None) -> str | None:
        if v is not None and len(v) > 2000:
            raise ValueError("Notes cannot exceed 2000 characters")
        return v

    @model_validator(mode="after")
    def neighborhood_needs_location(self) -> "StartSessionRequest":
        if not self.place_name:
            raise ValueError("place_name cannot be blank")
        if self.visit_type == VisitTypeEnum.NEIGHBORHOOD and not self.location:
            raise ValueError("location (borough or city) is required for neighborhood visits")
        return self


class SelectCategoryRequest(BaseModel):
    """Payload for POST /rankings/sessions/{session_id}/category."""

    category: CategoryEnum


class ComparisonRequest(BaseModel):
    """Payload for POST /rankings/sessions/{session_id}/compare."""

    new_item_better: StrictBool


class ComparisonTarget(BaseModel):
    """The existing visit the user is asked to compare against."""

    item_id: str
    name: str
    location: str
    rating: float
    category: str


class ProgressResponse(BaseModel):
    current: int
    total: int
    percentage: float
    remaining_window: int | None = None


class SessionStateResponse(BaseModel):
    """Where a comparison session stands."""

    session_id: UUID
    strategy: StrategyEnum
    state: str
    category: CategoryEnum | None = None
    place_name: str
    is_complete: bool
    progress: ProgressResponse
    current_target: ComparisonTarget | None = None


class RatingUpdateResponse(BaseModel):
    """A side-effect rating change to another visit."""

    item_id: str
    old_rating: float
    new_rating: float
    category: CategoryEnum


class RedistributedRatingResponse(BaseModel):
    item_id: str
    name: str
    old_rating: float
    new_rating: float


class SessionResultResponse(BaseModel):
    """
    Final result of a finished session.

    rating is always on the 0–10 scale. Binary sessions fill the insertion
    fields; Elo sessions fill elo_rating.
    """

    session_id: UUID
    strategy: StrategyEnum
    category: CategoryEnum
    rating: float
    elo_rating: int | None = None
    insertion_position: int | None = None
    total_items: int | None = None
    needs_redistribution: bool = False
    redistributed_ratings: list[RedistributedRatingResponse] | None = None
    updates: list[RatingUpdateResponse] = []


class ApplyResultResponse(BaseModel):
    """Returned after a session result has been persisted."""

    visit_id: UUID
    place_name: str
    category: CategoryEnum
    rating: float
    elo_rating: int | None = None
    rating_type: str
    applied_updates: int


class RankedVisitItem(BaseModel):
    """Single visit in the ranked-list response."""

    id: UUID
    place_name: str
    location: str
    visit_type: str
    category: str
    rating: float
    elo_rating: int | None = None
    rating_type: str | None = None
    notes: str | None = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RankingsByCategoryResponse(BaseModel):
    """A user's ranked visits grouped by category, best first."""

    Good: list[RankedVisitItem] = []
    Mid: list[RankedVisitItem] = []
    Bad: list[RankedVisitItem] = []


class RebalanceRequest(BaseModel):
    """Payload for POST /rankings/rebalance."""

    category: CategoryEnum
    visit_type: VisitTypeEnum
    location: str | None = None


class RebalanceResponse(BaseModel):
    category: CategoryEnum
    affected_count: int
    message: str


class MigrationResponse(BaseModel):
    migrated: int
    skipped: int
