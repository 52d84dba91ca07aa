"""
Category Model
──────────────
The fixed Bad / Mid / Good categories and the numeric interval each one owns
on every rating scale the ranking engine works with.

Three scales exist side by side:
  • LEGACY   — the 0–10 scale written by the binary-insertion ranker.
  • ELO      — internal Elo strength scores (800–2200).
  • DISPLAY  — the 0–10 scale Elo scores are mapped onto for users.

Intervals on a scale never overlap. Classification is total: a rating belongs
to the highest category whose minimum it reaches, so values in the small
printed gaps between interval ends (6.9 → 7.0, 1200 → 1201) fall to the
category below.
"""
import logging
from dataclasses import dataclass
from enum import Enum

log = logging.getLogger(__name__)


class Category(str, Enum):
    """User-facing rating category."""

    BAD = "Bad"
    MID = "Mid"
    GOOD = "Good"


class RatingScale(str, Enum):
    LEGACY = "legacy"
    ELO = "elo"
    DISPLAY = "display"


@dataclass(frozen=True)
class CategoryBounds:
    """Closed interval [min, max] owned by one category on one scale."""

    min: float
    max: float

    @property
    def width(self) -> float:
        return self.max - self.min

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    def contains(self, rating: float) -> bool:
        return self.min <= rating <= self.max

    def clamp(self, rating: float) -> float:
        return max(self.min, min(self.max, rating))


# ── Category ranges ───────────────────────────────────────────────────────────
# Ordered worst → best; classify_category() relies on this order.

CATEGORY_ORDER: tuple[Category, ...] = (Category.BAD, Category.MID, Category.GOOD)

SCALE_BOUNDS: dict[RatingScale, dict[Category, CategoryBounds]] = {
    RatingScale.LEGACY: {
        Category.BAD: CategoryBounds(0.0, 3.9),
        Category.MID: CategoryBounds(4.0, 6.9),
        Category.GOOD: CategoryBounds(7.0, 10.0),
    },
    RatingScale.ELO: {
        Category.BAD: CategoryBounds(800, 1200),
        Category.MID: CategoryBounds(1201, 1800),
        Category.GOOD: CategoryBounds(1801, 2200),
    },
    RatingScale.DISPLAY: {
        Category.BAD: CategoryBounds(0.0, 2.5),
        Category.MID: CategoryBounds(2.6, 6.0),
        Category.GOOD: CategoryBounds(6.1, 10.0),
    },
}


# ── Records shared by both ranking strategies ─────────────────────────────────

@dataclass(frozen=True)
class RankedItem:
    """
    An already-rated place as the engine sees it.

    item_id is opaque to the engine — the caller decides what it refers to
    (a visit row id in this application).
    """

    item_id: str
    name: str
    location: str
    rating: float
    category: Category


@dataclass(frozen=True)
class RatingUpdate:
    """A rating change to an item other than the one being ranked."""

    item_id: str
    old_rating: float
    new_rating: float
    category: Category


# Elo sessions emit the same record for their opponents.
EloRatingUpdate = RatingUpdate


# ── Lookups ───────────────────────────────────────────────────────────────────

def bounds_of(category: Category | str, scale: RatingScale = RatingScale.LEGACY) -> CategoryBounds:
    """Return the closed interval *category* owns on *scale*."""
    return SCALE_BOUNDS[RatingScale(scale)][Category(category)]


def midpoint_of(category: Category | str, scale: RatingScale = RatingScale.LEGACY) -> float:
    return bounds_of(category, scale).midpoint


def classify_category(rating: float, scale: RatingScale = RatingScale.LEGACY) -> Category:
    """
    Return the single category *rating* belongs to on *scale*.

    Out-of-range values classify to the nearest end (Bad below, Good above).
    """
    table = SCALE_BOUNDS[RatingScale(scale)]
    result = CATEGORY_ORDER[0]
    for category in CATEGORY_ORDER:
        if rating >= table[category].min:
            result = category
    return result


def clamp_to_category(
    rating: float,
    category: Category | str,
    scale: RatingScale = RatingScale.LEGACY,
) -> float:
    """Clamp *rating* into the category interval. Clamping is never an error."""
    bounds = bounds_of(category, scale)
    clamped = bounds.clamp(rating)
    if clamped != rating:
        log.debug(
            "Clamped %s rating %s into %s [%s, %s]",
            RatingScale(scale).value, rating, Category(category).value, bounds.min, bounds.max,
        )
    return clamped
