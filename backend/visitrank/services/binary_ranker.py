"""
Binary-Insertion Ranker
───────────────────────
Places a new item among the existing items of one category with a bisection
search driven by pairwise answers ("is the new place better than X?"), then
turns the insertion position into a rating on the LEGACY scale.

The pool is ordered best-first, so position 0 means "better than everything".

When repeated inserts at the same spot squeeze ratings together (or pin them
against the category edge) the computed rating collides with a neighbor. In
that case the whole category is rewritten evenly:

    spacing = width / (n + 2)
    slot i  = max - (i + 1) * spacing        (new item occupies its slot)

which keeps relative order and leaves a margin at both edges.
"""
import logging
import math
from dataclasses import dataclass, field

from visitrank.services.category_model import (
    Category,
    CategoryBounds,
    RankedItem,
    RatingScale,
    RatingUpdate,
    bounds_of,
)
from visitrank.services.ranking_errors import RankingStateError

log = logging.getLogger(__name__)

# Offset used when the new item lands above the best / below the worst item.
EDGE_STEP = 0.5

# Two ratings closer than this are indistinguishable at one-decimal display
# precision and count as a collision.
COLLISION_EPSILON = 0.05

# Redistributed items whose rating moves by no more than this are not reported
# as side-effect updates.
REDISTRIBUTION_UPDATE_EPSILON = 1e-6


@dataclass(frozen=True)
class ComparisonRecord:
    target_id: str
    new_item_better: bool


@dataclass(frozen=True)
class RankingProgress:
    """Where a session stands, for progress bars."""

    current: int
    total: int
    remaining_window: int | None = None

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 100.0
        return min(100.0, self.current / self.total * 100)


@dataclass(frozen=True)
class RedistributedRating:
    item: RankedItem
    new_rating: float


@dataclass(frozen=True)
class BinaryRankingResult:
    rating: float
    category: Category
    insertion_position: int
    total_items: int
    needs_redistribution: bool
    redistributed_ratings: list[RedistributedRating] | None = field(default=None)


def even_spacing(count: int, bounds: CategoryBounds) -> list[float]:
    """
    Return *count* strictly decreasing ratings spread evenly inside *bounds*,
    best first, with one spacing of margin at each edge.
    """
    if count <= 0:
        return []
    spacing = bounds.width / (count + 1)
    return [bounds.max - (i + 1) * spacing for i in range(count)]


def sort_pool(items: list[RankedItem], category: Category) -> list[RankedItem]:
    """Keep only rated items of *category*, best first."""
    pool = [
        item for item in items
        if item.rating is not None and Category(item.category) == category
    ]
    return sorted(pool, key=lambda item: item.rating, reverse=True)


class BinaryInsertionSession:
    """
    Bisection state for one insertion.

    Usage:
        session = BinaryInsertionSession(existing, Category.GOOD)
        while not session.is_complete():
            target = session.current_target()
            session.submit(ask_user(target))
        result = session.final_result()
    """

    def __init__(
        self,
        items: list[RankedItem],
        category: Category | str,
        *,
        collision_epsilon: float = COLLISION_EPSILON,
        update_epsilon: float = REDISTRIBUTION_UPDATE_EPSILON,
    ) -> None:
        self.category = Category(category)
        self.bounds = bounds_of(self.category, RatingScale.LEGACY)
        self.collision_epsilon = collision_epsilon
        self.update_epsilon = update_epsilon

        self.items = sort_pool(items, self.category)
        n = len(self.items)
        self.low = 0
        self.high = n
        self.current_index = (self.low + self.high) // 2
        self.total_comparisons = math.ceil(math.log2(n + 1)) if n > 0 else 0
        self.comparisons_done = 0
        self.history: list[ComparisonRecord] = []
        self._result: BinaryRankingResult | None = None

    # ── Comparison driver ────────────────────────────────────────────────────

    def is_complete(self) -> bool:
        return self.low >= self.high

    def current_target(self) -> RankedItem | None:
        if self.is_complete():
            return None
        return self.items[self.current_index]

    def submit(self, new_item_is_better: bool) -> None:
        """Narrow the search window with the user's answer for current_target()."""
        if self.is_complete():
            raise RankingStateError("Comparison already complete")

        target = self.items[self.current_index]
        self.history.append(ComparisonRecord(target.item_id, bool(new_item_is_better)))
        self.comparisons_done += 1

        if new_item_is_better:
            self.high = self.current_index
        else:
            self.low = self.current_index + 1
        self.current_index = (self.low + self.high) // 2

    def progress(self) -> RankingProgress:
        return RankingProgress(
            current=self.comparisons_done,
            total=self.total_comparisons,
            remaining_window=max(0, self.high - self.low),
        )

    @property
    def insertion_position(self) -> int:
        if not self.is_complete():
            raise RankingStateError("Comparison not yet complete")
        return self.low

    # ── Rating assignment ────────────────────────────────────────────────────

    def calculate_simple_rating(self) -> float:
        """Rating from the neighbors alone, before any collision handling."""
        position = self.insertion_position
        items = self.items
        if not items:
            return self.bounds.midpoint
        if position == 0:
            return min(items[0].rating + EDGE_STEP, self.bounds.max)
        if position >= len(items):
            return max(items[-1].rating - EDGE_STEP, self.bounds.min)
        return (items[position - 1].rating + items[position].rating) / 2

    def detect_collision(self, rating: float) -> bool:
        """
        True when *rating* is not strictly inside the gap between its
        neighbors (widened by collision_epsilon on both sides).
        """
        position = self.insertion_position
        if position > 0:
            upper = self.items[position - 1].rating
            if rating > upper - self.collision_epsilon:
                return True
        if position < len(self.items):
            lower = self.items[position].rating
            if rating < lower + self.collision_epsilon:
                return True
        return False

    def redistributed_ratings(self) -> list[RedistributedRating]:
        """
        Evenly spaced ratings for every existing item, in pool order, with the
        new item's slot left out.
        """
        position = self.insertion_position
        slots = even_spacing(len(self.items) + 1, self.bounds)
        redistributed = []
        for index, item in enumerate(self.items):
            slot = index + 1 if index >= position else index
            redistributed.append(RedistributedRating(item, slots[slot]))
        return redistributed

    def calculate_final_rating(self) -> float:
        """Final rating for the new item; redistributes on collision."""
        return self.final_result().rating

    def final_result(self) -> BinaryRankingResult:
        if self._result is not None:
            return self._result

        position = self.insertion_position
        simple = self.calculate_simple_rating()
        needs_redistribution = bool(self.items) and self.detect_collision(simple)

        if needs_redistribution:
            rating = even_spacing(len(self.items) + 1, self.bounds)[position]
            redistributed = self.redistributed_ratings()
            log.info(
                "Redistributing %d %s ratings around position %d (collision at %.4f)",
                len(self.items) + 1, self.category.value, position, simple,
            )
        else:
            rating = simple
            redistributed = None

        self._result = BinaryRankingResult(
            rating=rating,
            category=self.category,
            insertion_position=position,
            total_items=len(self.items),
            needs_redistribution=needs_redistribution,
            redistributed_ratings=redistributed,
        )
        return self._result

    def side_effect_updates(self) -> list[RatingUpdate]:
        """
        Rating changes the caller must persist for existing items.

        A redistribution rewrites the whole category, so expect one update per
        existing item that moved (up to n), not only the two neighbours.
        """
        result = self.final_result()
        if not result.redistributed_ratings:
            return []
        return [
            RatingUpdate(
                item_id=entry.item.item_id,
                old_rating=entry.item.rating,
                new_rating=entry.new_rating,
                category=self.category,
            )
            for entry in result.redistributed_ratings
            if abs(entry.new_rating - entry.item.rating) > self.update_epsilon
        ]
