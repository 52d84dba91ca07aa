"""
Elo Comparison Engine
─────────────────────
Alternative to binary insertion: ratings are Elo strength scores, and every
comparison moves both the new item and its opponent with the standard update

    E_new  = 1 / (1 + 10 ** ((R_opp - R_new) / 400))
    delta  = round(K * (actual - E_new))
    R_new' = clamp(R_new + delta)      R_opp' = clamp(R_opp - delta)

so repeated rankings converge on a strength order instead of only fixing one
insertion point.

Each category owns an Elo sub-range (see category_model.SCALE_BOUNDS[ELO]);
user-facing scores come from mapping the position inside that sub-range onto
the category's DISPLAY interval, and convert_legacy_rating_to_elo() is the
inverse used to migrate old 0–10 ratings.
"""
import logging
import math
from dataclasses import dataclass

from visitrank.services.binary_ranker import RankingProgress, sort_pool
from visitrank.services.category_model import (
    Category,
    RankedItem,
    RatingScale,
    RatingUpdate,
    bounds_of,
    clamp_to_category,
)
from visitrank.services.ranking_errors import RankingStateError

log = logging.getLogger(__name__)

K_FACTOR = 32
BASE_RATING = 1500
MIN_RATING = 800
MAX_RATING = 2200

# Pool ratings at or below this are still on the 0–10 scale.
LEGACY_RATING_CEILING = 100

MAX_OPPONENTS = 5
# Opponent diversity: accept a candidate within this share of the largest
# distance from the estimate …
CLOSE_DISTANCE_SHARE = 0.3
# … or at least this many points away from every opponent already picked.
MIN_OPPONENT_SPREAD = 50


@dataclass(frozen=True)
class ComparisonOutcome:
    new_item_rating: int
    opponent_update: RatingUpdate | None


@dataclass(frozen=True)
class EloRankingResult:
    elo_rating: int
    display_rating: float
    category: Category
    opponent_updates: list[RatingUpdate]


# ── Formula helpers ──────────────────────────────────────────────────────────

def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that A beats B."""
    return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))


def calculate_elo_change(rating_a: float, rating_b: float, did_a_win: bool) -> int:
    actual = 1 if did_a_win else 0
    # Banker's rounding: an exact .5 delta goes to the even neighbour, not up.
    return round(K_FACTOR * (actual - expected_score(rating_a, rating_b)))


def base_category_rating(category: Category | str) -> int:
    """Starting Elo for a new item: the floor of its sub-range midpoint."""
    bounds = bounds_of(category, RatingScale.ELO)
    return math.floor((bounds.min + bounds.max) / 2)


def clamp_rating_to_category(rating: float, category: Category | str) -> float:
    clamped = clamp_to_category(rating, category, RatingScale.ELO)
    return max(MIN_RATING, min(MAX_RATING, clamped))


# ── Scale conversion ─────────────────────────────────────────────────────────

def convert_legacy_rating_to_elo(legacy_rating: float, category: Category | str) -> int:
    """Map a 0–10 display rating onto the category's Elo sub-range."""
    display = bounds_of(category, RatingScale.DISPLAY)
    elo = bounds_of(category, RatingScale.ELO)
    position = (legacy_rating - display.min) / display.width
    position = max(0.0, min(1.0, position))
    return round(elo.min + position * elo.width)


def convert_elo_to_display_rating(elo_rating: float, category: Category | str) -> float:
    """Map an Elo score onto the category's DISPLAY interval."""
    display = bounds_of(category, RatingScale.DISPLAY)
    elo = bounds_of(category, RatingScale.ELO)
    position = (elo_rating - elo.min) / elo.width
    return display.clamp(display.min + position * display.width)


def to_elo_item(item: RankedItem) -> RankedItem:
    """Return *item* with its rating on the Elo scale."""
    if item.rating > LEGACY_RATING_CEILING:
        return item
    return RankedItem(
        item_id=item.item_id,
        name=item.name,
        location=item.location,
        rating=convert_legacy_rating_to_elo(item.rating, item.category),
        category=item.category,
    )


# ── Opponent selection ───────────────────────────────────────────────────────

def optimal_comparison_count(existing_item_count: int) -> int:
    if existing_item_count <= 0:
        return 0
    if existing_item_count <= 3:
        return existing_item_count
    return min(MAX_OPPONENTS, math.ceil(math.log2(existing_item_count)) + 1)


def select_optimal_opponents(
    existing_items: list[RankedItem],
    estimated_rating: float,
    max_comparisons: int = 4,
) -> list[RankedItem]:
    """
    Pick up to *max_comparisons* opponents near *estimated_rating*.

    The closest item is always taken. Each later candidate (considered in
    order of distance) is taken when it is still close to the estimate or
    spread far enough from everything already picked.
    """
    if not existing_items or max_comparisons <= 0:
        return []

    by_distance = sorted(
        ((item, abs(item.rating - estimated_rating)) for item in existing_items),
        key=lambda pair: pair[1],
    )
    max_distance = max(distance for _, distance in by_distance)

    selected: list[RankedItem] = []
    for index, (candidate, distance) in enumerate(by_distance[:max_comparisons]):
        if index == 0:
            selected.append(candidate)
            continue
        spread = min(abs(s.rating - candidate.rating) for s in selected)
        if distance <= max_distance * CLOSE_DISTANCE_SHARE or spread >= MIN_OPPONENT_SPREAD:
            selected.append(candidate)

    return selected[:max_comparisons]


def process_comparison(
    new_item_rating: float,
    opponent: RankedItem,
    new_item_won: bool,
    category: Category | str,
) -> ComparisonOutcome:
    """Apply one Elo update to both sides; report the opponent only if it moved."""
    change = calculate_elo_change(new_item_rating, opponent.rating, new_item_won)
    new_rating = clamp_rating_to_category(new_item_rating + change, category)
    opponent_rating = clamp_rating_to_category(opponent.rating - change, category)

    update = None
    if opponent_rating != opponent.rating:
        update = RatingUpdate(
            item_id=opponent.item_id,
            old_rating=opponent.rating,
            new_rating=opponent_rating,
            category=Category(category),
        )
    return ComparisonOutcome(new_item_rating=int(new_rating), opponent_update=update)


# ── Session ──────────────────────────────────────────────────────────────────

class EloSession:
    """
    One Elo ranking pass: a fixed opponent list, one comparison each.

    An empty pool completes immediately at the category's base rating.
    """

    def __init__(self, items: list[RankedItem], category: Category | str) -> None:
        self.category = Category(category)
        pool = [to_elo_item(item) for item in sort_pool(items, self.category)]
        self.items = sorted(pool, key=lambda item: item.rating, reverse=True)

        self.current_rating = base_category_rating(self.category)
        count = optimal_comparison_count(len(self.items))
        self.opponents = select_optimal_opponents(self.items, self.current_rating, count)
        self.comparison_index = 0
        self.updates: list[RatingUpdate] = []

    def is_complete(self) -> bool:
        return self.comparison_index >= len(self.opponents)

    def current_target(self) -> RankedItem | None:
        if self.is_complete():
            return None
        return self.opponents[self.comparison_index]

    def submit(self, new_item_is_better: bool) -> None:
        if self.is_complete():
            raise RankingStateError("All opponents have already been compared")

        opponent = self.opponents[self.comparison_index]
        outcome = process_comparison(
            self.current_rating, opponent, bool(new_item_is_better), self.category
        )
        self.current_rating = outcome.new_item_rating
        if outcome.opponent_update is not None:
            self.updates.append(outcome.opponent_update)
            self.opponents[self.comparison_index] = RankedItem(
                item_id=opponent.item_id,
                name=opponent.name,
                location=opponent.location,
                rating=outcome.opponent_update.new_rating,
                category=opponent.category,
            )
        self.comparison_index += 1

    def progress(self) -> RankingProgress:
        return RankingProgress(current=self.comparison_index, total=len(self.opponents))

    def final_result(self) -> EloRankingResult:
        if not self.is_complete():
            raise RankingStateError("Comparison not yet complete")
        return EloRankingResult(
            elo_rating=self.current_rating,
            display_rating=convert_elo_to_display_rating(self.current_rating, self.category),
            category=self.category,
            opponent_updates=list(self.updates),
        )

    def side_effect_updates(self) -> list[RatingUpdate]:
        return self.final_result().opponent_updates
