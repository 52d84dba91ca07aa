"""
Comparison Session
──────────────────
State machine wrapping either ranking strategy end to end:

    CATEGORY_SELECT ──select_category()──▶ COMPARING ──(last answer)──▶ RESULT
          │                    │ (empty pool) ───────────────────────▶ RESULT
          └───────cancel()─────┴──────────────▶ CANCELLED

A session snapshots the caller's items when the category is chosen and never
looks at them again; its result is valid against that snapshot only. Nothing
here touches storage — the caller persists the final rating and applies every
side-effect update as one batch.
"""
from enum import Enum
from typing import Protocol

from visitrank.services.binary_ranker import (
    BinaryInsertionSession,
    BinaryRankingResult,
    RankingProgress,
    sort_pool,
)
from visitrank.services.category_model import Category, RankedItem, RatingUpdate
from visitrank.services.elo_ranker import EloRankingResult, EloSession
from visitrank.services.ranking_errors import RankingStateError


class RankingStrategy(str, Enum):
    BINARY = "binary"
    ELO = "elo"


class SessionState(str, Enum):
    CATEGORY_SELECT = "category_select"
    COMPARING = "comparing"
    RESULT = "result"
    CANCELLED = "cancelled"


class RankingSession(Protocol):
    """Capability shared by BinaryInsertionSession and EloSession."""

    category: Category
    items: list[RankedItem]

    def current_target(self) -> RankedItem | None:
        ...

    def submit(self, new_item_is_better: bool) -> None:
        ...

    def is_complete(self) -> bool:
        ...

    def progress(self) -> RankingProgress:
        ...

    def final_result(self) -> BinaryRankingResult | EloRankingResult:
        ...

    def side_effect_updates(self) -> list[RatingUpdate]:
        ...


def _build_strategy(
    strategy: RankingStrategy,
    items: list[RankedItem],
    category: Category,
) -> RankingSession:
    if strategy == RankingStrategy.BINARY:
        return BinaryInsertionSession(items, category)
    return EloSession(items, category)


class ComparisonSession:
    """
    One ranking operation for one new (or re-ranked) item.

    *items* is every rated item in scope, across all categories; only the
    chosen category's items become the comparison pool.
    """

    def __init__(
        self,
        strategy: RankingStrategy | str,
        items: list[RankedItem],
    ) -> None:
        self.strategy = RankingStrategy(strategy)
        self._items = list(items)
        self.state = SessionState.CATEGORY_SELECT
        self.category: Category | None = None
        self._ranker: RankingSession | None = None
        self._snapshot: dict[str, float] = {}

    # ── Transitions ──────────────────────────────────────────────────────────

    def select_category(self, category: Category | str) -> SessionState:
        self._require(SessionState.CATEGORY_SELECT)
        self.category = Category(category)
        self._snapshot = {
            item.item_id: item.rating for item in sort_pool(self._items, self.category)
        }
        self._ranker = _build_strategy(self.strategy, self._items, self.category)
        self._items = []
        self.state = (
            SessionState.RESULT if self._ranker.is_complete() else SessionState.COMPARING
        )
        return self.state

    def submit_comparison(self, new_item_is_better: bool) -> SessionState:
        self._require(SessionState.COMPARING)
        self._ranker.submit(new_item_is_better)
        if self._ranker.is_complete():
            self.state = SessionState.RESULT
        return self.state

    def cancel(self) -> None:
        if self.state in (SessionState.RESULT, SessionState.CANCELLED):
            raise RankingStateError(f"Cannot cancel a session in state {self.state.value}")
        self.state = SessionState.CANCELLED
        self._ranker = None
        self._items = []

    # ── Queries ──────────────────────────────────────────────────────────────

    def is_complete(self) -> bool:
        return self.state == SessionState.RESULT

    def current_comparison_target(self) -> RankedItem | None:
        if self.state != SessionState.COMPARING:
            return None
        return self._ranker.current_target()

    def progress(self) -> RankingProgress:
        if self._ranker is None:
            return RankingProgress(current=0, total=0)
        return self._ranker.progress()

    def final_result(self) -> BinaryRankingResult | EloRankingResult:
        self._require(SessionState.RESULT)
        return self._ranker.final_result()

    def side_effect_updates(self) -> list[RatingUpdate]:
        self._require(SessionState.RESULT)
        return self._ranker.side_effect_updates()

    @property
    def pool(self) -> list[RankedItem]:
        if self._ranker is None:
            return []
        return list(self._ranker.items)

    @property
    def snapshot(self) -> dict[str, float]:
        """{item_id: rating} of the comparison pool as it was when taken."""
        return dict(self._snapshot)

    def _require(self, state: SessionState) -> None:
        if self.state != state:
            raise RankingStateError(
                f"Session is in state {self.state.value}, expected {state.value}"
            )


# ── Factories ────────────────────────────────────────────────────────────────

def create_binary_session(items: list[RankedItem], category: Category | str) -> ComparisonSession:
    session = ComparisonSession(RankingStrategy.BINARY, items)
    session.select_category(category)
    return session


def create_elo_session(items: list[RankedItem], category: Category | str) -> ComparisonSession:
    session = ComparisonSession(RankingStrategy.ELO, items)
    session.select_category(category)
    return session
