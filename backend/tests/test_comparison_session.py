import unittest

from visitrank.services.binary_ranker import BinaryRankingResult
from visitrank.services.category_model import Category, RankedItem
from visitrank.services.comparison_session import (
    ComparisonSession,
    RankingStrategy,
    SessionState,
    create_binary_session,
    create_elo_session,
)
from visitrank.services.elo_ranker import EloRankingResult
from visitrank.services.ranking_errors import RankingStateError


def make_item(item_id: str, rating: float, category: Category = Category.GOOD) -> RankedItem:
    return RankedItem(
        item_id=item_id,
        name=f"Place {item_id}",
        location="Queens",
        rating=rating,
        category=category,
    )


ITEMS = [
    make_item("a", 9.5),
    make_item("b", 8.8),
    make_item("c", 7.2),
    make_item("m", 5.0, Category.MID),
]


class TestSessionLifecycle(unittest.TestCase):
    def test_new_session_waits_for_category(self) -> None:
        session = ComparisonSession(RankingStrategy.BINARY, ITEMS)
        self.assertEqual(session.state, SessionState.CATEGORY_SELECT)
        self.assertIsNone(session.current_comparison_target())
        self.assertFalse(session.is_complete())
        progress = session.progress()
        self.assertEqual((progress.current, progress.total), (0, 0))
        self.assertEqual(session.pool, [])
        with self.assertRaises(RankingStateError):
            session.final_result()
        with self.assertRaises(RankingStateError):
            session.submit_comparison(True)

    def test_binary_session_runs_to_result(self) -> None:
        session = ComparisonSession("binary", ITEMS)
        self.assertEqual(session.select_category("Good"), SessionState.COMPARING)
        self.assertEqual(session.snapshot, {"a": 9.5, "b": 8.8, "c": 7.2})
        self.assertEqual([item.item_id for item in session.pool], ["a", "b", "c"])

        self.assertEqual(session.current_comparison_target().item_id, "b")
        self.assertEqual(session.submit_comparison(True), SessionState.COMPARING)
        self.assertEqual(session.submit_comparison(False), SessionState.RESULT)

        self.assertTrue(session.is_complete())
        self.assertIsNone(session.current_comparison_target())
        result = session.final_result()
        self.assertIsInstance(result, BinaryRankingResult)
        self.assertAlmostEqual(result.rating, 9.15)
        self.assertEqual(session.side_effect_updates(), [])

        with self.assertRaises(RankingStateError):
            session.submit_comparison(True)

    def test_empty_category_goes_straight_to_result(self) -> None:
        session = ComparisonSession(RankingStrategy.BINARY, ITEMS)
        self.assertEqual(session.select_category(Category.BAD), SessionState.RESULT)
        self.assertEqual(session.snapshot, {})
        self.assertAlmostEqual(session.final_result().rating, 1.95)

    def test_category_cannot_be_selected_twice(self) -> None:
        session = ComparisonSession(RankingStrategy.BINARY, ITEMS)
        session.select_category(Category.GOOD)
        with self.assertRaises(RankingStateError):
            session.select_category(Category.MID)

    def test_snapshot_ignores_later_changes_to_caller_list(self) -> None:
        items = list(ITEMS)
        session = ComparisonSession(RankingStrategy.BINARY, items)
        items.append(make_item("z", 9.9))
        session.select_category(Category.GOOD)
        self.assertNotIn("z", session.snapshot)


class TestCancel(unittest.TestCase):
    def test_cancel_before_category(self) -> None:
        session = ComparisonSession(RankingStrategy.ELO, ITEMS)
        session.cancel()
        self.assertEqual(session.state, SessionState.CANCELLED)

    def test_cancel_while_comparing(self) -> None:
        session = create_binary_session(ITEMS, Category.GOOD)
        session.submit_comparison(True)
        session.cancel()
        self.assertEqual(session.state, SessionState.CANCELLED)
        self.assertEqual(session.pool, [])
        with self.assertRaises(RankingStateError):
            session.submit_comparison(False)
        with self.assertRaises(RankingStateError):
            session.final_result()

    def test_cannot_cancel_finished_or_cancelled_session(self) -> None:
        finished = create_binary_session(ITEMS, Category.BAD)
        with self.assertRaises(RankingStateError):
            finished.cancel()

        cancelled = create_binary_session(ITEMS, Category.GOOD)
        cancelled.cancel()
        with self.assertRaises(RankingStateError):
            cancelled.cancel()


class TestStrategyParity(unittest.TestCase):
    def test_both_strategies_share_one_driver(self) -> None:
        for factory, result_type in (
            (create_binary_session, BinaryRankingResult),
            (create_elo_session, EloRankingResult),
        ):
            session = factory(ITEMS, Category.GOOD)
            self.assertEqual(session.state, SessionState.COMPARING)
            steps = 0
            while not session.is_complete():
                self.assertIsNotNone(session.current_comparison_target())
                session.submit_comparison(steps % 2 == 0)
                steps += 1
            self.assertEqual(session.progress().current, steps)
            self.assertIsInstance(session.final_result(), result_type)
            self.assertIsInstance(session.side_effect_updates(), list)

    def test_elo_session_uses_elo_pool(self) -> None:
        session = create_elo_session(ITEMS, Category.GOOD)
        self.assertEqual(session.strategy, RankingStrategy.ELO)
        self.assertTrue(all(item.rating > 100 for item in session.pool))
        # The snapshot keeps stored ratings, not converted ones
        self.assertEqual(session.snapshot, {"a": 9.5, "b": 8.8, "c": 7.2})
