import math
import unittest

from visitrank.services.binary_ranker import (
    BinaryInsertionSession,
    RankingProgress,
    even_spacing,
    sort_pool,
)
from visitrank.services.category_model import Category, RankedItem, bounds_of
from visitrank.services.ranking_errors import RankingStateError


def make_item(item_id: str, rating: float, category: Category = Category.GOOD) -> RankedItem:
    return RankedItem(
        item_id=item_id,
        name=f"Place {item_id}",
        location="Brooklyn",
        rating=rating,
        category=category,
    )


def run_to_completion(session: BinaryInsertionSession, answers: list[bool]) -> None:
    for answer in answers:
        session.submit(answer)
    assert session.is_complete()


class TestPool(unittest.TestCase):
    def test_sort_pool_filters_category_and_orders_best_first(self) -> None:
        items = [
            make_item("a", 7.2),
            make_item("b", 9.5),
            make_item("c", 5.0, Category.MID),
            make_item("d", 8.8),
        ]
        pool = sort_pool(items, Category.GOOD)
        self.assertEqual([item.item_id for item in pool], ["b", "d", "a"])

    def test_even_spacing(self) -> None:
        slots = even_spacing(4, bounds_of(Category.GOOD))
        for actual, expected in zip(slots, [9.4, 8.8, 8.2, 7.6]):
            self.assertAlmostEqual(actual, expected)
        self.assertEqual(even_spacing(0, bounds_of(Category.GOOD)), [])

    def test_progress_percentage(self) -> None:
        self.assertEqual(RankingProgress(current=0, total=0).percentage, 100.0)
        self.assertEqual(RankingProgress(current=1, total=2).percentage, 50.0)


class TestBinaryInsertion(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [make_item("a", 9.5), make_item("b", 8.8), make_item("c", 7.2)]

    def test_insert_between_neighbors(self) -> None:
        session = BinaryInsertionSession(self.items, Category.GOOD)
        self.assertEqual(session.total_comparisons, 2)
        self.assertEqual(session.current_target().item_id, "b")

        session.submit(True)  # better than 8.8
        self.assertEqual(session.current_target().item_id, "a")
        session.submit(False)  # worse than 9.5

        self.assertTrue(session.is_complete())
        self.assertIsNone(session.current_target())
        self.assertEqual(session.insertion_position, 1)
        self.assertAlmostEqual(session.calculate_simple_rating(), 9.15)

        result = session.final_result()
        self.assertAlmostEqual(result.rating, 9.15)
        self.assertFalse(result.needs_redistribution)
        self.assertIsNone(result.redistributed_ratings)
        self.assertEqual(result.total_items, 3)
        self.assertEqual(session.side_effect_updates(), [])
        self.assertEqual(
            [(r.target_id, r.new_item_better) for r in session.history],
            [("b", True), ("a", False)],
        )

    def test_redistribution_layout_around_position(self) -> None:
        session = BinaryInsertionSession(self.items, Category.GOOD)
        run_to_completion(session, [True, False])

        redistributed = session.redistributed_ratings()
        self.assertEqual([r.item.item_id for r in redistributed], ["a", "b", "c"])
        for entry, expected in zip(redistributed, [9.4, 8.2, 7.6]):
            self.assertAlmostEqual(entry.new_rating, expected)

    def test_progress_window_shrinks(self) -> None:
        session = BinaryInsertionSession(self.items, Category.GOOD)
        self.assertEqual(session.progress().remaining_window, 3)
        session.submit(True)
        progress = session.progress()
        self.assertEqual((progress.current, progress.total), (1, 2))
        self.assertEqual(progress.remaining_window, 1)
        session.submit(False)
        self.assertEqual(session.progress().remaining_window, 0)

    def test_insert_at_bottom_steps_down_from_worst(self) -> None:
        session = BinaryInsertionSession(
            [make_item("a", 9.0), make_item("b", 8.0)], Category.GOOD
        )
        run_to_completion(session, [False])
        self.assertEqual(session.insertion_position, 2)
        result = session.final_result()
        self.assertAlmostEqual(result.rating, 7.5)
        self.assertFalse(result.needs_redistribution)

    def test_insert_at_top_of_mid(self) -> None:
        session = BinaryInsertionSession(
            [make_item("a", 6.0, Category.MID), make_item("b", 5.0, Category.MID)],
            Category.MID,
        )
        run_to_completion(session, [True, True])
        self.assertEqual(session.insertion_position, 0)
        self.assertAlmostEqual(session.calculate_final_rating(), 6.5)

        redistributed = session.redistributed_ratings()
        self.assertAlmostEqual(redistributed[0].new_rating, 5.45)
        self.assertAlmostEqual(redistributed[1].new_rating, 4.725)

    def test_empty_pool_gets_midpoint(self) -> None:
        session = BinaryInsertionSession([], Category.GOOD)
        self.assertTrue(session.is_complete())
        self.assertEqual(session.total_comparisons, 0)
        result = session.final_result()
        self.assertAlmostEqual(result.rating, 8.5)
        self.assertEqual(result.insertion_position, 0)
        self.assertFalse(result.needs_redistribution)
        self.assertEqual(session.side_effect_updates(), [])

    def test_submit_after_complete_raises(self) -> None:
        session = BinaryInsertionSession([make_item("a", 9.0)], Category.GOOD)
        session.submit(True)
        with self.assertRaises(RankingStateError):
            session.submit(False)

    def test_result_before_complete_raises(self) -> None:
        session = BinaryInsertionSession(self.items, Category.GOOD)
        with self.assertRaises(RankingStateError):
            session.final_result()
        with self.assertRaises(RankingStateError):
            _ = session.insertion_position


class TestCollisionRedistribution(unittest.TestCase):
    def test_top_of_range_collision(self) -> None:
        items = [make_item("a", 10.0), make_item("b", 9.99)]
        session = BinaryInsertionSession(items, Category.GOOD)
        run_to_completion(session, [True, True])

        self.assertEqual(session.insertion_position, 0)
        self.assertTrue(session.detect_collision(session.calculate_simple_rating()))

        result = session.final_result()
        self.assertTrue(result.needs_redistribution)
        self.assertAlmostEqual(result.rating, 9.25)

        updates = {u.item_id: u for u in session.side_effect_updates()}
        self.assertEqual(set(updates), {"a", "b"})
        self.assertAlmostEqual(updates["a"].new_rating, 8.5)
        self.assertAlmostEqual(updates["b"].new_rating, 7.75)
        self.assertEqual(updates["a"].old_rating, 10.0)
        self.assertEqual(updates["a"].category, Category.GOOD)

    def test_crowded_top_keeps_order_and_bounds(self) -> None:
        ratings = [9.99 - i * 0.01 for i in range(11)]
        items = [make_item(f"v{i}", r) for i, r in enumerate(ratings)]
        session = BinaryInsertionSession(items, Category.GOOD)
        while not session.is_complete():
            session.submit(True)

        result = session.final_result()
        self.assertEqual(result.insertion_position, 0)
        self.assertTrue(result.needs_redistribution)

        new_ratings = [r.new_rating for r in result.redistributed_ratings]
        self.assertEqual(len(new_ratings), 11)
        # Every moved item is reported, not just the two neighbours
        self.assertEqual(len(session.side_effect_updates()), 11)
        combined = [result.rating] + new_ratings
        bounds = bounds_of(Category.GOOD)
        for higher, lower in zip(combined, combined[1:]):
            self.assertGreater(higher, lower)
            self.assertAlmostEqual(higher - lower, bounds.width / 13)
        self.assertTrue(all(bounds.min < r < bounds.max for r in combined))

    def test_identical_ratings_become_distinct(self) -> None:
        items = [make_item("a", 8.5), make_item("b", 8.5), make_item("c", 8.5)]
        session = BinaryInsertionSession(items, Category.GOOD)
        run_to_completion(session, [True, False])
        result = session.final_result()

        self.assertTrue(result.needs_redistribution)
        combined = sorted(
            [r.new_rating for r in result.redistributed_ratings] + [result.rating],
            reverse=True,
        )
        self.assertEqual(len(set(combined)), 4)
        self.assertAlmostEqual(result.rating, combined[result.insertion_position])


class TestBisectionBound(unittest.TestCase):
    def test_step_count_and_position_for_every_target(self) -> None:
        for n in range(0, 33):
            items = [make_item(f"v{i}", 9.9 - i * 0.05) for i in range(n)]
            bound = math.ceil(math.log2(n + 1))
            for target in range(n + 1):
                session = BinaryInsertionSession(items, Category.GOOD)
                steps = 0
                while not session.is_complete():
                    index = session.current_index
                    session.submit(index >= target)
                    steps += 1
                self.assertEqual(session.insertion_position, target, (n, target))
                self.assertLessEqual(steps, bound, (n, target))
                if n in (3, 7, 15, 31):
                    self.assertEqual(steps, bound, (n, target))
