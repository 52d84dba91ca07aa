import unittest
import uuid
from datetime import timedelta

from visitrank.services.comparison_session import ComparisonSession, RankingStrategy
from visitrank.services.session_registry import SessionNotFoundError, SessionRegistry


def new_session() -> ComparisonSession:
    return ComparisonSession(RankingStrategy.BINARY, [])


class TestSessionRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = SessionRegistry(ttl_minutes=30)
        self.owner = uuid.uuid4()

    def test_add_and_get(self) -> None:
        entry = self.registry.add(
            self.owner, new_session(),
            place_name="Astoria", visit_type="neighborhood", location="Queens",
        )
        self.assertEqual(len(self.registry), 1)
        fetched = self.registry.get(entry.session_id, self.owner)
        self.assertIs(fetched, entry)
        self.assertEqual(fetched.location, "Queens")

    def test_other_owner_cannot_see_session(self) -> None:
        entry = self.registry.add(
            self.owner, new_session(), place_name="Japan", visit_type="country",
        )
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(entry.session_id, uuid.uuid4())

    def test_unknown_session(self) -> None:
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(uuid.uuid4(), self.owner)

    def test_discard(self) -> None:
        entry = self.registry.add(
            self.owner, new_session(), place_name="Japan", visit_type="country",
        )
        self.assertTrue(self.registry.discard(entry.session_id))
        self.assertFalse(self.registry.discard(entry.session_id))
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(entry.session_id, self.owner)

    def test_expired_sessions_are_purged(self) -> None:
        entry = self.registry.add(
            self.owner, new_session(), place_name="Japan", visit_type="country",
        )
        later = entry.created_at + timedelta(minutes=31)
        self.assertEqual(self.registry.purge_expired(now=later), 1)
        self.assertEqual(len(self.registry), 0)

    def test_expired_session_is_not_returned(self) -> None:
        entry = self.registry.add(
            self.owner, new_session(), place_name="Japan", visit_type="country",
        )
        entry.created_at -= timedelta(minutes=31)
        with self.assertRaises(SessionNotFoundError):
            self.registry.get(entry.session_id, self.owner)
        self.assertEqual(len(self.registry), 0)
