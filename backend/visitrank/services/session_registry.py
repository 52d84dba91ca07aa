"""
In-process registry of live comparison sessions.

Sessions are transient and never written to the database.
The registry only keeps them alive between one HTTP request and the next and
forgets them on apply, cancel, or expiry. One registry instance lives on
app.state; inject it with visitrank.deps.sessions.get_session_registry.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

from visitrank.services.comparison_session import ComparisonSession

log = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a session id is unknown, expired, or owned by someone else."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionEntry:
    """A live session plus what the service needs to persist its result."""

    session_id: UUID
    owner_id: UUID
    session: ComparisonSession
    place_name: str
    visit_type: str
    location: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=_utcnow)


class SessionRegistry:
    def __init__(self, ttl_minutes: int = 1440) -> None:
        self.ttl = timedelta(minutes=ttl_minutes)
        self._entries: dict[UUID, SessionEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(
        self,
        owner_id: UUID,
        session: ComparisonSession,
        *,
        place_name: str,
        visit_type: str,
        location: str | None = None,
        notes: str | None = None,
    ) -> SessionEntry:
        entry = SessionEntry(
            session_id=uuid.uuid4(),
            owner_id=owner_id,
            session=session,
            place_name=place_name,
            visit_type=visit_type,
            location=location,
            notes=notes,
        )
        with self._lock:
            self._purge_locked(entry.created_at)
            self._entries[entry.session_id] = entry
        return entry

    def get(self, session_id: UUID, owner_id: UUID) -> SessionEntry:
        """Return the owner's session or raise SessionNotFoundError."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is not None and self._expired(entry, _utcnow()):
                del self._entries[session_id]
                entry = None
        if entry is None or entry.owner_id != owner_id:
            raise SessionNotFoundError(f"Comparison session {session_id} not found")
        return entry

    def discard(self, session_id: UUID) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def purge_expired(self, now: datetime | None = None) -> int:
        with self._lock:
            return self._purge_locked(now or _utcnow())

    def _expired(self, entry: SessionEntry, now: datetime) -> bool:
        return now - entry.created_at > self.ttl

    def _purge_locked(self, now: datetime) -> int:
        expired = [sid for sid, entry in self._entries.items() if self._expired(entry, now)]
        for sid in expired:
            del self._entries[sid]
        if expired:
            log.info("Purged %d expired comparison sessions", len(expired))
        return len(expired)
