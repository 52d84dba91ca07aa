"""
Visit ranking business logic — comparison sessions, applying their results,
ranked listings, category rebalance, and Elo migration.

The ranking engine (comparison_session and friends) never touches the DB.
This module is its item store: it loads the comparison pool, and applies a
finished session's rating plus every side-effect update in one transaction.

Reconciliation: a session only knows the snapshot it was started with. Before
applying, the live pool is re-read with SELECT ... FOR UPDATE and compared to
that snapshot; any drift raises StaleSessionError and the caller restarts.
"""
import logging
import math
from uuid import UUID

from sqlalchemy import case
from sqlalchemy.orm import Session

from visitrank.core.config import settings
from visitrank.db.models import CategoryEnum, RatingTypeEnum, Visit, VisitTypeEnum
from visitrank.schemas.rankings import StartSessionRequest
from visitrank.services.binary_ranker import BinaryRankingResult, even_spacing
from visitrank.services.category_model import (
    Category,
    RankedItem,
    RatingScale,
    RatingUpdate,
    bounds_of,
)
from visitrank.services.comparison_session import (
    ComparisonSession,
    RankingStrategy,
)
from visitrank.services.elo_ranker import (
    LEGACY_RATING_CEILING,
    convert_elo_to_display_rating,
    convert_legacy_rating_to_elo,
)
from visitrank.services.session_registry import SessionEntry, SessionRegistry

log = logging.getLogger(__name__)

# Adjacent ratings closer than this mean the category has run out of room.
REBALANCE_GAP_THRESHOLD = 1e-4

# Snapshot ratings are compared with this tolerance.
SNAPSHOT_TOLERANCE = 1e-9


class StaleSessionError(Exception):
    """Raised when the live visits no longer match a session's snapshot."""


class VisitNotFoundError(Exception):
    """Raised when a visit referenced by an update does not exist for the user."""


# ── Helpers ──────────────────────────────────────────────────────────────────


def category_sort_case():
    """SQLAlchemy CASE expression to order categories: Good=1, Mid=2, Bad=3."""
    return case(
        (Visit.category == CategoryEnum.GOOD, 1),
        (Visit.category == CategoryEnum.MID, 2),
        (Visit.category == CategoryEnum.BAD, 3),
        else_=4,
    )


def _enum_value(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def visit_to_ranked_item(visit: Visit, strategy: RankingStrategy) -> RankedItem:
    """
    Project a visit into the engine's RankedItem.

    Elo sessions use elo_rating when present and otherwise the display
    rating, which the Elo engine converts itself.
    """
    rating = visit.rating
    if strategy == RankingStrategy.ELO and visit.elo_rating is not None:
        rating = visit.elo_rating
    return RankedItem(
        item_id=str(visit.id),
        name=visit.place_name,
        location=visit.location or "",
        rating=float(rating),
        category=Category(_enum_value(visit.category)),
    )


def _scope_query(
    db: Session,
    user_id: UUID,
    visit_type: str,
    location: str | None,
):
    """Rated visits that compete with each other: same user, type, and area."""
    query = db.query(Visit).filter(
        Visit.user_id == user_id,
        Visit.visit_type == VisitTypeEnum(visit_type),
        Visit.rating.isnot(None),
        Visit.category.isnot(None),
    )
    # Countries compete worldwide; neighborhoods only within their borough/city
    if VisitTypeEnum(visit_type) == VisitTypeEnum.NEIGHBORHOOD and location:
        query = query.filter(Visit.location == location)
    return query


def load_pool(
    db: Session,
    user_id: UUID,
    *,
    visit_type: str,
    location: str | None,
    strategy: RankingStrategy,
    exclude_place: str | None = None,
    category: Category | None = None,
    lock: bool = False,
) -> list[RankedItem]:
    """
    Return the comparison pool for a new visit, best first.

    The place being ranked is excluded so re-ranking never compares a place
    against itself.
    """
    query = _scope_query(db, user_id, visit_type, location)
    if exclude_place is not None:
        query = query.filter(Visit.place_name != exclude_place)
    if category is not None:
        query = query.filter(Visit.category == CategoryEnum(category.value))
    if lock:
        query = query.with_for_update()
    visits = query.order_by(Visit.rating.desc()).all()
    return [visit_to_ranked_item(visit, strategy) for visit in visits]


def check_snapshot(snapshot: dict[str, float], live_pool: list[RankedItem]) -> None:
    """Raise StaleSessionError unless *live_pool* still matches *snapshot*."""
    live = {item.item_id: item.rating for item in live_pool}
    if live.keys() != snapshot.keys():
        added = len(live.keys() - snapshot.keys())
        removed = len(snapshot.keys() - live.keys())
        raise StaleSessionError(
            f"Category changed since the session started ({added} added, {removed} removed)"
        )
    for item_id, rating in snapshot.items():
        if abs(live[item_id] - rating) > SNAPSHOT_TOLERANCE:
            raise StaleSessionError(f"Visit {item_id} was re-rated since the session started")


# ── Session state payloads ───────────────────────────────────────────────────


def describe_session(entry: SessionEntry) -> dict:
    """Build a dict matching SessionStateResponse."""
    session = entry.session
    progress = session.progress()
    target = session.current_comparison_target()
    return {
        "session_id": entry.session_id,
        "strategy": session.strategy.value,
        "state": session.state.value,
        "category": session.category.value if session.category else None,
        "place_name": entry.place_name,
        "is_complete": session.is_complete(),
        "progress": {
            "current": progress.current,
            "total": progress.total,
            "percentage": progress.percentage,
            "remaining_window": progress.remaining_window,
        },
        "current_target": (
            {
                "item_id": target.item_id,
                "name": target.name,
                "location": target.location,
                "rating": target.rating,
                "category": Category(target.category).value,
            }
            if target is not None
            else None
        ),
    }


def _update_payload(update: RatingUpdate) -> dict:
    return {
        "item_id": update.item_id,
        "old_rating": update.old_rating,
        "new_rating": update.new_rating,
        "category": Category(update.category).value,
    }


def describe_result(entry: SessionEntry) -> dict:
    """Build a dict matching SessionResultResponse. Raises before completion."""
    session = entry.session
    result = session.final_result()
    updates = [_update_payload(update) for update in session.side_effect_updates()]

    if isinstance(result, BinaryRankingResult):
        return {
            "session_id": entry.session_id,
            "strategy": session.strategy.value,
            "category": result.category.value,
            "rating": result.rating,
            "insertion_position": result.insertion_position,
            "total_items": result.total_items,
            "needs_redistribution": result.needs_redistribution,
            "redistributed_ratings": (
                [
                    {
                        "item_id": moved.item.item_id,
                        "name": moved.item.name,
                        "old_rating": moved.item.rating,
                        "new_rating": moved.new_rating,
                    }
                    for moved in result.redistributed_ratings
                ]
                if result.redistributed_ratings is not None
                else None
            ),
            "updates": updates,
        }

    return {
        "session_id": entry.session_id,
        "strategy": session.strategy.value,
        "category": result.category.value,
        "rating": result.display_rating,
        "elo_rating": result.elo_rating,
        "updates": updates,
    }


# ── Session lifecycle ────────────────────────────────────────────────────────


def start_session(
    db: Session,
    registry: SessionRegistry,
    user_id: UUID,
    payload: StartSessionRequest,
) -> SessionEntry:
    """
    Snapshot the user's pool and open a comparison session.

    With a category in the payload the session skips straight to comparing
    (or to its result when that category is empty).
    """
    strategy = RankingStrategy(
        payload.strategy.value if payload.strategy else settings.DEFAULT_RANKING_STRATEGY
    )
    visit_type = payload.visit_type.value
    pool = load_pool(
        db,
        user_id,
        visit_type=visit_type,
        location=payload.location,
        strategy=strategy,
        exclude_place=payload.place_name,
    )
    session = ComparisonSession(strategy, pool)
    if payload.category is not None:
        session.select_category(payload.category.value)

    entry = registry.add(
        user_id,
        session,
        place_name=payload.place_name,
        visit_type=visit_type,
        location=payload.location,
        notes=payload.notes,
    )
    log.info(
        "Started %s session %s for user %s (%s, %d visits in scope)",
        strategy.value, entry.session_id, user_id, payload.place_name, len(pool),
    )
    return entry


def select_category(
    registry: SessionRegistry,
    user_id: UUID,
    session_id: UUID,
    category: str,
) -> SessionEntry:
    entry = registry.get(session_id, user_id)
    entry.session.select_category(category)
    return entry


def submit_comparison(
    registry: SessionRegistry,
    user_id: UUID,
    session_id: UUID,
    new_item_better: bool,
) -> SessionEntry:
    entry = registry.get(session_id, user_id)
    entry.session.submit_comparison(new_item_better)
    return entry


def cancel_session(registry: SessionRegistry, user_id: UUID, session_id: UUID) -> None:
    """Discard a session. Unfinished sessions are cancelled first."""
    entry = registry.get(session_id, user_id)
    if not entry.session.is_complete():
        entry.session.cancel()
    registry.discard(session_id)
    log.info("Cancelled session %s for user %s", session_id, user_id)


# ── Apply ────────────────────────────────────────────────────────────────────


def _find_or_create_visit(db: Session, user_id: UUID, entry: SessionEntry) -> Visit:
    location = entry.location or ""
    visit = (
        db.query(Visit)
        .filter(
            Visit.user_id == user_id,
            Visit.visit_type == VisitTypeEnum(entry.visit_type),
            Visit.place_name == entry.place_name,
            Visit.location == location,
        )
        .with_for_update()
        .first()
    )
    if visit is None:
        visit = Visit(
            user_id=user_id,
            visit_type=VisitTypeEnum(entry.visit_type),
            place_name=entry.place_name,
            location=location,
            visited=True,
        )
        db.add(visit)
    if entry.notes is not None:
        visit.notes = entry.notes
    return visit


def _apply_updates(
    db: Session,
    user_id: UUID,
    updates: list[RatingUpdate],
    strategy: RankingStrategy,
) -> int:
    if not updates:
        return 0
    ids = [UUID(update.item_id) for update in updates]
    rows = {
        str(visit.id): visit
        for visit in db.query(Visit).filter(Visit.user_id == user_id, Visit.id.in_(ids)).all()
    }
    for update in updates:
        visit = rows.get(update.item_id)
        if visit is None:
            raise VisitNotFoundError(f"Visit {update.item_id} not found for this user")
        if strategy == RankingStrategy.ELO:
            visit.elo_rating = int(update.new_rating)
            visit.rating = convert_elo_to_display_rating(update.new_rating, update.category)
            visit.rating_type = RatingTypeEnum.ELO
        else:
            # A binary move re-rates the visit on the pairwise scale; an old
            # Elo score would contradict it.
            visit.rating = update.new_rating
            visit.elo_rating = None
            visit.rating_type = RatingTypeEnum.PAIRWISE
    return len(updates)


def apply_session_result(
    db: Session,
    registry: SessionRegistry,
    user_id: UUID,
    session_id: UUID,
) -> dict:
    """
    Persist a finished session: the ranked visit plus every side-effect update,
    in one transaction, after checking the snapshot is still current.

    Transaction flow:
      1. Lock the live pool rows for the session's category (FOR UPDATE)
      2. Compare them against the session snapshot
      3. Upsert the ranked visit and apply the updates
      4. COMMIT, then drop the session from the registry
    """
    entry = registry.get(session_id, user_id)
    session = entry.session
    result = session.final_result()
    updates = session.side_effect_updates()

    live_pool = load_pool(
        db,
        user_id,
        visit_type=entry.visit_type,
        location=entry.location,
        strategy=session.strategy,
        exclude_place=entry.place_name,
        category=session.category,
        lock=True,
    )
    try:
        check_snapshot(session.snapshot, live_pool)
    except StaleSessionError:
        db.rollback()
        registry.discard(session_id)
        raise

    visit = _find_or_create_visit(db, user_id, entry)
    visit.category = CategoryEnum(result.category.value)
    if isinstance(result, BinaryRankingResult):
        visit.rating = result.rating
        visit.elo_rating = None
        visit.rating_type = RatingTypeEnum.PAIRWISE
    else:
        visit.rating = result.display_rating
        visit.elo_rating = result.elo_rating
        visit.rating_type = RatingTypeEnum.ELO

    try:
        applied = _apply_updates(db, user_id, updates, session.strategy)
    except VisitNotFoundError:
        db.rollback()
        raise

    db.commit()
    db.refresh(visit)
    registry.discard(session_id)
    log.info(
        "Applied session %s: %s rated %.3f (%s), %d side-effect updates",
        session_id, visit.place_name, visit.rating, result.category.value, applied,
    )

    return {
        "visit_id": visit.id,
        "place_name": visit.place_name,
        "category": result.category.value,
        "rating": visit.rating,
        "elo_rating": visit.elo_rating,
        "rating_type": _enum_value(visit.rating_type),
        "applied_updates": applied,
    }


# ── Read operations ──────────────────────────────────────────────────────────


def list_rankings(
    db: Session,
    user_id: UUID,
    *,
    visit_type: str | None = None,
    category: str | None = None,
    location: str | None = None,
) -> dict[str, list[Visit]]:
    """
    Return the user's rated visits grouped Good / Mid / Bad, best first
    within each category.
    """
    query = db.query(Visit).filter(
        Visit.user_id == user_id,
        Visit.rating.isnot(None),
        Visit.category.isnot(None),
    )
    if visit_type is not None:
        query = query.filter(Visit.visit_type == VisitTypeEnum(visit_type))
    if category is not None:
        query = query.filter(Visit.category == CategoryEnum(category))
    if location is not None:
        query = query.filter(Visit.location == location)

    visits = query.order_by(category_sort_case(), Visit.rating.desc()).all()

    grouped: dict[str, list[Visit]] = {c.value: [] for c in CategoryEnum}
    for visit in visits:
        grouped[_enum_value(visit.category)].append(visit)
    return grouped


# ── Rebalance ────────────────────────────────────────────────────────────────


def rebalance_needed(ratings: list[float]) -> bool:
    """True when any two adjacent ratings (best first) are nearly equal."""
    ordered = sorted(ratings, reverse=True)
    return any(
        abs(ordered[i] - ordered[i + 1]) < REBALANCE_GAP_THRESHOLD
        for i in range(len(ordered) - 1)
    )


def plan_rebalance(visits: list[Visit], category: str) -> list[tuple[float, int | None]]:
    """
    Evenly spaced (rating, elo_rating) pairs for *visits*, which arrive best
    first.

    A category of pairwise visits only is spaced on the LEGACY scale. Once any
    visit carries an Elo score the whole category is spaced in Elo space and
    every visit gets an Elo score plus its display rating, so a single scale
    orders them all.
    """
    if all(visit.elo_rating is None for visit in visits):
        slots = even_spacing(len(visits), bounds_of(category, RatingScale.LEGACY))
        return [(rating, None) for rating in slots]

    planned = []
    for slot in even_spacing(len(visits), bounds_of(category, RatingScale.ELO)):
        # Slots are at least one point apart for any realistic category size,
        # so flooring keeps them distinct.
        elo = math.floor(slot)
        planned.append((convert_elo_to_display_rating(elo, category), elo))
    return planned


def rebalance_category(
    db: Session,
    user_id: UUID,
    category: str,
    *,
    visit_type: str,
    location: str | None = None,
) -> int:
    """
    Spread one category's ratings evenly across its interval, keeping order.

    See plan_rebalance() for which scale is used. Returns the number of
    visits in the category.
    """
    visits = (
        _scope_query(db, user_id, visit_type, location)
        .filter(Visit.category == CategoryEnum(category))
        .order_by(Visit.rating.desc(), Visit.created_at.asc())
        .with_for_update()
        .all()
    )
    if len(visits) <= 1:
        return len(visits)

    for visit, (rating, elo_rating) in zip(visits, plan_rebalance(visits, category)):
        visit.rating = rating
        if elo_rating is not None:
            visit.elo_rating = elo_rating
            visit.rating_type = RatingTypeEnum.ELO

    db.commit()
    log.info("Rebalanced %d %s visits for user %s", len(visits), category, user_id)
    return len(visits)


# ── Migration ────────────────────────────────────────────────────────────────


def migrate_visit_to_elo(visit: Visit) -> bool:
    """
    Give a legacy visit an Elo score. Returns False when nothing changed.

    Ratings above LEGACY_RATING_CEILING were written into the rating column
    as raw Elo scores; they move to elo_rating and rating gets the display
    value rounded to one decimal.
    """
    if visit.rating is None or visit.category is None:
        return False
    category = _enum_value(visit.category)

    if visit.rating > LEGACY_RATING_CEILING:
        visit.elo_rating = int(round(visit.rating))
        visit.rating = round(convert_elo_to_display_rating(visit.elo_rating, category), 1)
    elif visit.elo_rating is None:
        visit.elo_rating = convert_legacy_rating_to_elo(visit.rating, category)
    else:
        return False

    visit.rating_type = RatingTypeEnum.ELO
    return True


def migrate_ratings_to_elo(db: Session, user_id: UUID) -> dict:
    """Back-fill elo_rating for every rated visit the user owns."""
    visits = (
        db.query(Visit)
        .filter(
            Visit.user_id == user_id,
            Visit.rating.isnot(None),
            Visit.category.isnot(None),
        )
        .with_for_update()
        .all()
    )
    migrated = 0
    skipped = 0
    for visit in visits:
        if migrate_visit_to_elo(visit):
            migrated += 1
        else:
            skipped += 1

    db.commit()
    log.info("Migrated %d visits to Elo for user %s (%d skipped)", migrated, user_id, skipped)
    return {"migrated": migrated, "skipped": skipped}
