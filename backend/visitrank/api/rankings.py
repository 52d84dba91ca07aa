"""
Rankings API — /rankings
──────────────────────────
Endpoints:
  GET    /rankings/me                          — Rated visits grouped Good/Mid/Bad
  POST   /rankings/sessions                    — Start a comparison session (201)
  GET    /rankings/sessions/{session_id}        — Session state, progress, next comparison
  POST   /rankings/sessions/{session_id}/category — Choose the category
  POST   /rankings/sessions/{session_id}/compare  — Answer "is the new place better?"
  GET    /rankings/sessions/{session_id}/result   — Final rating + side-effect updates
  POST   /rankings/sessions/{session_id}/apply    — Persist the result
  DELETE /rankings/sessions/{session_id}        — Cancel a session (204)
  POST   /rankings/rebalance                    — Spread a category's ratings evenly
  POST   /rankings/migrate-elo                  — Give legacy ratings Elo scores
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from visitrank.db.models import User
from visitrank.db.session import get_db
from visitrank.deps.auth import get_current_user
from visitrank.deps.sessions import get_session_registry
from visitrank.schemas.rankings import (
    ApplyResultResponse,
    CategoryEnum,
    ComparisonRequest,
    MigrationResponse,
    RankingsByCategoryResponse,
    RebalanceRequest,
    RebalanceResponse,
    SelectCategoryRequest,
    SessionResultResponse,
    SessionStateResponse,
    StartSessionRequest,
    VisitTypeEnum,
)
from visitrank.services.ranking_errors import RankingStateError
from visitrank.services.session_registry import SessionNotFoundError, SessionRegistry
from visitrank.services.visit_ranking_service import (
    StaleSessionError,
    VisitNotFoundError,
    apply_session_result,
    cancel_session,
    describe_result,
    describe_session,
    list_rankings,
    migrate_ratings_to_elo,
    rebalance_category,
    select_category,
    start_session,
    submit_comparison,
)

router = APIRouter()


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def _session_not_found(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_error("SESSION_NOT_FOUND", str(exc)),
    )


def _session_conflict(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=_error("SESSION_STATE", str(exc)),
    )


# ── Rankings ──────────────────────────────────────────────────────────────────


@router.get("/me", response_model=RankingsByCategoryResponse)
def get_my_rankings(
    visit_type: VisitTypeEnum | None = Query(None, description="neighborhood or country"),
    category: CategoryEnum | None = Query(None, description="Filter by category (Good/Mid/Bad)"),
    location: str | None = Query(None, description="Borough, city or continent"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Return the authenticated user's rated visits, best first per category."""
    return list_rankings(
        db,
        current_user.id,
        visit_type=visit_type.value if visit_type else None,
        category=category.value if category else None,
        location=location,
    )


# ── Sessions ──────────────────────────────────────────────────────────────────


@router.post(
    "/sessions",
    response_model=SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_session_endpoint(
    payload: StartSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    """
    Start ranking a place. With a category in the payload the first comparison
    is returned immediately; an empty category completes with no comparisons.
    """
    entry = start_session(db, registry, current_user.id, payload)
    return describe_session(entry)


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
def get_session_endpoint(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    try:
        entry = registry.get(session_id, current_user.id)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc
    return describe_session(entry)


@router.post("/sessions/{session_id}/category", response_model=SessionStateResponse)
def select_category_endpoint(
    session_id: UUID,
    payload: SelectCategoryRequest,
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    try:
        entry = select_category(registry, current_user.id, session_id, payload.category.value)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc
    except RankingStateError as exc:
        raise _session_conflict(exc) from exc
    return describe_session(entry)


@router.post("/sessions/{session_id}/compare", response_model=SessionStateResponse)
def compare_endpoint(
    session_id: UUID,
    payload: ComparisonRequest,
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    """Record one answer and return the next comparison (or completion)."""
    try:
        entry = submit_comparison(registry, current_user.id, session_id, payload.new_item_better)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc
    except RankingStateError as exc:
        raise _session_conflict(exc) from exc
    return describe_session(entry)


@router.get("/sessions/{session_id}/result", response_model=SessionResultResponse)
def get_result_endpoint(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    try:
        entry = registry.get(session_id, current_user.id)
        return describe_result(entry)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc
    except RankingStateError as exc:
        raise _session_conflict(exc) from exc


@router.post("/sessions/{session_id}/apply", response_model=ApplyResultResponse)
def apply_endpoint(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    """
    Save the ranked visit and every side-effect rating update together.

    409 STALE_SESSION means the user's visits changed since the session
    started; start a new session instead of retrying.
    """
    try:
        return apply_session_result(db, registry, current_user.id, session_id)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc
    except RankingStateError as exc:
        raise _session_conflict(exc) from exc
    except StaleSessionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("STALE_SESSION", str(exc)),
        ) from exc
    except VisitNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("STALE_SESSION", str(exc)),
        ) from exc


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_endpoint(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
) -> None:
    """Discard a session. Nothing is persisted."""
    try:
        cancel_session(registry, current_user.id, session_id)
    except SessionNotFoundError as exc:
        raise _session_not_found(exc) from exc


# ── Maintenance ───────────────────────────────────────────────────────────────


@router.post("/rebalance", response_model=RebalanceResponse)
def rebalance_endpoint(
    payload: RebalanceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    affected = rebalance_category(
        db,
        current_user.id,
        payload.category.value,
        visit_type=payload.visit_type.value,
        location=payload.location,
    )
    return {
        "category": payload.category,
        "affected_count": affected,
        "message": f"Rebalanced {affected} visits in {payload.category.value} category",
    }


@router.post("/migrate-elo", response_model=MigrationResponse)
def migrate_elo_endpoint(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Back-fill Elo scores for the user's legacy-rated visits."""
    return migrate_ratings_to_elo(db, current_user.id)
