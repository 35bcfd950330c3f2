from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import get_settings
from ..schemas.research import CostSummaryOut, ResearchHistoryOut, ResearchSessionOut
from ..services.errors import StoreNotConfiguredError
from ..services.orchestrator import ResearchOrchestrator
from .routes_research import get_orchestrator

router = APIRouter(tags=["history"])

settings = get_settings()

MAX_HISTORY_LIMIT = 100


def _safe_limit(limit: int | None) -> int:
    # Hard cap to avoid unbounded scans
    return max(1, min(limit or settings.HISTORY_DEFAULT_LIMIT, MAX_HISTORY_LIMIT))


@router.get("/research/history", response_model=ResearchHistoryOut)
def list_research_history(
    limit: int | None = None,
    offset: int = 0,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """
    Most recent research sessions, newest first.
    """
    try:
        sessions = orchestrator.store.list_sessions(limit=_safe_limit(limit), offset=offset)
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return ResearchHistoryOut(
        sessions=[ResearchSessionOut.model_validate(s) for s in sessions]
    )


@router.get("/research/costs", response_model=CostSummaryOut)
def summarize_research_costs(
    limit: int | None = None,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """
    Aggregate token and cost totals over the most recent sessions.
    """
    try:
        sessions = orchestrator.store.list_sessions(limit=_safe_limit(limit))
    except StoreNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))

    total_cost = sum((s.total_cost for s in sessions), Decimal("0"))
    total_tokens = sum(s.total_tokens for s in sessions)
    count = len(sessions)

    return CostSummaryOut(
        total_cost=float(total_cost),
        total_tokens=total_tokens,
        session_count=count,
        avg_cost_per_session=float(total_cost / count) if count else 0.0,
    )
