"""FastAPI routes for recently used paths."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.dependencies import RootSecurityError, get_engine
from app.recent.models import RecencyEntry, SelectRequest
from app.search.models import ErrorDetail, ErrorResponse
from app.search.service import SearchEngine

router = APIRouter(prefix="/recent", tags=["recent"])


@router.get("", response_model=list[RecencyEntry])
async def list_recent(
    limit: int = Query(default=20, ge=1, le=500),
    engine: SearchEngine = Depends(get_engine),
) -> list[RecencyEntry]:
    """Recently used roots and paths, most recent first."""
    return engine.list_recent_paths(limit)


@router.post("/select", response_model=RecencyEntry)
async def select_recent(
    request: SelectRequest,
    engine: SearchEngine = Depends(get_engine),
) -> RecencyEntry:
    """Record that the client picked a path."""
    try:
        return engine.select_recent(request.session_id, request.path)
    except RootSecurityError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ErrorResponse(
                error=ErrorDetail(message=str(e), code="path_forbidden")
            ).model_dump(),
        )
