"""FastAPI routes for fuzzy path search and file download."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.responses import FileResponse
from pydantic import ValidationError

from app.dependencies import (
    RootAccessError,
    RootNotFoundError,
    RootSecurityError,
    get_engine,
    logger,
)
from app.search.models import (
    ClientFrame,
    ErrorDetail,
    ErrorResponse,
    RootErrorView,
    SearchResponse,
    SessionEvent,
)
from app.search.service import SearchEngine

router = APIRouter(tags=["search"])

MAX_QUERY_LENGTH = 1024


def _error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error=ErrorDetail(message=message, code=code)).model_dump(),
    )


def _socket_error(message: str, code: str) -> dict[str, str | None]:
    detail = ErrorDetail(message=message, code=code)
    return {"type": "error", **detail.model_dump(exclude={"type"})}


@router.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query(default="", max_length=MAX_QUERY_LENGTH),
    root: str = Query(default=""),
    engine: SearchEngine = Depends(get_engine),
) -> SearchResponse:
    """Run one fuzzy search and return the ranked results.

    Args:
        q: Fuzzy query (empty lists everything)
        root: Directory relative to the base root
        engine: SearchEngine dependency

    Returns:
        Ranked results for the query
    """
    try:
        event = await engine.search_once(root, q)
    except TimeoutError:
        raise _error(status.HTTP_504_GATEWAY_TIMEOUT, "Search timed out", "search_timeout")

    if isinstance(event, RootErrorView):
        raise _error(status.HTTP_404_NOT_FOUND, event.message, "root_unavailable")
    return SearchResponse(
        files=event.entries, total=len(event.entries), query=q, partial=event.partial
    )


@router.get("/download/{file_path:path}")
async def download_file(
    file_path: str,
    root: str = Query(default=""),
    engine: SearchEngine = Depends(get_engine),
) -> FileResponse:
    """Send a file under the base root as an attachment and record its use."""
    try:
        full_path = engine.resolve_file(root, file_path)
    except RootSecurityError as e:
        raise _error(status.HTTP_403_FORBIDDEN, str(e), "path_forbidden")
    except (FileNotFoundError, RootNotFoundError, RootAccessError):
        raise _error(status.HTTP_404_NOT_FOUND, "Not a file or file not found", "file_not_found")

    engine.ledger.record_use(str(full_path))
    logger.info("file_downloaded", extra={"path": str(full_path)})
    return FileResponse(full_path, filename=full_path.name, media_type="application/octet-stream")


@router.websocket("/ws/search")
async def search_socket(
    websocket: WebSocket,
    session_id: str | None = None,
    engine: SearchEngine = Depends(get_engine),
) -> None:
    """Interactive search: query frames in, result snapshots out.

    The first server message is ``{"type": "session", "session_id": ...}``.
    After that the server pushes ``results`` and ``root_error`` events as
    searches complete. Disconnecting tears the session down.
    """
    sid = session_id or uuid.uuid4().hex
    if sid in engine.sessions:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    async def _send(event: SessionEvent) -> None:
        await websocket.send_json(event.model_dump(mode="json"))

    engine.subscribe(sid, _send)
    engine.sessions.get_or_create(sid)
    await websocket.send_json({"type": "session", "session_id": sid})
    logger.info("socket_connected", extra={"session_id": sid})

    try:
        while True:
            message = await websocket.receive_text()
            try:
                # Malformed JSON is reported as a validation error too
                frame = ClientFrame.model_validate_json(message)
            except ValidationError as e:
                await websocket.send_json(_socket_error(str(e), "invalid_frame"))
                continue

            if frame.select is not None:
                try:
                    entry = engine.select_recent(sid, frame.select)
                except RootSecurityError as e:
                    await websocket.send_json(_socket_error(str(e), "path_forbidden"))
                    continue
                await websocket.send_json({"type": "selected", **entry.model_dump(mode="json")})
            else:
                await engine.submit_query(sid, frame.root, frame.query)
    except WebSocketDisconnect:
        logger.info("socket_disconnected", extra={"session_id": sid})
    finally:
        await engine.teardown_session(sid)
