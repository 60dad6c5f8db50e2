"""Search engine facade used by the web layer.

``SearchEngine`` bundles the session registry, the recency ledger and the
delivery boundary. Transports register a sink per session id; events for
sessions without a sink are dropped.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

from app.dependencies import RootSecurityError, check_root, logger, resolve_within
from app.recent.ledger import RecencyLedger
from app.recent.models import RecencyEntry
from app.search.manager import SessionManager
from app.search.models import SessionEvent
from app.search.session import SearchOptions, SearchSession

Sink = Callable[[SessionEvent], Awaitable[None]]

# Extra time granted to one-shot searches beyond the search budget for delivery
_ONE_SHOT_GRACE_SECONDS = 2.0


class SearchEngine:
    """Process-wide entry point for fuzzy path search.

    Args:
        options: Search tunables
        ledger: Recency ledger shared by all sessions
    """

    def __init__(self, options: SearchOptions, ledger: RecencyLedger) -> None:
        self.options = options
        self.ledger = ledger
        self.sessions = SessionManager(options, ledger, self.deliver)
        self._sinks: dict[str, Sink] = {}

    # -------------------------------------------------------------------------
    # Delivery boundary
    # -------------------------------------------------------------------------

    def subscribe(self, session_id: str, sink: Sink) -> None:
        """Route events for session_id to sink."""
        self._sinks[session_id] = sink

    def unsubscribe(self, session_id: str) -> None:
        self._sinks.pop(session_id, None)

    async def deliver(self, session_id: str, event: SessionEvent) -> None:
        sink = self._sinks.get(session_id)
        if sink is None:
            logger.debug(
                "delivery_dropped",
                extra={"session_id": session_id, "generation": event.generation},
            )
            return
        await sink(event)

    # -------------------------------------------------------------------------
    # Inbound operations
    # -------------------------------------------------------------------------

    async def submit_query(self, session_id: str, root_path: str | None, query_text: str) -> int:
        """Search query_text under root_path for session_id; results arrive via deliver."""
        session = self.sessions.get_or_create(session_id)
        return await session.submit_query(root_path, query_text)

    def select_recent(self, session_id: str, path: str) -> RecencyEntry:
        """Record that the user picked path.

        Relative paths are taken relative to the session's current root (or
        the base root when the session has none). Absolute paths must lie
        inside the base root.

        Raises:
            RootSecurityError: If the path escapes the base root
        """
        base = self.options.base_root.resolve()
        session = self.sessions.get(session_id)
        if Path(path).is_absolute():
            resolved = Path(path).resolve()
            if not resolved.is_relative_to(base):
                raise RootSecurityError(f"Path traversal detected: {path}")
        else:
            anchor = session.resolved_root if session and session.resolved_root else base
            resolved = resolve_within(anchor, path)
        entry = self.ledger.record_use(str(resolved))
        logger.info(
            "recent_selected",
            extra={"session_id": session_id, "path": entry.path, "use_count": entry.use_count},
        )
        return entry

    def list_recent_paths(self, limit: int = 20) -> list[RecencyEntry]:
        return self.ledger.list_recent(limit)

    async def teardown_session(self, session_id: str) -> None:
        self.unsubscribe(session_id)
        await self.sessions.remove(session_id)

    async def search_once(self, root_path: str | None, query_text: str) -> SessionEvent:
        """Run a single search outside the session registry and return its event.

        Returns:
            SnapshotView with results, or RootErrorView if the root is unusable
        """
        loop = asyncio.get_running_loop()
        result: asyncio.Future[SessionEvent] = loop.create_future()

        async def _capture(_: str, event: SessionEvent) -> None:
            if not result.done():
                result.set_result(event)

        session = SearchSession(f"once-{uuid.uuid4().hex[:8]}", self.options, self.ledger, _capture)
        try:
            await session.submit_query(root_path or "", query_text)
            return await asyncio.wait_for(
                result, self.options.timeout_seconds + _ONE_SHOT_GRACE_SECONDS
            )
        finally:
            await session.teardown()

    def resolve_file(self, root_path: str | None, file_path: str) -> Path:
        """Resolve a downloadable file inside the base root.

        Raises:
            RootSecurityError: If the path escapes the base root
            RootNotFoundError: If the root is not a directory
            FileNotFoundError: If the path is not a regular file
        """
        root = check_root(resolve_within(self.options.base_root, root_path or ""))
        full_path = resolve_within(root, file_path)
        if not full_path.is_file():
            raise FileNotFoundError(f"Not a file or file not found: {file_path}")
        return full_path

    async def shutdown(self) -> None:
        self._sinks.clear()
        await self.sessions.close_all()
        logger.info("engine_shutdown")
