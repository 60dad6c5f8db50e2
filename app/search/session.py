"""Per-client search sessions.

A session owns one client's query lifecycle. Every ``submit_query`` bumps the
generation, cancels whatever search is still running and starts a new one in
a worker thread. Finished searches post their snapshot into a one-slot
outbox; a pump task hands events to the delivery callback. A slow consumer
therefore holds up at most one pending event, and a newer event always
replaces an undelivered older one.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from app.config import Settings
from app.dependencies import SearchError, SessionClosedError, check_root, logger, resolve_within
from app.recent.ledger import RecencyLedger
from app.search.candidates import CandidateSource, CancelToken
from app.search.models import (
    QueryState,
    RootErrorView,
    SessionEvent,
    SessionState,
    SnapshotView,
)
from app.search.ranker import rank_candidates
from app.search.scorer import Scorer

Deliver = Callable[[str, SessionEvent], Awaitable[None]]


@dataclass(frozen=True)
class SearchOptions:
    """Tunables shared by every session."""

    base_root: Path
    result_limit: int = 100
    timeout_seconds: float = 3.0
    max_depth: int | None = None
    include_directories: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchOptions":
        return cls(
            base_root=settings.search_root,
            result_limit=settings.result_limit,
            timeout_seconds=settings.search_timeout_seconds,
            max_depth=settings.max_depth,
            include_directories=settings.include_directories,
        )


class _LatestSlot:
    """Single-item mailbox where put() overwrites any unread item."""

    def __init__(self) -> None:
        self._item: SessionEvent | None = None
        self._ready = asyncio.Event()

    def put(self, item: SessionEvent) -> None:
        self._item = item
        self._ready.set()

    async def get(self) -> SessionEvent:
        while self._item is None:
            self._ready.clear()
            await self._ready.wait()
        item, self._item = self._item, None
        return item


class SearchSession:
    """Query lifecycle for one client.

    Args:
        session_id: Client session identifier
        options: Search tunables
        ledger: Shared recency ledger (may be None to disable history)
        deliver: Coroutine called with (session_id, event) for each delivered event
    """

    def __init__(
        self,
        session_id: str,
        options: SearchOptions,
        ledger: RecencyLedger | None,
        deliver: Deliver,
    ) -> None:
        self.session_id = session_id
        self.options = options
        self.state = SessionState.IDLE
        self.generation = 0
        self.query: QueryState | None = None
        self.resolved_root: Path | None = None
        self.error: str | None = None
        self.delivered_generation = 0

        self._ledger = ledger
        self._deliver = deliver
        self._outbox = _LatestSlot()
        self._task: asyncio.Task | None = None
        self._token: CancelToken | None = None
        self._pump: asyncio.Task | None = None
        self._reported_root: str | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def searching(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit_query(self, root: str | None, text: str) -> int:
        """Start searching for text under root, superseding any running search.

        Args:
            root: Root relative to the base directory ('' for the base itself),
                or None when the client has not chosen one
            text: Raw query text

        Returns:
            The generation assigned to this query

        Raises:
            SessionClosedError: If the session was torn down
        """
        if self._closed:
            raise SessionClosedError(f"Session closed: {self.session_id}")

        self.generation += 1
        generation = self.generation
        self._cancel_inflight()
        query = QueryState(raw_query=text, root=root, generation=generation)
        self.query = query

        if root is None and not text:
            self.state = SessionState.IDLE
            return generation

        root_key = root or ""
        try:
            resolved = await asyncio.to_thread(self._resolve_root, root_key)
        except SearchError as e:
            if generation == self.generation and not self._closed:
                self._fail_root(root_key, generation, e)
            return generation
        if generation != self.generation or self._closed:
            # Superseded while the root was being checked
            return generation

        self.error = None
        self._reported_root = None
        if resolved != self.resolved_root:
            self.resolved_root = resolved
            if self._ledger is not None:
                self._ledger.record_use(str(resolved))

        token = CancelToken()
        self._token = token
        self.state = SessionState.SEARCHING
        self._task = asyncio.create_task(
            self._search(query, resolved, token),
            name=f"search-{self.session_id}-{generation}",
        )
        self._ensure_pump()
        return generation

    async def wait(self) -> None:
        """Wait until the current search (if any) has finished or been cancelled."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def teardown(self) -> None:
        """Cancel outstanding work and stop delivering events."""
        if self._closed:
            return
        self._closed = True
        pending = [t for t in (self._task, self._pump) if t is not None]
        self._cancel_inflight()
        if self._pump is not None:
            self._pump.cancel()
        self.state = SessionState.IDLE
        await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("session_closed", extra={"session_id": self.session_id})

    def _cancel_inflight(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._task is not None and not self._task.done():
            self.state = SessionState.CANCELLING
            self._task.cancel()
            logger.debug(
                "search_cancelled",
                extra={"session_id": self.session_id, "superseded_by": self.generation},
            )
        self._task = None

    def _resolve_root(self, root_key: str) -> Path:
        return check_root(resolve_within(self.options.base_root, root_key))

    def _fail_root(self, root: str, generation: int, error: SearchError) -> None:
        self.state = SessionState.IDLE
        self.resolved_root = None
        self.error = str(error)
        if self._reported_root == root:
            return
        self._reported_root = root
        logger.warning(
            "root_error",
            extra={"session_id": self.session_id, "root": root, "error": str(error)},
        )
        self._post(RootErrorView(generation=generation, root=root, message=str(error)))

    async def _search(self, query: QueryState, root: Path, token: CancelToken) -> None:
        started = time.monotonic()
        token.deadline = started + self.options.timeout_seconds
        scorer = Scorer(str(root), self._ledger)
        source = CandidateSource(
            root,
            max_depth=self.options.max_depth,
            include_directories=self.options.include_directories,
        )
        text = query.raw_query
        logger.debug(
            "search_started",
            extra={
                "session_id": self.session_id,
                "generation": query.generation,
                "root": str(root),
            },
        )
        try:
            snapshot = await asyncio.to_thread(
                rank_candidates,
                source.iter(token),
                lambda candidate: scorer.score(text, candidate),
                self.options.result_limit,
                query.generation,
                token,
                token.deadline,
            )
        except asyncio.CancelledError:
            token.cancel()
            raise
        except Exception as e:
            logger.error(
                "search_failed",
                extra={
                    "session_id": self.session_id,
                    "generation": query.generation,
                    "error": str(e),
                },
                exc_info=True,
            )
            if query.generation == self.generation:
                self.state = SessionState.IDLE
            return

        if token.cancelled or query.generation != self.generation:
            return
        logger.info(
            "search_completed",
            extra={
                "session_id": self.session_id,
                "generation": query.generation,
                "scanned": snapshot.scanned,
                "results": len(snapshot.entries),
                "partial": snapshot.partial,
                "elapsed_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        self._post(SnapshotView.from_snapshot(snapshot, query))

    def _post(self, event: SessionEvent) -> None:
        self._outbox.put(event)
        self._ensure_pump()

    def _ensure_pump(self) -> None:
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(
                self._pump_events(), name=f"deliver-{self.session_id}"
            )

    async def _pump_events(self) -> None:
        while not self._closed:
            event = await self._outbox.get()
            if event.generation < self.delivered_generation:
                continue
            if isinstance(event, SnapshotView) and event.generation != self.generation:
                continue
            try:
                await self._deliver(self.session_id, event)
            except Exception as e:
                logger.warning(
                    "delivery_failed",
                    extra={
                        "session_id": self.session_id,
                        "generation": event.generation,
                        "error": str(e),
                    },
                )
                continue
            self.delivered_generation = event.generation
            if isinstance(event, SnapshotView) and event.generation == self.generation:
                self.state = SessionState.DELIVERED
