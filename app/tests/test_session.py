"""Tests for search sessions, the session manager and the engine facade."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from app.dependencies import RootSecurityError, SessionClosedError
from app.recent.ledger import RecencyLedger
from app.search.models import RootErrorView, SessionState, SnapshotView
from app.search.service import SearchEngine
from app.search.session import SearchOptions, SearchSession
from app.tests.conftest import EventCollector


@pytest_asyncio.fixture
async def session(
    options: SearchOptions, ledger: RecencyLedger, collector: EventCollector
) -> AsyncIterator[SearchSession]:
    search_session = SearchSession("s1", options, ledger, collector)
    yield search_session
    await search_session.teardown()


# =============================================================================
# End-to-end Scenarios
# =============================================================================


class TestSearchScenarios:
    """End-to-end search behaviour over a small tree."""

    @pytest.mark.asyncio
    async def test_fuzzy_query(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test 'mrs' finds src/main.rs and excludes non-matches."""
        generation = await session.submit_query("", "mrs")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert [e.path for e in event.entries] == ["src/main.rs"]
        assert event.entries[0].matched_indices == [4, 9, 10]
        assert event.entries[0].name == "main.rs"

    @pytest.mark.asyncio
    async def test_empty_query_browses(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test an empty query lists every file ordered by length."""
        generation = await session.submit_query("", "")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert [e.path for e in event.entries] == ["README.md", "src/lib.rs", "src/main.rs"]

    @pytest.mark.asyncio
    async def test_edit_before_completion(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test only the latest query's snapshot is delivered."""
        await session.submit_query("", "ab")
        generation = await session.submit_query("", "abc")
        event = await collector.wait_for(generation)
        await asyncio.sleep(0.05)

        assert collector.generations == [generation]
        assert isinstance(event, SnapshotView)
        assert event.query == "abc"

    @pytest.mark.asyncio
    async def test_missing_root(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test a missing root delivers one root error and no snapshot."""
        generation = await session.submit_query("missing", "a")
        event = await collector.wait_for(generation)
        await asyncio.sleep(0.05)

        assert isinstance(event, RootErrorView)
        assert event.root == "missing"
        assert len(collector.events) == 1
        assert session.state == SessionState.IDLE
        assert session.error is not None

    @pytest.mark.asyncio
    async def test_subdirectory_root(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test searching a subdirectory yields paths relative to it."""
        generation = await session.submit_query("src", "")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert [e.path for e in event.entries] == ["lib.rs", "main.rs"]


# =============================================================================
# Session Lifecycle
# =============================================================================


class TestSearchSession:
    """Tests for generation handling, cancellation and delivery."""

    @pytest.mark.asyncio
    async def test_generation_increments(self, session: SearchSession) -> None:
        """Test every submit gets a new generation."""
        assert await session.submit_query("", "a") == 1
        assert await session.submit_query("", "ab") == 2
        await session.teardown()

    @pytest.mark.asyncio
    async def test_idle_without_root_or_query(self, session: SearchSession) -> None:
        """Test no search starts without a root and a query."""
        await session.submit_query(None, "")

        assert session.state == SessionState.IDLE
        assert session.searching is False

    @pytest.mark.asyncio
    async def test_single_active_search(self, session: SearchSession) -> None:
        """Test a new query cancels the previous search task."""
        await session.submit_query("", "a")
        first = session._task
        await session.submit_query("", "ab")
        await asyncio.sleep(0)

        assert first is not None and first.cancelled()
        await session.teardown()

    @pytest.mark.asyncio
    async def test_rapid_edits_deliver_monotonically(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test deliveries never go backwards in generation."""
        generation = 0
        for text in ["s", "sr", "src", "src/", "src/m"]:
            generation = await session.submit_query("", text)
            await asyncio.sleep(0.001)
        await collector.wait_for(generation)
        await asyncio.sleep(0.05)

        assert collector.generations == sorted(collector.generations)
        assert collector.generations[-1] == generation
        assert session.state == SessionState.DELIVERED

    @pytest.mark.asyncio
    async def test_root_error_reported_once(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test repeated queries on the same bad root do not re-report."""
        await session.submit_query("missing", "a")
        await session.submit_query("missing", "ab")
        await collector.wait_for(1)
        await asyncio.sleep(0.05)

        assert len(collector.events) == 1

    @pytest.mark.asyncio
    async def test_root_error_cleared_by_new_root(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test choosing a valid root clears the error flag."""
        await session.submit_query("missing", "a")
        await collector.wait_for(1)
        generation = await session.submit_query("", "a")
        await collector.wait_for(generation)

        assert session.error is None
        assert isinstance(collector.events[-1][1], SnapshotView)

    @pytest.mark.asyncio
    async def test_traversal_root_rejected(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test a root escaping the base root is a root error."""
        generation = await session.submit_query("../..", "a")
        event = await collector.wait_for(generation)

        assert isinstance(event, RootErrorView)
        assert "traversal" in event.message.lower()

    @pytest.mark.asyncio
    async def test_root_use_recorded_once(
        self, session: SearchSession, ledger: RecencyLedger, file_tree: Path
    ) -> None:
        """Test the root is recorded on first use, not on every keystroke."""
        await session.submit_query("", "a")
        await session.submit_query("", "ab")
        await session.wait()

        entry = ledger.get(str(file_tree.resolve()))
        assert entry is not None
        assert entry.use_count == 1
        await session.teardown()

    @pytest.mark.asyncio
    async def test_timeout_returns_partial(
        self, file_tree: Path, ledger: RecencyLedger, collector: EventCollector
    ) -> None:
        """Test an exhausted time budget delivers a partial snapshot."""
        options = SearchOptions(base_root=file_tree, timeout_seconds=1e-9)
        session = SearchSession("slow", options, ledger, collector)
        generation = await session.submit_query("", "")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert event.partial is True
        await session.teardown()

    @pytest.mark.asyncio
    async def test_timeout_without_candidates(
        self, tmp_path: Path, collector: EventCollector
    ) -> None:
        """Test the time budget applies while walking directories with no files."""
        for i in range(50):
            (tmp_path / f"d{i}" / "a" / "b").mkdir(parents=True)
        options = SearchOptions(base_root=tmp_path, timeout_seconds=1e-9)
        session = SearchSession("empty-dirs", options, None, collector)
        generation = await session.submit_query("", "zz")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert event.partial is True
        assert event.entries == []
        await session.teardown()

    @pytest.mark.asyncio
    async def test_concurrent_submits_deliver_latest(
        self,
        session: SearchSession,
        ledger: RecencyLedger,
        collector: EventCollector,
        file_tree: Path,
    ) -> None:
        """Test queries submitted together only deliver the newest generation."""
        generations = await asyncio.gather(
            session.submit_query("missing", "a"),
            session.submit_query("", "ma"),
            session.submit_query("", "lib"),
        )
        event = await collector.wait_for(generations[-1])
        await session.wait()

        assert generations == [1, 2, 3]
        assert collector.generations == [3]
        assert isinstance(event, SnapshotView)
        assert [e.path for e in event.entries] == ["src/lib.rs"]
        entry = ledger.get(str(file_tree.resolve()))
        assert entry is not None and entry.use_count == 1

    @pytest.mark.asyncio
    async def test_result_limit(self, file_tree: Path, collector: EventCollector) -> None:
        """Test snapshots hold at most K entries."""
        for i in range(30):
            (file_tree / f"extra{i}.txt").write_text("x")
        options = SearchOptions(base_root=file_tree, result_limit=5)
        session = SearchSession("k", options, None, collector)
        generation = await session.submit_query("", "")
        event = await collector.wait_for(generation)

        assert isinstance(event, SnapshotView)
        assert len(event.entries) == 5
        await session.teardown()

    @pytest.mark.asyncio
    async def test_slow_consumer_keeps_latest_only(
        self, options: SearchOptions, ledger: RecencyLedger
    ) -> None:
        """Test a blocked consumer skips superseded snapshots."""
        delivered: list[int] = []
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_deliver(_: str, event: SnapshotView | RootErrorView) -> None:
            entered.set()
            await release.wait()
            delivered.append(event.generation)

        session = SearchSession("slow-consumer", options, ledger, slow_deliver)
        await session.submit_query("", "a")
        await asyncio.wait_for(entered.wait(), 5)
        await session.submit_query("", "r")
        await session.wait()
        last = await session.submit_query("", "s")
        await session.wait()
        release.set()

        for _ in range(100):
            if last in delivered:
                break
            await asyncio.sleep(0.01)
        assert delivered == [1, last]
        await session.teardown()

    @pytest.mark.asyncio
    async def test_teardown_discards_work(
        self, session: SearchSession, collector: EventCollector
    ) -> None:
        """Test no snapshot is delivered after teardown."""
        await session.submit_query("", "a")
        await session.teardown()
        await asyncio.sleep(0.05)

        assert collector.events == []
        assert session.closed is True
        with pytest.raises(SessionClosedError):
            await session.submit_query("", "a")

    @pytest.mark.asyncio
    async def test_delivery_failure_not_fatal(self, options: SearchOptions) -> None:
        """Test a failing consumer does not break later deliveries."""
        delivered: list[int] = []

        async def flaky(_: str, event: SnapshotView | RootErrorView) -> None:
            if event.generation == 1:
                raise ConnectionError("client went away")
            delivered.append(event.generation)

        session = SearchSession("flaky", options, None, flaky)
        await session.submit_query("", "a")
        await session.wait()
        await asyncio.sleep(0.05)
        await session.submit_query("", "r")

        for _ in range(100):
            if delivered:
                break
            await asyncio.sleep(0.01)
        assert delivered == [2]
        await session.teardown()


# =============================================================================
# Manager and Engine
# =============================================================================


class TestSessionManager:
    """Tests for the session registry."""

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, engine: SearchEngine) -> None:
        """Test one session object per id."""
        first = engine.sessions.get_or_create("abc")
        second = engine.sessions.get_or_create("abc")

        assert first is second
        assert len(engine.sessions) == 1

    @pytest.mark.asyncio
    async def test_remove_tears_down(self, engine: SearchEngine) -> None:
        """Test removal closes the session and forgets it."""
        session = engine.sessions.get_or_create("abc")

        assert await engine.sessions.remove("abc") is True
        assert session.closed is True
        assert "abc" not in engine.sessions
        assert await engine.sessions.remove("abc") is False

    @pytest.mark.asyncio
    async def test_close_all(self, engine: SearchEngine) -> None:
        """Test shutdown closes every session."""
        sessions = [engine.sessions.get_or_create(sid) for sid in ["a", "b"]]
        await engine.shutdown()

        assert all(s.closed for s in sessions)
        assert len(engine.sessions) == 0


class TestSearchEngine:
    """Tests for the engine facade."""

    @pytest.mark.asyncio
    async def test_submit_delivers_to_subscriber(self, engine: SearchEngine) -> None:
        """Test events reach the sink registered for the session."""
        received: list[SnapshotView | RootErrorView] = []
        done = asyncio.Event()

        async def sink(event: SnapshotView | RootErrorView) -> None:
            received.append(event)
            done.set()

        engine.subscribe("client", sink)
        await engine.submit_query("client", "", "lib")
        await asyncio.wait_for(done.wait(), 5)

        assert isinstance(received[0], SnapshotView)
        assert [e.path for e in received[0].entries] == ["src/lib.rs"]
        await engine.teardown_session("client")
        assert "client" not in engine.sessions

    @pytest.mark.asyncio
    async def test_search_once(self, engine: SearchEngine) -> None:
        """Test one-shot search returns the snapshot directly."""
        event = await engine.search_once("", "mrs")

        assert isinstance(event, SnapshotView)
        assert [e.path for e in event.entries] == ["src/main.rs"]
        assert len(engine.sessions) == 0

    @pytest.mark.asyncio
    async def test_search_once_missing_root(self, engine: SearchEngine) -> None:
        """Test one-shot search reports unusable roots."""
        event = await engine.search_once("missing", "a")

        assert isinstance(event, RootErrorView)

    @pytest.mark.asyncio
    async def test_selection_boosts_browse_order(self, engine: SearchEngine) -> None:
        """Test a selected file moves to the top of browse results."""
        engine.select_recent("client", "src/main.rs")
        event = await engine.search_once("", "")

        assert isinstance(event, SnapshotView)
        assert event.entries[0].path == "src/main.rs"

    def test_select_recent_counts(self, engine: SearchEngine, file_tree: Path) -> None:
        """Test selecting a path twice counts two uses."""
        engine.select_recent("client", "README.md")
        entry = engine.select_recent("client", "README.md")

        assert entry.path == str(file_tree.resolve() / "README.md")
        assert entry.use_count == 2
        assert engine.list_recent_paths(1) == [entry]

    def test_select_recent_rejects_outside_paths(self, engine: SearchEngine) -> None:
        """Test selections outside the base root are refused."""
        with pytest.raises(RootSecurityError):
            engine.select_recent("client", "/etc/passwd")
        with pytest.raises(RootSecurityError):
            engine.select_recent("client", "../../etc/passwd")

    def test_resolve_file(self, engine: SearchEngine, file_tree: Path) -> None:
        """Test file resolution inside and outside the root."""
        assert engine.resolve_file("", "src/main.rs") == (file_tree / "src" / "main.rs").resolve()
        assert engine.resolve_file("src", "lib.rs") == (file_tree / "src" / "lib.rs").resolve()
        with pytest.raises(FileNotFoundError):
            engine.resolve_file("", "src")
        with pytest.raises(RootSecurityError):
            engine.resolve_file("", "../outside.txt")
