"""Shared pytest fixtures."""

import asyncio
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before importing app modules
load_dotenv()

# Set test defaults if not provided
if not os.environ.get("SEARCH_ROOT"):
    os.environ["SEARCH_ROOT"] = "/tmp"
os.environ.pop("RECENT_STORE_PATH", None)

from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.recent.ledger import RecencyLedger  # noqa: E402
from app.search.models import SessionEvent  # noqa: E402
from app.search.service import SearchEngine  # noqa: E402
from app.search.session import SearchOptions  # noqa: E402


@pytest.fixture
def file_tree(tmp_path: Path) -> Path:
    """Create a small project tree under a temporary base root."""
    base = tmp_path / "base"
    (base / "src").mkdir(parents=True)
    (base / "src" / "main.rs").write_text("fn main() {}")
    (base / "src" / "lib.rs").write_text("pub mod x;")
    (base / "README.md").write_text("# Readme")
    return base


@pytest.fixture
def ledger() -> RecencyLedger:
    """Create an empty in-memory ledger."""
    return RecencyLedger(capacity=10)


@pytest.fixture
def options(file_tree: Path) -> SearchOptions:
    """Search options rooted at the test tree."""
    return SearchOptions(base_root=file_tree, result_limit=100, timeout_seconds=5.0)


@pytest.fixture
def engine(options: SearchOptions, ledger: RecencyLedger) -> SearchEngine:
    """Create a SearchEngine over the test tree."""
    return SearchEngine(options, ledger)


class EventCollector:
    """Delivery callback that records events and lets tests wait for them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, SessionEvent]] = []
        self._changed = asyncio.Event()

    async def __call__(self, session_id: str, event: SessionEvent) -> None:
        self.events.append((session_id, event))
        self._changed.set()

    @property
    def generations(self) -> list[int]:
        return [event.generation for _, event in self.events]

    async def wait_for(self, generation: int, timeout: float = 5.0) -> SessionEvent:
        """Wait until an event for generation (or newer) has been delivered."""

        async def _wait() -> SessionEvent:
            while True:
                for _, event in self.events:
                    if event.generation >= generation:
                        return event
                self._changed.clear()
                await self._changed.wait()

        return await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
def collector() -> EventCollector:
    """Create a delivery callback that records events."""
    return EventCollector()


@pytest.fixture
def client(file_tree: Path) -> Iterator[TestClient]:
    """Create a FastAPI test client whose engine searches the test tree."""
    with TestClient(app) as test_client:
        app.state.engine = SearchEngine(
            SearchOptions(base_root=file_tree, timeout_seconds=5.0), RecencyLedger(capacity=10)
        )
        yield test_client
