"""Data structures for fuzzy path search.

Candidates, match scores and snapshots are produced on the hot path of a
search, so they are plain frozen dataclasses. The ``*View`` classes are the
Pydantic models handed across the delivery boundary to clients.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


@dataclass(frozen=True, slots=True)
class Candidate:
    """A filesystem entry found under a search root.

    Attributes:
        path: Path relative to the search root, '/'-separated
        is_directory: Whether the entry is a directory
    """

    path: str
    is_directory: bool = False


@dataclass(frozen=True, slots=True)
class MatchScore:
    """A successful fuzzy match of a query against a candidate.

    Attributes:
        score: Match quality, higher is better (includes any recency boost)
        matched_indices: Strictly increasing positions in candidate.path that
            matched query characters, one per query character
        candidate: The candidate that matched
    """

    score: float
    matched_indices: tuple[int, ...]
    candidate: Candidate

    @property
    def path(self) -> str:
        return self.candidate.path

    def sort_key(self) -> tuple[float, int, str]:
        """Ascending sort key: score desc, then shorter path, then lexicographic."""
        return (-self.score, len(self.candidate.path), self.candidate.path)


@dataclass(frozen=True, slots=True)
class QueryState:
    """The query a session is currently searching for."""

    raw_query: str
    root: str | None
    generation: int


@dataclass(frozen=True, slots=True)
class ResultSnapshot:
    """Ordered best-K matches for one generation of a session's query.

    Attributes:
        generation: Query generation the snapshot belongs to
        entries: Matches in ranking order, at most K of them
        partial: True when the search hit its time budget before finishing
        scanned: Number of candidates evaluated
    """

    generation: int
    entries: tuple[MatchScore, ...] = field(default_factory=tuple)
    partial: bool = False
    scanned: int = 0


class SessionState(str, Enum):
    """Lifecycle states of a search session."""

    IDLE = "idle"
    SEARCHING = "searching"
    CANCELLING = "cancelling"
    DELIVERED = "delivered"


# =============================================================================
# Delivery views
# =============================================================================


class MatchView(BaseModel):
    """A single ranked result as sent to the client."""

    path: str = Field(..., description="Path relative to the search root")
    name: str = Field(..., description="Final path component")
    score: float = Field(..., description="Ranking score, higher is better")
    matched_indices: list[int] = Field(
        default_factory=list, description="Character positions to highlight"
    )
    is_directory: bool = Field(default=False, description="Entry is a directory")

    @classmethod
    def from_match(cls, match: MatchScore) -> "MatchView":
        path = match.candidate.path
        return cls(
            path=path,
            name=path.rsplit("/", 1)[-1],
            score=round(match.score, 4),
            matched_indices=list(match.matched_indices),
            is_directory=match.candidate.is_directory,
        )


class SnapshotView(BaseModel):
    """Ranked results for one query generation."""

    type: Literal["results"] = "results"
    generation: int = Field(..., description="Query generation")
    query: str = Field(default="", description="Query the results answer")
    root: str = Field(default="", description="Root the query ran against")
    entries: list[MatchView] = Field(default_factory=list, description="Ranked results")
    partial: bool = Field(default=False, description="Search stopped at its time budget")

    @classmethod
    def from_snapshot(cls, snapshot: ResultSnapshot, query: QueryState) -> "SnapshotView":
        return cls(
            generation=snapshot.generation,
            query=query.raw_query,
            root=query.root or "",
            entries=[MatchView.from_match(m) for m in snapshot.entries],
            partial=snapshot.partial,
        )


class RootErrorView(BaseModel):
    """Signal that the requested root cannot be searched."""

    type: Literal["root_error"] = "root_error"
    generation: int = Field(..., description="Query generation that hit the error")
    root: str = Field(..., description="Root as requested by the client")
    message: str = Field(..., description="Human readable reason")


SessionEvent = SnapshotView | RootErrorView


class SearchResponse(BaseModel):
    """One-shot search response."""

    files: list[MatchView] = Field(default_factory=list, description="Ranked results")
    total: int = Field(default=0, description="Number of results returned")
    query: str = Field(default="", description="Original search query")
    partial: bool = Field(default=False, description="Search stopped at its time budget")


class ErrorDetail(BaseModel):
    """Error detail for HTTP error bodies."""

    message: str
    type: str = "search_error"
    code: str | None = None


class ErrorResponse(BaseModel):
    """HTTP error response wrapper."""

    error: ErrorDetail


class ClientFrame(BaseModel):
    """A message sent by the client over the search WebSocket.

    A frame either carries a query update (``root`` + ``query``) or a
    selection (``select``) to record in the recent paths history.
    """

    root: str | None = Field(default=None, description="Root relative to the base root")
    query: str = Field(default="", max_length=1024, description="Current query text")
    select: str | None = Field(default=None, description="Path the user picked")
