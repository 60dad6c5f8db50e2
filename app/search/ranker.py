"""Bounded best-K selection over a stream of matches."""

import heapq
import time
from collections.abc import Callable, Iterable

from app.search.candidates import CancelToken
from app.search.models import Candidate, MatchScore, ResultSnapshot


class _Ranked:
    """Heap item whose ordering puts the worst-ranked match at the heap root."""

    __slots__ = ("match", "key")

    def __init__(self, match: MatchScore) -> None:
        self.match = match
        self.key = match.sort_key()

    def __lt__(self, other: "_Ranked") -> bool:
        return self.key > other.key


class TopK:
    """Keeps the K best matches seen so far.

    Memory stays O(K) however many matches are offered. Ranking is score
    descending, then shorter path, then lexicographic path, which is a total
    order, so the result does not depend on the order matches arrive in.
    """

    def __init__(self, k: int) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k
        self._heap: list[_Ranked] = []

    def __len__(self) -> int:
        return len(self._heap)

    def offer(self, match: MatchScore) -> bool:
        """Add match if it ranks among the best K; returns whether it was kept."""
        item = _Ranked(match)
        if len(self._heap) < self.k:
            heapq.heappush(self._heap, item)
            return True
        if item.key < self._heap[0].key:
            heapq.heapreplace(self._heap, item)
            return True
        return False

    def worst(self) -> MatchScore | None:
        """The K-th best match currently held, if K are held."""
        if len(self._heap) < self.k:
            return None
        return self._heap[0].match

    def results(self) -> list[MatchScore]:
        """Held matches in ranking order."""
        return sorted((item.match for item in self._heap), key=MatchScore.sort_key)


def rank_candidates(
    candidates: Iterable[Candidate],
    score: Callable[[Candidate], MatchScore | None],
    k: int,
    generation: int = 0,
    token: CancelToken | None = None,
    deadline: float | None = None,
) -> ResultSnapshot:
    """Score every candidate and keep the best K.

    Cancellation is checked before each scorer call. When the monotonic
    deadline (or the token's own deadline) passes, the best matches found so
    far are returned with ``partial`` set.

    Args:
        candidates: Candidate stream, in any order
        score: Scoring function; None means no match
        k: Number of results to keep
        generation: Query generation to tag the snapshot with
        token: Optional cancellation token
        deadline: Optional ``time.monotonic()`` value to stop at
    """
    top = TopK(k)
    scanned = 0
    partial = False
    iterator = iter(candidates)
    try:
        for candidate in iterator:
            if token is not None and token.should_stop():
                break
            if deadline is not None and time.monotonic() >= deadline:
                partial = True
                break
            scanned += 1
            match = score(candidate)
            if match is not None:
                top.offer(match)
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
    if token is not None and token.timed_out:
        # The walk may have stopped on the deadline without yielding again
        partial = True
    return ResultSnapshot(
        generation=generation, entries=tuple(top.results()), partial=partial, scanned=scanned
    )
