"""Fuzzy subsequence matching and scoring of candidate paths.

A query matches a path when every query character occurs in the path in the
same order, ignoring case. Among the possible alignments the scorer keeps the
one with the highest score, found with a small dynamic program in the style
of fzf's matcher:

- each matched character earns ``SCORE_MATCH``
- gaps between matched characters cost ``GAP_START`` plus ``GAP_EXTENSION``
  per extra skipped character
- characters at a segment boundary (path start, after ``/``, after ``-_. ``,
  camelCase humps) earn a bonus, doubled for the first query character
- consecutive matches keep the bonus of the character that started the run

Shorter paths and earlier match starts are then preferred through small
penalties, and the Recency Ledger adds a bounded boost on top.
"""

from typing import TYPE_CHECKING

from app.search.models import Candidate, MatchScore

if TYPE_CHECKING:
    from app.recent.ledger import RecencyLedger

SCORE_MATCH = 16.0
GAP_START = -3.0
GAP_EXTENSION = -1.0

BONUS_PATH_BOUNDARY = 10.0
BONUS_BOUNDARY = 8.0
BONUS_CAMEL = 7.0
BONUS_CONSECUTIVE = 4.0
BONUS_FIRST_CHAR_MULTIPLIER = 2.0

LENGTH_PENALTY = 0.1
START_PENALTY = 0.2

_DELIMITERS = frozenset("-_. ")


def char_bonus(text: str, index: int) -> float:
    """Boundary bonus for a match at text[index]."""
    if index == 0:
        return BONUS_PATH_BOUNDARY
    prev, cur = text[index - 1], text[index]
    if prev == "/":
        return BONUS_PATH_BOUNDARY
    if prev in _DELIMITERS:
        return BONUS_BOUNDARY
    if prev.islower() and cur.isupper():
        return BONUS_CAMEL
    if not prev.isdigit() and cur.isdigit():
        return BONUS_CAMEL
    return 0.0


def is_subsequence(query: str, text: str) -> bool:
    """Return True if query occurs in text as a case-insensitive subsequence."""
    pos = 0
    lowered = [c.lower() for c in text]
    for ch in query:
        ch = ch.lower()
        while pos < len(lowered) and lowered[pos] != ch:
            pos += 1
        if pos == len(lowered):
            return False
        pos += 1
    return True


def fuzzy_match(query: str, text: str) -> tuple[float, tuple[int, ...]] | None:
    """Score the best alignment of query inside text.

    Args:
        query: Characters to find, in order
        text: Candidate path

    Returns:
        (score, matched_indices) for the best alignment, or None if query is
        not a subsequence of text. An empty query returns (0.0, ()).
    """
    if not query:
        return 0.0, ()
    m, n = len(query), len(text)
    if m > n:
        return None

    # Compare character by character so indices stay aligned with text even
    # when lowercasing a character changes its length.
    q = [c.lower() for c in query]
    t = [c.lower() for c in text]

    # Earliest position each query char can take
    first: list[int] = []
    pos = 0
    for ch in q:
        while pos < n and t[pos] != ch:
            pos += 1
        if pos == n:
            return None
        first.append(pos)
        pos += 1

    # Latest position each query char can take
    last = [0] * m
    pos = n - 1
    for i in range(m - 1, -1, -1):
        while t[pos] != q[i]:
            pos -= 1
        last[i] = pos
        pos -= 1

    bonuses = [char_bonus(text, j) for j in range(first[0], last[-1] + 1)]
    offset = first[0]

    # rows[i] maps text index j -> (score, run bonus, previous j) for the best
    # alignment of q[:i + 1] that places q[i] at j.
    rows: list[dict[int, tuple[float, float, int]]] = []
    for i in range(m):
        row: dict[int, tuple[float, float, int]] = {}
        prev_row = rows[i - 1] if i else None
        carry: tuple[float, int] | None = None  # best gapped predecessor
        # Start right after the previous row so every predecessor is admitted
        start = first[i - 1] + 1 if i else first[0]
        for j in range(start, last[i] + 1):
            if prev_row is not None:
                if carry is not None:
                    carry = (carry[0] + GAP_EXTENSION, carry[1])
                gapped = prev_row.get(j - 2)
                if gapped is not None:
                    value = gapped[0] + GAP_START
                    if carry is None or value > carry[0]:
                        carry = (value, j - 2)
            if t[j] != q[i]:
                continue

            bonus = bonuses[j - offset]
            if prev_row is None:
                row[j] = (SCORE_MATCH + bonus * BONUS_FIRST_CHAR_MULTIPLIER, bonus, -1)
                continue

            best: tuple[float, float, int] | None = None
            adjacent = prev_row.get(j - 1)
            if adjacent is not None:
                run_bonus = max(adjacent[1], bonus, BONUS_CONSECUTIVE)
                best = (adjacent[0] + SCORE_MATCH + run_bonus, run_bonus, j - 1)
            if carry is not None:
                value = carry[0] + SCORE_MATCH + bonus
                if best is None or value > best[0]:
                    best = (value, bonus, carry[1])
            if best is not None:
                row[j] = best
        rows.append(row)

    end, (score, _, back) = max(rows[-1].items(), key=lambda item: (item[1][0], -item[0]))
    indices = [end]
    for i in range(m - 2, -1, -1):
        indices.append(back)
        back = rows[i][back][2]
    indices.reverse()

    score -= LENGTH_PENALTY * n + START_PENALTY * indices[0]
    return score, tuple(indices)


class Scorer:
    """Scores candidates under one root, adding recency boosts from a ledger.

    Args:
        root: Absolute search root, used to key ledger lookups
        ledger: Optional recency ledger consulted for boosts
    """

    def __init__(self, root: str, ledger: "RecencyLedger | None" = None) -> None:
        self._prefix = root.rstrip("/") + "/"
        self._ledger = ledger

    def recency_boost(self, candidate: Candidate) -> float:
        """Boost for the candidate's own path, falling back to its parent directory."""
        if self._ledger is None:
            return 0.0
        boost = self._ledger.boost_for(self._prefix + candidate.path)
        if boost == 0.0 and "/" in candidate.path:
            parent = candidate.path.rsplit("/", 1)[0]
            boost = self._ledger.boost_for(self._prefix + parent)
        return boost

    def score(self, query: str, candidate: Candidate) -> MatchScore | None:
        """Match query against the candidate path; None means no match."""
        match = fuzzy_match(query, candidate.path)
        if match is None:
            return None
        score, indices = match
        if query:
            score += self.recency_boost(candidate)
        else:
            # Browse mode: no fuzzy component, only recency
            score = self.recency_boost(candidate)
        return MatchScore(score=score, matched_indices=indices, candidate=candidate)
