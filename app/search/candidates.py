"""Lazy filesystem traversal producing search candidates."""

import os
import threading
import time
from collections.abc import Iterator
from pathlib import Path

from app.search.models import Candidate


class CancelToken:
    """Cooperative stop signal shared between a session and its worker.

    The session cancels it from the event loop; the traversal and scoring loop
    running in a worker thread polls ``should_stop()``. An optional monotonic
    deadline also stops the work, and records that it did through
    ``timed_out``.
    """

    def __init__(self, deadline: float | None = None) -> None:
        self._event = threading.Event()
        self.deadline = deadline
        self.timed_out = False

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def should_stop(self) -> bool:
        """True once cancelled or past the deadline."""
        if self._event.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.timed_out = True
            return True
        return False


class CandidateSource:
    """Restartable, lazy walk of every entry under a root directory.

    Each call to ``iter()`` starts a fresh walk. Entries that cannot be read
    (permission errors, broken symlinks, files removed mid-walk) are skipped.
    Symlinked directories are reported but never descended into, so cycles
    cannot occur.

    Args:
        root: Directory to walk
        max_depth: Deepest directory level to descend into (0 = root only)
        include_directories: Also yield directories as candidates
    """

    def __init__(
        self, root: Path, max_depth: int | None = None, include_directories: bool = False
    ) -> None:
        self.root = root
        self.max_depth = max_depth
        self.include_directories = include_directories

    def __iter__(self) -> Iterator[Candidate]:
        return self.iter()

    def iter(self, token: CancelToken | None = None) -> Iterator[Candidate]:
        """Walk the tree, checking the token before every directory and entry."""
        # (directory, root-relative prefix, depth)
        stack: list[tuple[str, str, int]] = [(str(self.root), "", 0)]
        while stack:
            if token is not None and token.should_stop():
                return
            directory, prefix, depth = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = list(it)
            except OSError:
                continue

            for entry in entries:
                if token is not None and token.should_stop():
                    return
                rel_path = prefix + entry.name
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if self.max_depth is None or depth < self.max_depth:
                            stack.append((entry.path, rel_path + "/", depth + 1))
                        if self.include_directories:
                            yield Candidate(path=rel_path, is_directory=True)
                    elif entry.is_file():
                        yield Candidate(path=rel_path, is_directory=False)
                    elif self.include_directories and entry.is_dir():
                        # Symlink to a directory
                        yield Candidate(path=rel_path, is_directory=True)
                except OSError:
                    continue
