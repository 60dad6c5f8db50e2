"""Shared dependencies: structured logger, error types and path resolution."""

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi.requests import HTTPConnection

from app.config import get_settings

if TYPE_CHECKING:
    from app.search.service import SearchEngine

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        data.update(
            {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
        )
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    settings = get_settings()
    logger = logging.getLogger("fuzzy_search")
    logger.setLevel(getattr(logging, settings.log_level.upper()))
    logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


logger = setup_logging()


class SearchError(Exception):
    """Base exception for search operations."""

    pass


class RootNotFoundError(SearchError):
    """Raised when a search root does not exist or is not a directory."""

    pass


class RootAccessError(SearchError):
    """Raised when a search root exists but cannot be read."""

    pass


class RootSecurityError(SearchError):
    """Raised when a requested path escapes the configured search root."""

    pass


class SessionClosedError(SearchError):
    """Raised when a query is submitted to a torn-down session."""

    pass


def resolve_within(base: Path, relative_path: str) -> Path:
    """Validate and resolve a path within the base directory.

    Args:
        base: Directory every resolved path must stay inside
        relative_path: Path relative to base (empty string means base itself)

    Returns:
        Resolved absolute path

    Raises:
        RootSecurityError: If path traversal is detected
    """
    resolved_base = base.resolve()
    full_path = (resolved_base / relative_path.strip().lstrip("/")).resolve()
    if not full_path.is_relative_to(resolved_base):
        raise RootSecurityError(f"Path traversal detected: {relative_path}")
    return full_path


def check_root(root: Path) -> Path:
    """Verify that a resolved root can be searched.

    Raises:
        RootNotFoundError: If the root is missing or not a directory
        RootAccessError: If the root cannot be listed
    """
    if not root.is_dir():
        raise RootNotFoundError(f"Root not found: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise RootAccessError(f"Root not readable: {root}")
    return root


def get_engine(connection: HTTPConnection) -> "SearchEngine":
    """FastAPI dependency provider for the process-wide SearchEngine."""
    return connection.app.state.engine
