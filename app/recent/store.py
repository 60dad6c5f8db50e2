"""JSON persistence for the recency ledger.

Persistence is best effort: any failure is logged and the ledger keeps
working in memory.
"""

from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from app.dependencies import logger
from app.recent.models import RecencyEntry

_entries_adapter = TypeAdapter(list[RecencyEntry])


def load_entries(path: Path | None) -> list[RecencyEntry]:
    """Read persisted entries, returning [] if the file is absent or unreadable."""
    if path is None or not path.exists():
        return []
    try:
        entries = _entries_adapter.validate_json(path.read_bytes())
    except (OSError, ValidationError) as e:
        logger.warning("ledger_load_failed", extra={"path": str(path), "error": str(e)})
        return []
    logger.info("ledger_loaded", extra={"path": str(path), "entries": len(entries)})
    return entries


def save_entries(path: Path | None, entries: list[RecencyEntry]) -> bool:
    """Write entries to path; returns False if persistence is disabled or fails."""
    if path is None:
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(_entries_adapter.dump_json(entries, indent=2))
        tmp_path.replace(path)
    except OSError as e:
        logger.warning("ledger_save_failed", extra={"path": str(path), "error": str(e)})
        return False
    logger.info("ledger_saved", extra={"path": str(path), "entries": len(entries)})
    return True
