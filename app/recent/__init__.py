"""Recently used paths: ledger, persistence and routes."""

from app.recent.router import router

__all__ = ["router"]
