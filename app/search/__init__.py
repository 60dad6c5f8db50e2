"""Fuzzy path search: traversal, scoring, ranking and sessions."""

from app.search.router import router

__all__ = ["router"]
