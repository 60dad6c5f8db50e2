"""In-memory registry of live search sessions."""

import asyncio

from app.dependencies import logger
from app.recent.ledger import RecencyLedger
from app.search.session import Deliver, SearchOptions, SearchSession


class SessionManager:
    """Maps session ids to their single SearchSession.

    Sessions are created on first use and live until ``remove`` is called,
    typically when the client disconnects.
    """

    def __init__(
        self, options: SearchOptions, ledger: RecencyLedger | None, deliver: Deliver
    ) -> None:
        self._options = options
        self._ledger = ledger
        self._deliver = deliver
        self._sessions: dict[str, SearchSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> SearchSession | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> SearchSession:
        """Return the session for session_id, creating it if needed."""
        session = self._sessions.get(session_id)
        if session is None:
            session = SearchSession(session_id, self._options, self._ledger, self._deliver)
            self._sessions[session_id] = session
            logger.info("session_created", extra={"session_id": session_id})
        return session

    async def remove(self, session_id: str) -> bool:
        """Tear down and forget a session; returns False if it was unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.teardown()
        logger.info("session_removed", extra={"session_id": session_id})
        return True

    async def close_all(self) -> None:
        """Tear down every session."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await asyncio.gather(*(s.teardown() for s in sessions), return_exceptions=True)
