"""Cache-aside repository for healing sessions."""

import asyncio
import logging
from typing import Dict, List, Optional

from ..core.exceptions import PersistenceFailure
from ..core.models.healing_models import HealingSession
from .stores import HEALING_SESSIONS

logger = logging.getLogger("healing.repository")


class SessionRepository:
    """Arena of live sessions keyed by id, mirrored to a document store.

    Writes go to the arena first and then through to the store; a store
    failure is logged and the in-memory state stays authoritative. Reads hit
    the arena and fall back to the store on a miss.

    Only sessions that can still change are kept in the arena. Once a
    completed or failed session has been written to the store it is dropped,
    and later reads load it from the store without caching it again.
    """

    def __init__(self, store):
        self.store = store
        self._sessions: Dict[str, HealingSession] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: HealingSession) -> None:
        async with self._lock:
            self._sessions[session.id] = session
        if await self._write(self.store.insert, HEALING_SESSIONS, session.id, session.to_dict()):
            await self._release_if_terminal(session)

    async def save(self, session: HealingSession) -> None:
        """Write the full session back to the store (last write wins)."""
        async with self._lock:
            self._sessions[session.id] = session
        record = session.to_dict()
        record.pop("id", None)
        if await self._write(self.store.update, HEALING_SESSIONS, session.id, session.id, record):
            await self._release_if_terminal(session)

    async def get(self, session_id: str) -> Optional[HealingSession]:
        async with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            return session

        try:
            record = await self.store.find_by_id(HEALING_SESSIONS, session_id)
        except Exception as e:
            logger.warning(f"Store read failed for session {session_id}: {e}")
            return None
        if record is None:
            return None

        try:
            session = HealingSession.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Stored session {session_id} could not be decoded: {e}")
            return None

        if session.status.is_terminal:
            return session
        async with self._lock:
            # Another coroutine may have loaded it meanwhile; keep the first copy.
            session = self._sessions.setdefault(session_id, session)
        return session

    def active_sessions(self) -> List[HealingSession]:
        return list(self._sessions.values())

    def evict(self, session_id: str) -> None:
        """Drop a session from the arena; the store copy stays."""
        self._sessions.pop(session_id, None)

    async def _release_if_terminal(self, session: HealingSession) -> None:
        if not session.status.is_terminal:
            return
        async with self._lock:
            if self._sessions.get(session.id) is session:
                del self._sessions[session.id]
        logger.debug(f"Session {session.id} persisted as {session.status.value}; released from memory")

    async def _write(self, operation, collection: str, record_id: str, *args) -> bool:
        try:
            await operation(collection, *args)
            return True
        except Exception as e:
            failure = e if isinstance(e, PersistenceFailure) else PersistenceFailure(collection, record_id, str(e))
            logger.warning(f"{failure}; continuing with in-memory state")
            return False
