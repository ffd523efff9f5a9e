"""
Session store for the PinkHealth Clinic Intake Service

Owned in-memory map of user identifier -> Session with a per-key asyncio lock.
Messages for one user are processed one at a time while different users run
in parallel; the idle sweeper takes the same per-key lock before deleting so
it never removes a session mid-dispatch.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

from clinic.models import ConversationStep, PatientStatus, Session, SessionData

logger = logging.getLogger(__name__)


class _KeyLock:
    """Lock plus the number of tasks holding or waiting on it"""

    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class SessionStore:
    """
    Concurrency-safe session map keyed by user identifier.

    Mutation is owned by the router and step engine, which only touch a
    session while holding `locked(user_id)`.
    """

    def __init__(self, idle_timeout: float = 1800, clock: Callable[[], float] = time.time):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, _KeyLock] = {}

    # ------------------------------------------------------------------ #
    # Locking
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def locked(self, user_id: str) -> AsyncIterator[None]:
        """Serialize work for one user. Entries are dropped once nobody holds or waits."""
        entry = self._locks.get(user_id)
        if entry is None:
            entry = _KeyLock()
            self._locks[user_id] = entry
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._locks.get(user_id) is entry:
                del self._locks[user_id]

    def is_locked(self, user_id: str) -> bool:
        entry = self._locks.get(user_id)
        return entry is not None and entry.lock.locked()

    # ------------------------------------------------------------------ #
    # Map operations
    # ------------------------------------------------------------------ #

    def get(self, user_id: str) -> Optional[Session]:
        return self._sessions.get(user_id)

    def create(
        self,
        user_id: str,
        step: ConversationStep,
        patient_status: PatientStatus,
        display_name: str = "Patient",
        data: Optional[SessionData] = None,
    ) -> Session:
        """Create (or replace) the single live session for a user"""
        now = self._clock()
        session = Session(
            user_id=user_id,
            step=step,
            data=data or SessionData(),
            patient_status=patient_status,
            display_name=display_name,
            created_at=now,
            last_activity=now,
        )
        self._sessions[user_id] = session
        return session

    def delete(self, user_id: str) -> bool:
        return self._sessions.pop(user_id, None) is not None

    def touch(self, user_id: str) -> None:
        session = self._sessions.get(user_id)
        if session is not None:
            session.touch(self._clock())

    def sessions(self) -> List[Session]:
        """Snapshot of live sessions"""
        return list(self._sessions.values())

    def clear(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        return count

    def expires_at(self, session: Session) -> float:
        return session.last_activity + self.idle_timeout

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------ #
    # Idle sweep
    # ------------------------------------------------------------------ #

    async def sweep_idle(self) -> int:
        """
        Delete sessions idle past the timeout.

        Each candidate is re-checked under its lock, so a message that arrived
        while the sweep waited keeps its session alive.

        Returns:
            Number of sessions deleted
        """
        now = self._clock()
        candidates = [
            user_id for user_id, session in self._sessions.items()
            if session.is_idle(now, self.idle_timeout)
        ]

        swept = 0
        for user_id in candidates:
            async with self.locked(user_id):
                session = self._sessions.get(user_id)
                if session is None or not session.is_idle(self._clock(), self.idle_timeout):
                    continue
                del self._sessions[user_id]
                swept += 1
                logger.info(f" Swept idle session for {user_id} (step={session.step.value})")

        return swept

    async def run_sweeper(self, interval: float) -> None:
        """Sweep forever; cancelled by the service lifespan"""
        logger.info(f" Idle session sweeper started (interval={interval}s, timeout={self.idle_timeout}s)")
        while True:
            await asyncio.sleep(interval)
            try:
                swept = await self.sweep_idle()
                if swept:
                    logger.info(f" Idle sweep removed {swept} sessions ({len(self)} remaining)")
            except Exception as e:
                logger.error(f" Idle sweep failed: {e}")
