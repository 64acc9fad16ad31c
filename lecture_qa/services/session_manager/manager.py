from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.manager import BaseSessionRegistryService
from lecture_qa.services.session_manager.session import Session, SessionOptions

# -------------------------------------------------------------- #
# Session Registry Manager
# -------------------------------------------------------------- #


class SessionRegistryManager(BaseSessionRegistryService):
    """Maps user ids to Sessions.

    Sessions are created lazily by `get`, removed by `remove`, and evicted by
    a background sweep once they have been idle longer than `idle_ttl_s`.
    A session whose lock is held is never evicted.

    Attributes:
        options: Options applied to every newly created Session
        idle_ttl_s: Idle time in seconds before a session is evicted (0 disables eviction)
        sweep_interval_s: Seconds between eviction sweeps
    """

    def __init__(
        self,
        context: Context,
        options: SessionOptions | None = None,
        idle_ttl_s: int = 6 * 60 * 60,
        sweep_interval_s: int = 10 * 60,
    ):
        super().__init__(context)
        self.options = options or SessionOptions()
        self.idle_ttl_s = idle_ttl_s
        self.sweep_interval_s = sweep_interval_s

        self._sessions: dict[str, Session] = {}
        self._registry_lock = asyncio.Lock()
        self._sweep_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        if self.idle_ttl_s > 0 and self.sweep_interval_s > 0:
            self._sweep_task = asyncio.create_task(self._sweep_forever())
        if self.services:
            await self.services.logging_service.info(
                f"Session Registry started (idle ttl: {self.idle_ttl_s}s, "
                f"sweep every {self.sweep_interval_s}s)"
            )

    async def on_close(self) -> None:
        if self._sweep_task:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        count = len(self._sessions)
        self._sessions.clear()
        if self.services:
            await self.services.logging_service.info(
                f"Session Registry stopped ({count} session(s) dropped)"
            )

    # -------------------------------------------------------------- #
    # Registry Methods
    # -------------------------------------------------------------- #

    async def get(self, user_id: str) -> Session:
        """Return the user's Session, creating an empty one on first use."""
        async with self._registry_lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = Session(user_id=user_id, options=self.options)
                self._sessions[user_id] = session
                if self.services:
                    await self.services.logging_service.debug(f"Created session for user {user_id}")
            session.touch()
            return session

    def peek(self, user_id: str) -> Session | None:
        """Look up a session without creating one."""
        return self._sessions.get(user_id)

    async def remove(self, user_id: str) -> bool:
        """Remove the user's session; True if one existed."""
        async with self._registry_lock:
            removed = self._sessions.pop(user_id, None) is not None
        if removed and self.services:
            await self.services.logging_service.info(f"Removed session for user {user_id}")
        return removed

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    # -------------------------------------------------------------- #
    # Idle Eviction
    # -------------------------------------------------------------- #

    async def evict_idle(self) -> list[str]:
        """Drop sessions idle longer than `idle_ttl_s`; returns the evicted user ids."""
        if self.idle_ttl_s <= 0:
            return []

        async with self._registry_lock:
            expired = [
                user_id
                for user_id, session in self._sessions.items()
                if session.idle_seconds() > self.idle_ttl_s and not session.lock.locked()
            ]
            for user_id in expired:
                del self._sessions[user_id]

        if expired and self.services:
            await self.services.logging_service.info(
                f"Evicted {len(expired)} idle session(s): {', '.join(expired)}"
            )
        return expired

    async def _sweep_forever(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.sweep_interval_s)
                try:
                    await self.evict_idle()
                except Exception as e:
                    if self.services:
                        await self.services.logging_service.error(f"Session sweep failed: {e}")
        except asyncio.CancelledError:
            pass
