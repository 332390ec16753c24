"""
Session Registry.

In-memory mapping from session id to sandbox id: the source of truth for
"does this session already have a sandbox". Contents live for the process
lifetime only.

Every read-check-then-write sequence on an entry must run under
``registry.lock(session_id)``; the lock map is reference-counted so locks
for sessions that never bound a sandbox do not accumulate.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    """Registry record for one session."""

    session_id: str
    sandbox_id: str
    created_at: float = field(default_factory=time.time)
    last_active: float = field(default_factory=time.time)
    attachments: int = 0

    def is_idle(self, idle_seconds: float, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.attachments == 0 and (now - self.last_active) > idle_seconds

    def to_dict(self) -> dict:
        return {
            "session": self.session_id,
            "sandbox": self.sandbox_id,
            "created_at": self.created_at,
            "last_active": self.last_active,
            "attachments": self.attachments,
        }


class SessionRegistry:
    """Session id -> sandbox id map with per-session locks."""

    def __init__(self):
        self._entries: dict[str, SessionEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize lookup-or-provision sequences for one session id."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[session_id] - 1
            if remaining:
                self._lock_users[session_id] = remaining
            else:
                del self._lock_users[session_id]
                if session_id not in self._entries:
                    self._locks.pop(session_id, None)

    def get(self, session_id: str) -> Optional[SessionEntry]:
        return self._entries.get(session_id)

    def sandbox_id(self, session_id: str) -> Optional[str]:
        entry = self._entries.get(session_id)
        return entry.sandbox_id if entry else None

    def bind(self, session_id: str, sandbox_id: str) -> SessionEntry:
        """Record session_id -> sandbox_id, replacing any previous binding."""
        entry = SessionEntry(session_id=session_id, sandbox_id=sandbox_id)
        self._entries[session_id] = entry
        return entry

    def evict(self, session_id: str) -> Optional[SessionEntry]:
        """Drop a session's entry. Its lock is discarded once no one holds it."""
        entry = self._entries.pop(session_id, None)
        if session_id not in self._lock_users:
            self._locks.pop(session_id, None)
        return entry

    def mark_attached(self, session_id: str) -> None:
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.attachments += 1
            entry.last_active = time.time()

    def mark_detached(self, session_id: str) -> None:
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.attachments = max(0, entry.attachments - 1)
            entry.last_active = time.time()

    def entries(self) -> list[SessionEntry]:
        return list(self._entries.values())

    def idle_sessions(self, idle_seconds: float, now: Optional[float] = None) -> list[str]:
        """Session ids with no live attachment for longer than idle_seconds."""
        return [
            entry.session_id
            for entry in self._entries.values()
            if entry.is_idle(idle_seconds, now)
        ]
