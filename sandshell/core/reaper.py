"""
Idle sandbox reaper.

Sandboxes outlive their connections on purpose. When IDLE_TIMEOUT is set,
this background loop removes sandboxes that have had no live attachment for
longer than the timeout. With IDLE_TIMEOUT=0 (the default) it never starts
and sandboxes persist until removed externally.
"""

import asyncio
import logging
from typing import Optional

from sandshell.core.lifecycle import SandboxLifecycleManager
from sandshell.lib.errors import ProviderError

logger = logging.getLogger(__name__)


class SandboxReaper:
    """Periodically removes sandboxes idle longer than idle_timeout."""

    def __init__(
        self,
        lifecycle: SandboxLifecycleManager,
        idle_timeout: float,
        interval: float = 60.0,
    ):
        self.lifecycle = lifecycle
        self.idle_timeout = idle_timeout
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.idle_timeout > 0

    def start(self) -> None:
        if not self.enabled:
            logger.info("Idle reaping disabled, sandboxes persist until removed externally")
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"Idle reaper started (timeout={self.idle_timeout}s, every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.sweep()

    async def sweep(self) -> list[str]:
        """Remove idle sandboxes once. Returns the reaped session ids."""
        reaped = []
        for session_id in self.lifecycle.registry.idle_sessions(self.idle_timeout):
            # release() re-checks idleness under the session lock
            try:
                if await self.lifecycle.release(session_id, idle_for=self.idle_timeout):
                    reaped.append(session_id)
            except ProviderError as e:
                logger.warning(f"Failed to reap session {session_id[:8]}: {e}")
        if reaped:
            logger.info(f"Reaped {len(reaped)} idle sandbox(es)")
        return reaped
