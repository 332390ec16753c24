"""
Sandbox Lifecycle Manager.

get_or_create() always hands back a handle to a sandbox that is running (or
was just asked to start), or raises ProvisioningError. Registry/provider
divergence is healed on the way:

    Unbound -> Provisioning -> Running
    Running -> Stopped  (restarted best-effort on next access)
    Running -> Missing  (entry evicted, fresh sandbox provisioned)

The whole lookup-or-provision sequence runs under the registry's per-session
lock, so concurrent first contacts for one session provision exactly once.
"""

import logging
from dataclasses import dataclass

from sandshell.core.policy import IsolationPolicy
from sandshell.core.provider import AttachStream, SandboxProvider
from sandshell.core.registry import SessionRegistry
from sandshell.lib.errors import (
    AttachError,
    ProviderError,
    ProvisioningError,
    SandboxNotFound,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SandboxHandle:
    """A session's sandbox, as returned by get_or_create()."""

    session_id: str
    sandbox_id: str


class SandboxLifecycleManager:
    """Get-or-create state machine over the registry and a provider."""

    def __init__(
        self,
        provider: SandboxProvider,
        policy: IsolationPolicy,
        registry: SessionRegistry | None = None,
    ):
        self.provider = provider
        self.policy = policy
        self.registry = registry if registry is not None else SessionRegistry()

    async def get_or_create(self, session_id: str) -> SandboxHandle:
        """Return a handle to the session's sandbox, provisioning it if needed.

        The returned handle counts as a live attachment so the reaper leaves the
        sandbox alone; callers must pair it with registry.mark_detached().
        """
        async with self.registry.lock(session_id):
            sandbox_id = self.registry.sandbox_id(session_id)
            handle = None
            if sandbox_id is not None:
                handle = await self._reuse(session_id, sandbox_id)
            if handle is None:
                handle = await self._provision(session_id)
            self.registry.mark_attached(session_id)
            return handle

    async def _reuse(self, session_id: str, sandbox_id: str) -> SandboxHandle | None:
        """Check an existing binding. Returns None if it had to be evicted."""
        try:
            info = await self.provider.inspect(sandbox_id)
        except SandboxNotFound:
            logger.warning(
                f"[session {session_id[:8]}] sandbox {sandbox_id[:12]} vanished, re-provisioning"
            )
            self.registry.evict(session_id)
            return None
        except ProviderError as e:
            logger.warning(
                f"[session {session_id[:8]}] inspect of {sandbox_id[:12]} failed ({e}), "
                f"re-provisioning"
            )
            self.registry.evict(session_id)
            return None

        if not info.running:
            logger.info(
                f"[session {session_id[:8]}] sandbox {sandbox_id[:12]} is {info.status}, restarting"
            )
            try:
                await self.provider.start(sandbox_id)
            except ProviderError as e:
                # attach() will surface the real problem
                logger.warning(f"[session {session_id[:8]}] restart failed: {e}")

        return SandboxHandle(session_id=session_id, sandbox_id=sandbox_id)

    async def _provision(self, session_id: str) -> SandboxHandle:
        try:
            await self.provider.ensure_image(self.policy.image)
            sandbox_id = await self.provider.create(session_id, self.policy)
        except ProviderError as e:
            raise ProvisioningError(str(e), session_id=session_id) from e

        try:
            await self.provider.start(sandbox_id)
        except ProviderError as e:
            # Free the name so the next attempt does not collide with it
            try:
                await self.provider.remove(sandbox_id)
            except ProviderError as cleanup_error:
                logger.warning(f"Failed to remove unstarted sandbox {sandbox_id[:12]}: {cleanup_error}")
            raise ProvisioningError(str(e), session_id=session_id) from e

        self.registry.bind(session_id, sandbox_id)
        logger.info(f"[session {session_id[:8]}] sandbox {sandbox_id[:12]} started")
        return SandboxHandle(session_id=session_id, sandbox_id=sandbox_id)

    async def attach(self, handle: SandboxHandle) -> AttachStream:
        """Attach to the sandbox's terminal."""
        try:
            return await self.provider.attach(handle.sandbox_id)
        except ProviderError as e:
            raise AttachError(str(e), session_id=handle.session_id) from e

    async def resize(self, handle: SandboxHandle, cols: int, rows: int) -> None:
        """Resize the sandbox's terminal. Failures are logged, never raised."""
        try:
            await self.provider.resize(handle.sandbox_id, cols, rows)
        except ProviderError as e:
            logger.debug(f"[session {handle.session_id[:8]}] resize {cols}x{rows} failed: {e}")

    async def release(self, session_id: str, idle_for: float | None = None) -> bool:
        """Remove the session's sandbox and forget the session.

        With idle_for set, only removes it if the session has had no live
        attachment for that many seconds. Returns False if nothing was removed.
        """
        async with self.registry.lock(session_id):
            entry = self.registry.get(session_id)
            if entry is None:
                return False
            if idle_for is not None and not entry.is_idle(idle_for):
                return False
            await self.provider.remove(entry.sandbox_id)
            self.registry.evict(session_id)
            logger.info(f"[session {session_id[:8]}] sandbox {entry.sandbox_id[:12]} removed")
            return True
