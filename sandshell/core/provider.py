"""Sandbox Provider protocol: the interface every isolation backend implements.

The session layer only ever talks to a provider through these operations:
ensure_image() / create() / start() / inspect() / attach() / resize() /
remove(). The Docker implementation lives in docker_provider.py; tests use
an in-memory fake.

Also defines SandboxInfo, the provider's view of a sandbox, and the
AttachStream protocol for the duplex byte channel to a sandbox's terminal.
"""

from __future__ import annotations

import dataclasses
from typing import Protocol, runtime_checkable

from sandshell.core.policy import IsolationPolicy


@dataclasses.dataclass(frozen=True, slots=True)
class SandboxInfo:
    """Result of inspecting a sandbox."""

    id: str
    name: str
    running: bool
    status: str = "unknown"


@runtime_checkable
class AttachStream(Protocol):
    """Full-duplex byte channel connected to a sandbox's pseudo-terminal."""

    async def read(self) -> bytes:
        """Read the next chunk of terminal output. Returns b"" at end of stream."""
        ...

    async def write(self, data: bytes) -> None:
        """Write raw bytes to the terminal's input."""
        ...

    async def close_write(self) -> None:
        """Signal end-of-input on our side only. The sandbox keeps running."""
        ...

    async def close(self) -> None:
        """Release local resources. Idempotent."""
        ...


@runtime_checkable
class SandboxProvider(Protocol):
    """Abstraction over a sandbox execution backend."""

    @property
    def name(self) -> str:
        """Provider name, e.g. 'docker'."""
        ...

    async def ping(self) -> bool:
        """Return True if the backend is reachable."""
        ...

    async def ensure_image(self, ref: str) -> None:
        """Make sure the image is available locally. Idempotent."""
        ...

    async def create(self, session_id: str, policy: IsolationPolicy) -> str:
        """Create a sandbox bound to session_id with the full policy applied.

        Returns the provider-assigned sandbox id.
        """
        ...

    async def start(self, sandbox_id: str) -> None:
        """Start a created or stopped sandbox."""
        ...

    async def inspect(self, sandbox_id: str) -> SandboxInfo:
        """Inspect a sandbox. Raises SandboxNotFound if the provider does not know it."""
        ...

    async def attach(self, sandbox_id: str) -> AttachStream:
        """Attach to the sandbox's terminal (stdin, stdout and stderr)."""
        ...

    async def resize(self, sandbox_id: str, cols: int, rows: int) -> None:
        """Resize the sandbox's pseudo-terminal. Best-effort."""
        ...

    async def remove(self, sandbox_id: str) -> None:
        """Force-remove a sandbox. Missing sandboxes are not an error."""
        ...
