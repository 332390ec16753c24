"""
Docker sandbox provider.

Creates one persistent container per session (term-<session_id>) running a
login shell on a TTY, with the isolation policy applied in the create call.
Containers are not removed when a client disconnects; a reconnecting client
attaches to the same running shell.

Blocking Docker SDK calls run in a worker thread. The hijacked attach socket
is driven directly by the event loop.
"""

import asyncio
import logging
import socket
import ssl
from typing import Any, Callable, TypeVar

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from sandshell.core.policy import IsolationPolicy
from sandshell.core.provider import SandboxInfo
from sandshell.lib.errors import ProviderError, SandboxNotFound, StreamError

logger = logging.getLogger(__name__)

CONTAINER_NAME_PREFIX = "term-"
APP_LABEL = "sandshell"

# Bytes per recv() on the attach socket
ATTACH_CHUNK_SIZE = 4096

T = TypeVar("T")


def container_name(session_id: str) -> str:
    """Container name for a session; keeps the session id visible in `docker ps`."""
    return f"{CONTAINER_NAME_PREFIX}{session_id}"


def build_create_kwargs(session_id: str, policy: IsolationPolicy) -> dict[str, Any]:
    """Translate an isolation policy into containers.create() arguments."""
    return {
        "image": policy.image,
        "command": list(policy.command),
        "name": container_name(session_id),
        "detach": True,  # keeps StdinOnce off so stdin survives detaching clients
        "tty": True,
        "stdin_open": True,
        "environment": list(policy.environment),
        "user": policy.user,
        "working_dir": policy.working_dir,
        "labels": {"app": APP_LABEL, "session_id": session_id},
        "auto_remove": False,
        "network_mode": "none" if policy.network_disabled else "bridge",
        "mem_limit": policy.memory_bytes,
        "memswap_limit": policy.memory_swap_bytes,
        "cpu_period": policy.cpu_period,
        "cpu_quota": policy.cpu_quota,
        "pids_limit": policy.pids_limit,
        "cap_drop": list(policy.cap_drop),
        "security_opt": list(policy.security_opt),
        "tmpfs": dict(policy.tmpfs),
    }


class DockerAttachStream:
    """AttachStream over a hijacked Docker attach socket.

    The container runs with a TTY, so stdout and stderr arrive on the socket
    as one raw byte stream without multiplexing headers.
    """

    def __init__(self, sock: socket.socket, owner: Any = None):
        self._sock = sock
        # Keep the SDK's socket wrapper alive for as long as we use the socket
        self._owner = owner
        self._sock.setblocking(False)
        self._write_closed = False
        self._closed = False

    async def read(self) -> bytes:
        if self._closed:
            return b""
        loop = asyncio.get_running_loop()
        try:
            return await loop.sock_recv(self._sock, ATTACH_CHUNK_SIZE)
        except OSError as e:
            if self._closed:
                return b""
            raise StreamError(f"attach read failed: {e}") from e

    async def write(self, data: bytes) -> None:
        if self._closed or self._write_closed:
            raise StreamError("attach stream input is closed")
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendall(self._sock, data)
        except OSError as e:
            raise StreamError(f"attach write failed: {e}") from e

    async def close_write(self) -> None:
        if self._closed or self._write_closed:
            return
        self._write_closed = True
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError as e:
            logger.debug(f"Attach socket shutdown failed: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for closeable in (self._owner, self._sock):
            if closeable is None:
                continue
            try:
                closeable.close()
            except OSError as e:
                logger.debug(f"Attach socket close failed: {e}")


class DockerProvider:
    """SandboxProvider backed by the local Docker engine."""

    def __init__(self, base_url: str = "unix:///var/run/docker.sock"):
        self.base_url = base_url
        self._client: docker.DockerClient | None = None
        self._known_images: set[str] = set()
        self._image_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "docker"

    @property
    def client(self) -> docker.DockerClient:
        """Docker client, created on first use (the SDK contacts the daemon on init)."""
        if self._client is None:
            self._client = docker.DockerClient(base_url=self.base_url)
        return self._client

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking SDK call in a worker thread, mapping errors to ProviderError."""

        def invoke() -> T:
            return fn(self.client, *args, **kwargs)

        try:
            return await asyncio.to_thread(invoke)
        except NotFound as e:
            raise SandboxNotFound(str(e)) from e
        except ProviderError:
            raise
        except (DockerException, OSError) as e:
            raise ProviderError(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._call(lambda c: c.ping()))
        except ProviderError as e:
            logger.warning(f"Docker not reachable at {self.base_url}: {e}")
            return False

    async def image_exists(self, ref: str) -> bool:
        """Check the local image inventory for ref."""

        def lookup(client: docker.DockerClient) -> bool:
            try:
                client.images.get(ref)
                return True
            except ImageNotFound:
                return False

        return await self._call(lookup)

    async def ensure_image(self, ref: str) -> None:
        if ref in self._known_images:
            return

        # One pull at a time; concurrent cold starts wait for the first
        async with self._image_lock:
            if ref in self._known_images:
                return
            if not await self.image_exists(ref):
                repository, tag = parse_repository_tag(ref)
                logger.info(f"[docker] Pulling {ref}...")
                await self._call(lambda c: c.images.pull(repository, tag=tag or "latest"))
                logger.info(f"[docker] Pulled {ref}")
            self._known_images.add(ref)

    async def create(self, session_id: str, policy: IsolationPolicy) -> str:
        kwargs = build_create_kwargs(session_id, policy)

        def create_or_adopt(client: docker.DockerClient) -> str:
            try:
                return client.containers.create(**kwargs).id
            except APIError as e:
                if e.status_code != 409:
                    raise
                # Name taken: adopt it if it is ours for this session
                existing = client.containers.get(kwargs["name"])
                labels = existing.labels or {}
                if labels.get("app") == APP_LABEL and labels.get("session_id") == session_id:
                    logger.info(f"Adopting existing container {existing.name}")
                    return existing.id
                raise ProviderError(
                    f"Container name {kwargs['name']} is taken by a foreign container"
                ) from e

        sandbox_id = await self._call(create_or_adopt)
        logger.info(
            f"Created container {kwargs['name']} ({sandbox_id[:12]}) "
            f"mem={policy.memory_bytes} cpus={policy.cpus:.2f} pids={policy.pids_limit}"
        )
        return sandbox_id

    async def start(self, sandbox_id: str) -> None:
        await self._call(lambda c: c.api.start(sandbox_id))

    async def inspect(self, sandbox_id: str) -> SandboxInfo:
        def inspect_state(client: docker.DockerClient) -> SandboxInfo:
            container = client.containers.get(sandbox_id)
            state = container.attrs.get("State") or {}
            return SandboxInfo(
                id=container.id,
                name=container.name,
                running=bool(state.get("Running")),
                status=state.get("Status") or container.status,
            )

        return await self._call(inspect_state)

    async def attach(self, sandbox_id: str) -> DockerAttachStream:
        params = {"stdin": 1, "stdout": 1, "stderr": 1, "stream": 1}
        wrapper = await self._call(lambda c: c.api.attach_socket(sandbox_id, params=params))
        raw = getattr(wrapper, "_sock", wrapper)
        if isinstance(raw, ssl.SSLSocket) or not isinstance(raw, socket.socket):
            wrapper.close()
            raise ProviderError(f"Unsupported attach transport for {self.base_url}")
        return DockerAttachStream(raw, owner=wrapper)

    async def resize(self, sandbox_id: str, cols: int, rows: int) -> None:
        await self._call(lambda c: c.api.resize(sandbox_id, height=rows, width=cols))

    async def remove(self, sandbox_id: str) -> None:
        try:
            await self._call(lambda c: c.api.remove_container(sandbox_id, force=True))
        except SandboxNotFound:
            logger.debug(f"Container {sandbox_id[:12]} already gone")
