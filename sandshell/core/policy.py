"""
Isolation policy for sandbox containers.

Pure data: the resource limits and privilege settings every sandbox is
created with. Providers translate it into their own create call.
"""

from dataclasses import dataclass, field

SANDBOX_USER = "1000:1000"
SANDBOX_HOME = "/home/sandbox"


@dataclass(frozen=True)
class IsolationPolicy:
    """Resource and privilege constraints applied at sandbox creation."""

    image: str = "ubuntu:22.04"
    memory_bytes: int = 512 * 1024 * 1024
    cpu_quota: int = 50000  # microseconds per period
    cpu_period: int = 100000  # microseconds
    pids_limit: int = 128
    network_disabled: bool = True
    user: str = SANDBOX_USER
    working_dir: str = SANDBOX_HOME
    cap_drop: tuple[str, ...] = ("ALL",)
    security_opt: tuple[str, ...] = ("no-new-privileges:true",)
    tmpfs: dict[str, str] = field(
        default_factory=lambda: {"/tmp": "rw,noexec,nosuid,size=64m"}
    )
    command: tuple[str, ...] = ("/bin/bash", "-l")
    environment: tuple[str, ...] = (
        "TERM=xterm-256color",
        "LANG=C.UTF-8",
        "LC_ALL=C.UTF-8",
        f"HOME={SANDBOX_HOME}",
        "USER=sandbox",
    )

    @property
    def memory_swap_bytes(self) -> int:
        """Memory + swap ceiling. Equal to memory_bytes, so no swap."""
        return self.memory_bytes

    @property
    def cpus(self) -> float:
        """Fractional CPU allotment (quota / period)."""
        return self.cpu_quota / self.cpu_period
