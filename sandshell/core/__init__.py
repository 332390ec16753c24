"""
Core session and sandbox logic for the sandshell server.
"""

from sandshell.core.lifecycle import SandboxHandle, SandboxLifecycleManager
from sandshell.core.policy import IsolationPolicy
from sandshell.core.registry import SessionRegistry

__all__ = ["IsolationPolicy", "SandboxHandle", "SandboxLifecycleManager", "SessionRegistry"]
