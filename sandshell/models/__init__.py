"""
Pydantic models for the sandshell server.
"""

from sandshell.models.protocol import ResizeMessage, SessionMessage

__all__ = ["ResizeMessage", "SessionMessage"]
