"""
sandshell: per-session sandboxed shells over WebSocket.
"""

__version__ = "0.1.0"
