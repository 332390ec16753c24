"""
API routes for the sandshell server.
"""

from fastapi import APIRouter

from sandshell.api import health, sessions, terminal

# Admin API
api_router = APIRouter(prefix="/api")
api_router.include_router(sessions.router, tags=["sessions"])

# Root-level routes: liveness probe and the terminal socket
root_router = APIRouter()
root_router.include_router(health.router, tags=["health"])
root_router.include_router(terminal.router, tags=["terminal"])
