"""
Session administration endpoints.

Lists the in-memory registry and reaps a session's sandbox on demand.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from sandshell.lib.errors import ProviderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("")
async def list_sessions(request: Request):
    """List sessions that currently have a sandbox."""
    registry = request.app.state.lifecycle.registry
    return {"sessions": [entry.to_dict() for entry in registry.entries()]}


@router.delete("/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Stop and remove a session's sandbox.

    A client reconnecting with the same id afterwards gets a fresh sandbox.
    """
    lifecycle = request.app.state.lifecycle
    try:
        removed = await lifecycle.release(session_id)
    except ProviderError as e:
        logger.warning(f"Failed to remove sandbox for session {session_id[:8]}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to remove sandbox: {e}")
    if not removed:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"deleted": True, "session": session_id}
