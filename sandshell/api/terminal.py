"""
Terminal WebSocket endpoint (connection gateway).

    WS /terminal?session=<id>

Resolves or generates the session id, gets the session's sandbox running,
tells the client which id to reconnect with, attaches, and hands the
connection to the stream bridge. Every failure closes only this connection.
"""

import logging
import re
import uuid
from functools import partial
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from sandshell.core.bridge import CLOSE_INTERNAL_ERROR, StreamBridge
from sandshell.core.lifecycle import SandboxLifecycleManager
from sandshell.lib.errors import AttachError, InvalidSessionId, ProvisioningError
from sandshell.models.protocol import SessionMessage

logger = logging.getLogger(__name__)

router = APIRouter()

# Session ids end up in container names
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")

CLOSE_POLICY_VIOLATION = 1008


def resolve_session_id(requested: Optional[str]) -> str:
    """Use the client's session id, or generate a fresh one."""
    if not requested:
        return str(uuid.uuid4())
    if not SESSION_ID_PATTERN.match(requested):
        raise InvalidSessionId(f"invalid session id {requested[:20]!r}")
    return requested


async def _reject(websocket: WebSocket, message: str, code: int) -> None:
    await websocket.send_text(message)
    await websocket.close(code=code)


@router.websocket("/terminal")
async def terminal(
    websocket: WebSocket,
    session: Optional[str] = Query(None, description="Session id to resume"),
) -> None:
    await websocket.accept()

    try:
        session_id = resolve_session_id(session)
    except InvalidSessionId as e:
        await _reject(websocket, f"Invalid session: {e}", CLOSE_POLICY_VIOLATION)
        return

    try:
        await _serve(websocket, websocket.app.state.lifecycle, session_id)
    except (WebSocketDisconnect, RuntimeError, OSError) as e:
        logger.info(f"[session {session_id[:8]}] connection lost: {e!r}")
    except Exception:
        logger.exception(f"[session {session_id[:8]}] unexpected terminal error")
        if websocket.application_state == WebSocketState.CONNECTED:
            await websocket.close(code=CLOSE_INTERNAL_ERROR)


async def _serve(websocket: WebSocket, lifecycle: SandboxLifecycleManager, session_id: str) -> None:
    try:
        handle = await lifecycle.get_or_create(session_id)
    except ProvisioningError as e:
        logger.error(f"[session {session_id[:8]}] provisioning failed: {e}")
        await _reject(websocket, f"Failed to create container: {e}", CLOSE_INTERNAL_ERROR)
        return

    # get_or_create() counted this connection as attached; undo it however we exit
    try:
        await websocket.send_text(SessionMessage(session=session_id).model_dump_json())

        try:
            stream = await lifecycle.attach(handle)
        except AttachError as e:
            logger.error(f"[session {session_id[:8]}] attach failed: {e}")
            await _reject(websocket, f"Failed to attach: {e}", CLOSE_INTERNAL_ERROR)
            return

        logger.info(f"[session {session_id[:8]}] attached to {handle.sandbox_id[:12]}")
        bridge = StreamBridge(
            websocket,
            stream,
            on_resize=partial(lifecycle.resize, handle),
            session_id=session_id,
        )
        await bridge.run()
    finally:
        lifecycle.registry.mark_detached(session_id)
