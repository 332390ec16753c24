"""
Stream Bridge

Pipes bytes between a client WebSocket and a sandbox attach stream.

Two pumps run as independent tasks:
- outbound: attach stream -> WebSocket, chunk by chunk, in emission order
- inbound: WebSocket -> attach stream, message by message, in receipt order,
  with control commands (resize) applied in sequence and never forwarded

Whichever pump ends first cancels the other. Stream end closes the
WebSocket; a stream error is reported inline first. A client disconnect only
ends our side of the attach stream, the sandbox keeps running.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from sandshell.core.control import FrameKind, classify
from sandshell.core.provider import AttachStream
from sandshell.lib.errors import StreamError

logger = logging.getLogger(__name__)

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011

ResizeCallback = Callable[[int, int], Awaitable[None]]


def stream_error_notice(error: Exception) -> str:
    """Terminal-formatted notice for a mid-session stream failure."""
    return f"\r\n[stream error] {error}\r\n"


class StreamBridge:
    """Bidirectional pump between one WebSocket and one attach stream."""

    def __init__(
        self,
        websocket: WebSocket,
        stream: AttachStream,
        on_resize: ResizeCallback,
        session_id: str = "",
    ):
        self.websocket = websocket
        self.stream = stream
        self.on_resize = on_resize
        self.session_id = session_id
        self.bytes_in = 0
        self.bytes_out = 0
        self._closed = False

    @property
    def connected(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def run(self) -> None:
        """Bridge until either side ends. Never raises StreamError."""
        outbound = asyncio.create_task(self._pump_outbound())
        inbound = asyncio.create_task(self._pump_inbound())
        try:
            await asyncio.wait({outbound, inbound}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (outbound, inbound):
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(outbound, inbound, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(
                        f"[session {self.session_id[:8]}] bridge pump failed: {result!r}"
                    )
            # End our input only; the shell keeps running for the next attach
            await self.stream.close_write()
            await self.stream.close()
            logger.debug(
                f"[session {self.session_id[:8]}] bridge closed "
                f"(in={self.bytes_in}B out={self.bytes_out}B)"
            )

    async def _pump_outbound(self) -> None:
        try:
            while True:
                chunk = await self.stream.read()
                if not chunk:
                    break
                if not self.connected:
                    return
                try:
                    await self.websocket.send_bytes(chunk)
                except (WebSocketDisconnect, RuntimeError, OSError):
                    return
                self.bytes_out += len(chunk)
        except StreamError as e:
            logger.warning(f"[session {self.session_id[:8]}] stream error: {e}")
            await self._close(CLOSE_INTERNAL_ERROR, notice=stream_error_notice(e))
            return

        logger.info(f"[session {self.session_id[:8]}] attach stream ended")
        await self._close(CLOSE_NORMAL)

    async def _pump_inbound(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"[session {self.session_id[:8]}] client disconnected")
                return

            data = message.get("bytes")
            if data is None:
                data = message.get("text")
            if data is None:
                continue

            frame = classify(data)
            if frame.kind == FrameKind.RAW:
                try:
                    await self.stream.write(frame.data)
                except StreamError as e:
                    logger.warning(f"[session {self.session_id[:8]}] input error: {e}")
                    await self._close(CLOSE_INTERNAL_ERROR, notice=stream_error_notice(e))
                    return
                self.bytes_in += len(frame.data)
            elif frame.kind == FrameKind.CONTROL:
                await self.on_resize(frame.command.cols, frame.command.rows)
            else:
                logger.debug(f"[session {self.session_id[:8]}] dropped control message: {frame.error}")

    async def _close(self, code: int, notice: str | None = None) -> None:
        """Best-effort notice then close. Safe to call more than once."""
        if not self.connected:
            self._closed = True
            return
        try:
            if notice:
                await self.websocket.send_text(notice)
            await self.websocket.close(code=code)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(f"[session {self.session_id[:8]}] close failed: {e}")
        finally:
            self._closed = True
