"""
Health check endpoint.
"""

import time
from typing import Any, Union

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse

from sandshell import __version__

router = APIRouter()

# Server start time for uptime calculation
_start_time = time.time()


@router.get("/health", response_model=None)
async def health_check(
    request: Request,
    detailed: bool = Query(False, description="Include detailed information"),
) -> Union[PlainTextResponse, dict[str, Any]]:
    """
    Liveness probe.

    Returns a plain "ok", or provider and session info if requested.
    """
    if not detailed:
        return PlainTextResponse("ok")

    provider = request.app.state.provider
    lifecycle = request.app.state.lifecycle

    return {
        "status": "ok",
        "timestamp": int(time.time() * 1000),
        "uptime": time.time() - _start_time,
        "version": __version__,
        "provider": {
            "name": provider.name,
            "reachable": await provider.ping(),
            "image": lifecycle.policy.image,
        },
        "sessions": len(lifecycle.registry),
    }
