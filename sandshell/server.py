"""
sandshell server

Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from sandshell import __version__
from sandshell.api import api_router, root_router
from sandshell.config import Settings, get_settings
from sandshell.core.docker_provider import DockerProvider
from sandshell.core.lifecycle import SandboxLifecycleManager
from sandshell.core.provider import SandboxProvider
from sandshell.core.reaper import SandboxReaper
from sandshell.lib.logger import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[SandboxProvider] = None,
) -> FastAPI:
    """Build the application. Tests pass their own provider."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        config = settings or get_settings()

        setup_logging(level=config.log_level)
        logger.info("Starting sandshell server...")

        sandbox_provider = provider or DockerProvider(config.docker_base_url)
        policy = config.policy()
        logger.info(
            f"Provider: {sandbox_provider.name}, image: {policy.image}, "
            f"mem={policy.memory_bytes} cpus={policy.cpus:.2f} pids={policy.pids_limit}"
        )

        lifecycle = SandboxLifecycleManager(sandbox_provider, policy)
        reaper = SandboxReaper(lifecycle, config.idle_timeout, config.reap_interval)
        reaper.start()

        app.state.settings = config
        app.state.provider = sandbox_provider
        app.state.lifecycle = lifecycle
        app.state.reaper = reaper

        logger.info(f"Terminal WS listening on :{config.port}/terminal")

        yield

        # Shutdown: sandboxes are left running on purpose
        logger.info("Shutting down...")
        await reaper.stop()
        app.state.reaper = None
        app.state.lifecycle = None
        app.state.provider = None

    app = FastAPI(
        title="sandshell",
        description="Per-session sandboxed shells over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(root_router)
    app.include_router(api_router)
    return app


app = create_app()


def main():
    """Main entry point."""
    settings = get_settings()

    print(f"""
===============================================================
                          sandshell
===============================================================
  Terminal: ws://{settings.host}:{settings.port}/terminal
  Health:   http://{settings.host}:{settings.port}/health
  Image:    {settings.sandbox_image}
===============================================================
    """)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
