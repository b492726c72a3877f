"""FastAPI application factory for the RCON panel."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rconpanel.auth import Validate
from rconpanel.command_router import configure_command_router, configure_server_router
from rconpanel.config import configure_logging, load_config_from_env
from rconpanel.rconclient import RCONManager, SocketClient
from rconpanel.servers import ServerQueries

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from rconpanel.config import AppConfig
    from rconpanel.rconclient.session import ClientFactory

LOGGER = logging.getLogger(__name__)


def configure_fastapi_app(
    config: AppConfig,
    client_factory: ClientFactory = SocketClient.open,
) -> FastAPI:
    """Configure and return the FastAPI application.

    :param config: Application configuration
    :param client_factory: Coroutine opening RCON connections
    :return: Configured FastAPI application
    """
    if not Path(config.db_path).parent.exists():
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Created directory for database at %s", Path(config.db_path).parent)

    validate = Validate(config.panel_api_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[Any, Any]:
        """Application lifespan manager.

        Owns the database connection and the one RCONManager of the process.
        """
        LOGGER.info("RCON panel API is starting")

        queries = await ServerQueries.create(config.db_path)
        try:
            await queries.initialize_tables()
            manager = RCONManager(queries, config.session_config, client_factory)

            async with manager:
                server_router = configure_server_router(APIRouter(), manager, queries)
                command_router = configure_command_router(
                    APIRouter(),
                    manager,
                    queries,
                )

                app.include_router(
                    server_router,
                    prefix="/servers",
                    tags=["servers"],
                    dependencies=[Depends(validate.api_key)],
                )
                app.include_router(
                    command_router,
                    prefix="/servers",
                    tags=["commands"],
                    dependencies=[Depends(validate.api_key)],
                )

                yield

                LOGGER.info("RCON panel API is shutting down")
        finally:
            await queries.close()

    app = FastAPI(
        title="RCON Panel API",
        version="0.1.0",
        lifespan=lifespan,
        root_path=config.root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def read_root() -> str:
        return "RCON Panel API"

    return app


def create_app(env_file: str | None = os.environ.get("ENV_FILE", ".env")) -> FastAPI:
    """Create and configure the FastAPI application.

    The default here is for uvicorn command line usage, in which case the user
    should set ENV_FILE environment variable if they want a different file.

    :param env_file: Optional path to the environment configuration file
    :return: Configured FastAPI application
    """
    config = load_config_from_env(env_file)
    configure_logging(config)
    return configure_fastapi_app(config)
