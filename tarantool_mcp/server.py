"""MCP server entry point wiring config, session and tools together."""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import AppConfig, load_config
from .connections import DriverFactory
from .dispatcher import CommandDispatcher
from .session import SessionManager
from .tools import ToolRegistry, build_tools

LOG = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Tools for a Tarantool database. Spaces and indexes may be given by name or numeric id; "
    "select returns at most 100 tuples unless a limit is passed."
)


def create_dispatcher(config: AppConfig, *, driver_factory: DriverFactory | None = None) -> CommandDispatcher:
    """Build the session and dispatcher for ``config``."""

    session = SessionManager(driver_factory=driver_factory)
    session.set_config(config.connection)
    return CommandDispatcher(session, name_cache_size=config.name_cache_size)


def create_server(config: AppConfig, dispatcher: CommandDispatcher) -> FastMCP:
    """Create the FastMCP server and mount every tool on it."""

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[CommandDispatcher]:
        if config.connect_on_startup:
            await dispatcher.connect()
            LOG.info(
                "Connected to Tarantool at %s:%s",
                config.connection.host,
                config.connection.port,
            )
        try:
            yield dispatcher
        finally:
            await dispatcher.disconnect()

    server = FastMCP(config.server_name, instructions=INSTRUCTIONS, lifespan=lifespan)
    registry = ToolRegistry()
    registry.register_many(build_tools(dispatcher))
    for capability in registry.list_tools():
        server.add_tool(capability.handler, name=capability.name, description=capability.description)
    return server


def main() -> None:
    """Run the server on stdio."""

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    LOG.info("Starting %s %s on stdio", config.server_name, __version__)
    dispatcher = create_dispatcher(config)
    server = create_server(config, dispatcher)
    server.run("stdio")


__all__ = ["create_dispatcher", "create_server", "main"]
