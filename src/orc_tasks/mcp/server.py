"""MCP server over stdio, serving the same catalogue as the HTTP gateway.

A stdio server runs inside the agent's own process tree, so the caller's
identity comes from this process's working directory, read again on every
call.
"""

import logging

import anyio
import anyio.to_thread
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from orc_tasks.config import Config
from orc_tasks.core.context import current_working_dir, resolve_context
from orc_tasks.core.errors import OrcError
from orc_tasks.db.engine import get_db
from orc_tasks.mcp.protocol import INSTRUCTIONS
from orc_tasks.mcp.registry import Catalogue, OperationContext, Outcome
from orc_tasks.mcp.tools import SERVER_NAME, SERVER_VERSION

logger = logging.getLogger(__name__)


def invoke(catalogue: Catalogue, config: Config, name: str, arguments: dict | None) -> Outcome:
    """Run one operation with a fresh connection and freshly resolved context."""
    with get_db(config.db_path) as db:
        agent = resolve_context(
            db,
            current_working_dir(),
            orchestrator_marker=config.orchestrator_marker,
            worktrees_marker=config.worktrees_marker,
        )
        return catalogue.invoke(name, arguments, OperationContext(db=db, agent=agent, config=config))


def create_server(catalogue: Catalogue, config: Config) -> Server:
    server = Server(SERVER_NAME, version=SERVER_VERSION, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return catalogue.tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        outcome = await anyio.to_thread.run_sync(invoke, catalogue, config, name, arguments)
        if outcome.is_error:
            raise OrcError(outcome.text)
        return [types.TextContent(type="text", text=outcome.text)]

    return server


async def serve_stdio(catalogue: Catalogue, config: Config) -> None:
    server = create_server(catalogue, config)
    logger.info("Serving %d operations over stdio", len(catalogue))
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
