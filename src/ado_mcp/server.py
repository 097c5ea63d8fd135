"""Azure DevOps MCP Server - Expose Azure DevOps resources to AI assistants."""
import asyncio
import logging
import sys
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp import types
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, Tool

from ado_core.client import AdoApiClient
from ado_core.config import ConfigurationError, get_settings
from ado_core.errors import ClassifiedError

from . import __version__, formatters, tools
from .registry import ToolRegistry

logger = logging.getLogger("ado-mcp.server")

# MCP Server instance
app = Server("ado-mcp", version=__version__)

# Built once in main(); read-only afterwards
_registry: Optional[ToolRegistry] = None


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr; stdout carries the stdio protocol."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
        force=True
    )


def set_registry(registry: Optional[ToolRegistry]) -> None:
    global _registry
    _registry = registry


def _require_registry() -> ToolRegistry:
    if _registry is None:
        raise RuntimeError("Tool registry is not initialized; start the server with main()")
    return _registry


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List the entity tools (one per Azure DevOps resource)."""
    return tools.get_tools(_require_registry())


async def call_tool(name: str, arguments: Any) -> CallToolResult:
    """Route the call to its entity tool.

    Validation problems come back as isError results; unknown tools and
    upstream failures are raised as MCP errors.
    """
    logger.info(f"Tool call: {name} (operation: {(arguments or {}).get('operation')})")
    try:
        return await _require_registry().invoke(name, arguments or {})
    except ClassifiedError as e:
        raise McpError(formatters.format_error(e)) from e


async def handle_call_tool(request: types.CallToolRequest) -> types.ServerResult:
    """tools/call request handler.

    Installed directly rather than through @app.call_tool(), whose wrapper
    turns every exception into an isError result. Here McpError reaches the
    session and goes out as a JSON-RPC error with its code and data; input
    schemas are enforced by the entity tools themselves.
    """
    result = await call_tool(request.params.name, request.params.arguments or {})
    return types.ServerResult(result)


app.request_handlers[types.CallToolRequest] = handle_call_tool


async def main() -> None:
    """Run the MCP server over stdio."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        configure_logging()
        logger.error(str(e))
        raise

    configure_logging(settings.log_level)
    logger.info(f"MCP Server starting with settings: {settings.redacted()}")

    async with AdoApiClient.from_settings(settings) as client:
        set_registry(tools.build_registry(client))
        logger.info(f"Registered {len(_require_registry())} tools: {', '.join(_require_registry().tool_names)}")
        try:
            async with stdio_server() as (read_stream, write_stream):
                await app.run(read_stream, write_stream, app.create_initialization_options())
        finally:
            set_registry(None)


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except ConfigurationError:
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
