"""MCP Server for site-link synchronization using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents trigger and inspect site-link checks.

Transport: stdio (the agent spawns the server as a subprocess)
Protocol: MCP (JSON-RPC 2.0)
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from .lifespan import ServerContext, server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Protocol server; handlers are registered below
server = Server("sitelink-sync")

# Global context (initialized in lifespan)
_context: ServerContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, read-only)
# ---------------------------------------------------------------------------


async def _handle_ping(
    ctx: ServerContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test repository connectivity."""
    site = ctx.config.synchronizer.repository_site
    try:
        version = await run_sync(ctx.repository.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Site link sync server connected to {site}. "
                    f"MediaWiki version: {version}",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Connection to {site} failed: {e}. Check "
                    f"sites.{site}.api_endpoint and its credentials.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test repository connectivity and return its MediaWiki version",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    writes=False,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ServerContext:
    """Get the global ServerContext instance.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "ServerContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ServerContext | None) -> None:
    """Set the global ServerContext instance, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the tools registered in the ToolRegistry."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    ctx = get_context()
    try:
        return await get_registry().call_tool(name, arguments, ctx)
    except ValueError as e:
        # unknown, or hidden by --read-only
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    repository connection via the lifespan manager, and starts the server
    with stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with values from the command line
            (what_if, read_only, log_file)
    """
    overrides = config_overrides or {}

    # Must run BEFORE stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(
        all_specs, read_only=overrides.get("read_only", False)
    )
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if overrides.get("read_only"):
        print(
            f"Read-only mode: {registry.tool_count()} of "
            f"{len(all_specs)} tools enabled",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_context() is called here rather than inside the lifespan, so
    # running this file as __main__ still updates this module's globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="sitelink-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Site link sync MCP server - check wiki move/delete logs from an agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with the discovered config (.sitelink_sync/config.yml)
  sitelink-sync-mcp

  # Never write site links, whatever the agent asks
  sitelink-sync-mcp --what-if

  # Only expose inspection tools
  sitelink-sync-mcp --read-only

Note: stdout carries the MCP protocol stream; status and errors go to stderr.
        """,
    )
    parser.add_argument(
        "--what-if",
        action="store_true",
        help="Start in what-if mode: report updates without writing them",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Hide tools that write site links or commit watermarks",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/sitelink-sync-mcp.log",
        help="Log file path (default: /tmp/sitelink-sync-mcp.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sitelink-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.what_if:
        config_overrides["what_if"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # lifespan already reported the cause on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
