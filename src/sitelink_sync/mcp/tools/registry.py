"""ToolSpec and ToolRegistry for read-only tool filtering.

This module provides a centralized registry for MCP tools.  Tools that
write to the repository (or commit watermarks) are flagged, so an
operator can start the server with ``--read-only`` and expose only
inspection tools to an agent.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, a write flag,
  and an async handler with standardized signature (ctx, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import mcp.types as types
import requests

from ...core.client import MediaWikiRemoteError

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        writes: Whether the tool can modify the repository or local state.
        handler: Async handler with signature (ctx, args) -> CallToolResult.
    """

    tool: types.Tool
    writes: bool
    handler: Callable[[ServerContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs, optionally restricted to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if read_only and spec.writes:
                logger.debug("Read-only mode: hiding %s", spec.tool.name)
                continue
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        ctx: ServerContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Remote API errors, transport errors, validation errors and
        unexpected exceptions are translated into structured
        CallToolResult responses with corrective actions.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_remote_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(ctx, args)
        except MediaWikiRemoteError as e:
            logger.warning("Remote error in %s: %s", name, e)
            return translate_remote_error(e)
        except requests.RequestException as e:
            logger.warning("Transport error in %s: %s", name, e)
            return build_error_response(
                "connection_error",
                str(e),
                "Check the wiki API endpoints and network, then retry.",
            )
        except (ValueError, KeyError) as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log, then retry later.",
            )
