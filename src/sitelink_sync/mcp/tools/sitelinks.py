"""MCP tool handlers for site-link reconciliation.

Defines two tools:

- ``sitelink_check`` -- run one reconciliation cycle per client site.
- ``sitelink_status`` -- show the stored watermark of client sites.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync, run_sync_limited
from ...sync.reporter import (
    format_run_report,
    format_watermarks,
    report_to_json,
)
from ...validators import validate_namespaces, validate_site_name
from .errors import build_error_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_SITES_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": (
        "Client site names (e.g. ['enwiki']). "
        "Defaults to the configured client sites."
    ),
}

SITELINK_CHECK_TOOL = types.Tool(
    name="sitelink_check",
    description=(
        "Scan the move and delete logs of client sites since their last "
        "check and update the site links of the affected repository items. "
        "Use what_if=true to preview the updates without writing."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "sites": _SITES_PROPERTY,
            "what_if": {
                "type": "boolean",
                "description": (
                    "Preview only: write nothing and keep watermarks. "
                    "Defaults to the configured mode."
                ),
            },
            "namespaces": {
                "type": "array",
                "items": {"type": "integer", "minimum": 0},
                "description": "Namespace ids to scan. Defaults to config.",
            },
        },
        "required": [],
    },
)

SITELINK_STATUS_TOOL = types.Tool(
    name="sitelink_status",
    description=(
        "Show where the next check of each client site will resume: "
        "next start time and last processed log id."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={
        "type": "object",
        "properties": {"sites": _SITES_PROPERTY},
        "required": [],
    },
)


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _resolve_sites(
    ctx: ServerContext, args: dict[str, Any]
) -> list[str] | types.CallToolResult:
    sites = args.get("sites")
    if sites is None:
        return list(ctx.config.synchronizer.client_sites)
    if not isinstance(sites, list) or not all(
        isinstance(s, str) for s in sites
    ):
        return build_error_response(
            "validation_error",
            "sites must be a list of site names",
            "Pass sites as e.g. ['enwiki', 'dewiki'].",
        )
    for site in sites:
        is_valid, error_msg = validate_site_name(site)
        if not is_valid:
            return build_error_response(
                "validation_error", error_msg, "Fix the site name and retry."
            )
        if site not in ctx.family:
            return build_error_response(
                "not_found",
                f"Site '{site}' is not configured.",
                f"Configured sites: {', '.join(ctx.family.names)}.",
            )
    return sites


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sitelink_check(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sitelink_check`` tool."""
    sites = _resolve_sites(ctx, args)
    if isinstance(sites, types.CallToolResult):
        return sites
    if not sites:
        return build_error_response(
            "validation_error",
            "No client sites given and none configured.",
            "Pass 'sites' or set synchronizer.client_sites in the config.",
        )

    namespaces = args.get("namespaces")
    if namespaces is not None:
        is_valid, error_msg = validate_namespaces(namespaces)
        if not is_valid:
            return build_error_response(
                "validation_error", error_msg, "Pass e.g. namespaces=[0]."
            )

    what_if = args.get("what_if")
    synchronizer = ctx.synchronizer(
        what_if=bool(what_if) if what_if is not None else None
    )
    logger.info(
        "sitelink_check: sites=%s what_if=%s", sites, synchronizer.what_if
    )
    report = await run_sync_limited(
        synchronizer.check_sites, sites, namespaces
    )

    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_run_report(report))
        ],
        structuredContent=report_to_json(report),
    )


async def _handle_sitelink_status(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sitelink_status`` tool."""
    sites = _resolve_sites(ctx, args)
    if isinstance(sites, types.CallToolResult):
        return sites

    marks = {}
    for site in sites:
        mark = await run_sync(ctx.store.get, site)
        if mark is not None:
            marks[site] = mark

    structured = {
        "state_dir": str(ctx.store.state_dir),
        "sites": [
            {
                "site": site,
                "next_start_time": marks[site].next_start_time.isoformat()
                if site in marks
                else None,
                "last_event_id": marks[site].last_event_id
                if site in marks
                else None,
            }
            for site in sites
        ],
    }
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_watermarks(sites, marks)
            )
        ],
        structuredContent=structured,
    )


SITELINK_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SITELINK_CHECK_TOOL,
        writes=True,
        handler=_handle_sitelink_check,
    ),
    ToolSpec(
        tool=SITELINK_STATUS_TOOL,
        writes=False,
        handler=_handle_sitelink_status,
    ),
]
