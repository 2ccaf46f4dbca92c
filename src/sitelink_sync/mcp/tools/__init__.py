"""MCP tool handlers for site-link operations.

This package contains MCP tool implementations that wrap the
synchronizer with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_remote_error
from .registry import ToolRegistry, ToolSpec
from .sitelinks import (
    SITELINK_CHECK_TOOL,
    SITELINK_SPECS,
    SITELINK_STATUS_TOOL,
)

ALL_SPECS: list[ToolSpec] = list(SITELINK_SPECS)

__all__ = [
    "build_error_response",
    "translate_remote_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SITELINK_SPECS",
    "SITELINK_CHECK_TOOL",
    "SITELINK_STATUS_TOOL",
]
