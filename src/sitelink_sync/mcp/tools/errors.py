"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...core.client import MediaWikiRemoteError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            auth_error, rate_limited, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Site 'xxwiki' not found", "Use sitelink_status to list sites.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# MediaWiki API error code -> (error_type, corrective action)
_REMOTE_ERRORS: dict[str, tuple[str, str]] = {
    "permissiondenied": (
        "permission_denied",
        "Grant the bot account the 'edit' and 'bot' rights on the repository.",
    ),
    "protectedpage": (
        "permission_denied",
        "The item is protected; ask a repository administrator to update it.",
    ),
    "login-failed": (
        "auth_error",
        "Check the bot username and password (SITELINK_SYNC_PASSWORD_<SITE>).",
    ),
    "assertuserfailed": (
        "auth_error",
        "The session expired; restart the server to log in again.",
    ),
    "maxlag": (
        "rate_limited",
        "The repository is lagged; retry in a few minutes.",
    ),
    "ratelimited": (
        "rate_limited",
        "The bot hit an edit rate limit; retry later.",
    ),
    "no-such-entity": (
        "not_found",
        "The item was deleted or merged; check it on the repository.",
    ),
    "failed-save": (
        "conflict",
        "Another item may already link this title; resolve it on the repository.",
    ),
}


def translate_remote_error(error: MediaWikiRemoteError) -> types.CallToolResult:
    """Translate a MediaWiki API error to a structured error response.

    Args:
        error: The API error.

    Returns:
        CallToolResult with isError=True and corrective action
    """
    error_type, action = _REMOTE_ERRORS.get(
        error.code,
        ("server_error", "Check the server log, then retry later."),
    )
    return build_error_response(
        error_type, f"{error.code}: {error.info}", action
    )
