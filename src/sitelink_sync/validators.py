"""
Input validation for sitelink-sync.

Site names double as watermark file names and as Wikibase global site
ids; namespaces come from user configuration or tool arguments.
"""

import re

_SITE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Site name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_site_name(site: str) -> tuple[bool, str]:
    """
    Validate a site name (e.g. ``enwiki``, ``zh_warriorswiki``).

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain '..' or path separators
        - Must match ^[A-Za-z0-9][A-Za-z0-9_.-]*$
    """
    if not site or not site.strip():
        return (
            False,
            format_validation_error("Site name", "cannot be empty"),
        )

    if ".." in site or "/" in site or "\\" in site:
        return (
            False,
            format_validation_error(
                "Site name", "cannot contain '..' or path separators"
            ),
        )

    if not _SITE_NAME_PATTERN.match(site):
        return (
            False,
            format_validation_error(
                "Site name",
                f"'{site}' may only contain letters, digits, '_', '.' and '-'",
            ),
        )

    return (True, "")


def validate_namespaces(namespaces: list[int]) -> tuple[bool, str]:
    """
    Validate a list of namespace ids to scan.

    Validation rules:
        - Cannot be empty
        - Every entry must be a non-negative integer (Special and Media
          pseudo-namespaces have no log entries)
    """
    if not namespaces:
        return (
            False,
            format_validation_error("Namespaces", "cannot be empty"),
        )
    for ns in namespaces:
        if isinstance(ns, bool) or not isinstance(ns, int) or ns < 0:
            return (
                False,
                format_validation_error(
                    "Namespaces",
                    f"must be non-negative integers (got {ns!r})",
                ),
            )
    return (True, "")
