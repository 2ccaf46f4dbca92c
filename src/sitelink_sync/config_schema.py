"""Unified configuration schema for sitelink_sync.

Defines Pydantic models for the config file: the wiki registry, the
synchronizer settings, watermark storage, chat notifications and
logging.

Durations accept seconds (``90``), ISO 8601 (``P120D``), clock form
(``00:05:00``) or a compact form such as ``120d``, ``5m`` or ``1h30m``.

Usage:
    from sitelink_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_COMPACT_DURATION = re.compile(
    r"^\s*(?:(?P<days>\d+)d)?\s*(?:(?P<hours>\d+)h)?\s*"
    r"(?:(?P<minutes>\d+)m)?\s*(?:(?P<seconds>\d+)s)?\s*$"
)


def parse_compact_duration(value: Any) -> Any:
    """Turn ``"1d2h"``-style strings into ``timedelta``.

    Anything else is returned unchanged for Pydantic to parse.
    """
    if not isinstance(value, str):
        return value
    match = _COMPACT_DURATION.match(value)
    if match is None or not any(match.groupdict().values()):
        return value
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return timedelta(**parts)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SiteConfig(BaseModel):
    """One wiki in the family (a client site or the repository)."""

    api_endpoint: str = Field(description="URL of the wiki's api.php")
    username: str | None = Field(
        default=None, description="Bot user name (bot password login)"
    )
    password: str | None = Field(default=None, description="Bot password")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )

    model_config = {"frozen": True}


class SynchronizerConfig(BaseModel):
    """Reconciliation settings.

    Attributes:
        repository_site: Site name of the Wikibase repository.
        client_sites: Client sites checked by default.
        namespaces: Namespaces whose moves and deletions are propagated.
        what_if: Dry run: compute operations, write nothing.
        max_traceback_duration: How far back a never-checked site starts.
        max_check_duration: Longest window scanned in one cycle.
        status_report_interval: Minimum gap between progress lines.
        safety_margin: Window end is this far behind "now", so events
            still being written are not skipped.
        batch_size: Log events per identity lookup.
        page_size: Log entries per API request.
    """

    repository_site: str = Field(default="wikidatawiki")
    client_sites: list[str] = Field(default_factory=list)
    namespaces: list[int] = Field(default_factory=lambda: [0])
    what_if: bool = False
    max_traceback_duration: timedelta = timedelta(days=120)
    max_check_duration: timedelta = timedelta(days=60)
    status_report_interval: timedelta = timedelta(minutes=5)
    safety_margin: timedelta = timedelta(minutes=1)
    batch_size: int = Field(default=100, ge=1, le=500)
    page_size: int = Field(default=200, ge=1, le=5000)

    model_config = {"frozen": True}

    @field_validator(
        "max_traceback_duration",
        "max_check_duration",
        "status_report_interval",
        "safety_margin",
        mode="before",
    )
    @classmethod
    def _compact_duration(cls, value: Any) -> Any:
        return parse_compact_duration(value)


class StateStoreConfig(BaseModel):
    """Where per-site watermarks are kept."""

    state_dir: str = Field(default=".sitelink_sync/state")

    model_config = {"frozen": True}


class NotificationsConfig(BaseModel):
    """Chat webhook for status messages.

    Attributes:
        webhook_url: Discord-compatible webhook URL; no messages are
            sent when unset.
        queue_size: Maximum undelivered messages before ``push`` blocks.
        log_level: Also forward log records at or above this level.
    """

    webhook_url: str | None = None
    queue_size: int = Field(default=1024, ge=1)
    log_level: str | None = None

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` parses; it is not
    *usable* until ``validate_config()`` accepts it (sites are required).
    """

    sites: dict[str, SiteConfig] = Field(default_factory=dict)
    synchronizer: SynchronizerConfig = Field(
        default_factory=SynchronizerConfig
    )
    state_store: StateStoreConfig = Field(default_factory=StateStoreConfig)
    notifications: NotificationsConfig = Field(
        default_factory=NotificationsConfig
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; unknown top-level keys are logged and
    ignored.

    Raises:
        pydantic.ValidationError: If a section does not match the schema.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    for key in raw_data:
        if key not in known:
            logger.warning("Ignoring unknown config section '%s'", key)
    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )
