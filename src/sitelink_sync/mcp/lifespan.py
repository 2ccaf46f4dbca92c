"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import discover_config_files
from ..config_schema import UnifiedConfig
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import MediaWikiClient
from ..core.family import WikiFamily
from ..notifier import NullMessenger, WebhookMessenger, create_messenger
from ..sync.engine import SiteLinkSynchronizer
from ..sync.state import WatermarkStore

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class ServerContext:
    """Everything a tool handler needs, built once at startup."""

    config: UnifiedConfig
    family: WikiFamily
    store: WatermarkStore
    messenger: WebhookMessenger | NullMessenger

    @property
    def repository(self) -> MediaWikiClient:
        return self.family.get_site(self.config.synchronizer.repository_site)

    def synchronizer(self, what_if: bool | None = None) -> SiteLinkSynchronizer:
        """Build a synchronizer, optionally overriding dry-run mode."""
        settings = self.config.synchronizer
        if what_if is not None:
            settings = settings.model_copy(update={"what_if": what_if})
        return SiteLinkSynchronizer(
            self.family, self.store, self.messenger, settings
        )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load and validate the YAML config with env overrides
    - Log in to the repository and validate the connection
    - Fail fast if the repository is unreachable

    On shutdown:
    - Deliver queued chat messages and stop the messenger

    Args:
        config_overrides: Optional dict with values from CLI (what_if)

    Yields:
        Dict with 'context' key containing the ServerContext

    Raises:
        RuntimeError: If configuration is invalid or the repository
            connection fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("Site link sync MCP server starting...")

    overrides = config_overrides or {}
    try:
        # .env first, so ${VAR} interpolation in YAML can use its values
        load_dotenv()
        config = load_config(what_if=overrides.get("what_if", False))

        config_files = discover_config_files()
        source_desc = (
            f"config file: {config_files[0]}" if config_files else "defaults"
        )
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(
            f"  Repository: {config.synchronizer.repository_site}, "
            f"client sites: {', '.join(config.synchronizer.client_sites) or '(none)'}"
        )
        if config.synchronizer.what_if:
            _stderr_print("  What-if mode: no site links will be written")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    family = WikiFamily(config.sites)
    repository_site = config.synchronizer.repository_site
    logger.info("Validating repository connection...")
    _stderr_print("  Validating repository connection...")
    try:
        repository = await run_sync(family.get_site, repository_site)
        version = await run_sync(repository.validate_connection)
        logger.info("Connected to %s (%s)", repository_site, version)
        _stderr_print(f"  Connected to {repository_site} ({version})")
        init_semaphore(1)
    except Exception as e:
        logger.error("Failed to connect to %s: %s", repository_site, e)
        _stderr_print("ERROR: Repository connection failed.")
        _stderr_print(f"  {e}")
        raise RuntimeError(
            f"Repository connection failed: {e}. Check 'sites."
            f"{repository_site}' and its credentials."
        ) from e

    messenger = create_messenger(
        config.notifications.webhook_url,
        queue_size=config.notifications.queue_size,
    )
    ctx = ServerContext(
        config=config,
        family=family,
        store=WatermarkStore(Path(config.state_store.state_dir)),
        messenger=messenger,
    )
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"context": ctx}
    finally:
        logger.info("MCP server shutting down")
        messenger.close()
        _stderr_print("Site link sync MCP server shutting down.")
