"""Configuration loading and validation.

Reads the YAML config (see ``config_loader``), applies environment and
CLI overrides, and validates the result.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SITELINK_SYNC_CONFIG: Explicit config file path
    SITELINK_SYNC_WHAT_IF: Force dry-run mode on or off
    SITELINK_SYNC_STATE_DIR: Watermark directory
    SITELINK_SYNC_WEBHOOK_URL: Chat webhook for status messages
    SITELINK_SYNC_PASSWORD_<SITE>: Password of one site, e.g.
        SITELINK_SYNC_PASSWORD_WIKIDATAWIKI
"""

import logging
import os
import re
from datetime import timedelta
from urllib.parse import urlparse

from .config_loader import load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .validators import validate_namespaces, validate_site_name

logger = logging.getLogger(__name__)

ENV_PREFIX = "SITELINK_SYNC_"


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None or val == "":
        return None
    return val.lower() in ("true", "1", "yes", "on")


def password_env_var(site: str) -> str:
    """Name of the env var that overrides *site*'s password."""
    return ENV_PREFIX + "PASSWORD_" + re.sub(r"[^A-Za-z0-9]", "_", site).upper()


def validate_config(config: UnifiedConfig) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a site is malformed, a referenced site is not
            registered, or a duration or size is not positive.
    """
    for name, site in config.sites.items():
        is_valid, error_msg = validate_site_name(name)
        if not is_valid:
            raise ValueError(error_msg)

        endpoint = site.api_endpoint.strip()
        if not endpoint.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid API endpoint '{endpoint}' for site '{name}': "
                "must start with http:// or https://"
            )
        if not urlparse(endpoint).hostname:
            raise ValueError(
                f"Invalid API endpoint '{endpoint}' for site '{name}': "
                "URL must include a hostname"
            )
        if site.username and not site.password:
            raise ValueError(
                f"Site '{name}' has a username but no password. "
                f"Set {password_env_var(name)} or add 'password' to the "
                "config file."
            )
        if site.insecure:
            logger.warning(
                "WARNING: SSL verification disabled for %s. "
                "Use only for development.",
                name,
            )

    settings = config.synchronizer
    if settings.repository_site not in config.sites:
        raise ValueError(
            f"Repository site '{settings.repository_site}' is not "
            "registered under 'sites'."
        )
    for client_site in settings.client_sites:
        if client_site not in config.sites:
            raise ValueError(
                f"Client site '{client_site}' is not registered "
                "under 'sites'."
            )

    is_valid, error_msg = validate_namespaces(settings.namespaces)
    if not is_valid:
        raise ValueError(error_msg)

    for field_name in (
        "max_traceback_duration",
        "max_check_duration",
        "status_report_interval",
    ):
        value: timedelta = getattr(settings, field_name)
        if value <= timedelta(0):
            raise ValueError(
                f"synchronizer.{field_name} must be positive (got {value})"
            )
    if settings.safety_margin < timedelta(0):
        raise ValueError(
            "synchronizer.safety_margin cannot be negative "
            f"(got {settings.safety_margin})"
        )

    if not config.state_store.state_dir.strip():
        raise ValueError("state_store.state_dir cannot be empty")


def apply_env_overrides(config: UnifiedConfig) -> UnifiedConfig:
    """Return *config* with ``SITELINK_SYNC_*`` environment values applied."""
    sites = dict(config.sites)
    for name, site in config.sites.items():
        password = os.getenv(password_env_var(name))
        if password:
            sites[name] = site.model_copy(update={"password": password})

    synchronizer = config.synchronizer
    env_what_if = get_bool_env(ENV_PREFIX + "WHAT_IF")
    if env_what_if is not None:
        synchronizer = synchronizer.model_copy(
            update={"what_if": env_what_if}
        )

    state_store = config.state_store
    state_dir = os.getenv(ENV_PREFIX + "STATE_DIR")
    if state_dir:
        state_store = state_store.model_copy(update={"state_dir": state_dir})

    notifications = config.notifications
    webhook_url = os.getenv(ENV_PREFIX + "WEBHOOK_URL")
    if webhook_url:
        notifications = notifications.model_copy(
            update={"webhook_url": webhook_url}
        )

    return config.model_copy(
        update={
            "sites": sites,
            "synchronizer": synchronizer,
            "state_store": state_store,
            "notifications": notifications,
        }
    )


def load_config(
    what_if: bool = False,
    raw_data: dict | None = None,
) -> UnifiedConfig:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        what_if: Force dry-run mode (CLI flag).  ``False`` leaves the
            configured value alone.
        raw_data: Pre-loaded config mapping; discovered config files are
            read when omitted.

    Returns:
        Validated ``UnifiedConfig``.

    Raises:
        ValueError: If the configuration is missing or invalid.
    """
    raw = load_hierarchical_config() if raw_data is None else raw_data
    if not raw.get("sites"):
        raise ValueError(
            "No sites configured. Run 'sitelink-sync init' to create a "
            "starter config, or set SITELINK_SYNC_CONFIG."
        )

    config = apply_env_overrides(build_config(raw))
    if what_if:
        config = config.model_copy(
            update={
                "synchronizer": config.synchronizer.model_copy(
                    update={"what_if": True}
                )
            }
        )

    validate_config(config)
    return config
