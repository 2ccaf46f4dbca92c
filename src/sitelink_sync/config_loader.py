"""
Config file discovery and YAML loading for sitelink_sync.

Config files are found by convention, may split secrets or site lists
into other files with ``!include``, and may reference environment
variables as ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from sitelink_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SITELINK_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".sitelink_sync"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Substitute environment variables in *value*.

    ``${VAR}`` becomes the value of VAR, or ``""`` when unset.
    ``${VAR:-default}`` falls back to *default* when VAR is unset or
    empty.  An unterminated ``${`` is kept as is.
    """

    def _substitute(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_substitute, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with an ``!include`` tag.

    A subclass keeps the tag off the global ``yaml.SafeLoader``.  Each
    loader carries the chain of files being included so cycles are
    reported instead of recursing forever.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include <path>`` in place of the node.

    Relative paths are resolved against the including file's directory.
    """
    target = Path(loader.construct_scalar(node)).expanduser()
    including_file = Path(loader.name).resolve()
    if not target.is_absolute():
        target = including_file.parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "_include_stack", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {including_file})"
        )
    return load_yaml_file(target, _include_stack=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(
    path: Path, *, _include_stack: list[Path] | None = None
) -> Any:
    """Parse one YAML file, following ``!include`` tags.

    Environment variables are *not* interpolated here.
    """
    path = Path(path).resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``SITELINK_SYNC_CONFIG`` env var (explicit single path)
        2. ``.sitelink_sync/config.yml`` in CWD (project-level)
        3. ``.sitelink_sync/config.yaml`` in CWD
        4. ``~/.config/sitelink_sync/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(
        Path.home() / ".config" / "sitelink_sync" / "config.yml"
    )

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# sitelink-sync configuration
#
# Secrets are best kept out of this file: ${VAR} and ${VAR:-default}
# are replaced from the environment (a .env file in the working
# directory is loaded first), and SITELINK_SYNC_PASSWORD_<SITE>
# overrides the password of one site.
#
# sites:
#   wikidatawiki:
#     api_endpoint: https://www.wikidata.org/w/api.php
#     username: ExampleBot@sitelink-sync
#     password: ${WIKIDATA_BOT_PASSWORD}
#   enwiki:
#     api_endpoint: https://en.wikipedia.org/w/api.php
#
# synchronizer:
#   repository_site: wikidatawiki
#   client_sites: [enwiki]
#   namespaces: [0]
#   what_if: true
#   max_traceback_duration: 120d
#   max_check_duration: 60d
#   status_report_interval: 5m
#
# state_store:
#   state_dir: .sitelink_sync/state
#
# notifications:
#   webhook_url: ${SITELINK_SYNC_WEBHOOK_URL:-}
#   log_level: WARNING
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the config file in use, or the default project-level path.

    Does not create anything; see ``ensure_config()``.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> tuple[Path, bool]:
    """Make sure a config file exists, writing a commented starter if not.

    Args:
        target: Path to create.  Defaults to ``resolve_config_path()``.

    Returns:
        ``(path, created)`` where *created* is False if a config file
        already existed.
    """
    if target is not None:
        if target.exists():
            return target, False
        config_path = target
    else:
        existing = discover_config_files()
        if existing:
            logger.debug("Config file already exists: %s", existing[0])
            return existing[0], False
        config_path = resolve_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path, True


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; a top-level
    section in a higher-precedence file replaces the whole section from
    lower ones (no deep merge).  Environment variables are interpolated
    after merging.

    Returns:
        The merged mapping, or ``{}`` when no config file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s); skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
