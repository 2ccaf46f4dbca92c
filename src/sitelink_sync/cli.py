"""Command line entry point: ``sitelink-sync check|status|init``."""

import argparse
import json
import logging
import sys
from pathlib import Path

import requests
from dotenv import load_dotenv

from . import __version__
from .config import load_config
from .config_loader import ensure_config
from .core.client import MediaWikiRemoteError
from .core.family import WikiFamily
from .logger import setup_logging
from .notifier import create_messenger
from .sync.engine import SiteLinkSynchronizer
from .sync.reporter import format_run_report, format_watermarks, report_to_json
from .sync.state import WatermarkStore

logger = logging.getLogger(__name__)


def _cmd_check(args: argparse.Namespace) -> int:
    config = load_config(what_if=args.what_if)
    messenger = create_messenger(
        config.notifications.webhook_url,
        queue_size=config.notifications.queue_size,
    )
    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.debug_format,
        level=config.logging.level,
        messenger=messenger,
        chat_level=config.notifications.log_level,
    )

    with messenger:
        synchronizer = SiteLinkSynchronizer(
            WikiFamily(config.sites),
            WatermarkStore(Path(config.state_store.state_dir)),
            messenger,
            config.synchronizer,
        )
        report = synchronizer.check_sites(
            args.site or None, args.namespace or None
        )

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_run_report(report))
    return 1 if report.failed else 0


def _cmd_status(args: argparse.Namespace) -> int:
    config = load_config()
    store = WatermarkStore(Path(config.state_store.state_dir))
    sites = args.site or list(config.synchronizer.client_sites)
    marks = {}
    for site in sites:
        mark = store.get(site)
        if mark is not None:
            marks[site] = mark
    print(format_watermarks(sites, marks))
    return 0


def _cmd_init(args: argparse.Namespace) -> int:
    path, created = ensure_config(Path(args.path) if args.path else None)
    if created:
        print(f"Created starter config: {path}")
        print("Edit the 'sites' section, then run 'sitelink-sync check --what-if'.")
    else:
        print(f"Config already exists: {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitelink-sync",
        description="Keep repository site links in line with page moves and deletions on client wikis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create .sitelink_sync/config.yml
  sitelink-sync init

  # Preview updates for one site
  sitelink-sync check --site enwiki --what-if

  # Check every configured client site
  sitelink-sync check

  # Show where the next check resumes
  sitelink-sync status
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sitelink-sync version {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check", help="Reconcile recent moves and deletions"
    )
    check.add_argument(
        "--site",
        action="append",
        help="Client site to check (repeatable; default: configured client sites)",
    )
    check.add_argument(
        "--namespace",
        action="append",
        type=int,
        help="Namespace id to scan (repeatable; default: configured namespaces)",
    )
    check.add_argument(
        "--what-if",
        action="store_true",
        help="Report updates without writing site links or watermarks",
    )
    check.add_argument(
        "--json", action="store_true", help="Print the run report as JSON"
    )
    check.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    check.add_argument("--log-file", help="Also log to this file")
    check.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    check.set_defaults(func=_cmd_check)

    status = subparsers.add_parser(
        "status", help="Show the stored watermark of client sites"
    )
    status.add_argument(
        "--site",
        action="append",
        help="Client site to show (repeatable; default: configured client sites)",
    )
    status.set_defaults(func=_cmd_status)

    init = subparsers.add_parser("init", help="Write a starter config file")
    init.add_argument(
        "--path", help="Where to write it (default: .sitelink_sync/config.yml)"
    )
    init.set_defaults(func=_cmd_init)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv* and run the selected command, returning the exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()
    try:
        return args.func(args)
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 1
    except (MediaWikiRemoteError, requests.RequestException) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
