"""Core MediaWiki client functionality shared between CLI and MCP server."""

from .async_utils import run_sync
from .client import MediaWikiClient, MediaWikiRemoteError
from .family import WikiFamily

__all__ = [
    "MediaWikiClient",
    "MediaWikiRemoteError",
    "WikiFamily",
    "run_sync",
]
