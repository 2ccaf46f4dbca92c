"""Registry of the wikis a synchronizer talks to.

Client sites and the repository are registered by name (their Wikibase
global site id, e.g. ``enwiki``).  Clients are created lazily on first
use, logged in when credentials are configured, and cached for the life
of the family.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING

from .client import MediaWikiClient

if TYPE_CHECKING:
    from ..config_schema import SiteConfig

logger = logging.getLogger(__name__)


class WikiFamily:
    """Name -> ``MediaWikiClient`` registry with lazy login.

    Args:
        sites: Site configurations keyed by site name.
    """

    def __init__(self, sites: Mapping[str, SiteConfig] | None = None) -> None:
        self._sites: dict[str, tuple[str, bool]] = {}
        self._credentials: dict[str, tuple[str, str]] = {}
        self._clients: dict[str, MediaWikiClient] = {}
        self._lock = threading.Lock()
        for name, site in (sites or {}).items():
            self.register(
                name,
                site.api_endpoint,
                username=site.username,
                password=site.password,
                insecure=site.insecure,
            )

    def register(
        self,
        name: str,
        api_endpoint: str,
        username: str | None = None,
        password: str | None = None,
        insecure: bool = False,
    ) -> None:
        """Register (or replace) a site.  Any cached client is dropped."""
        with self._lock:
            self._sites[name] = (api_endpoint, insecure)
            if username and password:
                self._credentials[name] = (username, password)
            else:
                self._credentials.pop(name, None)
            self._clients.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._sites

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    @property
    def names(self) -> list[str]:
        return sorted(self._sites)

    def get_site(self, name: str) -> MediaWikiClient:
        """
        Return the client for *name*, creating and logging it in once.

        Raises:
            KeyError: If *name* is not registered.
            MediaWikiRemoteError: If login fails.
        """
        with self._lock:
            client = self._clients.get(name)
            if client is not None:
                return client
            if name not in self._sites:
                raise KeyError(
                    f"Unknown site '{name}'. "
                    f"Registered sites: {', '.join(self.names) or '(none)'}"
                )
            client = self._create_site(name)
            self._clients[name] = client
            return client

    def _create_site(self, name: str) -> MediaWikiClient:
        api_endpoint, insecure = self._sites[name]
        client = MediaWikiClient(api_endpoint, name=name, insecure=insecure)
        credentials = self._credentials.get(name)
        if credentials is not None:
            client.login(*credentials)
        else:
            logger.debug("No credentials for %s; using anonymous access", name)
        return client
