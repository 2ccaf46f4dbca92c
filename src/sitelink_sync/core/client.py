import logging
import threading
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import requests
from requests.cookies import RequestsCookieJar

from .. import __version__
from ..sync.models import LogEvent, LogKind

logger = logging.getLogger(__name__)

# wbgetentities accepts at most 50 titles per request for normal users.
ENTITY_LOOKUP_CHUNK = 50

# LogEventsList.lenamespace was introduced in MediaWiki 1.24.
LOG_NAMESPACE_FILTER_VERSION = (1, 24)

_API_TIMESTAMP = "%Y-%m-%dT%H:%M:%SZ"


class MediaWikiRemoteError(Exception):
    """An error reported by the MediaWiki API itself.

    Attributes:
        code: API error code (e.g. ``permissiondenied``).
        info: Human-readable error message.
        remote_trace: Server-side stack trace, when the wiki exposes one
            (``$wgShowExceptionDetails``).
    """

    def __init__(
        self, code: str, info: str, remote_trace: str | None = None
    ):
        super().__init__(f"{code}: {info}")
        self.code = code
        self.info = info
        self.remote_trace = remote_trace


def format_api_timestamp(value: datetime) -> str:
    """Format an aware datetime the way the API expects (UTC, ``Z``)."""
    if value.tzinfo is None:
        raise ValueError("API timestamps must be timezone-aware")
    return value.astimezone(timezone.utc).strftime(_API_TIMESTAMP)


def parse_version(generator: str) -> tuple[int, ...]:
    """Parse ``"MediaWiki 1.39.1-wmf.3"`` into ``(1, 39, 1)``."""
    _, _, raw = generator.strip().rpartition(" ")
    parts: list[int] = []
    for piece in raw.split("."):
        digits = ""
        for ch in piece:
            if not ch.isdigit():
                break
            digits += ch
        if not digits:
            break
        parts.append(int(digits))
        if len(digits) < len(piece):
            # suffix such as "-wmf" ends the release number
            break
    return tuple(parts)


class MediaWikiClient:
    """Client for one MediaWiki (or Wikibase repository) site.

    Each thread gets its own ``requests.Session``.  All sessions share
    one cookie jar, so a login performed on one thread authenticates
    requests made from worker threads.
    """

    def __init__(
        self,
        api_endpoint: str,
        name: str = "",
        insecure: bool = False,
        timeout: tuple[float, float] = (10, 60),
    ):
        self.api_endpoint = api_endpoint
        self.name = name or api_endpoint
        self.insecure = insecure
        self.timeout = timeout
        self._thread_local = threading.local()
        self._cookies = RequestsCookieJar()
        self._site_info: dict[str, Any] | None = None
        self._csrf_token: str | None = None
        self.logged_in_as: str | None = None
        self._credentials: tuple[str, str] | None = None

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.insecure
        session.cookies = self._cookies
        session.headers["User-Agent"] = (
            f"sitelink-sync/{__version__} "
            f"(python-requests/{requests.__version__})"
        )
        return session

    def _api_request(
        self, params: dict[str, Any], post: bool = False
    ) -> dict[str, Any]:
        """
        Make a request to api.php and return the decoded JSON body.

        Raises:
            MediaWikiRemoteError: If the API reports an error.
            requests.HTTPError: On HTTP-level failures.
        """
        payload = {"format": "json", "formatversion": "2", **params}
        session = self._get_session()
        if post:
            response = session.post(
                self.api_endpoint, data=payload, timeout=self.timeout
            )
        else:
            response = session.get(
                self.api_endpoint, params=payload, timeout=self.timeout
            )
        response.raise_for_status()
        body = response.json()

        error = body.get("error")
        if error is not None:
            raise MediaWikiRemoteError(
                str(error.get("code", "unknown")),
                str(error.get("info") or error.get("*") or "Unknown error"),
                error.get("trace"),
            )
        for module, warning in (body.get("warnings") or {}).items():
            logger.debug(
                "API warning from %s (%s): %s", self.name, module, warning
            )
        return body

    # ------------------------------------------------------------------
    # Site information
    # ------------------------------------------------------------------

    def get_site_info(self) -> dict[str, Any]:
        """
        Get (and cache) the ``general`` site info block.

        Returns:
            Dict with at least: generator, server, articlepath, sitename
        """
        if self._site_info is None:
            body = self._api_request(
                {"action": "query", "meta": "siteinfo", "siprop": "general"}
            )
            self._site_info = body["query"]["general"]
        return self._site_info

    def validate_connection(self) -> str:
        """
        Validate connection by fetching site info.
        Returns the generator string (e.g. "MediaWiki 1.41.0").
        """
        return str(self.get_site_info().get("generator", ""))

    @property
    def mediawiki_version(self) -> tuple[int, ...]:
        return parse_version(self.validate_connection())

    @property
    def supports_log_namespace_filter(self) -> bool:
        """Whether ``list=logevents`` can filter by namespace server-side."""
        return self.mediawiki_version >= LOG_NAMESPACE_FILTER_VERSION

    def make_article_url(self, title: str) -> str:
        """Build the canonical page URL for *title*."""
        info = self.get_site_info()
        server = str(info.get("server", ""))
        if server.startswith("//"):
            server = "https:" + server
        path = str(info.get("articlepath", "/wiki/$1"))
        return server + path.replace(
            "$1", quote(title.replace(" ", "_"), safe="/:")
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> None:
        """
        Log in with a bot password.

        Raises:
            MediaWikiRemoteError: If the wiki rejects the credentials.
        """
        body = self._api_request(
            {"action": "query", "meta": "tokens", "type": "login"}
        )
        token = body["query"]["tokens"]["logintoken"]
        body = self._api_request(
            {
                "action": "login",
                "lgname": username,
                "lgpassword": password,
                "lgtoken": token,
            },
            post=True,
        )
        result = body.get("login", {})
        if result.get("result") != "Success":
            raise MediaWikiRemoteError(
                "login-failed",
                str(result.get("reason") or result.get("result")),
            )
        self.logged_in_as = result.get("lgusername", username)
        self._credentials = (username, password)
        self._csrf_token = None
        logger.info("Logged in to %s as %s", self.name, self.logged_in_as)

    def _get_csrf_token(self, refresh: bool = False) -> str:
        if self._csrf_token is None or refresh:
            body = self._api_request(
                {"action": "query", "meta": "tokens", "type": "csrf"}
            )
            self._csrf_token = body["query"]["tokens"]["csrftoken"]
        return self._csrf_token

    # ------------------------------------------------------------------
    # Log events (event source)
    # ------------------------------------------------------------------

    def log_events(
        self,
        log_type: LogKind,
        start: datetime,
        end: datetime,
        namespace: int | None = None,
        page_size: int = 200,
    ) -> Iterator[LogEvent]:
        """
        Iterate log events of one type, oldest first.

        Pages are requested lazily as the caller consumes the iterator.
        Both the ``continue`` and the legacy ``query-continue``
        continuation formats are followed.

        Args:
            log_type: ``LogKind.MOVE`` or ``LogKind.DELETE``.
            start: Inclusive window start.
            end: Inclusive window end.
            namespace: Namespace filter (MediaWiki >= 1.24 only).
            page_size: Entries per request (``lelimit``).

        Yields:
            ``LogEvent`` instances in ascending (timestamp, logid) order.
        """
        params: dict[str, Any] = {
            "action": "query",
            "list": "logevents",
            "letype": log_type.value,
            "lestart": format_api_timestamp(start),
            "leend": format_api_timestamp(end),
            "ledir": "newer",
            "lelimit": page_size,
            "leprop": "ids|title|type|user|timestamp|details",
            "continue": "",
        }
        if namespace is not None:
            params["lenamespace"] = namespace

        while True:
            body = self._api_request(params)
            for raw in body.get("query", {}).get("logevents", []):
                event = self._parse_log_event(raw, log_type)
                if event is not None:
                    yield event

            if "continue" in body:
                params = {**params, **body["continue"]}
            elif "query-continue" in body:
                legacy = body["query-continue"].get("logevents", {})
                if not legacy:
                    return
                params = {**params, **legacy}
            else:
                return

    def _parse_log_event(
        self, raw: dict[str, Any], log_type: LogKind
    ) -> LogEvent | None:
        if "title" not in raw or raw.get("actionhidden") is not None:
            logger.debug(
                "Skipping hidden log entry %s on %s",
                raw.get("logid"),
                self.name,
            )
            return None

        target_title = None
        suppresses_redirect = False
        if log_type == LogKind.MOVE:
            params = raw.get("params")
            legacy = raw.get("move")
            if isinstance(params, dict) and "target_title" in params:
                target_title = params["target_title"]
                suppresses_redirect = _flag(params, "suppressredirect")
            elif isinstance(legacy, dict):
                target_title = legacy.get("new_title")
                suppresses_redirect = _flag(legacy, "suppressedredirect")

        return LogEvent(
            event_id=int(raw["logid"]),
            timestamp=raw["timestamp"],
            kind=LogKind(raw.get("type", log_type.value)),
            action=str(raw.get("action", "")),
            namespace=int(raw.get("ns", 0)),
            title=raw["title"],
            target_title=target_title,
            suppresses_redirect=suppresses_redirect,
            actor=str(raw.get("user", "")),
        )

    # ------------------------------------------------------------------
    # Wikibase repository (identity source + repository write)
    # ------------------------------------------------------------------

    def entity_ids_for_titles(
        self, site: str, titles: list[str]
    ) -> list[str | None]:
        """
        Look up the entities linked to *titles* on client site *site*.

        Args:
            site: Global site id of the client (e.g. "enwiki").
            titles: Page titles on that site.

        Returns:
            One slot per input title, in input order: the entity id, or
            None if the title has no linked entity.
        """
        result: list[str | None] = []
        for offset in range(0, len(titles), ENTITY_LOOKUP_CHUNK):
            chunk = titles[offset : offset + ENTITY_LOOKUP_CHUNK]
            body = self._api_request(
                {
                    "action": "wbgetentities",
                    "sites": site,
                    "titles": "|".join(chunk),
                    "props": "sitelinks",
                    "sitefilter": site,
                },
                post=True,
            )
            by_title: dict[str, str] = {}
            for entity_id, entity in (body.get("entities") or {}).items():
                if "missing" in entity:
                    continue
                link = (entity.get("sitelinks") or {}).get(site)
                if link:
                    by_title[link["title"]] = entity.get("id", entity_id)
            result.extend(by_title.get(t) for t in chunk)
        return result

    def set_sitelink(
        self,
        entity_id: str,
        site: str,
        title: str | None,
        summary: str,
        bot: bool = True,
    ) -> bool:
        """
        Set or remove the site link of *entity_id* for *site*.

        Args:
            entity_id: Repository entity id (e.g. "Q42").
            site: Global site id of the client.
            title: New linked title, or None to remove the link.
            summary: Edit summary.
            bot: Flag the edit as a bot edit.

        An expired CSRF token (``badtoken``) or an expired session
        (``assertuserfailed``) is recovered from once.

        Returns:
            True if the repository reported success.

        Raises:
            MediaWikiRemoteError: If the edit is rejected.
        """
        params: dict[str, Any] = {
            "action": "wbsetsitelink",
            "id": entity_id,
            "linksite": site,
            "summary": summary,
        }
        if title is not None:
            params["linktitle"] = title
        if bot:
            params["bot"] = "1"
        if self.logged_in_as:
            params["assert"] = "user"

        try:
            body = self._api_request(
                {**params, "token": self._get_csrf_token()}, post=True
            )
        except MediaWikiRemoteError as err:
            if err.code == "assertuserfailed" and self._credentials:
                logger.info("Session on %s expired; logging in again", self.name)
                self.login(*self._credentials)
            elif err.code == "badtoken":
                logger.info("CSRF token on %s expired; retrying", self.name)
            else:
                raise
            body = self._api_request(
                {**params, "token": self._get_csrf_token(refresh=True)},
                post=True,
            )
        return bool(body.get("success"))


def _flag(container: dict[str, Any], key: str) -> bool:
    """Read a boolean that formatversion=1 encodes as key presence."""
    if key not in container:
        return False
    value = container[key]
    return value is True or value == ""
