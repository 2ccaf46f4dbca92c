"""In-memory stand-ins for wiki clients, the repository and the messenger.

Used by the engine, resolver, reducer and MCP tool tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sitelink_sync.config_schema import SynchronizerConfig
from sitelink_sync.sync.models import LogEvent, LogKind

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock(value: datetime = NOW):
    """Return a clock callable that always answers *value*."""
    return lambda: value


def move(
    event_id: int,
    title: str,
    target: str,
    at: datetime,
    actor: str = "Mover",
    namespace: int = 0,
    suppress: bool = False,
) -> LogEvent:
    return LogEvent(
        event_id=event_id,
        timestamp=at,
        kind=LogKind.MOVE,
        action="move",
        namespace=namespace,
        title=title,
        target_title=target,
        suppresses_redirect=suppress,
        actor=actor,
    )


def delete(
    event_id: int,
    title: str,
    at: datetime,
    actor: str = "Admin",
    namespace: int = 0,
) -> LogEvent:
    return LogEvent(
        event_id=event_id,
        timestamp=at,
        kind=LogKind.DELETE,
        action="delete",
        namespace=namespace,
        title=title,
        actor=actor,
    )


def make_settings(**overrides) -> SynchronizerConfig:
    """Build a SynchronizerConfig with small, test-friendly values."""
    defaults = {
        "repository_site": "wikidatawiki",
        "client_sites": ["enwiki"],
        "namespaces": [0],
        "batch_size": 100,
    }
    defaults.update(overrides)
    return SynchronizerConfig(**defaults)


class FakeSiteClient:
    """Client site serving a fixed list of log events."""

    def __init__(
        self,
        name: str,
        events: Optional[List[LogEvent]] = None,
        supports_namespace_filter: bool = True,
    ) -> None:
        self.name = name
        self.events: List[LogEvent] = list(events or [])
        self.supports_log_namespace_filter = supports_namespace_filter
        self.log_calls: list[tuple] = []
        self.fail_with: Optional[Exception] = None

    def log_events(
        self,
        log_type: LogKind,
        start: datetime,
        end: datetime,
        namespace: Optional[int] = None,
        page_size: int = 200,
    ):
        self.log_calls.append((log_type, start, end, namespace))
        if self.fail_with is not None:
            raise self.fail_with
        selected = [
            e
            for e in self.events
            if e.kind == log_type
            and start <= e.timestamp <= end
            and (namespace is None or e.namespace == namespace)
        ]
        selected.sort(key=lambda e: (e.timestamp, e.event_id))
        yield from selected

    def make_article_url(self, title: str) -> str:
        return f"https://{self.name}.example.org/wiki/{title.replace(' ', '_')}"


class FakeRepository:
    """Wikibase repository keeping site links in a dict.

    ``links`` maps ``(site, title) -> entity id``.
    """

    def __init__(self, links: Optional[Dict[tuple, str]] = None) -> None:
        self.links: Dict[tuple, str] = dict(links or {})
        self.lookup_calls: list[tuple[str, list[str]]] = []
        self.writes: list[tuple] = []
        self.reject_after: Optional[int] = None

    def entity_ids_for_titles(
        self, site: str, titles: list[str]
    ) -> list[Optional[str]]:
        self.lookup_calls.append((site, list(titles)))
        return [self.links.get((site, t)) for t in titles]

    def set_sitelink(
        self,
        entity_id: str,
        site: str,
        title: Optional[str],
        summary: str,
        bot: bool = True,
    ) -> bool:
        if self.reject_after is not None and len(self.writes) >= self.reject_after:
            return False
        self.writes.append((entity_id, site, title, summary))
        for key, linked in list(self.links.items()):
            if linked == entity_id and key[0] == site:
                del self.links[key]
        if title is not None:
            self.links[(site, title)] = entity_id
        return True

    def make_article_url(self, title: str) -> str:
        return f"https://www.wikidata.org/wiki/{title}"

    def validate_connection(self) -> str:
        return "MediaWiki 1.41.0"


class FakeFamily:
    """Site registry over pre-built fake clients."""

    def __init__(self, repository: FakeRepository, *sites: FakeSiteClient):
        self._sites = {"wikidatawiki": repository}
        for site in sites:
            self._sites[site.name] = site

    def __contains__(self, name: object) -> bool:
        return name in self._sites

    @property
    def names(self) -> list[str]:
        return sorted(self._sites)

    def get_site(self, name: str):
        if name not in self._sites:
            raise KeyError(f"Unknown site '{name}'")
        return self._sites[name]


class RecordingMessenger:
    """Messenger that keeps every pushed line."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def push(self, message: str) -> None:
        self.messages.append(message)

    def close(self, timeout=None) -> None:
        pass


def minutes_ago(minutes: float) -> datetime:
    return NOW - timedelta(minutes=minutes)
