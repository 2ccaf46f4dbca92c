"""Reconciliation driver: one polling cycle per client site.

The ``SiteLinkSynchronizer`` ties together the watermark store, the
client site's log queries, the ordered merger, the identity resolver
and the article state reducer.  For each client site it:

1. Loads the site's watermark (or starts ``max_traceback_duration`` ago).
2. Computes the scan window, capped at ``max_check_duration``.
3. Requests move and delete log sequences (per namespace where the site
   can filter server-side) and merges them into one ascending stream.
4. Drops events already consumed by a previous cycle.
5. Resolves identities and folds events batch by batch.
6. Applies the net site-link operations to the repository.
7. Commits the new watermark.

Error handling is per-site: ``check_sites`` isolates every cycle so a
failure on one client site never stops the others.  A failed cycle
never commits, so the next run rescans the same window; already-applied
writes are idempotent when replayed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import islice
from typing import TYPE_CHECKING, Protocol, TypeVar

from sitelink_sync.markdown import article_link, make_link, user_link
from sitelink_sync.sync.merger import merge_all
from sitelink_sync.sync.models import (
    NO_EVENT_ID,
    CycleReport,
    EntityOperation,
    LogEvent,
    LogKind,
    RunReport,
)
from sitelink_sync.sync.reducer import ArticleStateReducer
from sitelink_sync.sync.resolver import IdentityResolver
from sitelink_sync.sync.state import WatermarkStore

if TYPE_CHECKING:
    from sitelink_sync.config_schema import SynchronizerConfig
    from sitelink_sync.core.client import MediaWikiClient
    from sitelink_sync.core.family import WikiFamily

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Messenger(Protocol):
    """Status sink for human-readable progress lines."""

    def push(self, message: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def batched(iterable: Iterable[T], size: int) -> Iterator[list[T]]:
    """Split *iterable* into lists of at most *size* items, lazily."""
    it = iter(iterable)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


@dataclass
class _CycleProgress:
    """Running cursor of a cycle, shared with the status reporter."""

    raw_count: int = 0
    raw_timestamp: datetime | None = None
    processed_count: int = 0
    processed_timestamp: datetime | None = None
    last_event_id: int = NO_EVENT_ID


class SiteLinkSynchronizer:
    """Propagate client-site moves and deletions onto repository site links.

    Args:
        family: Registry of wiki clients (client sites and repository).
        store: Watermark persistence.
        messenger: Status sink; ``push()`` must not block for long.
        settings: Synchronizer section of the configuration.
        clock: Returns the current aware UTC time.  Injectable for tests.
    """

    def __init__(
        self,
        family: WikiFamily,
        store: WatermarkStore,
        messenger: Messenger,
        settings: SynchronizerConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.family = family
        self.store = store
        self.messenger = messenger
        self.settings = settings
        self.clock = clock

    @property
    def what_if(self) -> bool:
        return self.settings.what_if

    @property
    def repository(self) -> MediaWikiClient:
        return self.family.get_site(self.settings.repository_site)

    def _notify(self, message: str) -> None:
        """Push *message* to the status sink; sink failures are only logged."""
        try:
            self.messenger.push(message)
        except Exception as exc:
            logger.warning(
                "Status message not delivered: %s: %s",
                type(exc).__name__,
                exc,
            )

    # ------------------------------------------------------------------
    # Multi-site entry point
    # ------------------------------------------------------------------

    def check_sites(
        self,
        sites: Iterable[str] | None = None,
        namespaces: list[int] | None = None,
    ) -> RunReport:
        """Run one safe cycle per client site, in order.

        Args:
            sites: Client site names; defaults to ``settings.client_sites``.
            namespaces: Namespaces to scan; defaults to
                ``settings.namespaces``.

        Returns:
            A ``RunReport`` with one ``CycleReport`` per site.
        """
        if sites is None:
            sites = self.settings.client_sites
        site_list = list(sites)
        started_at = self.clock().isoformat()
        flag = " [WhatIf]" if self.what_if else ""
        logger.info("Checking on %d site(s).%s", len(site_list), flag)
        self._notify(f"Checking on {len(site_list)} site(s).{flag}")

        cycles = [self.check_site_safe(site, namespaces) for site in site_list]

        logger.info("Checking finished.")
        self._notify("Checking finished.")
        return RunReport(
            dry_run=self.what_if,
            cycles=cycles,
            started_at=started_at,
            completed_at=self.clock().isoformat(),
        )

    def check_site_safe(
        self, site: str, namespaces: list[int] | None = None
    ) -> CycleReport:
        """Like ``check_site`` but turns any exception into a failed report.

        Writes that were already applied stand; the watermark is not
        committed.
        """
        started_at = self.clock().isoformat()
        try:
            return self.check_site(site, namespaces)
        except Exception as exc:
            logger.exception("Exception while checking on %s.", site)
            self._notify(
                f"Exception while checking on {site}. "
                f"{type(exc).__name__}: {exc}"
            )
            remote_trace = getattr(exc, "remote_trace", None)
            if remote_trace:
                self._notify("Remote stack trace: " + remote_trace)
            return CycleReport(
                site=site,
                dry_run=self.what_if,
                error=f"{type(exc).__name__}: {exc}",
                started_at=started_at,
                completed_at=self.clock().isoformat(),
            )

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    def check_site(
        self, site: str, namespaces: list[int] | None = None
    ) -> CycleReport:
        """Run one reconciliation cycle for client site *site*.

        Raises:
            KeyError: If *site* is not registered in the family.
            MediaWikiRemoteError: On API errors from either wiki.
            requests.RequestException: On transport errors.
        """
        settings = self.settings
        namespaces = list(namespaces or settings.namespaces)
        started_at = self.clock().isoformat()
        client = self.family.get_site(site)

        # Step 1: resume point
        now = self.clock()
        mark = self.store.get(site)
        if mark is None:
            start_time = now - settings.max_traceback_duration
            resumed_id = NO_EVENT_ID
        else:
            start_time = mark.next_start_time
            resumed_id = mark.last_event_id

        # Step 2: scan window
        end_time = now - settings.safety_margin
        window_capped = False
        if end_time - start_time > settings.max_check_duration:
            logger.warning("Max check duration reached on %s.", site)
            self._notify(f"Max check duration reached on {site}.")
            end_time = start_time + settings.max_check_duration
            window_capped = True

        if end_time <= start_time:
            logger.info(
                "Nothing to check on %s: window %s ~ %s is empty.",
                site,
                start_time.isoformat(),
                end_time.isoformat(),
            )
            return CycleReport(
                site=site,
                dry_run=self.what_if,
                start_time=start_time,
                end_time=end_time,
                resumed_event_id=resumed_id,
                last_event_id=resumed_id,
                started_at=started_at,
                completed_at=self.clock().isoformat(),
            )

        logger.info(
            "Checking on %s, %s ~ %s (%s), last log id: %d%s",
            site,
            start_time.isoformat(),
            end_time.isoformat(),
            end_time - start_time,
            resumed_id,
            " [W]" if self.what_if else "",
        )

        # Step 3-5: fetch, merge, filter, fold
        progress = _CycleProgress(last_event_id=resumed_id)
        resolver = IdentityResolver(self.repository, site)
        reducer = ArticleStateReducer(resolver, site)
        anomalies: list[str] = []

        sequences = self._event_sequences(
            client, start_time, end_time, namespaces
        )
        stream = (
            e
            for e in self._count_raw(merge_all(sequences), progress)
            if e.event_id > resumed_id
        )

        elapsed = time.monotonic()
        last_report = elapsed
        for batch in batched(stream, settings.batch_size):
            self._process_batch(client, site, batch, resolver, reducer)
            for message in reducer.take_anomalies():
                anomalies.append(message)
                self._notify(message)
            progress.last_event_id = batch[-1].event_id
            progress.processed_timestamp = batch[-1].timestamp
            progress.processed_count += len(batch)

            now_mono = time.monotonic()
            if (
                now_mono - last_report
                >= settings.status_report_interval.total_seconds()
            ):
                self._report_progress(site, progress, now_mono - elapsed)
                last_report = now_mono

        # Step 6: apply
        operations = reducer.drain()
        applied = self._apply_operations(site, operations)

        # Step 7: commit
        committed = False
        if not self.what_if:
            self.store.commit(site, end_time, progress.last_event_id)
            committed = True

        # Step 8: summary
        self._report_summary(site, applied)
        logger.debug(
            "%s: %d title lookup(s) in %d request(s)",
            site,
            resolver.lookups,
            resolver.requests,
        )

        return CycleReport(
            site=site,
            dry_run=self.what_if,
            start_time=start_time,
            end_time=end_time,
            resumed_event_id=resumed_id,
            last_event_id=progress.last_event_id,
            window_capped=window_capped,
            raw_event_count=progress.raw_count,
            processed_event_count=progress.processed_count,
            operations=operations,
            applied=applied,
            committed=committed,
            anomalies=anomalies,
            started_at=started_at,
            completed_at=self.clock().isoformat(),
        )

    # ------------------------------------------------------------------
    # Event sources
    # ------------------------------------------------------------------

    def _event_sequences(
        self,
        client: MediaWikiClient,
        start: datetime,
        end: datetime,
        namespaces: list[int],
    ) -> list[Iterator[LogEvent]]:
        """Build the (lazy) log sequences to merge for one window."""
        page_size = self.settings.page_size
        kinds = (LogKind.MOVE, LogKind.DELETE)
        if client.supports_log_namespace_filter:
            return [
                client.log_events(
                    kind, start, end, namespace=ns, page_size=page_size
                )
                for ns in namespaces
                for kind in kinds
            ]

        # Older sites cannot filter logevents by namespace.
        wanted = frozenset(namespaces)
        return [
            (
                e
                for e in client.log_events(
                    kind, start, end, page_size=page_size
                )
                if e.namespace in wanted
            )
            for kind in kinds
        ]

    @staticmethod
    def _count_raw(
        events: Iterable[LogEvent], progress: _CycleProgress
    ) -> Iterator[LogEvent]:
        for event in events:
            progress.raw_count += 1
            progress.raw_timestamp = event.timestamp
            yield event

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def _process_batch(
        self,
        client: MediaWikiClient,
        site: str,
        batch: list[LogEvent],
        resolver: IdentityResolver,
        reducer: ArticleStateReducer,
    ) -> None:
        resolver.resolve_batch(e.title for e in batch)
        for event in batch:
            entity_id = reducer.apply(event)
            if entity_id is None:
                continue
            if event.is_move:
                self._report_move(client, site, entity_id, event)
            else:
                self._report_delete(client, site, entity_id, event)

    def _entity_link(self, entity_id: str) -> str:
        return make_link(
            entity_id, self.repository.make_article_url(entity_id)
        )

    def _report_move(
        self,
        client: MediaWikiClient,
        site: str,
        entity_id: str,
        event: LogEvent,
    ) -> None:
        logger.info(
            "%s on %s: %s moved [[%s]] -> [[%s]].%s",
            entity_id,
            site,
            event.actor,
            event.title,
            event.target_title,
            " [SuppressRedirect]" if event.suppresses_redirect else "",
        )
        suffix = (
            " Redirect is suppressed." if event.suppresses_redirect else ""
        )
        self._notify(
            f"{self._entity_link(entity_id)} on {site}: "
            f"{_format_time(event.timestamp)} "
            f"{user_link(client, event.actor)} moved "
            f"~~{article_link(client, event.title)}~~ to "
            f"{article_link(client, event.target_title or '')}.{suffix}"
        )

    def _report_delete(
        self,
        client: MediaWikiClient,
        site: str,
        entity_id: str,
        event: LogEvent,
    ) -> None:
        logger.info(
            "%s on %s: %s deleted [[%s]].",
            entity_id,
            site,
            event.actor,
            event.title,
        )
        self._notify(
            f"{self._entity_link(entity_id)} on {site}: "
            f"{_format_time(event.timestamp)} "
            f"{user_link(client, event.actor)} deleted "
            f"~~{article_link(client, event.title)}~~."
        )

    def _report_progress(
        self, site: str, progress: _CycleProgress, elapsed: float
    ) -> None:
        used = _format_elapsed(elapsed)
        logger.info(
            "Processed %d (%d raw) logs on %s used %s, last at: %s (%s raw).",
            progress.processed_count,
            progress.raw_count,
            site,
            used,
            _format_time(progress.processed_timestamp),
            _format_time(progress.raw_timestamp),
        )
        self._notify(
            f"Processed {progress.processed_count} "
            f"({progress.raw_count} raw) logs on {site} used {used}, "
            f"last at: {_format_time(progress.processed_timestamp)} "
            f"({_format_time(progress.raw_timestamp)} raw)."
        )

    # ------------------------------------------------------------------
    # Repository writes
    # ------------------------------------------------------------------

    def _apply_operations(
        self, site: str, operations: list[EntityOperation]
    ) -> int:
        """Write *operations* in order; returns how many were handled.

        In what-if mode nothing is written and every operation counts.

        Raises:
            RuntimeError: If the repository reports an unsuccessful edit.
        """
        applied = 0
        for op in operations:
            logger.debug(
                "Change site link of %s on %s: [[%s]] -> [[%s]]",
                op.entity_id,
                site,
                op.old_title,
                op.new_title,
            )
            if not self.what_if:
                ok = self.repository.set_sitelink(
                    op.entity_id, site, op.new_title, op.comment, bot=True
                )
                if not ok:
                    raise RuntimeError(
                        f"Repository rejected site link update of "
                        f"{op.entity_id} on {site}"
                    )
            applied += 1
        return applied

    def _report_summary(self, site: str, applied: int) -> None:
        if applied == 0:
            logger.info("No updates for %s.", site)
            return
        verb = "Should update" if self.what_if else "Updated"
        logger.info("%s %d site link(s) for %s.", verb, applied, site)
        self._notify(f"{verb} {applied} site link(s) for {site}.")


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")


def _format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
