"""Fold move/delete log events into net site-link operations.

The reducer walks a cycle's events in time order and keeps, per linked
entity, the title it started the cycle with and the title it has now.
At the end of the cycle only entities whose title actually changed
produce an ``EntityOperation``: a page moved away and back again, or
moved three times and back, costs no repository write at all.

Per-entity states::

    Unseen --move--> Tracked(original, current=target)
    Tracked(current=T) --move T->T'--> Tracked(current=T')
    Tracked(current=T) --delete T--> Deleted (current=None)

Titles are resolved through the cycle's ``IdentityResolver``; the
reducer relocates or evicts resolver entries as it applies moves and
deletes, so the resolver always reflects current titles.

Events on titles that are unknown (never resolved, or relocated away)
or trivial (no linked entity) cannot produce an operation and are
ignored.  Deletes of such titles are silent; a move that lands on a
title currently held by another linked entity is reported as an
anomaly and then applied anyway.
"""

from __future__ import annotations

import logging

from .models import (
    EntityOperation,
    Justification,
    LogEvent,
    LogKind,
    TrackedArticle,
)
from .resolver import IdentityResolver

logger = logging.getLogger(__name__)


class ArticleStateReducer:
    """Cycle-scoped fold of move/delete events for one client site.

    Args:
        resolver: The cycle's identity resolver.  Titles of every event
            must have been passed to ``resolver.resolve_batch()`` before
            the event is applied.
        site: Client site name, used in edit summaries.
    """

    def __init__(self, resolver: IdentityResolver, site: str) -> None:
        self.resolver = resolver
        self.site = site
        # Insertion order is first-tracked order.
        self._articles: dict[str, TrackedArticle] = {}
        self.anomalies: list[str] = []

    def __len__(self) -> int:
        return len(self._articles)

    def tracked(self, entity_id: str) -> TrackedArticle | None:
        """Fold state of *entity_id*, or ``None`` if it is untouched."""
        return self._articles.get(entity_id)

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def apply(self, event: LogEvent) -> str | None:
        """Fold one event.

        Returns:
            The entity id the event applied to, or ``None`` if it did
            not touch any linked entity.
        """
        if event.is_move:
            return self.move(event)
        if event.is_delete:
            return self.delete(event)
        logger.debug(
            "Ignoring %s/%s event %d on %s",
            event.kind.value,
            event.action,
            event.event_id,
            self.site,
        )
        return None

    def move(self, event: LogEvent) -> str | None:
        """Apply a page move ``event.title -> event.target_title``."""
        new_title = event.target_title
        if not new_title:
            logger.warning(
                "Move event %d on %s has no target title; skipped",
                event.event_id,
                self.site,
            )
            return None

        entry = self.resolver.lookup(event.title)
        if entry is None:
            return None

        displaced = self.resolver.relocate(event.title, new_title)
        if entry.is_trivial:
            return None

        if displaced is not None:
            # The destination should have been deleted before the move.
            message = (
                f"An existing page [[{new_title}]] ({displaced.entity_id}) "
                f"on {self.site} is overwritten without deletion "
                f"from [[{event.title}]]."
            )
            logger.warning("%s", message)
            self.anomalies.append(message)

        article = self._track(entry.entity_id, event.title)
        article.current_title = new_title
        article.justifications.append(
            self._justify(event, LogKind.MOVE)
        )
        return article.entity_id

    def delete(self, event: LogEvent) -> str | None:
        """Apply a page deletion of ``event.title``."""
        entry = self.resolver.evict(event.title)
        if entry is None or entry.is_trivial:
            return None

        article = self._track(entry.entity_id, event.title)
        article.current_title = None
        article.justifications.append(
            self._justify(event, LogKind.DELETE)
        )
        return article.entity_id

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def drain(self) -> list[EntityOperation]:
        """Return the net operations, in first-tracked order.

        Entities whose current title equals their original title emit
        nothing.
        """
        return [
            EntityOperation(
                entity_id=a.entity_id,
                old_title=a.original_title,
                new_title=a.current_title,
                justifications=tuple(a.justifications),
            )
            for a in self._articles.values()
            if a.changed
        ]

    def take_anomalies(self) -> list[str]:
        """Return anomalies recorded since the last call and clear them."""
        taken, self.anomalies = self.anomalies, []
        return taken

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _track(self, entity_id: str, title: str) -> TrackedArticle:
        article = self._articles.get(entity_id)
        if article is None:
            article = TrackedArticle(
                entity_id=entity_id,
                original_title=title,
                current_title=title,
            )
            self._articles[entity_id] = article
        return article

    def _justify(self, event: LogEvent, action: LogKind) -> Justification:
        return Justification(
            event_id=event.event_id,
            actor=event.actor,
            action=action,
            site=self.site,
            title=event.title,
            target_title=event.target_title
            if action == LogKind.MOVE
            else None,
            timestamp=event.timestamp,
        )
