"""Cycle-scoped identity cache: client-site title -> repository entity.

The resolver answers "which repository entity, if any, is linked to this
title right now, as far as this cycle knows".  Titles are looked up
lazily, one batched request per batch of log events, because lookups
against the repository dominate the cycle's latency.

The cache is also the title index the reducer folds against: when the
reducer applies a move it *relocates* the entry to the destination
title, and when it applies a delete it *evicts* the entry.  A title that
was relocated away is therefore unknown again and will be looked up on
its next appearance.

Ownership rule: an entity id owns at most one live entry.  Once an
entity has been seen, later lookups that return the same id under a
different title (the repository still reports the title from before
this cycle's moves) cannot take that entity over; such titles are
cached as trivial.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from .models import IdentityCacheEntry

logger = logging.getLogger(__name__)


class IdentitySource(Protocol):
    """Batched title -> entity id lookup against the repository."""

    def entity_ids_for_titles(
        self, site: str, titles: list[str]
    ) -> list[str | None]: ...


class IdentityResolver:
    """Lazily populated title -> entity cache for one site and cycle.

    Args:
        source: Repository lookup capability.
        site: Client site name the titles belong to.
    """

    def __init__(self, source: IdentitySource, site: str) -> None:
        self._source = source
        self.site = site
        self._entries: dict[str, IdentityCacheEntry] = {}
        # entity id -> title of its live entry, None once evicted
        self._owners: dict[str, str | None] = {}
        self.lookups = 0
        self.requests = 0

    def __contains__(self, title: object) -> bool:
        return title in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_batch(self, titles: Iterable[str]) -> None:
        """Populate the cache for every title not cached yet.

        Performs at most one call to the identity source.  Titles are
        de-duplicated and looked up in first-seen order.
        """
        pending = [
            t
            for t in dict.fromkeys(titles)
            if t and t not in self._entries
        ]
        if not pending:
            return

        ids = self._source.entity_ids_for_titles(self.site, pending)
        if len(ids) != len(pending):
            raise ValueError(
                f"Identity source returned {len(ids)} results "
                f"for {len(pending)} titles on {self.site}"
            )
        self.requests += 1
        self.lookups += len(pending)

        for title, entity_id in zip(pending, ids):
            if entity_id is not None and entity_id in self._owners:
                logger.debug(
                    "%s on %s was already seen this cycle; "
                    "[[%s]] is treated as unlinked",
                    entity_id,
                    self.site,
                    title,
                )
                entity_id = None
            self._entries[title] = IdentityCacheEntry(
                title=title, entity_id=entity_id
            )
            if entity_id is not None:
                self._owners[entity_id] = title

    def lookup(self, title: str) -> IdentityCacheEntry | None:
        """Return the cache entry for *title*, or ``None`` if unknown."""
        return self._entries.get(title)

    def owns_entity(self, entity_id: str) -> bool:
        """Whether *entity_id* has been claimed by an entry this cycle."""
        return entity_id in self._owners

    def title_of(self, entity_id: str) -> str | None:
        """Current title of *entity_id*'s live entry, if any."""
        return self._owners.get(entity_id)

    # ------------------------------------------------------------------
    # Mutation (driven by the reducer)
    # ------------------------------------------------------------------

    def relocate(
        self, old_title: str, new_title: str
    ) -> IdentityCacheEntry | None:
        """Move the entry at *old_title* to *new_title*.

        Whatever was cached at *new_title* is overwritten.  No-op if
        *old_title* is unknown.

        Returns:
            The linked entry that was displaced from *new_title* by a
            linked entry, or ``None``.
        """
        entry = self._entries.pop(old_title, None)
        if entry is None:
            return None

        displaced = self._entries.get(new_title)
        if displaced is not None and not displaced.is_trivial:
            if self._owners.get(displaced.entity_id) == new_title:
                self._owners[displaced.entity_id] = None

        moved = IdentityCacheEntry(
            title=new_title, entity_id=entry.entity_id
        )
        self._entries[new_title] = moved
        if not moved.is_trivial:
            self._owners[moved.entity_id] = new_title

        if (
            displaced is not None
            and not displaced.is_trivial
            and not moved.is_trivial
            and displaced.entity_id != moved.entity_id
        ):
            return displaced
        return None

    def evict(self, title: str) -> IdentityCacheEntry | None:
        """Drop the entry at *title*, returning it if present.

        An evicted entity keeps its ownership claim so that a later
        lookup returning the same id under its old title cannot revive
        it within this cycle.
        """
        entry = self._entries.pop(title, None)
        if entry is not None and not entry.is_trivial:
            self._owners[entry.entity_id] = None
        return entry
