"""Data contracts for the site-link reconciliation engine.

- ``LogKind``: The two log types the engine consumes.
- ``LogEvent``: One move/delete entry from a client site's audit log.
- ``Watermark``: Durable per-site resume point.
- ``IdentityCacheEntry``: Cycle-scoped title -> entity mapping.
- ``Justification``: Structured reason attached to an entity operation.
- ``TrackedArticle``: Mutable per-entity fold state inside the reducer.
- ``EntityOperation``: Net site-link write for one entity.
- ``CycleReport`` / ``RunReport``: Outcome of one site / a multi-site run.

Immutable records are frozen pydantic models.  ``TrackedArticle`` is a
plain dataclass because the reducer mutates it while folding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

# Sentinel for "no log event consumed yet" on a site.
NO_EVENT_ID = -1


class LogKind(str, Enum):
    """Log types requested from a client site."""

    MOVE = "move"
    DELETE = "delete"


# Sub-actions (MediaWiki ``action`` field) that change a page's title.
MOVE_ACTIONS = frozenset({"move", "move_redir"})
DELETE_ACTIONS = frozenset({"delete"})


class LogEvent(BaseModel):
    """A single audit log entry from a client site.

    Attributes:
        event_id: Site-wide monotonic log id.
        timestamp: UTC time the event was logged.
        kind: Log type (move or delete).
        action: Sub-action, e.g. ``move`` or ``move_redir``.
        namespace: Namespace id of ``title``.
        title: Subject page title at the time of the event.
        target_title: Move destination (``None`` for deletions).
        suppresses_redirect: Whether the move left no redirect behind.
        actor: User name that performed the action.
    """

    event_id: int
    timestamp: datetime
    kind: LogKind
    action: str
    namespace: int = 0
    title: str
    target_title: str | None = None
    suppresses_redirect: bool = False
    actor: str = ""

    model_config = {"frozen": True}

    @property
    def is_move(self) -> bool:
        return self.kind == LogKind.MOVE and self.action in MOVE_ACTIONS

    @property
    def is_delete(self) -> bool:
        return (
            self.kind == LogKind.DELETE and self.action in DELETE_ACTIONS
        )


def event_sort_key(event: LogEvent) -> tuple[datetime, int]:
    """Total order used when merging log sequences."""
    return event.timestamp, event.event_id


class Watermark(BaseModel):
    """Resume point for one client site.

    Attributes:
        site: Client site name (unique key).
        next_start_time: Start of the next scan window.
        last_event_id: Highest log id consumed in the window ending at
            ``next_start_time``; ``-1`` when nothing was consumed yet.
        updated_at: When the record was last written.
    """

    site: str
    next_start_time: datetime
    last_event_id: int = NO_EVENT_ID
    updated_at: datetime | None = None

    model_config = {"frozen": True}


class IdentityCacheEntry(BaseModel):
    """Known identity of a title within one cycle.

    ``entity_id`` is ``None`` for a trivial title, i.e. one with no
    linked repository entity.
    """

    title: str
    entity_id: str | None = None

    model_config = {"frozen": True}

    @property
    def is_trivial(self) -> bool:
        return self.entity_id is None


class Justification(BaseModel):
    """Structured reason for a site-link change.

    Rendered into a Wikibase autocomment only when the operation is
    emitted, so callers can assert on the fields.
    """

    event_id: int
    actor: str
    action: LogKind
    site: str
    title: str
    target_title: str | None = None
    timestamp: datetime | None = None

    model_config = {"frozen": True}

    def render(self) -> str:
        """Return the edit summary fragment for this event."""
        if self.action == LogKind.MOVE:
            head = (
                f"/* clientsitelink-update:0|{self.site}|"
                f"{self.site}:{self.title}|"
                f"{self.site}:{self.target_title} */"
            )
        else:
            head = f"/* clientsitelink-remove:1||{self.site} */"
        return f"{head} UserName={self.actor}, LogId={self.event_id}"


@dataclass
class TrackedArticle:
    """Fold state of one linked entity during a cycle.

    ``original_title`` is fixed at creation.  ``current_title`` follows
    every applied move; ``None`` means the page was deleted.
    """

    entity_id: str
    original_title: str
    current_title: str | None
    justifications: list[Justification] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.current_title != self.original_title


class EntityOperation(BaseModel):
    """Net site-link write for one entity.

    Attributes:
        entity_id: Repository entity id (e.g. ``Q42``).
        old_title: Title linked at the start of the cycle.
        new_title: Title to link, or ``None`` to remove the link.
        justifications: Events that produced this operation, in order.
    """

    entity_id: str
    old_title: str
    new_title: str | None = None
    justifications: tuple[Justification, ...] = ()

    model_config = {"frozen": True}

    @property
    def is_removal(self) -> bool:
        return self.new_title is None

    @property
    def comment(self) -> str:
        """Edit summary: de-duplicated fragments joined with ``"; "``."""
        fragments = dict.fromkeys(j.render() for j in self.justifications)
        return "; ".join(fragments)


class CycleReport(BaseModel):
    """Outcome of one reconciliation cycle for a single client site.

    Attributes:
        site: Client site name.
        dry_run: Whether writes and the watermark commit were skipped.
        start_time: Start of the scanned window.
        end_time: End of the scanned window.
        resumed_event_id: ``last_event_id`` loaded from the watermark.
        last_event_id: Last processed event id (what was, or would be,
            committed).
        window_capped: Whether the window hit ``max_check_duration``.
        raw_event_count: Events fetched before the resumption filter.
        processed_event_count: Events folded into the reducer.
        operations: Net operations derived in this cycle.
        applied: Operations written (or counted, in dry run).
        committed: Whether the watermark was written.
        anomalies: Non-fatal anomalies observed during the cycle.
        error: Error description if the cycle aborted.
        started_at: ISO 8601 time the cycle started.
        completed_at: ISO 8601 time the cycle finished.
    """

    site: str
    dry_run: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None
    resumed_event_id: int = NO_EVENT_ID
    last_event_id: int = NO_EVENT_ID
    window_capped: bool = False
    raw_event_count: int = 0
    processed_event_count: int = 0
    operations: list[EntityOperation] = []
    applied: int = 0
    committed: bool = False
    anomalies: list[str] = []
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def removals(self) -> list[EntityOperation]:
        """Operations that remove a site link."""
        return [op for op in self.operations if op.is_removal]

    @property
    def renames(self) -> list[EntityOperation]:
        """Operations that point a site link at a new title."""
        return [op for op in self.operations if not op.is_removal]


class RunReport(BaseModel):
    """Aggregate report for one multi-site run."""

    dry_run: bool = False
    cycles: list[CycleReport] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def failed(self) -> list[CycleReport]:
        return [c for c in self.cycles if not c.succeeded]

    @property
    def total_applied(self) -> int:
        return sum(c.applied for c in self.cycles)
