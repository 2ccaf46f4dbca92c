"""Site-link reconciliation engine.

Propagates page moves and deletions recorded in the audit logs of
MediaWiki client sites onto the site links of the corresponding items
in a Wikibase repository.

Architecture
------------
Each client site is processed in *cycles*.  A cycle scans the log
window since the site's last watermark, merges the move and delete
logs into one time-ordered stream, folds it per entity into net
operations, writes those to the repository and commits the watermark.
Move chains collapse: a page moved ``A -> B -> C`` costs one write, a
page moved away and back costs none.

Modules:

- ``engine``    -- ``SiteLinkSynchronizer``: the per-site cycle driver.
- ``merger``    -- Lazy ordered merge of log-event sequences.
- ``resolver``  -- ``IdentityResolver``: cycle-scoped title -> entity cache.
- ``reducer``   -- ``ArticleStateReducer``: folds events into operations.
- ``state``     -- ``WatermarkStore``: per-site JSON resume points.
- ``models``    -- ``LogEvent``, ``Watermark``, ``EntityOperation``,
  ``CycleReport``, ``RunReport``: core data contracts.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from sitelink_sync.config import load_config
    from sitelink_sync.core.family import WikiFamily
    from sitelink_sync.notifier import NullMessenger
    from sitelink_sync.sync import (
        SiteLinkSynchronizer,
        WatermarkStore,
        format_run_report,
    )

    config = load_config()
    synchronizer = SiteLinkSynchronizer(
        family=WikiFamily(config.sites),
        store=WatermarkStore(Path(config.state_store.state_dir)),
        messenger=NullMessenger(),
        settings=config.synchronizer,
    )
    print(format_run_report(synchronizer.check_sites()))
"""

from .engine import SiteLinkSynchronizer
from .merger import merge_all, ordered_merge
from .models import (
    CycleReport,
    EntityOperation,
    LogEvent,
    LogKind,
    RunReport,
    Watermark,
)
from .reducer import ArticleStateReducer
from .reporter import (
    format_cycle_report,
    format_run_report,
    report_to_json,
)
from .resolver import IdentityResolver
from .state import WatermarkStore

__all__ = [
    "ArticleStateReducer",
    "CycleReport",
    "EntityOperation",
    "IdentityResolver",
    "LogEvent",
    "LogKind",
    "RunReport",
    "SiteLinkSynchronizer",
    "Watermark",
    "WatermarkStore",
    "format_cycle_report",
    "format_run_report",
    "merge_all",
    "ordered_merge",
    "report_to_json",
]
