"""Watermark persistence layer.

Each client site gets its own JSON file (``watermark_{site}.json``) in
the state directory holding the site's resume point: the start time of
the next scan window and the last consumed log id.

Key design choices:

* **Atomic upsert** -- ``commit()`` writes a temp file in the same
  directory and ``os.replace()``s it over the target.  There is no
  read-modify-write, so a reader sees either the previous record or the
  new one.
* **One file per site** -- commits for different sites never touch the
  same file and can run in parallel.
* **Validated keys** -- site names become file names, so they are
  checked by ``validate_site_name`` first.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from ..validators import validate_site_name
from .models import Watermark

logger = logging.getLogger(__name__)

STATE_VERSION = 1
_PREFIX = "watermark_"


class WatermarkStore:
    """Read and commit per-site watermarks.

    Args:
        state_dir: Directory holding the watermark files.  Created on
            first commit.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, site: str) -> Watermark | None:
        """Return the watermark for *site*, or ``None`` if never committed."""
        path = self._state_path(site)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return Watermark(
            site=data["site"],
            next_start_time=data["next_start_time"],
            last_event_id=data["last_event_id"],
            updated_at=data.get("updated_at"),
        )

    def list_watermarks(self) -> list[Watermark]:
        """Return every stored watermark, ordered by site name."""
        if not self._state_dir.is_dir():
            return []
        marks = []
        for path in sorted(self._state_dir.glob(f"{_PREFIX}*.json")):
            site = path.stem[len(_PREFIX):]
            try:
                mark = self.get(site)
            except (ValueError, KeyError) as exc:
                logger.warning("Unreadable watermark %s: %s", path, exc)
                continue
            if mark is not None:
                marks.append(mark)
        return marks

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        site: str,
        next_start_time: datetime,
        last_event_id: int,
    ) -> Watermark:
        """Upsert the watermark for *site* with a single atomic write.

        Args:
            site: Client site name.
            next_start_time: Start of the next scan window (aware UTC).
            last_event_id: Last consumed log id, ``-1`` if none.

        Returns:
            The committed ``Watermark``.
        """
        if next_start_time.tzinfo is None:
            raise ValueError("next_start_time must be timezone-aware")
        target = self._state_path(site)
        mark = Watermark(
            site=site,
            next_start_time=next_start_time.astimezone(timezone.utc),
            last_event_id=last_event_id,
            updated_at=datetime.now(timezone.utc),
        )
        payload = {
            "version": STATE_VERSION,
            "site": mark.site,
            "next_start_time": mark.next_start_time.isoformat(),
            "last_event_id": mark.last_event_id,
            "updated_at": mark.updated_at.isoformat()
            if mark.updated_at
            else None,
        }

        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.debug(
            "Committed watermark for %s: %s, last event %d",
            site,
            payload["next_start_time"],
            last_event_id,
        )
        return mark

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _state_path(self, site: str) -> Path:
        is_valid, error_msg = validate_site_name(site)
        if not is_valid:
            raise ValueError(f"Invalid site name: {error_msg}")
        return self._state_dir / f"{_PREFIX}{site}.json"
