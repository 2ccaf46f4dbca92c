"""Report formatting functions.

Provides human-readable and machine-readable output for check runs:

- ``format_cycle_report`` -- summary of one client site's cycle.
- ``format_run_report`` -- summary of a multi-site run.
- ``format_watermarks`` -- resume points, for ``status`` output.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CycleReport, EntityOperation, RunReport, Watermark

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _describe_operation(op: EntityOperation) -> str:
    if op.is_removal:
        return f"{op.entity_id}: [[{op.old_title}]] removed"
    return f"{op.entity_id}: [[{op.old_title}]] -> [[{op.new_title}]]"


def format_cycle_report(report: CycleReport) -> str:
    """Format one cycle as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        report: The completed cycle report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Site {report.site}"
    if report.dry_run:
        header += " (WHAT IF)"
    lines.append(header)

    if report.error:
        lines.append(f"  FAILED: {report.error}")
        return "\n".join(lines)

    if report.start_time and report.end_time:
        lines.append(
            f"  Window: {report.start_time.isoformat()} ~ "
            f"{report.end_time.isoformat()}"
            + (" (capped)" if report.window_capped else "")
        )
    lines.append(
        f"  Events: {report.processed_event_count} processed, "
        f"{report.raw_event_count} raw"
    )
    lines.append(
        f"  Last log id: {report.resumed_event_id} -> "
        f"{report.last_event_id}"
        + ("" if report.committed else " (not committed)")
    )

    if report.operations:
        verb = "Should update" if report.dry_run else "Updated"
        lines.append(f"  {verb} {report.applied} site link(s):")
        for op in report.operations:
            lines.append(f"    {_describe_operation(op)}")
    else:
        lines.append("  No updates")

    if report.anomalies:
        lines.append("  Anomalies:")
        for message in report.anomalies:
            lines.append(f"    {message}")

    return "\n".join(lines)


def format_run_report(report: RunReport) -> str:
    """Format a multi-site run as human-readable text.

    Args:
        report: The completed run report.

    Returns:
        Multi-line formatted string, one block per site.
    """
    lines: list[str] = []
    header = f"Checked {len(report.cycles)} site(s)"
    if report.dry_run:
        header += " (WHAT IF)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append(
        f"{report.total_applied} site link(s) "
        f"{'to update' if report.dry_run else 'updated'}, "
        f"{len(report.failed)} site(s) failed"
    )
    lines.append("")

    for cycle in report.cycles:
        lines.append(format_cycle_report(cycle))
        lines.append("")

    return "\n".join(lines).rstrip()


def format_watermarks(
    sites: list[str], marks: dict[str, Watermark]
) -> str:
    """Format the resume point of each site in *sites*.

    Sites without a watermark are shown as never checked.
    """
    if not sites:
        return "No client sites configured."
    lines = []
    for site in sites:
        mark = marks.get(site)
        if mark is None:
            lines.append(f"{site}: never checked")
            continue
        lines.append(
            f"{site}: next start {mark.next_start_time.isoformat()}, "
            f"last log id {mark.last_event_id}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def cycle_to_json(report: CycleReport) -> dict:
    """Convert a cycle report to a JSON-serialisable dict."""
    entry: dict = {
        "site": report.site,
        "dry_run": report.dry_run,
        "success": report.succeeded,
        "start_time": _iso(report.start_time),
        "end_time": _iso(report.end_time),
        "window_capped": report.window_capped,
        "resumed_event_id": report.resumed_event_id,
        "last_event_id": report.last_event_id,
        "committed": report.committed,
        "counts": {
            "raw_events": report.raw_event_count,
            "processed_events": report.processed_event_count,
            "operations": len(report.operations),
            "renames": len(report.renames),
            "removals": len(report.removals),
            "applied": report.applied,
        },
        "operations": [
            {
                "entity_id": op.entity_id,
                "old_title": op.old_title,
                "new_title": op.new_title,
                "comment": op.comment,
            }
            for op in report.operations
        ],
        "anomalies": list(report.anomalies),
        "started_at": report.started_at,
        "completed_at": report.completed_at,
    }
    if report.error:
        entry["error"] = report.error
    return entry


def report_to_json(report: RunReport) -> dict:
    """Convert a run report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The run report.

    Returns:
        Dict with run info, totals, and per-site details.
    """
    return {
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "sites": len(report.cycles),
            "failed": len(report.failed),
            "applied": report.total_applied,
        },
        "sites": [cycle_to_json(c) for c in report.cycles],
    }
