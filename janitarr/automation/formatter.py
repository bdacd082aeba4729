"""
Plain-text rendering of a CycleResult for the CLI and logs.
"""

from typing import List

from .results import CycleResult


RULE = '-' * 40


def format_duration(seconds: float) -> str:
    """120ms, 4.2s or 3m5s."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    return f"{minutes}m{secs}s"


def format_cycle_result(result: CycleResult) -> str:
    detection = result.detection_results
    searches = result.search_results
    lines: List[str] = []

    title = "Dry Run" if result.dry_run else "Automation Cycle"
    verb = "Aborted after" if result.aborted else "Finished in"
    lines.append(f"{title} {verb} {format_duration(result.duration)}")
    lines.append(RULE)

    lines.append("Detection Summary:")
    lines.append(f"  Servers Scanned: {len(detection.results)}")
    lines.append(f"  Successful Detections: {detection.success_count}")
    lines.append(f"  Failed Detections: {detection.failure_count}")
    lines.append(f"  Total Missing Items: {detection.total_missing}")
    lines.append(f"  Total Cutoff Unmet Items: {detection.total_cutoff}")
    if detection.failure_count:
        lines.append("  Detection Errors:")
        for res in detection.results:
            if not res.ok:
                lines.append(f"    - Server {res.server_name} ({res.server_type}): {res.error}")
    lines.append("")

    lines.append("Search Trigger Summary:")
    label = "Searches That Would Be Triggered" if result.dry_run else "Total Searches Triggered"
    lines.append(f"  {label}: {result.total_searches}")
    lines.append(f"  Missing Items Triggered: {searches.missing_triggered}")
    lines.append(f"  Cutoff Items Triggered: {searches.cutoff_triggered}")
    lines.append(f"  Successful Triggers: {searches.success_count}")
    lines.append(f"  Failed Triggers: {searches.failure_count}")
    if searches.failure_count:
        lines.append("  Trigger Errors:")
        for res in searches.results:
            if not res.success:
                lines.append(f"    - Server {res.server_name} ({res.server_type}, "
                             f"{res.category}): {res.error}")
    lines.append("")

    if result.aborted:
        lines.append("Overall Status: ABORTED")
    elif result.success:
        lines.append("Overall Status: SUCCESS")
    else:
        lines.append(f"Overall Status: FAILED with {len(result.errors)} errors")
        for error in result.errors:
            lines.append(f"  - {error}")
    lines.append(RULE)

    return "\n".join(lines) + "\n"
