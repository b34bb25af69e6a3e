"""Migration report artifact (Markdown)."""

import logging
import os
from typing import List

from ..models import MigrationReport, MigrationResult

logger = logging.getLogger(__name__)


def _project_section(result: MigrationResult) -> List[str]:
    lines = [f"### `{result.project_path}`", ""]
    status = result.state.value
    if result.skip_reason:
        status += f" ({result.skip_reason})"
    lines.append(f"**Status:** {status}")
    if result.sdk_variant is not None:
        lines.append(f"**SDK variant:** {result.sdk_variant} (`{result.sdk_variant.sdk}`)")
    if result.output_path:
        lines.append(f"**Output:** `{result.output_path}`")
    lines.append("")

    if result.errors:
        lines.append("Errors:")
        lines.extend(f"- {e}" for e in result.errors)
        lines.append("")
    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {w}" for w in result.warnings)
        lines.append("")
    if result.migrated_packages:
        lines.append("Packages:")
        lines.extend(
            f"- {p.package_id} {p.version or '*'}" for p in result.migrated_packages
        )
        lines.append("")
    if result.unconverted_references:
        lines.append("Unconverted references:")
        lines.extend(
            f"- {r.name}: {r.reason}" for r in result.unconverted_references
        )
        lines.append("")
    if result.removed_elements:
        lines.append("Removed elements:")
        lines.extend(f"- {r}" for r in result.removed_elements)
        lines.append("")
    return lines


def render_report(report: MigrationReport) -> str:
    lines = ["# SDK-style migration report", ""]
    if report.dry_run:
        lines.extend(["_Dry run: no files were written._", ""])
    if report.cancelled:
        lines.extend(["_Run was cancelled before all projects were processed._", ""])

    lines.append(f"- Root: `{report.root_directory}`")
    lines.append(f"- Started: {report.start_time.isoformat()}")
    if report.end_time is not None:
        lines.append(f"- Finished: {report.end_time.isoformat()} ({report.duration_seconds:.1f}s)")
    lines.append(f"- Projects found: {report.total_projects_found}")
    lines.append(f"- Written: {report.written}")
    lines.append(f"- Skipped: {report.skipped}")
    lines.append(f"- Failed: {report.failed}")
    if report.cpm_path:
        lines.append(f"- Central package management: `{report.cpm_path}`")
    lines.append("")

    if report.warnings:
        lines.extend(["## Warnings", ""])
        lines.extend(f"- {w}" for w in report.warnings)
        lines.append("")

    conflicts = [c for c in report.version_conflicts if c.has_conflict]
    if conflicts:
        lines.extend(["## Version conflicts", ""])
        lines.append("| Package | Requested | Resolved | Strategy |")
        lines.append("|---|---|---|---|")
        for conflict in conflicts:
            lines.append(
                f"| {conflict.package_id} | {', '.join(conflict.requested_versions)} "
                f"| {conflict.resolved_version} | {conflict.strategy_used} |"
            )
        lines.append("")
        for conflict in conflicts:
            lines.extend(f"- {w}" for w in conflict.warnings)
        lines.append("")

    lines.extend(["## Projects", ""])
    for result in report.results:
        lines.extend(_project_section(result))

    return "\n".join(lines).rstrip() + "\n"


def write_report(report: MigrationReport, path: str) -> str:
    """Render ``report`` to ``path`` and return the absolute path."""
    path = os.path.abspath(path)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_report(report))
    logger.info(f"Migration report written to {path}")
    return path
