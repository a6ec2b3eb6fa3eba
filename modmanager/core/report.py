"""Console tables and Markdown summaries."""

from datetime import datetime
from typing import Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from .downloads import DownloadReport
from .model import ModRecord, ResolutionStatus
from .reconcile import RowResult, ValidationReport, ValidationSummary

# Counter name -> label, in display order
SUMMARY_LABELS = [
    ("total", "Total records"),
    ("supporting_latest", "Supporting latest game version"),
    ("update_available", "Update available"),
    ("not_supporting_latest", "Not supporting latest game version"),
    ("updated", "Updated"),
    ("unchanged", "Unchanged"),
    ("externally_modified", "Externally modified"),
    ("not_found", "Not found"),
    ("errored", "Errored"),
]

STATUS_STYLES = {
    ResolutionStatus.RESOLVED: "green",
    ResolutionStatus.NOT_FOUND: "yellow",
    ResolutionStatus.ERRORED: "red",
    ResolutionStatus.PENDING: "dim",
}


def render_summary(summary: ValidationSummary, console: Console,
                   title: str = "Update Summary") -> None:
    """Print the aggregate counts of a validate/update pass."""
    table = Table(title=title)
    table.add_column("Category")
    table.add_column("Count", justify="right")
    counts = summary.as_dict()
    for key, label in SUMMARY_LABELS:
        style = "red" if key in ("errored", "externally_modified") and counts[key] else None
        table.add_row(label, str(counts[key]), style=style)
    console.print(table)


def _row_outcome(result: RowResult) -> str:
    if result.status is not ResolutionStatus.RESOLVED:
        return result.error or str(result.status)
    if result.updated:
        return ", ".join(sorted(result.changes))
    if result.externally_modified:
        return "edited outside modmanager"
    return "unchanged"


def render_row_details(results: Iterable[RowResult], console: Console) -> None:
    """Per-row table for --verbose."""
    table = Table(title="Records")
    table.add_column("ID")
    table.add_column("Loader")
    table.add_column("Status")
    table.add_column("Current")
    table.add_column("Next")
    table.add_column("Latest")
    table.add_column("Details", overflow="fold")
    for result in results:
        record = result.record
        current = record.current_version
        if result.update_available:
            current += " (update)"
        table.add_row(
            record.id,
            record.loader,
            f"[{STATUS_STYLES[result.status]}]{result.status}[/]",
            current,
            record.next_version or "-",
            record.latest_version or "-",
            _row_outcome(result),
        )
    console.print(table)


def render_mod_list(records: List[ModRecord], console: Console) -> None:
    """Table of records for the list command."""
    table = Table(title=f"Mods ({len(records)})")
    table.add_column("Group")
    table.add_column("Type")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Loader")
    table.add_column("Version")
    table.add_column("Game version")
    table.add_column("Host")
    for record in records:
        style = "dim" if record.is_blocked else None
        table.add_row(
            record.group,
            record.type,
            record.id,
            record.display_name,
            record.loader,
            record.current_version,
            record.current_game_version,
            str(record.provider or ""),
            style=style,
        )
    console.print(table)


def render_download_report(report: DownloadReport, console: Console) -> None:
    counts = report.as_dict()
    console.print(
        f"Downloaded [green]{counts['downloaded']}[/], skipped {counts['skipped']}, "
        f"failed [red]{counts['failed']}[/]"
    )
    for name, reason in report.failed:
        console.print(f"  [red]x[/] {name}: {reason}")


def generate_markdown_summary(report: ValidationReport, database_file: Optional[str] = None) -> str:
    """
    Markdown version of the summary, e.g. for a CI step summary.

    Args:
        report: Result of a validate/update pass
        database_file: Shown in the header when given

    Returns:
        Markdown text
    """
    lines = ["## Mod Update Summary", ""]
    lines.append(f"*Generated on {datetime.now().strftime('%Y-%m-%d at %H:%M:%S')}*")
    if database_file:
        lines.append(f"*Database: `{database_file}`*")
    lines.append("")

    if report.next_game_version:
        lines.append(f"- **Next game version**: {report.next_game_version}")
    if report.latest_game_version:
        lines.append(f"- **Latest game version**: {report.latest_game_version}")
    lines.append("")

    lines.append("| Category | Count |")
    lines.append("|----------|-------|")
    counts = report.summary.as_dict()
    for key, label in SUMMARY_LABELS:
        lines.append(f"| {label} | {counts[key]} |")
    lines.append("")

    updated = [r for r in report.rows if r.updated]
    if updated:
        lines.append("### Updated")
        lines.append("")
        for result in updated:
            lines.append(f"- **{result.record.display_name}**: {', '.join(sorted(result.changes))}")
        lines.append("")
    return "\n".join(lines)
