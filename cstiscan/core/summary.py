"""
Summary generation for scan reports.

Provides per-page and per-surface views of a ScanReport for the CLI.
"""
from dataclasses import dataclass, field
from io import StringIO
from typing import Dict, List
import json
from rich.table import Table
from rich.console import Console

from cstiscan.schemas.models import ScanReport, SurfaceKind


@dataclass
class ScanSummary:
    """Summary of a scan report with aggregated counts."""
    target_url: str
    vulnerable: bool
    aborted: bool = False
    abort_reason: str = None

    pages_scanned: int = 0
    pages_skipped: int = 0
    pages_vulnerable: int = 0

    # Surface kind -> number of pages where it was positive
    by_surface: Dict[str, int] = field(default_factory=dict)
    # Engine id -> number of pages using it
    by_engine: Dict[str, int] = field(default_factory=dict)
    rows: List[Dict] = field(default_factory=list)


def build_summary(report: ScanReport) -> ScanSummary:
    summary = ScanSummary(
        target_url=report.target,
        vulnerable=report.vulnerable,
        aborted=report.aborted,
        abort_reason=report.abort_reason,
    )

    for page in report.pages:
        summary.pages_scanned += 1
        summary.by_engine[page.engine] = summary.by_engine.get(page.engine, 0) + 1
        if page.skipped:
            summary.pages_skipped += 1
        if page.vulnerable:
            summary.pages_vulnerable += 1
        for kind in page.vulnerable_surfaces:
            summary.by_surface[kind.value] = summary.by_surface.get(kind.value, 0) + 1

        summary.rows.append({
            "url": page.url,
            "engine": page.engine,
            "vulnerable": page.vulnerable,
            "surfaces": [kind.value for kind in page.vulnerable_surfaces],
            "skipped_reason": page.skipped_reason,
        })

    return summary


def verdict_line(summary: ScanSummary) -> str:
    if summary.aborted:
        return f"[bold yellow]SCAN ABORTED[/bold yellow] - {summary.abort_reason}"
    if summary.vulnerable:
        return "[bold red]VULNERABLE[/bold red]"
    return "[bold green]NOT VULNERABLE[/bold green]"


def format_summary_table(summary: ScanSummary) -> str:
    """
    Format summary as rich tables for CLI display.

    Args:
        summary: ScanSummary to format

    Returns:
        Formatted string output with tables
    """
    output = []
    output.append("\n[bold cyan]CSTI Scan Summary[/bold cyan]")
    output.append(f"[bold]Target:[/bold] {summary.target_url}")
    output.append(f"[bold]Pages scanned:[/bold] {summary.pages_scanned} "
                  f"({summary.pages_skipped} skipped, {summary.pages_vulnerable} vulnerable)\n")

    pages_table = Table(title="Pages", show_header=True, header_style="bold magenta")
    pages_table.add_column("URL", style="cyan", overflow="fold")
    pages_table.add_column("Engine", style="yellow")
    pages_table.add_column("Result", justify="center")
    pages_table.add_column("Surfaces")

    for row in summary.rows:
        if row["skipped_reason"]:
            result = f"[dim]skipped ({row['skipped_reason']})[/dim]"
        elif row["vulnerable"]:
            result = "[red]VULNERABLE[/red]"
        else:
            result = "[green]clean[/green]"
        pages_table.add_row(row["url"], row["engine"], result, ", ".join(row["surfaces"]) or "-")

    surface_table = Table(title="Positives by Surface", show_header=True, header_style="bold magenta")
    surface_table.add_column("Surface", style="cyan")
    surface_table.add_column("Pages", justify="right", style="yellow")
    for kind in SurfaceKind:
        count = summary.by_surface.get(kind.value, 0)
        if count:
            surface_table.add_row(kind.value, str(count))

    string_console = Console(file=StringIO(), force_terminal=True, width=120)

    string_console.print("\n".join(output))
    if summary.rows:
        string_console.print(pages_table)
    if summary.by_surface:
        string_console.print("")
        string_console.print(surface_table)
    string_console.print("")
    string_console.print(verdict_line(summary))

    return string_console.file.getvalue()


def format_summary_json(summary: ScanSummary) -> str:
    """Format summary as JSON for programmatic use."""
    data = {
        "target_url": summary.target_url,
        "vulnerable": summary.vulnerable,
        "aborted": summary.aborted,
        "abort_reason": summary.abort_reason,
        "pages": summary.rows,
        "by_surface": summary.by_surface,
        "by_engine": summary.by_engine,
    }
    return json.dumps(data, indent=2)
