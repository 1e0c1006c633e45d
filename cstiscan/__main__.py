import asyncio
import logging
import typer
from typing import Optional
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from rich.text import Text

from cstiscan.agents.orchestrator import run_scan
from cstiscan.core.config import settings
from cstiscan.core.exceptions import BrowserError, ConfigError, UnknownEngineError
from cstiscan.core.summary import build_summary, format_summary_json, format_summary_table
from cstiscan.engines import catalog
from cstiscan.engines.catalog import EngineId
from cstiscan.services.scan_context import ScanOptions
from cstiscan.utils.logger import set_console_level

EXIT_OK = 0
EXIT_UNREACHABLE = 1
EXIT_BAD_ARGS = 2
EXIT_INTERRUPTED = 130

# Configure Click context to allow options in any order: cstiscan -u URL --crawl
CONTEXT_SETTINGS = dict(allow_interspersed_args=True)
app = typer.Typer(context_settings=CONTEXT_SETTINGS, add_completion=False)
console = Console()


def _parse_hint(pred_template: Optional[str]) -> Optional[EngineId]:
    if pred_template is None:
        return None
    try:
        return EngineId.parse(pred_template)
    except UnknownEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        console.print("Valid engines: " + ", ".join(engine_id.value for engine_id in catalog.all_ids()))
        raise typer.Exit(code=EXIT_BAD_ARGS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(None, "--url", "-u", help="URL to check"),
    pred_template: Optional[str] = typer.Option(
        None, "--pred-template", "-t", help="Template engine the site is expected to use"
    ),
    crawl: bool = typer.Option(False, "--crawl", help="Crawl other links in the website"),
    crawl_depth: int = typer.Option(1, "--crawl-depth", min=0, help="Crawling depth"),
    crawl_subdomains: bool = typer.Option(False, "--crawl-subdomains", help="Crawl subdomains"),
    skip_forms: bool = typer.Option(False, "--skip-forms", help="Skip checking forms"),
    skip_inputs: bool = typer.Option(False, "--skip-inputs", help="Skip checking inputs"),
    skip_buttons: bool = typer.Option(False, "--skip-buttons", help="Skip checking buttons"),
    skip_links: bool = typer.Option(False, "--skip-links", help="Skip checking links"),
    check_class: bool = typer.Option(False, "--check-class", help="Also check class-attribute reflection"),
    continue_when_positive: bool = typer.Option(
        False, "--continue-when-positive", help="Keep scanning after the first positive"
    ),
    headless: Optional[bool] = typer.Option(None, "--headless/--headed", help="Override HEADLESS_BROWSER setting"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on the console"),
    json_output: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
):
    """
    cstiscan: Client-Side Template Injection detector

    Examples:
        cstiscan -u https://target.com                       # Scan one page
        cstiscan -u https://target.com -t vue                # Hint the engine
        cstiscan -u https://target.com --crawl --crawl-depth 2
        cstiscan engines                                     # List supported engines
    """
    if ctx.invoked_subcommand:
        return

    if not url:
        console.print("[bold red]Error:[/bold red] --url is required.")
        raise typer.Exit(code=EXIT_BAD_ARGS)

    set_console_level(logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL))
    if headless is not None:
        settings.HEADLESS_BROWSER = headless

    try:
        settings.validate_config()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e.message}")
        raise typer.Exit(code=EXIT_BAD_ARGS)

    try:
        options = ScanOptions(
            target_url=url,
            engine_hint=_parse_hint(pred_template),
            crawl=crawl,
            crawl_depth=crawl_depth,
            crawl_subdomains=crawl_subdomains,
            skip_forms=skip_forms,
            skip_inputs=skip_inputs,
            skip_buttons=skip_buttons,
            skip_links=skip_links,
            check_class=check_class,
            continue_when_positive=continue_when_positive,
        )
    except ValidationError as e:
        console.print(f"[bold red]Invalid options:[/bold red] {e}")
        raise typer.Exit(code=EXIT_BAD_ARGS)

    console.print(f"\n[bold]{settings.APP_NAME} v{settings.VERSION}[/bold]")
    console.print(f"[bold green]Scanning:[/bold green] [cyan]{url}[/cyan]")
    if options.crawl:
        console.print(f"[bold green]Crawl:[/bold green] depth={options.crawl_depth}, subdomains={options.crawl_subdomains}")

    try:
        report = asyncio.run(run_scan(options))
    except BrowserError as e:
        console.print(f"\n[bold red]Browser error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_UNREACHABLE)
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Scan aborted by user.[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED)

    summary = build_summary(report)
    if json_output:
        console.print_json(format_summary_json(summary))
    else:
        console.print(Text.from_ansi(format_summary_table(summary)), end="")

    if report.aborted:
        raise typer.Exit(code=EXIT_UNREACHABLE)


@app.command(name="engines")
def engines():
    """List the supported template engines."""
    table = Table(title="Supported Template Engines", show_header=True, header_style="bold magenta")
    table.add_column("Engine", style="cyan")
    table.add_column("Probe", style="yellow")
    table.add_column("Payload")
    table.add_column("Mode")

    for engine_id in catalog.all_ids():
        signature = catalog.get(engine_id)
        name = engine_id.value
        if signature.flagged:
            name += " [dim](flagged)[/dim]"
        table.add_row(name, Text(signature.detection_probe), Text(signature.payload), signature.mode.value)

    console.print(table)


if __name__ == "__main__":
    app()
