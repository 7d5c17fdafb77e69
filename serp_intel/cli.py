"""Typer CLI application for SERP Intelligence.

Provides commands to track a domain's rankings, browse stored runs,
schedule recurring analyses and check system health.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from serp_intel.utils.helpers import format_number

console = Console()
app = typer.Typer(
    name="serp-intel",
    help="SERP Intelligence -- rank tracking, movers & cost-of-inaction reporting.",
    add_completion=False,
    no_args_is_help=True,
)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _get_app(config_path: str):
    """Lazy-import and return an initialised SerpIntelApp."""
    from serp_intel.app import SerpIntelApp
    serp_app = SerpIntelApp(config_path=config_path)
    serp_app.initialize()
    return serp_app


def _position(value: Optional[int]) -> str:
    return "-" if value is None else str(value)


def _print_summary(data: dict[str, Any]) -> None:
    table = Table(title="Ranking Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", min_width=24)
    table.add_column("Value", justify="right")
    rows = [
        ("Keywords tracked", data.get("keywords_tracked")),
        ("Ranking (top 20)", data.get("keywords_ranking")),
        ("Top 3", data.get("keywords_top3")),
        ("Top 10", data.get("keywords_top10")),
        ("Average position", data.get("avg_position")),
        ("Visibility score", data.get("visibility_score")),
        ("Improved / declined", f"{data.get('improved')} / {data.get('declined')}"),
        ("New / lost", f"{data.get('new_rankings')} / {data.get('lost_rankings')}"),
        ("Fetch failures", data.get("fetch_failures")),
    ]
    for label, value in rows:
        table.add_row(label, "-" if value is None else str(value))
    console.print(table)


def _print_movers(data: dict[str, Any]) -> None:
    movers = [("gain", d) for d in data.get("top_gainers", [])]
    movers += [("loss", d) for d in data.get("top_losers", [])]
    if not movers:
        return
    table = Table(title="Top Movers", show_header=True, header_style="bold magenta")
    table.add_column("Keyword", style="cyan", max_width=40)
    table.add_column("Previous", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Change", justify="right")
    for kind, d in movers:
        color = "green" if kind == "gain" else "red"
        table.add_row(
            d["keyword"],
            _position(d.get("previous_position")),
            _position(d.get("current_position")),
            f"[{color}]{d['delta']:+d}[/{color}]",
        )
    console.print(table)


def _print_report(data: dict[str, Any]) -> None:
    console.print(Panel(
        f"Impressions available: [bold]{format_number(data['impressions_available'])}[/bold]\n"
        f"Clicks available: [bold]{format_number(data['clicks_available'])}[/bold]\n"
        f"Leads available: [bold]{format_number(data['leads_available'])}[/bold]\n"
        f"Page-one opportunities: [bold]{data['page_one_opportunities']}[/bold]",
        title="Cost of Inaction",
    ))

    for key, title in (("current_wins", "Current Wins"), ("big_gaps", "Big Gaps")):
        items = data.get(key, [])
        if not items:
            continue
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Keyword", style="cyan", max_width=40)
        table.add_column("Rank", justify="right")
        table.add_column("Volume", justify="right")
        table.add_column("URL", max_width=50)
        for item in items:
            table.add_row(
                item["keyword"],
                _position(item.get("rank")),
                format_number(item.get("volume") or 0),
                item.get("url") or "",
            )
        console.print(table)

    actions = data.get("what_to_do_next", [])
    if actions:
        table = Table(title="What To Do Next", show_header=True, header_style="bold magenta")
        table.add_column("Keyword", style="cyan", max_width=30)
        table.add_column("Page", max_width=40)
        table.add_column("Action", max_width=60)
        for item in actions:
            table.add_row(item["keyword"], item["page"], item["action"])
        console.print(table)


def _collect_keywords(keywords_file: Optional[Path], kw: str) -> list:
    from serp_intel.app import load_keywords_file
    from serp_intel.models.serp import KeywordInput

    keywords = load_keywords_file(keywords_file) if keywords_file else []
    seen = {k.keyword.lower() for k in keywords}
    for raw in kw.split(",") if kw else []:
        raw = raw.strip()
        if raw and raw.lower() not in seen:
            seen.add(raw.lower())
            keywords.append(KeywordInput(keyword=raw))
    return keywords


# ------------------------------------------------------------------
# track
# ------------------------------------------------------------------
@app.command()
def track(
    domain: str = typer.Argument(..., help="Domain to track (e.g. example.com)."),
    keywords_file: Optional[Path] = typer.Option(
        None, "--keywords-file", "-f", help="CSV (keyword,volume,target_url) or text file.",
    ),
    kw: str = typer.Option("", "--keywords", "-k", help="Comma-separated keywords to track."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Search location."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
    no_save: bool = typer.Option(False, "--no-save", help="Do not persist this run."),
    config: str = typer.Option("config/settings.yaml", "--config", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Fetch live rankings, diff against the last run and print the report."""
    _setup_logging(verbose)
    if keywords_file is not None and not keywords_file.exists():
        console.print(f"[red]Keywords file not found: {keywords_file}[/red]")
        raise typer.Exit(code=1)
    keywords = _collect_keywords(keywords_file, kw)

    serp_app = _get_app(config)
    if not as_json:
        console.print(Panel(
            f"[bold cyan]SERP Analysis: {domain} ({len(keywords)} keywords)[/bold cyan]"
        ))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        disable=as_json,
    ) as progress:
        progress.add_task(description="Fetching rankings...", total=None)
        result, data = _run_async(serp_app.run_domain_async(
            domain, keywords, location=location, save=not no_save,
        ))

    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
    elif not result.ok:
        console.print(f"[red]✘ {result.error}[/red]")
    elif result.message:
        console.print(f"[yellow]{result.message}[/yellow]")
    else:
        _print_summary(data)
        _print_movers(data)
        _print_report(data)
        console.print(
            f"[green]✔[/green] Analysis complete in {data.get('duration_ms', 0)}ms."
        )

    if not result.ok:
        raise typer.Exit(code=1)


# ------------------------------------------------------------------
# history
# ------------------------------------------------------------------
@app.command()
def history(
    domain: str = typer.Argument(..., help="Domain whose runs to list."),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of runs to show."),
    config: str = typer.Option("config/settings.yaml", "--config", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List recent stored analysis runs for a domain."""
    _setup_logging(verbose)
    serp_app = _get_app(config)
    runs = serp_app.store.list_runs(domain, limit=limit)
    if not runs:
        console.print(f"[yellow]No stored runs for {domain}.[/yellow]")
        return

    table = Table(title="Runs: " + domain, show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("When", style="cyan")
    table.add_column("OK")
    table.add_column("Tracked", justify="right")
    table.add_column("Ranking", justify="right")
    table.add_column("Duration", justify="right")
    for run in runs:
        table.add_row(
            str(run["id"]),
            run["created_at"] or "",
            "[green]✔[/green]" if run["ok"] else "[red]✘[/red]",
            str(run["keywords_tracked"]),
            str(run["keywords_ranking"]),
            f"{run['duration_ms']}ms",
        )
    console.print(table)


# ------------------------------------------------------------------
# schedule
# ------------------------------------------------------------------
@app.command()
def schedule(
    domain: str = typer.Argument(..., help="Domain to analyse on a schedule."),
    keywords_file: Path = typer.Option(..., "--keywords-file", "-f", help="Keywords file."),
    cron: str = typer.Option("0 6 * * *", "--cron", help="5-field cron expression."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Search location."),
    config: str = typer.Option("config/settings.yaml", "--config", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Register a recurring analysis and run the scheduler in the foreground."""
    _setup_logging(verbose)
    if not keywords_file.exists():
        console.print(f"[red]Keywords file not found: {keywords_file}[/red]")
        raise typer.Exit(code=1)

    from serp_intel.app import build_scheduler, run_scheduled_analysis

    serp_app = _get_app(config)
    scheduler = build_scheduler(serp_app.config)
    try:
        job_id = scheduler.schedule_domain(
            domain,
            run_scheduled_analysis,
            cron,
            keywords_file=str(keywords_file.resolve()),
            location=location,
            config_path=config,
        )
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    scheduler.start()
    job = scheduler.get_job(job_id) or {}
    console.print(Panel(
        f"[bold cyan]{job_id}[/bold cyan] [{cron}]\n"
        f"Next run: {job.get('next_run_time') or 'pending'}\n"
        "Press Ctrl+C to stop."
    ))
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping scheduler...")
    finally:
        scheduler.stop()


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    config: str = typer.Option("config/settings.yaml", "--config", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show system status: configuration, provider key, database."""
    _setup_logging(verbose)
    console.print(Panel("[bold cyan]System Status[/bold cyan]"))

    from serp_intel.integrations.serp_api import api_key_from_env
    from serp_intel.utils.helpers import mask_secret

    serp_app = _get_app(config)
    health = serp_app.get_status()
    key = api_key_from_env()
    if key:
        health["provider"]["details"] = "SERPAPI_API_KEY: " + mask_secret(key)

    table = Table(title="Component Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", min_width=20)
    table.add_column("Status", min_width=10)
    table.add_column("Details", max_width=50)
    badges = {
        "ok": "[green]✔ OK[/green]",
        "warning": "[yellow]⚠ Warning[/yellow]",
        "error": "[red]✘ Error[/red]",
    }
    for component, info in health.items():
        table.add_row(
            component.title(),
            badges.get(info["status"], info["status"]),
            str(info.get("details", ""))[:50],
        )
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
