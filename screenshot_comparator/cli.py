"""CLI entry point for the screenshot comparator."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from screenshot_comparator.compare.ignore_list import IgnoreList
from screenshot_comparator.errors import ComparatorError
from screenshot_comparator.models.comparison import IgnoreRule
from screenshot_comparator.models.config import ComparatorConfig
from screenshot_comparator.orchestrator import Orchestrator

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config(path: str) -> ComparatorConfig:
    """Load the config file, or build one from the environment when it does not exist."""
    try:
        if Path(path).exists():
            return ComparatorConfig.load(path)
        return ComparatorConfig()
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        console.print("Set PROD_WEBSITE_URL and MIGRATED_WEBSITE_URL (or a .env file), "
                      "or run 'screenshot-comparator init'.")
        sys.exit(1)


def print_summary(results: dict) -> None:
    summary = results["results"]
    table = Table(title="Comparison Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Pages", str(summary["total"]))
    table.add_row("Passed", f"[green]{summary['passed']}[/green]")
    table.add_row("Failed (body)", f"[red]{summary['failed']}[/red]")
    table.add_row("Redirect mismatches", f"[red]{summary['redirects']}[/red]")
    table.add_row("Errors", f"[red]{summary['errors']}[/red]")
    table.add_row("Header failures", f"[yellow]{summary['header_failures']}[/yellow]")
    table.add_row("Footer failures", f"[yellow]{summary['footer_failures']}[/yellow]")
    table.add_row("Ignored diffs", str(summary["ignored"]))
    console.print(table)

    for fmt, path in results["reports"].items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression comparison of production and migrated sites."""
    load_dotenv()
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="comparator-config.json", help="Config file path")
@click.option("--urls", "-u", default=None, help="JSON file with the URLs to compare")
@click.option("--workers", "-w", type=int, default=None, help="Override the number of workers")
@click.option("--no-resume", is_flag=True, help="Re-render pages that already have results")
def run(config: str, urls: str | None, workers: int | None, no_resume: bool) -> None:
    """Capture both environments, diff every region and write reports."""
    cfg = load_config(config)
    if workers:
        cfg.num_workers = workers
    if no_resume:
        cfg.resume = False

    try:
        orchestrator = Orchestrator(cfg)
        pairs = orchestrator.load_pairs(urls)
    except ComparatorError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    results = orchestrator.run(pairs)
    console.print("\n[bold green]Comparison Complete[/bold green]")
    print_summary(results)
    if results["results"]["failed"] or results["results"]["errors"]:
        sys.exit(2)


@cli.command()
@click.option("--config", "-c", default="comparator-config.json", help="Config file path")
@click.option("--urls", "-u", default=None, help="JSON file with the URLs to compare")
def diff(config: str, urls: str | None) -> None:
    """Re-diff existing captures without opening a browser."""
    cfg = load_config(config)
    try:
        orchestrator = Orchestrator(cfg)
        pairs = orchestrator.load_pairs(urls)
    except ComparatorError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    results = orchestrator.diff_only(pairs)
    print_summary(results)


@cli.command()
@click.option("--prod", prompt="Production base URL", help="Production origin")
@click.option("--migrated", prompt="Migrated base URL", help="Migrated origin")
@click.option("--config", "-c", default="comparator-config.json", help="Config file path")
def init(prod: str, migrated: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    cfg = ComparatorConfig(prod_base_url=prod, migrated_base_url=migrated)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nPut the URLs to compare in a JSON array and run:")
    console.print(f"  [blue]screenshot-comparator run --urls {cfg.urls_file}[/blue]")


@cli.group()
def ignore() -> None:
    """Manage known differences that should not fail the report."""
    pass


def _ignore_list_path(cfg: ComparatorConfig) -> Path:
    if not cfg.ignore_list_file:
        console.print("[red]No ignore_list_file configured[/red]")
        sys.exit(1)
    return Path(cfg.ignore_list_file)


@ignore.command("add")
@click.argument("url")
@click.argument("component")
@click.argument("percents", type=float)
@click.option("--config", "-c", default="comparator-config.json", help="Config file path")
def ignore_add(url: str, component: str, percents: float, config: str) -> None:
    """Ignore COMPONENT on URL while it differs by exactly PERCENTS."""
    cfg = load_config(config)
    path = _ignore_list_path(cfg)
    try:
        rules = IgnoreList.load(path)
    except ComparatorError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    rules.add(IgnoreRule(url=url, component=component, percents=percents))
    rules.save(path)
    console.print(f"[green]Ignoring[/green] {component} on {url} at {percents}%")


@ignore.command("list")
@click.option("--config", "-c", default="comparator-config.json", help="Config file path")
def ignore_list(config: str) -> None:
    """List all ignore rules."""
    cfg = load_config(config)
    try:
        rules = IgnoreList.load(_ignore_list_path(cfg))
    except ComparatorError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    if not rules.rules:
        console.print("[yellow]No ignore rules configured[/yellow]")
        return
    for i, rule in enumerate(rules.rules, 1):
        console.print(f"  {i}. {rule.url} ({rule.component}) {rule.percents}%")


if __name__ == "__main__":
    cli()
