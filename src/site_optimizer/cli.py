"""
Command-line interface for Site Optimizer.

Provides commands to classify search signals, run optimization cycles, apply
directive files and manage snapshots and the sitemap.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .backup import SnapshotStore
from .config import OptimizerConfig
from .document_tree import DocumentTree
from .errors import (
    LLMClientError,
    SignalLoadError,
    SignalValidationError,
    SiteOptimizerError,
    SnapshotError,
    SnapshotNotFoundError,
)
from .models import EditDirective
from .opportunities import OpportunityClassifier, find_quick_wins, rank, summarize_opportunities
from .pipeline import CycleReport, SiteOptimizer
from .signals import load_signals
from .sitemap import SitemapRegenerator

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fail(label: str, error: Exception) -> None:
    console.print(f"[red]{label}:[/red] {error}")
    sys.exit(1)


@click.group()
@click.option(
    "--site",
    "site_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Document tree root (default: SITE_OPTIMIZER_SITE_DIR or ./site).",
)
@click.option(
    "--backups",
    "backup_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Snapshot directory (default: SITE_OPTIMIZER_BACKUP_DIR or ./backups).",
)
@click.option(
    "--log",
    "log_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Optimization log file (default: optimization-log.json).",
)
@click.option(
    "--base-url",
    type=str,
    help="Public site URL used in the sitemap.",
)
@click.option(
    "--retention",
    "snapshot_retention",
    type=int,
    help="Number of snapshots to keep (default: 10).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.pass_context
def main(
    ctx: click.Context,
    site_dir: Optional[Path],
    backup_dir: Optional[Path],
    log_path: Optional[Path],
    base_url: Optional[str],
    snapshot_retention: Optional[int],
    verbose: bool,
) -> None:
    """
    Site Optimizer - Apply search-driven content optimizations to a static site.

    Examples:

        site-optimizer classify signals.csv

        site-optimizer --site ./site run signals.csv --dry-run

        site-optimizer --site ./site rollback backup-2024-01-01T12-00-00-000000Z
    """
    _configure_logging(verbose)

    overrides = {
        "site_dir": site_dir,
        "backup_dir": backup_dir,
        "log_path": log_path,
        "base_url": base_url,
        "snapshot_retention": snapshot_retention,
    }
    try:
        config = OptimizerConfig.from_env(**{k: v for k, v in overrides.items() if v is not None})
    except ValueError as e:
        _fail("Configuration error", e)

    ctx.obj = {"config": config, "verbose": verbose}


def _store(config: OptimizerConfig) -> SnapshotStore:
    return SnapshotStore(config.backup_dir, retention=config.effective_retention)


# =============================================================================
# PRIORITIZATION
# =============================================================================

@main.command()
@click.argument("signals_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of tables.")
@click.pass_context
def classify(ctx: click.Context, signals_file: Path, as_json: bool) -> None:
    """Classify and rank opportunities from a signals file (CSV, Excel or JSON)."""
    config: OptimizerConfig = ctx.obj["config"]

    try:
        signals = load_signals(signals_file)
        ranked = rank(OpportunityClassifier(config.thresholds).classify(signals))
        quick_wins = find_quick_wins(signals, config.thresholds)
    except (SignalLoadError, SignalValidationError) as e:
        _fail("Signal error", e)
    except SiteOptimizerError as e:
        _fail("Error", e)

    if as_json:
        click.echo(json.dumps({
            "opportunities": [o.to_dict() for o in ranked],
            "summary": summarize_opportunities(ranked),
        }, indent=2))
        return

    table = Table(title=f"Opportunities ({len(ranked)} of {len(signals)} keywords)", show_header=True)
    table.add_column("Priority", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Keyword", style="green")
    table.add_column("Position", justify="right")

    for opportunity in ranked:
        table.add_row(
            opportunity.priority.value,
            opportunity.opportunity_type.value,
            opportunity.keyword,
            f"{opportunity.current_position:g}",
        )
    console.print(table)

    if quick_wins:
        console.print(f"\n[cyan]Quick wins:[/cyan] {len(quick_wins)}")
        for win in quick_wins:
            console.print(f"  {win.keyword} ({win.kind}, {win.effort} effort)")


# =============================================================================
# MUTATION
# =============================================================================

def _display_report(report: CycleReport, verbose: bool) -> None:
    """Display cycle summary."""
    console.print("\n[bold]Optimization Summary[/bold]")

    if report.directives:
        table = Table(title="Directives", show_header=True)
        table.add_column("Operation", style="cyan")
        table.add_column("Target", style="green")
        table.add_column("Keyword")
        table.add_column("Result", style="yellow")

        # Results are in directive order; a dry run has none
        results = list(report.results) + [None] * (len(report.directives) - len(report.results))
        for directive, result in zip(report.directives, results):
            if result is None:
                status = "planned"
            elif result.is_applied:
                status = "applied"
            else:
                status = f"rejected: {result.description}"
            table.add_row(
                directive.operation.value,
                f"{directive.target_document} {directive.selector}",
                directive.source_keyword,
                status,
            )
        console.print(table)

    for skipped in report.skipped:
        console.print(f"[yellow]Skipped[/yellow] {skipped.keyword} ({skipped.opportunity_type}): {skipped.reason}")

    if verbose:
        for result in report.results:
            if result.is_applied:
                console.print(f"[dim]{result.description}[/dim]")

    if report.snapshot_id:
        console.print(f"\n[cyan]Snapshot:[/cyan] {report.snapshot_id}")
    console.print(
        f"[cyan]Applied:[/cyan] {report.summary.applied}  "
        f"[cyan]Errors:[/cyan] {report.summary.errors}"
    )


@main.command()
@click.argument("signals_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--api-key",
    type=str,
    envvar="ANTHROPIC_API_KEY",
    help="Anthropic API key. Can also be set via ANTHROPIC_API_KEY env var.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Synthesize directives without applying them.")
@click.pass_context
def run(ctx: click.Context, signals_file: Path, api_key: Optional[str], dry_run: bool) -> None:
    """Run a full optimization cycle from a signals file."""
    config: OptimizerConfig = ctx.obj["config"]
    if api_key:
        config.api_key = api_key

    console.print(Panel.fit(
        "[bold blue]Site Optimizer[/bold blue]\n"
        "Search-driven optimizations with snapshot and rollback",
        border_style="blue",
    ))

    try:
        with console.status("[bold green]Loading signals..."):
            signals = load_signals(signals_file)
        console.print(f"  Loaded {len(signals)} keywords from: {signals_file}")

        console.print("\n[bold]Running optimization cycle...[/bold]")
        report = SiteOptimizer(config).run_cycle(signals, dry_run=dry_run)
    except (SignalLoadError, SignalValidationError) as e:
        _fail("Signal error", e)
    except LLMClientError as e:
        _fail("LLM error", e)
    except SnapshotError as e:
        _fail("Snapshot failed, nothing was changed", e)
    except (SiteOptimizerError, ValueError) as e:
        _fail("Error", e)

    _display_report(report, ctx.obj["verbose"])
    if dry_run:
        console.print("\n[bold yellow]Dry run:[/bold yellow] no files were changed")


@main.command()
@click.argument("directives_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def apply(ctx: click.Context, directives_file: Path) -> None:
    """Apply a JSON file of edit directives (snapshot first)."""
    config: OptimizerConfig = ctx.obj["config"]

    try:
        data = json.loads(directives_file.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError("Directives file must hold a JSON array")
        directives = [EditDirective.from_dict(item) for item in data]
    except (OSError, ValueError) as e:
        _fail("Directive error", e)

    try:
        outcome = SiteOptimizer(config).apply_directives(directives)
    except SnapshotError as e:
        _fail("Snapshot failed, nothing was changed", e)
    except (SiteOptimizerError, ValueError) as e:
        _fail("Error", e)

    report = CycleReport(
        directives=directives,
        snapshot_id=outcome.snapshot_id,
        results=outcome.results,
        summary=outcome.summary,
    )
    _display_report(report, ctx.obj["verbose"])


# =============================================================================
# SNAPSHOTS AND SITEMAP
# =============================================================================

@main.command()
@click.pass_context
def snapshot(ctx: click.Context) -> None:
    """Take a snapshot of the document tree."""
    config: OptimizerConfig = ctx.obj["config"]
    try:
        snapshot_id = _store(config).snapshot(DocumentTree(config.site_dir))
    except (SnapshotError, ValueError) as e:
        _fail("Snapshot failed", e)
    console.print(f"[bold green]Snapshot created:[/bold green] {snapshot_id}")


@main.command()
@click.pass_context
def snapshots(ctx: click.Context) -> None:
    """List retained snapshots, newest first."""
    config: OptimizerConfig = ctx.obj["config"]
    retained = _store(config).list_snapshots()
    if not retained:
        console.print("No snapshots found")
        return

    table = Table(title=f"Snapshots in {config.backup_dir}", show_header=True)
    table.add_column("Id", style="cyan")
    table.add_column("Created (UTC)", style="green")
    for item in reversed(retained):
        table.add_row(item.snapshot_id, item.created_at.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)


@main.command()
@click.argument("snapshot_id", required=False)
@click.pass_context
def rollback(ctx: click.Context, snapshot_id: Optional[str]) -> None:
    """Restore the document tree from a snapshot (default: the latest)."""
    config: OptimizerConfig = ctx.obj["config"]
    store = _store(config)

    if snapshot_id is None:
        latest = store.latest()
        if latest is None:
            _fail("Rollback failed", SnapshotNotFoundError("No snapshots found"))
        snapshot_id = latest.snapshot_id

    try:
        safety_id = store.rollback(snapshot_id, DocumentTree(config.site_dir))
    except (SnapshotNotFoundError, SnapshotError, ValueError) as e:
        _fail("Rollback failed", e)

    console.print(f"[bold green]Rolled back to:[/bold green] {snapshot_id}")
    if safety_id:
        console.print(f"[dim]Previous state saved as {safety_id}[/dim]")
    else:
        console.print("[yellow]Document tree was missing; no pre-rollback snapshot taken[/yellow]")


@main.command()
@click.pass_context
def prune(ctx: click.Context) -> None:
    """Delete snapshots beyond the retention count."""
    config: OptimizerConfig = ctx.obj["config"]
    try:
        removed = _store(config).prune()
    except SiteOptimizerError as e:
        _fail("Prune failed", e)
    console.print(f"Removed {len(removed)} snapshot(s)")
    for snapshot_id in removed:
        console.print(f"  [dim]{snapshot_id}[/dim]")


@main.command()
@click.pass_context
def sitemap(ctx: click.Context) -> None:
    """Regenerate sitemap.xml at the document tree root."""
    config: OptimizerConfig = ctx.obj["config"]
    tree = DocumentTree(config.site_dir)
    if not tree.exists():
        _fail("Sitemap failed", FileNotFoundError(f"Document tree not found: {config.site_dir}"))

    regenerator = SitemapRegenerator(config.base_url, config.change_frequency)
    try:
        entries = regenerator.regenerate(tree)
        path = regenerator.write(tree, entries)
    except OSError as e:
        _fail("Sitemap failed", e)
    console.print(f"[bold green]Sitemap written:[/bold green] {path} ({len(entries)} URLs)")


if __name__ == "__main__":
    main()
