"""Command-line interface for specvelocity."""

import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from specvelocity.extraction import GitRevisionSource, discover_documents
from specvelocity.migration import MigrationManager
from specvelocity.models import Metrics, MiningConfig, RemainingWork, Settings, SpecDocument
from specvelocity.parsing import count_tasks, make_task_key
from specvelocity.velocity import LiveTracker, StateManager, VelocityTracker

app = typer.Typer(
    name="specvelocity",
    help="Task velocity tracking for spec checklists - mine Git history and report throughput",
    add_completion=False,
)
console = Console()


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stderr, filtered at ``level``."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _settings(state_dir: Optional[Path], verbose: bool = False) -> Settings:
    settings = Settings()
    if state_dir is not None:
        settings.state_dir = state_dir
    configure_logging("DEBUG" if verbose else settings.log_level)
    return settings


def _tracker(settings: Settings) -> VelocityTracker:
    tracker = VelocityTracker(
        StateManager(settings.state_dir),
        activity_log_limit=settings.activity_log_limit,
        daily_retention_days=settings.daily_retention_days,
    )
    tracker.initialize()
    return tracker


def _documents(root: Path, config: MiningConfig) -> List[SpecDocument]:
    if not root.exists():
        raise ValueError(f"Path does not exist: {root}")
    return discover_documents(root, config.specs_dir, config.tasks_filename)


def _remaining_work(documents: List[SpecDocument]) -> List[RemainingWork]:
    snapshot = []
    for document in documents:
        stats = count_tasks(document.path.read_text(encoding="utf-8"))
        snapshot.append(RemainingWork(total_tasks=stats.total, completed_tasks=stats.completed))
    return snapshot


def _warn_if_not_persisted(tracker: VelocityTracker) -> None:
    if tracker.last_persist_error:
        console.print(
            f"[yellow]Warning: velocity data was not saved ({tracker.last_persist_error})[/yellow]"
        )


@app.command()
def migrate(
    root: Path = typer.Argument(..., help="Repository or workspace root"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds allowed per document"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Documents mined concurrently"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Rebuild velocity data from the Git history of every task document."""
    try:
        settings = _settings(state_dir, verbose)
        config = settings.mining_config()
        if timeout is not None:
            if timeout <= 0:
                raise ValueError("--timeout must be a positive number of seconds")
            config.document_timeout_seconds = timeout
        if workers is not None:
            config.max_workers = workers

        documents = _documents(root, config)
        if not documents:
            console.print(f"[yellow]No task documents found under {root / config.specs_dir}[/yellow]")
            return

        console.print(f"[bold green]Migrating velocity history from:[/bold green] {root}")
        console.print(f"[bold blue]Documents:[/bold blue] {len(documents)}")

        tracker = _tracker(settings)
        manager = MigrationManager(tracker, config)
        cancel_event = threading.Event()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Mining document history...", total=None)
            try:
                report = manager.migrate(documents, cancel_event)
            except KeyboardInterrupt:
                cancel_event.set()
                raise

        console.print(f"\n[bold green]✓ Recorded {report.tasks_processed} task completions[/bold green]")
        console.print(f"[cyan]Specs completed:[/cyan] {report.specs_processed}")
        console.print(f"[cyan]Authors:[/cyan] {', '.join(report.authors) or 'none'}")

        if verbose and report.week_distribution:
            table = Table(title="Completions per week")
            table.add_column("Week of", style="cyan")
            table.add_column("Tasks", justify="right", style="green")
            for week, count in report.week_distribution.items():
                table.add_row(week, str(count))
            console.print(table)

        failed = report.failed_documents
        if failed:
            console.print(f"\n[yellow]⚠ {len(failed)} document(s) skipped:[/yellow]")
            for result in failed:
                console.print(f"  [yellow]{result.spec_id}[/yellow] [dim]{result.error}[/dim]")

        _warn_if_not_persisted(tracker)

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {e}")
        raise typer.Exit(1)


def _print_metrics(metrics: Metrics) -> None:
    table = Table(title="Velocity")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Tasks this week", str(metrics.current_week_tasks))
    table.add_row("Tasks last week", str(metrics.last_week_tasks))
    table.add_row("Trend", f"{metrics.velocity_trend:+d}%")
    table.add_row("Average (4 weeks)", f"{metrics.average_velocity}")
    table.add_row(
        "Consistency", f"{metrics.consistency_score} ({metrics.consistency_rating})"
    )
    table.add_row("Specs this week", str(metrics.current_week_specs))
    table.add_row("Average specs (4 weeks)", f"{metrics.average_specs:.2f}")
    table.add_row(
        "Specs consistency",
        f"{metrics.specs_consistency_score} ({metrics.specs_consistency_rating})",
    )
    table.add_row("Avg days to complete a spec", str(metrics.average_time_to_complete))
    table.add_row(
        "Required / optional",
        f"{metrics.required_vs_optional.required} / {metrics.required_vs_optional.optional}",
    )
    table.add_row("Remaining tasks", str(metrics.remaining_tasks))
    if metrics.projected_completion_date:
        table.add_row(
            "Projected completion",
            f"{metrics.projected_completion_date:%Y-%m-%d} ({metrics.days_remaining} days)",
        )
    else:
        table.add_row("Projected completion", "-")
    console.print(table)

    console.print(
        "[dim]Last 12 weeks:[/dim] " + " ".join(str(n) for n in metrics.tasks_per_week)
    )


@app.command()
def metrics(
    root: Path = typer.Argument(..., help="Repository or workspace root"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
    as_json: bool = typer.Option(False, "--json", help="Print metrics as JSON"),
) -> None:
    """Show velocity metrics."""
    try:
        settings = _settings(state_dir)
        documents = _documents(root, settings.mining_config())
        tracker = _tracker(settings)
        result = tracker.calculate_metrics(_remaining_work(documents))

        if as_json:
            typer.echo(result.model_dump_json(indent=2))
        else:
            _print_metrics(result)

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def record(
    spec_id: str = typer.Argument(..., help="Spec containing the task"),
    optional: bool = typer.Option(False, "--optional", help="Task is optional"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Task description"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Who completed the task"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
) -> None:
    """Record a single task completion now."""
    try:
        settings = _settings(state_dir)
        tracker = _tracker(settings)
        tracker.record_task_completion(
            spec_id,
            make_task_key(spec_id, text or ""),
            is_required=not optional,
            author=author,
            text=text,
        )
        console.print(f"[green]✓ Recorded completion in {spec_id}[/green]")
        _warn_if_not_persisted(tracker)

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def toggle(
    root: Path = typer.Argument(..., help="Repository or workspace root"),
    spec_id: str = typer.Argument(..., help="Spec containing the task"),
    line: int = typer.Argument(..., help="0-based line number of the checkbox"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
) -> None:
    """Flip a checkbox in a task document and record the change."""
    try:
        settings = _settings(state_dir)
        document = next((d for d in _documents(root, settings.mining_config()) if d.spec_id == spec_id), None)
        if document is None:
            raise ValueError(f"No task document for spec '{spec_id}' under {root}")

        try:
            author = GitRevisionSource(root).current_user()
        except ValueError:
            author = None

        tracker = _tracker(settings)
        stats = LiveTracker(tracker).toggle_task(document, line, author)
        console.print(
            f"[green]✓ {spec_id}:[/green] {stats.completed}/{stats.total} tasks ({stats.progress}%)"
        )
        _warn_if_not_persisted(tracker)

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def reset(
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete all velocity data."""
    try:
        settings = _settings(state_dir)
        state_manager = StateManager(settings.state_dir)

        if not force:
            confirm = typer.confirm(f"Delete velocity data in {state_manager.state_file}?")
            if not confirm:
                console.print("[yellow]Aborted[/yellow]")
                return

        if state_manager.clear():
            console.print("[green]✓ Velocity data deleted[/green]")
        else:
            console.print("[yellow]No velocity data to delete[/yellow]")

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def status(
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory holding velocity.json"),
) -> None:
    """Summarize the stored velocity data."""
    try:
        settings = _settings(state_dir)
        state_manager = StateManager(settings.state_dir)
        store = state_manager.load()

        console.print("\n[bold]Velocity Store Status[/bold]")
        console.print(f"[cyan]State file:[/cyan] {state_manager.state_file}")

        if store is None:
            if state_manager.recovered_from_corruption:
                console.print("\n[yellow]⚠ State file is corrupted; it will be reset on next write.[/yellow]")
            else:
                console.print("\n[yellow]No velocity data recorded yet.[/yellow]")
                console.print("[dim]Run 'specvelocity migrate <root>' to backfill from Git history.[/dim]")
            return

        completed_specs = sum(1 for a in store.spec_activity.values() if a.is_complete)
        console.print(f"[cyan]Weeks with completions:[/cyan] {len(store.weekly_tasks)}")
        console.print(
            f"[cyan]Task completions:[/cyan] {sum(b.completed for b in store.weekly_tasks)}"
        )
        console.print(
            f"[cyan]Specs tracked:[/cyan] {len(store.spec_activity)} ({completed_specs} complete)"
        )
        console.print(f"[cyan]Activity log entries:[/cyan] {len(store.activity_log)}")
        console.print(f"[cyan]Lifecycle events:[/cyan] {len(store.spec_lifecycle_events)}")
        if store.activity_log:
            latest = store.activity_log[-1]
            console.print(f"[cyan]Last completion:[/cyan] {latest.timestamp:%Y-%m-%d %H:%M} in {latest.spec_id}")

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
