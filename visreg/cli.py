"""CLI entry point for visual regression review."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from visreg.compare.engines import DEFAULT_ENGINE, available_engines, declared_engines
from visreg.errors import VisRegError
from visreg.models.config import DEFAULT_CONFIG_FILE, VisRegConfig
from visreg.models.history import Decision
from visreg.runner import VisualRegressionRunner
from visreg.utils.time_utils import utc_now

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(config: str) -> VisRegConfig:
    path = Path(config)
    if not path.exists():
        console.print(f"[yellow]Config file not found: {config}, using defaults[/yellow]")
        return VisRegConfig()
    try:
        return VisRegConfig.load(path)
    except ValueError as e:
        _fail(f"Invalid config {config}: {e}")


def _fail(message: str) -> None:
    console.print(f"[red]{escape(message)}[/red]")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression workflow: capture, compare, review."""
    setup_logging(verbose)


@cli.command()
@click.option("--framework", "-f", default="playwright",
              type=click.Choice(["playwright", "cypress", "puppeteer", "selenium"]),
              help="Testing framework producing the screenshots")
@click.option("--baseline-dir", "-b", default=".visreg/baseline", help="Directory for baseline screenshots")
@click.option("--compare-dir", "-c", default=".visreg/compare", help="Directory for comparison screenshots")
@click.option("--report-dir", "-r", default=".visreg/reports", help="Directory for generated reports")
@click.option("--diff-threshold", "-t", default=0.1, type=click.FloatRange(0, 1),
              help="Acceptable fraction of differing pixels (0-1)")
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
def init(framework: str, baseline_dir: str, compare_dir: str, report_dir: str,
         diff_threshold: float, config: str) -> None:
    """Create a default configuration file and storage directories."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config} already exists. Overwrite?"):
            return

    cfg = VisRegConfig(
        framework=framework,
        baseline_dir=baseline_dir,
        compare_dir=compare_dir,
        report_dir=report_dir,
        diff_threshold=diff_threshold,
    )
    cfg.save(config_path)
    for directory in (cfg.baseline_path, cfg.compare_path, cfg.report_path):
        directory.mkdir(parents=True, exist_ok=True)

    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nCapture screenshots from your tests, then run:")
    console.print("  [blue]visreg compare[/blue]")


@cli.command()
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
@click.option("--baseline-dir", "-b", default=None, help="Override the baseline directory")
@click.option("--compare-dir", "-c", default=None, help="Override the compare directory")
@click.option("--report-dir", "-r", default=None, help="Override the report directory")
@click.option("--diff-threshold", "-t", default=None, type=click.FloatRange(0, 1),
              help="Override the acceptable fraction of differing pixels")
@click.option("--update-baselines", "-u", is_flag=True,
              help="Replace baselines with candidates that differ")
@click.option("--engine", "-e", default=None, help="Comparison engine")
@click.option("--branch", default=None, help="Branch to compare (defaults to the git branch)")
def compare(config: str, baseline_dir: str | None, compare_dir: str | None, report_dir: str | None,
            diff_threshold: float | None, update_baselines: bool, engine: str | None,
            branch: str | None) -> None:
    """Compare screenshots against baselines and write the report."""
    cfg = _load_config(config)
    overrides = {
        "baseline_dir": baseline_dir,
        "compare_dir": compare_dir,
        "report_dir": report_dir,
        "diff_threshold": diff_threshold,
        "update_baselines": True if update_baselines else None,
        "engine": engine,
        "branch": branch,
    }
    cfg = cfg.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    runner = VisualRegressionRunner(cfg)
    try:
        report = runner.run_compare()
    except VisRegError as e:
        _fail(f"Comparison failed: {e}")

    meta = report.metadata
    table = Table(title="Comparison Summary")
    table.add_column("Test", style="bold")
    table.add_column("Status")
    table.add_column("Diff", justify="right")
    for test in report.tests:
        colour = "green" if test.status == "passed" else "red"
        diff = "new baseline" if test.is_bootstrap else f"{test.diff_percentage:.2%}"
        table.add_row(test.name, f"[{colour}]{test.status}[/{colour}]", diff)
    console.print(table)
    console.print(
        f"Total: [cyan]{meta.total_tests}[/cyan], Passed: [green]{meta.passed_tests}[/green], "
        f"Changed: [red]{meta.changed_tests}[/red]"
    )
    console.print(f"Report: [blue]{runner.writer.report_path}[/blue]")


@cli.command("set-engine")
@click.argument("engine")
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
def set_engine(engine: str, config: str) -> None:
    """Set the comparison engine in the configuration file."""
    engine = engine.strip().lower()
    if engine not in declared_engines():
        _fail(f"Invalid engine '{engine}'. Available: {', '.join(declared_engines())}")
    try:
        cfg = VisRegConfig.load(config)
    except FileNotFoundError:
        _fail(f"Config file not found: {config}. Run 'visreg init' first.")
    except ValueError as e:
        _fail(f"Invalid config {config}: {e}")

    cfg.engine = engine
    cfg.save(config)
    console.print(f"[green]Engine set to[/green] [cyan]{engine}[/cyan] in {config}")
    if engine not in available_engines():
        console.print(f"[yellow]Note: {engine} is not implemented yet and falls back to {DEFAULT_ENGINE}[/yellow]")


def _record(names: tuple[str, ...], action: str, config: str) -> None:
    cfg = _load_config(config)
    runner = VisualRegressionRunner(cfg)
    now = utc_now()
    decisions = {name: Decision(action=action, timestamp=now) for name in names}
    try:
        history = runner.record_decisions(decisions)
    except (FileNotFoundError, VisRegError) as e:
        _fail(str(e))

    verb = "Accepted" if action == "accept" else "Rejected"
    console.print(f"[green]{verb}:[/green] {', '.join(names)}")
    latest = history.commits[0] if history.commits else None
    if latest:
        s = latest.summary
        console.print(
            f"Commit [cyan]{latest.short_sha}[/cyan]: {s.accepted} accepted, "
            f"{s.rejected} rejected, {s.pending} pending"
        )


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
def approve(names: tuple[str, ...], config: str) -> None:
    """Accept changed screenshots and promote them to baselines."""
    _record(names, "accept", config)


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
def reject(names: tuple[str, ...], config: str) -> None:
    """Reject changed screenshots."""
    _record(names, "reject", config)


@cli.command()
@click.option("--config", default=DEFAULT_CONFIG_FILE, help="Config file path")
def history(config: str) -> None:
    """Show the approval history."""
    cfg = _load_config(config)
    runner = VisualRegressionRunner(cfg)
    try:
        data = runner.history.load()
    except VisRegError as e:
        _fail(str(e))
    if not data.commits:
        console.print("[yellow]No approval history available[/yellow]")
        return

    table = Table(title=f"Approval History (last {data.max_history})")
    table.add_column("Commit", style="bold")
    table.add_column("Branch")
    table.add_column("Author")
    table.add_column("Message")
    table.add_column("Accepted", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Pending", justify="right")
    for commit in data.commits:
        table.add_row(
            commit.short_sha, commit.branch, commit.author, commit.message,
            f"[green]{commit.summary.accepted}[/green]",
            f"[red]{commit.summary.rejected}[/red]",
            f"[yellow]{commit.summary.pending}[/yellow]",
        )
    console.print(table)


if __name__ == "__main__":
    cli()
