"""CLI entry point for React Native visual regression testing."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from visual_testing.catalog.parser import discover_scenes, group_scenes
from visual_testing.errors import VisualTestError
from visual_testing.models.comparison import RunSummary
from visual_testing.models.config import CONFIG_FILE_NAME, VisualTestConfig
from visual_testing.pipeline import DEFAULT_BASE_BRANCH, Pipeline

console = Console()
logger = logging.getLogger(__name__)

STORYBOOK_CONFIG_PATHS = (
    ".storybook/main.ts",
    ".storybook/main.js",
    ".rnstorybook/main.ts",
    ".rnstorybook/main.js",
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(config: str) -> VisualTestConfig:
    try:
        return VisualTestConfig.load(config)
    except FileNotFoundError:
        console.print(f"[yellow]Config file not found: {config}, using defaults[/yellow]")
        console.print("Run 'rn-visual-test init' to create one.")
        return VisualTestConfig()


def _pipeline(config: str) -> Pipeline:
    return Pipeline(_load_config(config), project_path=Path(config).resolve().parent)


def _run(coro):
    """Run a pipeline coroutine, turning pipeline errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except (VisualTestError, FileNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Comparison Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Base", summary.base_branch)
    table.add_row("Current", summary.current_branch)
    table.add_row("Total Scenes", str(summary.total_scenes))
    table.add_row("Passed", f"[green]{summary.passed_count}[/green]")
    table.add_row("Changed", f"[yellow]{summary.changed_count}[/yellow]")
    table.add_row("Failed", f"[red]{summary.failed_count}[/red]")
    console.print(table)

    changed = [v for v in summary.results if v.has_difference and not v.failed]
    if changed:
        console.print("\n[bold yellow]Changed scenes:[/bold yellow]")
        for v in changed:
            detail = "new" if v.is_new else f"{v.pixel_diff_percent:.2f}%"
            console.print(f"  {v.scene_id} ({detail})")


def _validate_filter(ctx, param, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        re.compile(value)
    except re.error as e:
        raise click.BadParameter(f"invalid regular expression: {e}") from e
    return value


def detect_stories_pattern(project_path: Path) -> str | None:
    """Read the ``stories`` glob out of a Storybook main config, if one exists."""
    for rel in STORYBOOK_CONFIG_PATHS:
        path = project_path / rel
        if not path.exists():
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug("Could not read %s: %s", path, e)
            return None
        match = re.search(r"stories:\s*\[['\"]([^'\"]+)['\"]", content)
        return match.group(1) if match else None
    return None


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression testing for React Native Storybook on iOS simulators"""
    setup_logging(verbose)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.option("--device", default=None, help="Simulator device name")
@click.option("--bundle-id", default=None, help="App bundle identifier")
def init(force: bool, device: str | None, bundle_id: str | None) -> None:
    """Create a default config file in the current directory."""
    config_path = Path.cwd() / CONFIG_FILE_NAME
    if config_path.exists() and not force:
        console.print(f"[yellow]{CONFIG_FILE_NAME} already exists. Use --force to overwrite.[/yellow]")
        return

    cfg = VisualTestConfig()
    pattern = detect_stories_pattern(Path.cwd())
    if pattern:
        cfg.storybook.stories_pattern = pattern
        console.print(f"Detected stories pattern: [blue]{pattern}[/blue]")
    if device:
        cfg.simulator.device = device
    if bundle_id:
        cfg.simulator.bundle_id = bundle_id
    cfg.save(config_path)

    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]rn-visual-test test[/blue]")


@cli.command("list-scenes")
@click.option("--json", "as_json", is_flag=True, help="Print scenes as JSON")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def list_scenes(as_json: bool, config: str) -> None:
    """List every scene found in the project's story files."""
    cfg = _load_config(config)
    scenes = discover_scenes(Path(config).resolve().parent, cfg.storybook.stories_pattern)

    if as_json:
        click.echo(json.dumps([s.to_json_dict() for s in scenes], indent=2))
        return

    groups = group_scenes(scenes)
    for group, members in groups.items():
        console.print(f"[bold]{group}[/bold]")
        for scene in members:
            console.print(f"   └─ {scene.variant_name} ([dim]{scene.id}[/dim])")
    console.print(f"\nTotal: {len(scenes)} scenes in {len(groups)} components")


@cli.command()
@click.option("--branch", "-b", default=None, help="Branch name (defaults to the current git branch)")
@click.option("--skip-boot", is_flag=True, help="Do not boot the simulator")
@click.option("--skip-shutdown", is_flag=True, help="Leave the simulator running afterwards")
@click.option("--filter", "scene_filter", default=None, callback=_validate_filter,
              help="Only capture scenes matching this regex")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def capture(branch: str | None, skip_boot: bool, skip_shutdown: bool,
            scene_filter: str | None, config: str) -> None:
    """Capture every scene by driving the in-app Storybook server."""
    pipeline = _pipeline(config)
    records = _run(pipeline.capture(
        branch, strategy="protocol", scene_filter=scene_filter,
        boot=not skip_boot, shutdown=not skip_shutdown,
    ))
    _print_capture(records)


@cli.command("capture-all")
@click.option("--branch", "-b", default=None, help="Branch name (defaults to the current git branch)")
@click.option("--scheme", default=None, help="App URL scheme for deep links")
@click.option("--delay", type=int, default=None, help="Render wait per scene in milliseconds")
@click.option("--filter", "scene_filter", default=None, callback=_validate_filter,
              help="Only capture scenes matching this regex")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def capture_all(branch: str | None, scheme: str | None, delay: int | None,
                scene_filter: str | None, config: str) -> None:
    """Capture every scene from the story files via deep links (simulator must be booted)."""
    pipeline = _pipeline(config)
    records = _run(pipeline.capture(
        branch, strategy="deeplink", scene_filter=scene_filter, boot=False, shutdown=False,
        scheme=scheme, delay=delay / 1000 if delay is not None else None,
    ))
    _print_capture(records)


def _print_capture(records) -> None:
    failed = [r for r in records if r.failure_reason]
    console.print(f"\n[green]Capture complete:[/green] {len(records) - len(failed)} captured, "
                  f"{len(failed)} failed")
    for r in failed:
        console.print(f"  [red]{r.scene_id}[/red]: {r.failure_reason}")


@cli.command()
@click.option("--name", "-n", default=None, help="File name without extension")
@click.option("--branch", "-b", default=None, help="Branch name (defaults to the current git branch)")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def screenshot(name: str | None, branch: str | None, config: str) -> None:
    """Capture a single screenshot of the current screen."""
    pipeline = _pipeline(config)
    path = _run(pipeline.screenshot(name=name, branch=branch))
    console.print(f"[green]Screenshot saved:[/green] {path}")


@cli.command()
@click.option("--base", default=DEFAULT_BASE_BRANCH, help="Base branch label")
@click.option("--current", default=None, help="Branch to compare (defaults to the current git branch)")
@click.option("--threshold", type=click.FloatRange(0, 1), default=None,
              help="Fraction of pixels allowed to differ (0-1)")
@click.option("--no-report", is_flag=True, help="Skip the HTML report")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def compare(base: str, current: str | None, threshold: float | None, no_report: bool, config: str) -> None:
    """Compare captured screenshots against the baselines."""
    pipeline = _pipeline(config)
    summary = _run(pipeline.compare(base, current, threshold=threshold, report=not no_report))
    _print_summary(summary)
    if summary.changed_count > 0:
        console.print("\n[yellow]Visual changes detected.[/yellow] "
                      "Update baselines if intended: [blue]rn-visual-test baseline --update[/blue]")
        sys.exit(1)


@cli.command()
@click.option("--update", is_flag=True, help="Replace baselines with the branch's screenshots")
@click.option("--clear", "clear_", is_flag=True, help="Delete all baselines")
@click.option("--branch", "-b", default=None, help="Branch to take screenshots from")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def baseline(update: bool, clear_: bool, branch: str | None, config: str) -> None:
    """View or manage baselines."""
    pipeline = _pipeline(config)
    store = pipeline.baseline_store()

    if update and clear_:
        console.print("[red]Use either --update or --clear, not both[/red]")
        sys.exit(1)

    if clear_:
        if store.clear():
            console.print("[green]Baselines cleared[/green]")
        else:
            console.print("[yellow]No baselines to clear[/yellow]")
        return

    branch = _run(pipeline.resolve_branch(branch))
    if update:
        try:
            files = store.update(branch)
        except VisualTestError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        console.print(f"[green]Updated {len(files)} baselines[/green] from {branch}")
        return

    status = store.status(branch)
    if not status.exists:
        console.print("[yellow]No baselines found.[/yellow] "
                      "Run [blue]rn-visual-test baseline --update[/blue] after capturing.")
        return
    table = Table(title=f"Baselines: {status.baseline_dir}")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Baselines", str(len(status.baselines)))
    table.add_row("New on branch", f"[yellow]{len(status.new_scenes)}[/yellow]")
    table.add_row("Missing on branch", f"[red]{len(status.missing_scenes)}[/red]")
    console.print(table)


@cli.command()
@click.option("--branch", "-b", default=None, help="Branch name (defaults to the current git branch)")
@click.option("--api-url", default=None, help="Dashboard URL (overrides apiUrl in config)")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def upload(branch: str | None, api_url: str | None, config: str) -> None:
    """Upload comparison results to the dashboard."""
    pipeline = _pipeline(config)
    result = _run(pipeline.upload(branch, api_url=api_url))
    base = (api_url or pipeline.config.api_url or "").rstrip("/")
    console.print("[green]Test results uploaded successfully[/green]")
    console.print(f"  Test ID: {result.test_id}")
    console.print(f"  View results: [blue]{base}{result.url}[/blue]")


@cli.command("test")
@click.option("--branch", "-b", default=None, help="Branch name (defaults to the current git branch)")
@click.option("--base", default=DEFAULT_BASE_BRANCH, help="Base branch label")
@click.option("--skip-capture", is_flag=True, help="Compare existing screenshots only")
@click.option("--skip-upload", is_flag=True, help="Do not upload results")
@click.option("--threshold", type=click.FloatRange(0, 1), default=None,
              help="Fraction of pixels allowed to differ (0-1)")
@click.option("--strategy", type=click.Choice(["protocol", "deeplink"]), default="protocol",
              help="How to navigate between scenes. protocol boots the simulator and drives the "
                   "in-app Storybook server; deeplink behaves like capture-all and needs a booted simulator")
@click.option("--config", "-c", default=CONFIG_FILE_NAME, help="Config file path")
def test_command(branch: str | None, base: str, skip_capture: bool, skip_upload: bool,
                 threshold: float | None, strategy: str, config: str) -> None:
    """Run the full cycle: capture, compare, upload.

    Captures over the Storybook WebSocket by default; pass --strategy deeplink
    to capture the way capture-all does.
    """
    pipeline = _pipeline(config)
    result = _run(pipeline.run_test(
        branch=branch,
        base_branch=base,
        skip_capture=skip_capture,
        skip_upload=skip_upload,
        threshold=threshold,
        strategy=strategy,
    ))

    _print_summary(result.summary)
    for fmt, path in result.reports.items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")
    console.print(f"  Duration: {result.duration}s")

    if result.exit_code:
        console.print("\n[yellow]Visual differences were detected.[/yellow]")
        console.print("Review the changes and update baselines if intended:")
        console.print("  [blue]rn-visual-test baseline --update[/blue]")
    else:
        console.print("\n[bold green]No visual differences detected.[/bold green]")
    sys.exit(result.exit_code)


if __name__ == "__main__":
    cli()
