"""CLI entrypoints."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from cloudrename.adapters.local import LocalFolderAdapter
from cloudrename.errors import CloudRenameError, InvalidRuleError
from cloudrename.logs import init_logging
from cloudrename.models.conflict import ConflictResolution, ConflictResult
from cloudrename.models.file import FileItem
from cloudrename.models.operation import BatchResults, ProgressEvent
from cloudrename.models.rule import RuleConfig, RuleType
from cloudrename.processors.conflict_detector import ConflictDetector
from cloudrename.processors.crash_recovery import CrashRecoveryManager
from cloudrename.processors.executor import ExecutorConfig
from cloudrename.processors.retry import DEFAULT_MAX_RETRIES
from cloudrename.rules import preview
from cloudrename.store import JsonFileStore


console = Console()

DEFAULT_STATE_FILE = Path.home() / ".cloudrename" / "state.json"

CONFLICT_CHOICES = ["ask"] + [resolution.value for resolution in ConflictResolution]


def _parse_params(pairs: tuple[str, ...]) -> dict:
    """Parse KEY=VALUE pairs; values are decoded as JSON when possible (numbers, booleans)."""
    params: dict = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'", param_hint="--param")
        key, raw = pair.split("=", 1)
        try:
            params[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            params[key.strip()] = raw
    return params


def _manager(state_file: str) -> CrashRecoveryManager:
    return CrashRecoveryManager(JsonFileStore(state_file))


def _ask_resolution(conflict_count: int) -> ConflictResolution | None:
    """Interactive stand-in for the conflict dialog."""
    console.print(f"[bold yellow]Detected {conflict_count} naming conflict(s).[/bold yellow]")
    console.print("  1. Add a number, e.g. file.txt -> file(1).txt (recommended)")
    console.print("  2. Skip conflicting files and keep their names")
    console.print("  3. Overwrite (provider decides what happens to existing files)")
    choice = click.prompt("Choose", type=click.Choice(["1", "2", "3"]), default="1", show_choices=False)
    if choice == "1":
        return ConflictResolution.AUTO_NUMBER
    if choice == "2":
        return ConflictResolution.SKIP
    if click.confirm("Overwriting may lose data. Continue?", default=False):
        return ConflictResolution.OVERWRITE
    return None


def _print_preview(files: list[FileItem], names: list[str], conflicts: dict[str, ConflictResult]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Original", style="cyan")
    table.add_column("New Name", style="green")
    table.add_column("Conflict", style="dim")

    for file, name in zip(files, names):
        conflict = conflicts.get(file.id)
        label = conflict.type.value if conflict is not None and conflict.has_conflict else ""
        new_name = name if name != file.name else "[dim](unchanged)[/dim]"
        table.add_row(file.name, new_name, f"[yellow]{label}[/yellow]" if label else "")

    console.print(table)


def _print_results(results: BatchResults) -> None:
    console.print()
    if results.cancelled:
        console.print("[yellow]Cancelled before all files were processed.[/yellow]")
    console.print(
        f"[bold green]Renamed {results.success_count} file(s)[/bold green]"
        f" ([dim]{results.skipped_count} skipped[/dim]), "
        f"[bold red]{results.failed_count} failed[/bold red]."
    )
    recovered = results.recovered_summary()
    if recovered:
        console.print(f"Resumed operation: [cyan]{recovered}[/cyan]")
    for record in results.failed:
        console.print(f"  [red]x[/red] {record.original} -> {record.new_name}: {record.error}")


def _run_with_progress(coro_factory, total: int) -> BatchResults | None:
    with tqdm(total=total, desc="Renaming", unit="file") as bar:

        def _on_progress(event: ProgressEvent) -> None:
            bar.update(1)
            bar.set_postfix(failed=event.failed)

        return asyncio.run(coro_factory(_on_progress))


@click.group(context_settings=dict(show_default=True))
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), default="WARNING")
@click.option("--log-dir", type=click.Path(file_okay=False), default=None, help="Also write rotating log files here.")
def cli(log_level: str, log_dir: str | None) -> None:
    """cloudrename - Batch rename files with conflict handling and crash recovery."""
    init_logging(level=log_level, log_dir=log_dir)


state_file_option = click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    default=str(DEFAULT_STATE_FILE),
    envvar="CLOUDRENAME_STATE_FILE",
    help="Where in-progress operations are persisted for crash recovery.",
)


@cli.command("rename")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "-r",
    "--rule",
    "rule_type",
    type=click.Choice([rule.value for rule in RuleType]),
    required=True,
    help="Naming rule to apply.",
)
@click.option("-p", "--param", "params", multiple=True, help="Rule parameter as KEY=VALUE (repeatable).")
@click.option("-s", "--select", "selected", multiple=True, help="Only rename these file names (repeatable).")
@click.option(
    "--on-conflict",
    type=click.Choice(CONFLICT_CHOICES),
    default="ask",
    envvar="CLOUDRENAME_ON_CONFLICT",
    help="How to resolve naming conflicts.",
)
@click.option(
    "--recheck/--no-recheck",
    default=False,
    help="Verify numbered names against existing files when auto-numbering.",
)
@click.option(
    "--request-interval",
    type=click.FloatRange(min=0),
    default=None,
    envvar="CLOUDRENAME_REQUEST_INTERVAL",
    help="Minimum seconds between rename calls (defaults to the adapter's setting).",
)
@click.option(
    "--max-retries", type=click.IntRange(min=1), default=DEFAULT_MAX_RETRIES, help="Maximum attempts per file."
)
@click.option("-y", "--yes", is_flag=True, default=False, help="Apply renames without asking for confirmation.")
@state_file_option
def rename(
    directory: str,
    rule_type: str,
    params: tuple[str, ...],
    selected: tuple[str, ...],
    on_conflict: str,
    recheck: bool,
    request_interval: float | None,
    max_retries: int,
    yes: bool,
    state_file: str,
) -> None:
    """Rename files in DIRECTORY according to a naming rule.

    Examples:

        cloudrename rename ./photos -r prefix -p prefix=2024 -p separator=_

        cloudrename rename ./episodes -r numbering -p digits=2 -p position=suffix -y
    """
    rule = RuleConfig(type=RuleType(rule_type), params=_parse_params(params))
    adapter = LocalFolderAdapter(directory, selected=list(selected) or None)

    files = asyncio.run(adapter.get_selected_files())
    if not files:
        console.print("[yellow]No files to rename.[/yellow]")
        return

    try:
        names = preview(rule, files)
    except InvalidRuleError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1) from e

    detector = ConflictDetector(adapter)
    conflicts = asyncio.run(detector.detect_conflicts(files, names))

    if detector.count_conflicts(conflicts):
        if on_conflict == "ask":
            strategy = (
                ConflictResolution.AUTO_NUMBER
                if yes
                else asyncio.run(detector.choose_resolution(conflicts, _ask_resolution))
            )
        else:
            strategy = ConflictResolution(on_conflict)

        if strategy is None:
            console.print("[yellow]Aborted. No files were renamed.[/yellow]")
            return

        if strategy == ConflictResolution.AUTO_NUMBER and recheck:
            try:
                names = asyncio.run(detector.resolve_conflicts_checked(files, names, conflicts))
            except CloudRenameError as e:
                console.print(f"[bold red]Error:[/bold red] {e}")
                raise SystemExit(1) from e
        else:
            names = detector.resolve_conflicts(files, names, conflicts, strategy)

    console.print(f"Renaming [bold cyan]{len(files)}[/bold cyan] file(s) with rule [bold magenta]{rule}[/bold magenta]")
    _print_preview(files, names, conflicts)

    if not yes and not click.confirm("Apply these renames?", default=False):
        console.print("[yellow]Aborted. No files were renamed.[/yellow]")
        return

    overrides: dict = {"max_retries": max_retries, "skip_unchanged": True}
    if request_interval is not None:
        overrides["request_interval"] = request_interval
    config = ExecutorConfig.from_platform(adapter.get_config(), **overrides)

    manager = _manager(state_file)
    results = _run_with_progress(
        lambda on_progress: manager.run_operation(
            adapter, files, rule, new_names=names, on_progress=on_progress, config=config
        ),
        total=len(files),
    )
    _print_results(results)
    if results.failed_count:
        raise SystemExit(1)


@cli.command("resume")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("-y", "--yes", is_flag=True, default=False, help="Resume without asking for confirmation.")
@state_file_option
def resume(directory: str, yes: bool, state_file: str) -> None:
    """Resume an interrupted rename operation on DIRECTORY."""
    manager = _manager(state_file)
    state = asyncio.run(manager.check_recoverable_operation())
    if state is None:
        console.print("[green]No recoverable operation found.[/green]")
        return

    console.print("[bold]Found an unfinished rename operation:[/bold]")
    console.print(manager.describe(state))
    console.print()

    if not yes and not click.confirm("Resume it?", default=True):
        asyncio.run(manager.clear_operation_state())
        console.print("[yellow]Discarded the saved operation.[/yellow]")
        return

    adapter = LocalFolderAdapter(directory)
    config = ExecutorConfig.from_platform(adapter.get_config(), skip_unchanged=True)
    pending = len(state.pending_indices())
    results = _run_with_progress(
        lambda on_progress: manager.resume_operation(state, adapter, on_progress=on_progress, config=config),
        total=pending,
    )
    if results is None:
        console.print("[green]Nothing left to do.[/green]")
        return
    _print_results(results)
    if results.failed_count:
        raise SystemExit(1)


@cli.command("status")
@state_file_option
def status(state_file: str) -> None:
    """Show the saved operation, if any."""
    manager = _manager(state_file)
    state = asyncio.run(manager.check_recoverable_operation())
    if state is None:
        console.print("[green]No recoverable operation found.[/green]")
        return
    console.print(manager.describe(state))


@cli.command("clear")
@state_file_option
def clear(state_file: str) -> None:
    """Discard the saved operation."""
    asyncio.run(_manager(state_file).clear_operation_state())
    console.print("[green]Cleared saved operation state.[/green]")
