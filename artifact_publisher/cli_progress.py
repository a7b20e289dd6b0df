"""Console rendering helpers for the artifact-publish CLI."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import CommitResult, ModuleRevision
from .utils.events import (
    ALIAS_COPIED,
    COMMIT_ABORTED,
    COMMIT_STARTED,
    ENTRY_DELETED,
    EventEmitter,
    FILE_SKIPPED,
    FILE_WRITTEN,
    FOLDER_CREATED,
    TRANSFER_COMPLETED,
    UPLOAD_DROPPED,
)

console = Console()


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    out = out or console
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]artifact-publish[/bold green]",
        subtitle="[dim]artifact publisher CLI[/dim]",
        border_style="blue",
    )
    out.print(panel)


class PublishProgressDisplay:
    """Prints publish events as they happen."""

    def __init__(self, out: Optional[Console] = None):
        self._console = out or console
        self.published = 0
        self.skipped = 0

    def attach(self, events: EventEmitter) -> "PublishProgressDisplay":
        events.on(COMMIT_STARTED, self.on_commit_started)
        events.on(FOLDER_CREATED, self.on_folder_created)
        events.on(FILE_WRITTEN, self.on_file_written)
        events.on(FILE_SKIPPED, self.on_file_skipped)
        events.on(UPLOAD_DROPPED, self.on_upload_dropped)
        events.on(ENTRY_DELETED, self.on_entry_deleted)
        events.on(ALIAS_COPIED, self.on_alias_copied)
        events.on(COMMIT_ABORTED, self.on_commit_aborted)
        events.on(TRANSFER_COMPLETED, self.on_transfer_completed)
        return self

    def on_commit_started(self, module: ModuleRevision) -> None:
        self._console.print(f"[bold cyan]Committing[/bold cyan] {module}")

    def on_folder_created(self, path: str) -> None:
        self._console.print(f"  [cyan]folder[/cyan]   {path}")

    def on_file_written(self, path: str) -> None:
        self.published += 1
        self._console.print(f"  [green]publish[/green]  {path}")

    def on_file_skipped(self, path: str) -> None:
        self.skipped += 1
        self._console.print(f"  [yellow]skip[/yellow]     {path} [dim](exists)[/dim]")

    def on_upload_dropped(self, path: str) -> None:
        self.skipped += 1
        self._console.print(f"  [yellow]drop[/yellow]     {path} [dim](folder exists)[/dim]")

    def on_entry_deleted(self, path: str) -> None:
        self._console.print(f"  [red]delete[/red]   {path}")

    def on_alias_copied(self, staging: str, permanent: str, revision: int) -> None:
        self._console.print(f"  [magenta]copy[/magenta]     {staging}@{revision} -> {permanent}")

    def on_commit_aborted(self, module: ModuleRevision) -> None:
        self._console.print(f"[bold red]Aborted[/bold red] {module}")

    def on_transfer_completed(self, url: str, size: int) -> None:
        self._console.print(f"[green]Retrieved[/green] {url} ({_human_size(size)})")


def render_commit_result(result: CommitResult, out: Optional[Console] = None) -> None:
    """Render the outcome of a publish."""
    out = out or console
    if not result.committed:
        skipped = f" ({len(result.skipped)} skipped)" if result.skipped else ""
        out.print(f"[yellow]Nothing to commit[/yellow]{skipped}")
        return

    table = Table(title="Publish result", show_header=False, border_style="green")
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")
    table.add_row("Revision", f"r{result.revision}")
    if result.alias_revision is not None:
        table.add_row("Alias revision", f"r{result.alias_revision}")
    table.add_row("Published", str(len(result.written)))
    table.add_row("Skipped", str(len(result.skipped)))
    table.add_row("Deleted", str(len(result.deleted)))
    for permanent, staging in result.copied.items():
        table.add_row("Copied", f"{staging} -> {permanent}")
    out.print(table)


def render_listing(urls: Iterable[str], out: Optional[Console] = None) -> None:
    out = out or console
    for url in urls:
        out.print(url, highlight=False)
