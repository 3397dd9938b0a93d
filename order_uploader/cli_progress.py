"""Console rendering and progress helpers for the order-up CLI."""
from __future__ import annotations

from typing import Any, Dict, Optional
import time

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table


console = Console()


def human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]order-up[/bold green]",
        subtitle="[dim]order_uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_mapping(title: str, data: Dict[str, Any]) -> None:
    """Render a flat view of a JSON object (health check, order record)."""
    table = Table(title=title, show_header=False, title_style="bold green")
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white", overflow="fold")
    for key, value in data.items():
        table.add_row(str(key), "-" if value is None else str(value))
    console.print(table)


class BatchUploadProgressDisplay:
    """Event-based console display for one batch upload."""

    def __init__(self, total_files: int):
        self._total_files = total_files
        self._task_id: Optional[TaskID] = None
        self._started_at = time.monotonic()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("{task.completed}/{task.total} chunks"),
            TextColumn("[dim]{task.fields[detail]}", justify="left"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )

    def _emit_timeline(self, status: str, kind: str, name: str, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "SEND": "cyan",
        }
        color = palette.get(status, "white")
        error_label = f" cause={error}" if error else ""
        self._progress.console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {kind}: {name}{error_label}"
        )

    def start(self) -> None:
        if self._task_id is not None:
            return
        self._progress.start()
        self._task_id = self._progress.add_task(
            "upload",
            label="Uploading",
            total=1,
            completed=0,
            detail=f"0/{self._total_files} files",
        )

    def stop(self) -> None:
        if self._task_id is None:
            return
        self._progress.stop()
        self._task_id = None

    def on_chunk_start(self, chunk_index: int, total_chunks: int, chunk: Any) -> None:
        self.start()
        self._progress.update(self._task_id, total=total_chunks)
        raw_size = getattr(chunk, "raw_size", 0)
        self._emit_timeline(
            "SEND", "chunk", f"{chunk_index}/{total_chunks} ({len(chunk)} file(s), {human_size(raw_size)})"
        )

    def on_progress(self, progress: Any) -> None:
        if self._task_id is None:
            return
        self._progress.update(
            self._task_id,
            completed=progress.chunk,
            total=progress.total_chunks,
            detail=f"{progress.uploaded}/{progress.total} files",
        )

    def on_file_error(self, error: Any) -> None:
        self._emit_timeline("FAIL", "file", error.name or f"#{error.index}", error=error.error)

    def on_error(self, error: Exception) -> None:
        self.stop()
        console.print(f"[red]Error:[/red] {error}")

    def on_finish(self, result: Any) -> None:
        self.stop()
        elapsed = time.monotonic() - self._started_at
        color = "green" if result.success else "yellow"
        console.print(
            f"[bold {color}]Finished[/bold {color}] order={result.order_id} "
            f"{result.summary()} chunks={result.total_chunks} in {elapsed:.1f}s"
        )
        for ref in result.files:
            console.print(f"  [green]✓[/green] {ref.name} [dim]{ref.web_view_link or ref.file_id}[/dim]")
