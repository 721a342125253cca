"""Console rendering and progress helpers for the release upload CLI."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from .models import ReleaseState

console = Console()


def _echo(message: str) -> None:
    console.print(message)


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


def _file_size(path: Any) -> int:
    try:
        return Path(path).stat().st_size
    except (OSError, TypeError):
        return 0


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
        title="[bold green]release-upload[/bold green]",
        subtitle="[dim]release uploader CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


class ReleaseProgressDisplay:
    """
    Event-based console display for one publishing run.

    Successful uploads update a single status line in place; retries,
    failures and state changes are printed above it as a timeline.
    """

    def __init__(self):
        self._started = 0
        self._total: Optional[int] = None
        self._stats: Dict[str, int] = {"uploaded": 0, "failed": 0, "retries": 0}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=28),
            TextColumn("{task.completed}/{task.total}"),
            TextColumn("[dim]{task.fields[detail]}", justify="left"),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None
        self._live: Optional[Live] = None

    def attach(self, events) -> None:
        """Subscribe every handler to an orchestrator's EventEmitter."""
        events.on("state_change", self.on_state_change)
        events.on("release_created", self.on_release_created)
        events.on("files_selected", self.on_files_selected)
        events.on("file_start", self.on_file_start)
        events.on("file_retry", self.on_file_retry)
        events.on("file_complete", self.on_file_complete)
        events.on("file_fail", self.on_file_fail)
        events.on("finish", self.on_finish)

    def _emit_timeline(self, status: str, name: str, detail: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        palette = {"DONE": "green", "FAIL": "red", "RTRY": "yellow", "INFO": "blue"}
        color = palette.get(status, "white")
        suffix = f" [dim]{escape(str(detail))}[/dim]" if detail else ""
        _echo(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {escape(name)}{suffix}")

    def _start_live(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._task_id = self._progress.add_task(
            "upload",
            label="Uploading",
            total=0,
            completed=0,
            detail="waiting...",
        )

    def _stop_live(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def _update_line(self, detail: str) -> None:
        self._start_live()
        done = self._stats["uploaded"] + self._stats["failed"]
        self._progress.update(
            self._task_id,
            completed=done,
            total=self._total if self._total is not None else max(self._started, done),
            detail=escape(detail[:120]),
        )

    def on_state_change(self, old_state: ReleaseState, new_state: ReleaseState) -> None:
        if new_state in (ReleaseState.CREATING_RELEASE, ReleaseState.CLEANING_UP):
            self._emit_timeline("INFO", new_state.value.replace("_", " "))

    def on_release_created(self, descriptor: Any) -> None:
        projects = ", ".join(getattr(descriptor, "projects", ()))
        self._emit_timeline("DONE", f"release {descriptor.version}", projects)

    def on_files_selected(self, count: int) -> None:
        self._total = count
        if count:
            self._update_line("waiting...")

    def on_file_start(self, task: Any) -> None:
        self._started += 1
        self._update_line(f"started: {getattr(task, 'remote_name', 'file')}")

    def on_file_retry(self, task: Any, error: Exception) -> None:
        self._stats["retries"] += 1
        name = getattr(task, "remote_name", "file")
        attempt = getattr(task, "attempt_count", 0)
        self._emit_timeline("RTRY", name, f"attempt {attempt}: {error}")

    def on_file_complete(self, outcome: Any) -> None:
        self._stats["uploaded"] += 1
        size = _file_size(getattr(outcome, "source_path", None))
        size_label = f" ({_human_size(size)})" if size else ""
        self._update_line(f"upload success: {outcome.remote_name}{size_label}")

    def on_file_fail(self, outcome: Any) -> None:
        self._stats["failed"] += 1
        status = getattr(getattr(outcome, "status", None), "value", "failed")
        self._update_line(f"{status}: {outcome.remote_name}")
        self._emit_timeline("FAIL", outcome.remote_name, outcome.error)

    def on_finish(self, result: Any) -> None:
        self._stop_live()
        state = getattr(getattr(result, "state", None), "value", "?")
        _echo(
            f"[bold]Finished[/bold] state={state} uploaded={self._stats['uploaded']} "
            f"failed={self._stats['failed']} retries={self._stats['retries']}"
        )
        for warning in getattr(result, "warnings", []):
            _echo(f"[yellow]Warning:[/yellow] {escape(warning)}")
        for error in getattr(result, "errors", []):
            _echo(f"[red]Error:[/red] {escape(error)}")
