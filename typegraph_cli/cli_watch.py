"""Watch mode: invalidate caches and re-crawl on file changes."""

from __future__ import annotations

import asyncio
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Set

import typer
from rich.console import Console

from . import config

console = Console()

watch_app = typer.Typer(help="👀 Watch mode for live graph updates")


class CodeChangeHandler:
    """Collect changed source files and flush them after a quiet period."""

    def __init__(self, on_flush: Callable[[List[Path]], None], debounce_seconds: float = 0.7):
        self.on_flush = on_flush
        self.debounce_seconds = debounce_seconds
        self.last_change = 0.0
        self._pending: Set[str] = set()
        self._lock = threading.Lock()

    def dispatch(self, event) -> None:
        """Route watchdog events (called from the observer thread)."""
        if event.is_directory:
            return
        for attr in ("src_path", "dest_path"):
            path = getattr(event, attr, None)
            if path:
                self._handle_change(str(path))

    def _handle_change(self, src_path: str) -> None:
        file_path = Path(src_path)
        if file_path.suffix not in config.SUPPORTED_EXTENSIONS:
            return
        if any(part in config.SKIP_DIRS for part in file_path.parts):
            return
        with self._lock:
            self._pending.add(str(file_path))
            self.last_change = time.monotonic()

    def flush(self, now: Optional[float] = None) -> List[Path]:
        """Hand pending files to the callback once the debounce window passed."""
        now = time.monotonic() if now is None else now
        with self._lock:
            if not self._pending or now - self.last_change < self.debounce_seconds:
                return []
            files = sorted(Path(p) for p in self._pending)
            self._pending.clear()
        self.on_flush(files)
        return files


@watch_app.command("start")
def watch(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file containing the type."),
    line: int = typer.Option(..., "--line", "-l", min=1, help="1-based line of the cursor."),
    column: int = typer.Option(1, "--column", "-c", min=1, help="1-based column of the cursor."),
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", "-w", exists=True, file_okay=False, help="Workspace root (default: cwd).",
    ),
):
    """👀 Keep the graph for a type up to date while you edit.

    Example:
      tg watch start src/model.rs --line 12
    """
    try:
        from watchdog.events import FileSystemEventHandler
        from watchdog.observers import Observer
    except ImportError:
        console.print("[red]✗[/red] watchdog is not installed.")
        console.print("[dim]Install with: pip install watchdog[/dim]")
        raise typer.Exit(1)

    from .cli import build_session, resolve_workspace
    from .config_manager import load_settings
    from .models import Position
    from .provider import path_to_unit

    settings = load_settings()
    root = resolve_workspace(file, workspace)
    session = build_session(root, settings)
    unit = path_to_unit(file)
    position = Position(line - 1, column - 1)

    def refresh(reason: str) -> None:
        graph = asyncio.run(session.update(unit, position))
        if graph is None:
            console.print(f"  [yellow]•[/yellow] {reason}: no type at cursor, keeping last graph")
            return
        console.print(
            f"  [green]✓[/green] {reason}: {len(graph.nodes)} types, {len(graph.edges)} edges"
        )

    def on_flush(files: List[Path]) -> None:
        dropped = sum(session.invalidate(path_to_unit(f)) for f in files)
        names = ", ".join(f.name for f in files)
        refresh(f"{names} changed ({dropped} cached types dropped)")

    console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{root}[/cyan]")
    console.print(f"[dim]  Root:      {file}:{line}:{column}")
    console.print(f"  Debounce:  {settings.debounce_seconds}s")
    console.print("  Press Ctrl+C to stop[/dim]\n")
    refresh("initial crawl")

    handler = CodeChangeHandler(on_flush, debounce_seconds=settings.debounce_seconds)

    class WatchdogAdapter(FileSystemEventHandler):
        def on_modified(self, event):
            handler.dispatch(event)

        def on_created(self, event):
            handler.dispatch(event)

        def on_deleted(self, event):
            handler.dispatch(event)

        def on_moved(self, event):
            handler.dispatch(event)

    observer = Observer()
    observer.schedule(WatchdogAdapter(), str(root), recursive=True)
    observer.start()

    try:
        while True:
            time.sleep(0.2)
            handler.flush()
    except KeyboardInterrupt:
        observer.stop()
        console.print("\n[yellow]Stopped watching.[/yellow]")

    observer.join()
