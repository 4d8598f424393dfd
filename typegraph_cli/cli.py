"""Typer-based CLI for TypeGraph type composition graphs."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .cli_groups import config_grp
from .cli_watch import watch_app
from .config import ConfigError, CrawlerSettings
from .config_manager import load_settings, reset_settings, save_setting
from .crawler import GraphCrawler
from .graph_export import export_dot, export_json
from .models import Graph, Position
from .provider import path_to_unit
from .rust_provider import RustWorkspaceProvider
from .session import GraphSession

console = Console()

app = typer.Typer(
    help="🧬 TypeGraph CLI — type composition graphs for Rust workspaces.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_grp, name="config")
app.add_typer(watch_app, name="watch")

FORMATS = ("table", "dot", "json")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"TypeGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log crawl diagnostics."),
):
    """TypeGraph CLI: discover how your types are composed."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def build_session(workspace: Path, settings: Optional[CrawlerSettings] = None) -> GraphSession:
    settings = settings or load_settings()
    provider = RustWorkspaceProvider(workspace, exclude=settings.exclude_patterns)
    return GraphSession(GraphCrawler(provider), settings)


def resolve_workspace(file: Path, workspace: Optional[Path]) -> Path:
    if workspace is not None:
        return workspace.resolve()
    cwd = Path.cwd().resolve()
    return cwd if file.resolve().is_relative_to(cwd) else file.resolve().parent


def _check_format(fmt: str) -> str:
    fmt = fmt.lower()
    if fmt not in FORMATS:
        raise typer.BadParameter(f"Format must be one of: {', '.join(FORMATS)}")
    return fmt


def render(graph: Graph, fmt: str, output: Optional[Path]) -> None:
    if fmt == "table":
        if output is not None:
            raise typer.BadParameter("--output needs --format dot or json")
        _print_tables(graph)
        return

    text = export_dot(graph) if fmt == "dot" else export_json(graph)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Exported graph to {output}")


def _print_tables(graph: Graph) -> None:
    nodes = Table(title=f"Types ({len(graph.nodes)})")
    nodes.add_column("Type", style="bold cyan")
    nodes.add_column("Kind")
    nodes.add_column("Fields", justify="right")
    nodes.add_column("Defined in", style="dim")
    for node in graph.nodes.values():
        location = f"{Path(node.unit).name}:{node.range.start.line + 1}"
        nodes.add_row("::".join(node.chain), node.kind, str(len(node.fields)), location)
    console.print(nodes)

    labels = {node_id: node.label for node_id, node in graph.nodes.items()}
    edges = Table(title=f"Composition ({len(graph.edges)})")
    edges.add_column("From", style="cyan")
    edges.add_column("Field")
    edges.add_column("To", style="cyan")
    edges.add_column("Via", style="yellow")
    for edge in graph.edges:
        edges.add_row(
            labels.get(edge.source, edge.source),
            edge.port or "",
            labels.get(edge.target, edge.target),
            edge.label or "",
        )
    console.print(edges)


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

@app.command("graph")
def graph(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file containing the type."),
    line: int = typer.Option(..., "--line", "-l", min=1, help="1-based line of the cursor."),
    column: int = typer.Option(1, "--column", "-c", min=1, help="1-based column of the cursor."),
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", "-w", exists=True, file_okay=False, help="Workspace root (default: cwd).",
    ),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, dot or json."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write dot/json output to a file."),
    attempts: Optional[int] = typer.Option(None, "--attempts", min=1, help="Override warm-up attempts."),
):
    """Show the composition graph rooted at the type under the cursor."""
    fmt = _check_format(fmt)
    settings = load_settings()
    if attempts is not None:
        settings.max_attempts = attempts

    session = build_session(resolve_workspace(file, workspace), settings)
    position = Position(line - 1, column - 1)
    result = asyncio.run(session.update(path_to_unit(file), position))

    if result is None:
        console.print(f"[red]✗[/red] No type definition found at {file}:{line}:{column}")
        raise typer.Exit(code=1)
    render(result, fmt, output)


@app.command("scan")
def scan(
    workspace: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Workspace root."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, dot or json."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write dot/json output to a file."),
):
    """Graph every type definition in the workspace."""
    fmt = _check_format(fmt)
    settings = load_settings()
    settings.max_attempts = 1
    session = build_session(workspace, settings)
    result = asyncio.run(session.scan())

    if result is None:
        console.print(f"[yellow]No type definitions found under {workspace}[/yellow]")
        raise typer.Exit(code=0)
    render(result, fmt, output)


# ------------------------------------------------------------------
# Config commands
# ------------------------------------------------------------------

@config_grp.command("show")
def config_show():
    """Show the effective crawler settings."""
    settings = load_settings()
    table = Table(title=f"Settings ({config.CONFIG_FILE})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        shown = ", ".join(value) if isinstance(value, list) else str(value)
        table.add_row(key, shown)
    console.print(table)


@config_grp.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name."),
    value: str = typer.Argument(..., help="New value (comma-separated for exclude_patterns)."),
):
    """Persist one crawler setting."""
    try:
        save_setting(key, value)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc))
    console.print(f"[green]✓[/green] {key} updated")


@config_grp.command("reset")
def config_reset():
    """Restore default crawler settings."""
    reset_settings()
    console.print("[green]✓[/green] Crawler settings reset to defaults")


if __name__ == "__main__":
    app()
