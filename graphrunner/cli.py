"""CLI entry point for graphrunner.

Commands:
- graphrunner init: Create .graphrunner/config.yaml
- graphrunner new: Write a starter graph file
- graphrunner show: Show the linear plan and statistics of a graph
- graphrunner validate: Check a graph (and the graphs it references)
- graphrunner run: Load a graph and, with --execute, play it back
- graphrunner version: Show version information
"""

from __future__ import annotations

import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from graphrunner.cli_ui.plan_renderer import PlanRenderer, StatisticsTableRenderer
from graphrunner.core.config import (
    DEFAULT_CONFIG_YAML,
    EngineSettings,
    default_config_path,
    load_settings,
)
from graphrunner.core.engine import ExecutionEngine
from graphrunner.core.errors import GraphRunnerError
from graphrunner.core.graph_schema import START_NODE_TYPE, Graph, Link, Node
from graphrunner.core.graph_store import GraphStore
from graphrunner.core.injector import InputInjector, PynputInjector, RecordingInjector
from graphrunner.core.linearizer import linearize
from graphrunner.core.models import OperationType, default_operation

console = Console()

_NODE_TYPES = [t.value for t in OperationType if t is not OperationType.START]
_NODE_SPACING = 220


def get_repo_path() -> Path:
    """Get the project path (current directory)."""
    return Path.cwd()


def _configure_logging(settings: EngineSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(error: Exception) -> NoReturn:
    # SECURITY: Escape error text to prevent Rich markup injection from file contents
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    sys.exit(1)


def _prepare(config: Path | None, verbose: bool) -> EngineSettings:
    try:
        settings = load_settings(config)
    except GraphRunnerError as e:
        _fail(e)
    _configure_logging(settings, verbose)
    return settings


_config_option = click.option(
    "--config",
    "config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: .graphrunner/config.yaml)",
)
_verbose_option = click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """graphrunner - graph-driven input automation.

    Turns an operation graph into an ordered plan and plays it back as
    mouse, keyboard and scroll input.
    """
    pass


@main.command()
def init() -> None:
    """Create .graphrunner/config.yaml with default settings."""
    config_path = default_config_path(get_repo_path())

    if config_path.exists():
        console.print("[yellow]Project already initialized[/yellow]")
        return

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")

    console.print(
        Panel(
            "[green]Project initialized![/green]\n\n"
            f"Created: {escape(str(config_path))}",
            title="graphrunner",
        )
    )


@main.command()
@click.argument("graph_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--type",
    "-t",
    "types",
    multiple=True,
    required=True,
    type=click.Choice(_NODE_TYPES, case_sensitive=False),
    help="Operation type of each node, in order (repeatable)",
)
@click.option("--name", default=None, help="Graph name (default: file stem)")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def new(graph_file: Path, types: tuple[str, ...], name: str | None, force: bool) -> None:
    """Write a starter graph.

    GRAPH_FILE is created with a start node followed by one node per --type,
    linked in order and filled with default values.

    Example:
        graphrunner new login.json -t mouse_left_click -t type_text -t key_press
    """
    if graph_file.exists() and not force:
        console.print(
            f"[red]Error:[/red] {escape(str(graph_file))} already exists (use --force to overwrite)"
        )
        sys.exit(1)

    nodes = [Node(id=str(uuid.uuid4()), name="Start", type=START_NODE_TYPE, x=100, y=100)]
    for index, type_name in enumerate(types, start=1):
        operation = default_operation(OperationType(type_name.lower()))
        nodes.append(
            Node(
                id=str(uuid.uuid4()),
                name=operation.description or type_name,
                type=operation.type,
                json_data=operation.to_payload(),
                x=100 + index * _NODE_SPACING,
                y=100,
            )
        )
    links = [
        Link(source_node_id=src.id, target_node_id=dst.id)
        for src, dst in zip(nodes, nodes[1:])
    ]
    graph = Graph(name=name or graph_file.stem, nodes=nodes, links=links)

    try:
        GraphStore().save(graph, graph_file)
    except OSError as e:
        _fail(e)
    console.print(
        f"[green]Created {escape(str(graph_file))}[/green] with {len(types)} operation(s)"
    )


@main.command()
@click.argument("graph_file", type=click.Path(dir_okay=False, path_type=Path))
def show(graph_file: Path) -> None:
    """Show the execution plan and statistics of a graph."""
    try:
        graph = GraphStore().load(graph_file)
        operations = linearize(graph, str(graph_file))
    except GraphRunnerError as e:
        _fail(e)

    console.print(PlanRenderer(console).render_plan(graph, operations))
    console.print(StatisticsTableRenderer(console).render_statistics(graph))


@main.command()
@click.argument("graph_file", type=click.Path(dir_okay=False, path_type=Path))
@_config_option
@_verbose_option
def validate(graph_file: Path, config: Path | None, verbose: bool) -> None:
    """Validate a graph and every graph it references.

    Runs the structural checks (links, start node, cycles) and then a dry
    validation pass over the plan. Nothing is executed.
    """
    settings = _prepare(config, verbose)
    store = GraphStore()

    try:
        graph = store.load(graph_file)
    except GraphRunnerError as e:
        _fail(e)

    errors = graph.validate_graph()
    if errors:
        console.print("[red]Validation errors:[/red]")
        for error in errors:
            console.print(f"  - {escape(error)}")
        sys.exit(1)

    engine = ExecutionEngine(RecordingInjector(), store=store, settings=settings)
    try:
        report = engine.validate_file(graph_file)
    except GraphRunnerError as e:
        _fail(e)

    for warning in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    console.print("[green]Graph validation passed[/green]")
    console.print(f"  Graph files: {len(report.graph_files)}")
    console.print(f"  Operations: {report.operations_checked}")


@main.command()
@click.argument("graph_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--execute", is_flag=True, help="Execute the plan (otherwise only load it)")
@click.option("--dry-run", is_flag=True, help="Record input actions instead of sending them")
@_config_option
@_verbose_option
def run(graph_file: Path, execute: bool, dry_run: bool, config: Path | None, verbose: bool) -> None:
    """Load a graph and optionally execute it.

    GRAPH_FILE is the graph to run. Without --execute the graph is only
    loaded and summarized. Exits with status 1 on any error.

    Example:
        graphrunner run daily_report.json --execute
    """
    settings = _prepare(config, verbose)
    store = GraphStore()

    try:
        graph = store.load(graph_file)
    except GraphRunnerError as e:
        _fail(e)

    console.print(f"\n[bold]Graph:[/bold] {escape(graph.name)}")
    console.print(f"[dim]Nodes: {len(graph.nodes)}  Links: {len(graph.links)}[/dim]")

    if not execute:
        console.print("\n[yellow]Loaded only; pass --execute to run the plan[/yellow]")
        return

    try:
        operations = linearize(graph, str(graph_file))
    except GraphRunnerError as e:
        _fail(e)
    console.print(f"[dim]Operations: {len(operations)}[/dim]\n")

    try:
        injector: InputInjector = RecordingInjector() if dry_run else PynputInjector()
    except GraphRunnerError as e:
        _fail(e)

    engine = ExecutionEngine(injector, store=store, settings=settings)

    try:
        stats = asyncio.run(engine.execute_file(graph_file))
    except GraphRunnerError as e:
        _fail(e)
    except KeyboardInterrupt:
        console.print("[red]Execution interrupted[/red]")
        sys.exit(1)

    console.print(
        Panel(
            "[green]Execution complete![/green]\n\n"
            f"Operations: {stats.operations_executed} "
            f"(skipped {stats.operations_skipped})\n"
            f"Dispatches: {stats.dispatches}\n"
            f"Graph files: {stats.graphs_executed}",
            title="Status",
        )
    )
    if isinstance(injector, RecordingInjector):
        for action in injector.actions:
            console.print(f"  - {escape(str(action))}")


@main.command()
def version() -> None:
    """Show version information."""
    from graphrunner import __version__

    console.print(f"graphrunner v{__version__}")
    console.print("Graph-driven input automation")


if __name__ == "__main__":
    main()
