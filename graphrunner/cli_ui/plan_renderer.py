"""Terminal rendering of operation plans and graph statistics using Rich."""

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from graphrunner.core.graph_schema import Graph
from graphrunner.core.models import OperationSpec, OperationType, ValueMode


class PlanRenderer:
    """
    Renders a linearized plan as a Rich Tree in execution order.

    Unknown operation types are still rendered (flagged in red) so a broken
    plan can be inspected before running it.
    """

    # Operation category symbols and colors
    TYPE_STYLES = {
        OperationType.MOUSE_LEFT_CLICK: ("[M]", "cyan"),
        OperationType.MOUSE_RIGHT_CLICK: ("[M]", "cyan"),
        OperationType.MOUSE_MOVE: ("[M]", "cyan"),
        OperationType.SCROLL_UP: ("[S]", "blue"),
        OperationType.SCROLL_DOWN: ("[S]", "blue"),
        OperationType.SCROLL_LEFT: ("[S]", "blue"),
        OperationType.SCROLL_RIGHT: ("[S]", "blue"),
        OperationType.KEY_PRESS: ("[K]", "green"),
        OperationType.KEY_DOWN: ("[K]", "green"),
        OperationType.KEY_UP: ("[K]", "green"),
        OperationType.TYPE_TEXT: ("[T]", "green"),
        OperationType.WAIT: ("[W]", "yellow"),
        OperationType.CUSTOM_CODE: ("[C]", "magenta"),
        OperationType.GRAPH: ("[G]", "white bold"),
        OperationType.START: ("[>]", "dim"),
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_plan(self, graph: Graph, operations: list[OperationSpec]) -> Tree:
        """
        Render a plan as a tree.

        Args:
            graph: Graph the plan was built from (used for the title)
            operations: Operations in execution order

        Returns:
            Tree with one branch per operation
        """
        # SECURITY: Escape graph name and version to prevent Rich markup injection
        tree = Tree(f"[bold]{escape(graph.name)}[/] (v{escape(graph.version)})")
        if not operations:
            tree.add("[yellow]No operations[/]")
            return tree

        for index, operation in enumerate(operations, start=1):
            tree.add(self._operation_text(index, operation))
        return tree

    def _operation_text(self, index: int, operation: OperationSpec) -> str:
        try:
            op_type = OperationType(operation.type)
        except ValueError:
            op_type = None

        if op_type is None:
            symbol, color = "[?]", "red"
        else:
            symbol, color = self.TYPE_STYLES.get(op_type, ("[ ]", "white"))

        label = escape(operation.node_name or operation.type or "<untyped>")
        text = f"{index:>3}. [{color}]{symbol} {label}[/] [dim]{escape(operation.type)}[/]"

        details = []
        if operation.value_mode is ValueMode.DYNAMIC and operation.dynamic_source:
            details.append(f"dynamic:{operation.dynamic_source.source_type.value}")
        elif operation.int_values:
            details.append(str(operation.int_values))
        if operation.string_values and operation.value_mode is ValueMode.STATIC:
            first = operation.string_values[0]
            details.append(repr(first[:30] + "..." if len(first) > 30 else first))
        if operation.graph_file_path:
            details.append(f"-> {operation.graph_file_path}")
        if operation.frequency > 1:
            details.append(f"x{operation.frequency}")
        if operation.delay_before or operation.delay_after:
            details.append(f"delay {operation.delay_before}/{operation.delay_after}ms")
        if details:
            text += " " + escape(" ".join(details))

        if not operation.enabled:
            text = f"[dim strikethrough]{text}[/] [dim](disabled)[/]"
        return text


class StatisticsTableRenderer:
    """Renders graph statistics as a Rich table."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_statistics(self, graph: Graph) -> Table:
        stats = graph.statistics()
        table = Table(title=f"Graph: {escape(graph.name)}")

        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Nodes", str(stats.total_nodes))
        table.add_row("Links", str(stats.total_links))
        table.add_row("Orphaned nodes", str(stats.orphaned_nodes))
        table.add_row("Max depth", str(stats.max_depth))
        for node_type, count in sorted(stats.node_type_distribution.items()):
            table.add_row(f"  {escape(node_type or '<untyped>')}", str(count))
        return table
