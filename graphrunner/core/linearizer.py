"""Plan linearization: turn a graph into an ordered list of operations.

Starting at the unique ``start`` node, the linearizer follows each node's
single exit link until a node has none. Traversal order is execution order;
``Priority`` plays no part here.
"""

from __future__ import annotations

import logging

import pydantic

from graphrunner.core.errors import ConfigurationError, CycleDetectedError, ParseError
from graphrunner.core.graph_schema import Graph, Node
from graphrunner.core.models import OperationSpec

logger = logging.getLogger(__name__)


def find_start_node(graph: Graph, source: str | None = None) -> Node:
    """Return the first node typed ``start`` (case-insensitive)."""
    for node in graph.nodes:
        if node.is_start:
            return node
    where = f" in graph file {source}" if source else ""
    raise ConfigurationError(
        f"No start node found{where}",
        hint="Each graph must have exactly one 'start' node to define the execution flow.",
    )


def parse_operation(node: Node) -> OperationSpec | None:
    """Deserialize a node payload.

    Returns None for blank payloads and payloads without a type; both are
    skipped rather than treated as errors.
    """
    if not node.json_data.strip():
        return None
    try:
        operation = OperationSpec.model_validate_json(node.json_data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(x) for x in first["loc"]) or "<payload>"
        raise ParseError(
            f"Invalid JSON data in node '{node.label}' (ID: {node.id}): {loc}: {first['msg']}",
            node=node.label,
            hint="Verify the node's operation data is correctly formatted.",
        ) from e

    if not operation.type:
        return None
    return operation.model_copy(update={"node_id": node.id, "node_name": node.label})


def linearize(graph: Graph, source: str | None = None) -> list[OperationSpec]:
    """Build the ordered operation plan for a graph.

    Args:
        graph: Graph to walk
        source: Optional file path, used only in error messages

    Returns:
        Operations in traversal order (start node excluded)

    Raises:
        ConfigurationError: No start node
        CycleDetectedError: A node is reached a second time
        ParseError: A node payload does not match the operation schema
    """
    start = find_start_node(graph, source)
    nodes = graph.node_map()

    operations: list[OperationSpec] = []
    visited: set[str] = set()
    current: Node | None = start

    while current is not None:
        if current.id in visited:
            raise CycleDetectedError(
                f"Circular execution path: node '{current.label}' has already been visited",
                node_id=current.id,
                node=current.label,
                hint="The graph contains a loop. Remove the link that leads back to this node.",
            )
        visited.add(current.id)

        if not current.is_start:
            operation = parse_operation(current)
            if operation is not None:
                operations.append(operation)

        link = graph.outgoing_link(current.id)
        if link is None:
            break
        # A link to a missing node ends the chain
        current = nodes.get(link.target_node_id)

    logger.debug(f"Linearized {len(operations)} operation(s) from {source or graph.name}")
    return operations
