"""Graph schema definitions using Pydantic models.

A graph file holds nodes (each with a type tag and an opaque JSON operation
payload) and directed links between them. The editor that produces these
files guarantees that every node has at most one entry and one exit link and
that exactly one node is the ``start`` node. Execution trusts that contract;
``Graph.validate_graph()`` re-checks it for pre-flight reporting only.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import networkx as nx
from pydantic import BaseModel, Field, field_validator

from graphrunner.core.models import PayloadModel

START_NODE_TYPE = "start"


def _coerce_id(v: Any) -> Any:
    """Graph files written by other tools may use numeric ids."""
    if isinstance(v, (int, uuid.UUID)) and not isinstance(v, bool):
        return str(v)
    return v


class Node(PayloadModel):
    """Graph node; only id, type and payload matter to execution"""

    id: str
    name: str = ""
    type: str = ""
    json_data: str = ""  # OperationSpec payload, JSON-encoded
    x: float = 0.0  # Canvas position (ignored by execution)
    y: float = 0.0

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        return _coerce_id(v)

    @field_validator("name", "type", mode="before")
    @classmethod
    def none_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("json_data", mode="before")
    @classmethod
    def encode_inline_payload(cls, v):
        """Hand-written files may inline the payload object instead of a string."""
        if v is None:
            return ""
        if isinstance(v, dict):
            return json.dumps(v)
        return v

    @property
    def label(self) -> str:
        return self.name or self.id

    @property
    def is_start(self) -> bool:
        return self.type.lower() == START_NODE_TYPE


class Link(PayloadModel):
    """Directed link from one node's exit to another node's entry"""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_node_id: str
    target_node_id: str

    @field_validator("id", "source_node_id", "target_node_id", mode="before")
    @classmethod
    def validate_ids(cls, v):
        return _coerce_id(v)


class GraphStatistics(BaseModel):
    """Summary numbers for a graph"""

    total_nodes: int
    total_links: int
    node_type_distribution: dict[str, int]
    orphaned_nodes: int
    max_depth: int


class Graph(PayloadModel):
    """Complete graph document"""

    name: str = "Untitled Graph"
    description: str = ""
    version: str = "1.0"
    nodes: list[Node] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)

    @field_validator("nodes", "links", mode="before")
    @classmethod
    def none_is_empty_list(cls, v):
        return [] if v is None else v

    def node_map(self) -> dict[str, Node]:
        """Map node id to node; the first node wins on duplicate ids."""
        nodes: dict[str, Node] = {}
        for node in self.nodes:
            nodes.setdefault(node.id, node)
        return nodes

    def outgoing_link(self, node_id: str) -> Link | None:
        """First link leaving the given node (its single exit)."""
        return next((link for link in self.links if link.source_node_id == node_id), None)

    def start_nodes(self) -> list[Node]:
        return [node for node in self.nodes if node.is_start]

    def to_networkx(self) -> nx.DiGraph:
        """Convert to NetworkX DiGraph for analysis"""
        G = nx.DiGraph()
        for node in self.nodes:
            G.add_node(node.id)
        for link in self.links:
            G.add_edge(link.source_node_id, link.target_node_id)
        return G

    def validate_graph(self) -> list[str]:
        """
        Re-check the single-entry/single-exit contract and plan reachability.
        Returns list of validation errors.
        """
        errors = []

        seen_node_ids = set()
        for node in self.nodes:
            if node.id in seen_node_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_node_ids.add(node.id)
        node_ids = seen_node_ids
        labels = {node.id: node.label for node in reversed(self.nodes)}

        seen_pairs = set()
        for link in self.links:
            pair = (link.source_node_id, link.target_node_id)
            if pair in seen_pairs:
                errors.append(
                    f"Duplicate link from '{link.source_node_id}' to '{link.target_node_id}'"
                )
            seen_pairs.add(pair)
            if link.source_node_id == link.target_node_id:
                errors.append(f"Link {link.id}: self-loop on '{link.source_node_id}'")
            if link.source_node_id not in node_ids:
                errors.append(f"Link {link.id}: source '{link.source_node_id}' not found")
            if link.target_node_id not in node_ids:
                errors.append(f"Link {link.id}: target '{link.target_node_id}' not found")

        starts = self.start_nodes()
        if not starts:
            errors.append("No start node found")
        elif len(starts) > 1:
            names = ", ".join(f"'{n.label}'" for n in starts)
            errors.append(f"Multiple start nodes found: {names}")

        G = self.to_networkx()
        for node_id in G.nodes():
            if node_id not in node_ids:
                continue
            if G.out_degree(node_id) > 1:
                errors.append(f"Node '{labels[node_id]}' has more than one exit link")
            if G.in_degree(node_id) > 1:
                errors.append(f"Node '{labels[node_id]}' has more than one entry link")
        for start in starts:
            if G.in_degree(start.id) > 0:
                errors.append(f"Start node '{start.label}' must not have incoming links")

        # Cycles turn the plan into an endless loop
        MAX_CYCLES_TO_REPORT = 100
        try:
            for cycle_count, cycle in enumerate(nx.simple_cycles(G), start=1):
                if cycle_count > MAX_CYCLES_TO_REPORT:
                    errors.append(f"Too many cycles to report (>{MAX_CYCLES_TO_REPORT})")
                    break
                path = " -> ".join(labels.get(n, n) for n in cycle)
                errors.append(f"Cycle detected: {path}")
        except nx.NetworkXError as e:
            errors.append(f"Could not perform cycle detection: {e}")

        return errors

    def warnings(self) -> list[str]:
        """Non-fatal findings: orphaned or unreachable nodes."""
        warnings = []
        stats = self.statistics()
        if stats.orphaned_nodes:
            warnings.append(f"Found {stats.orphaned_nodes} orphaned node(s)")

        starts = self.start_nodes()
        if len(starts) == 1:
            G = self.to_networkx()
            reachable = nx.descendants(G, starts[0].id) | {starts[0].id}
            unreachable = [n.label for n in self.nodes if n.id not in reachable]
            if unreachable:
                warnings.append(
                    f"{len(unreachable)} node(s) not reachable from start: "
                    + ", ".join(unreachable)
                )
        return warnings

    def statistics(self) -> GraphStatistics:
        distribution: dict[str, int] = {}
        for node in self.nodes:
            distribution[node.type] = distribution.get(node.type, 0) + 1

        linked = {link.source_node_id for link in self.links} | {
            link.target_node_id for link in self.links
        }
        return GraphStatistics(
            total_nodes=len(self.nodes),
            total_links=len(self.links),
            node_type_distribution=distribution,
            orphaned_nodes=sum(1 for node in self.nodes if node.id not in linked),
            max_depth=self._max_depth(),
        )

    def _max_depth(self) -> int:
        """Longest node chain starting at a root (node without entry links)."""
        if not self.nodes:
            return 0
        G = self.to_networkx()
        roots = [n for n in G.nodes() if G.in_degree(n) == 0]
        if not roots:
            return 0
        if nx.is_directed_acyclic_graph(G):
            return nx.dag_longest_path_length(G) + 1

        def depth(root: str) -> int:
            # Iterative DFS; a node already reached from this root counts as 0.
            visited = {root}
            stack = [[root, iter(G.successors(root)), 0]]
            while True:
                frame = stack[-1]
                child = next(frame[1], None)
                if child is None:
                    stack.pop()
                    value = 1 + frame[2]
                    if not stack:
                        return value
                    stack[-1][2] = max(stack[-1][2], value)
                elif child not in visited:
                    visited.add(child)
                    stack.append([child, iter(G.successors(child)), 0])

        return max(depth(root) for root in roots)
