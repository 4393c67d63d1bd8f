"""Core modules for graphrunner."""

from graphrunner.core.engine import (
    CancellationToken,
    ExecutionEngine,
    RunStats,
    ValidationReport,
)
from graphrunner.core.graph_schema import Graph, Link, Node
from graphrunner.core.graph_store import GraphStore
from graphrunner.core.linearizer import linearize
from graphrunner.core.models import (
    DynamicSource,
    DynamicSourceType,
    OperationSpec,
    OperationType,
    ValueMode,
)
from graphrunner.core.resolver import ValueResolver

__all__ = [
    "CancellationToken",
    "ExecutionEngine",
    "RunStats",
    "ValidationReport",
    "Graph",
    "Link",
    "Node",
    "GraphStore",
    "linearize",
    "DynamicSource",
    "DynamicSourceType",
    "OperationSpec",
    "OperationType",
    "ValueMode",
    "ValueResolver",
]
