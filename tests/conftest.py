# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the graphrunner test suite.

This module provides:
- Graph builders (start node followed by a chain of operation nodes)
- Graph files written to tmp_path
- A recording injector and a fake sleep that never waits
- A fixed clock for date-based dynamic sources

Usage:
    Fixtures are discovered implicitly by pytest.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from graphrunner.core.engine import ExecutionEngine
from graphrunner.core.graph_schema import Graph, Link, Node
from graphrunner.core.graph_store import GraphStore
from graphrunner.core.injector import RecordingInjector
from graphrunner.core.resolver import ValueResolver


def chain_graph(payloads: list[dict[str, Any] | str], name: str = "Test Graph") -> Graph:
    """Build Start -> n1 -> n2 ... with one node per payload.

    Dict payloads are JSON-encoded; strings are stored as-is.
    """
    nodes = [Node(id="start", name="Start", type="start")]
    for i, payload in enumerate(payloads, start=1):
        data = payload if isinstance(payload, str) else json.dumps(payload)
        node_type = payload.get("Type", "") if isinstance(payload, dict) else ""
        nodes.append(Node(id=f"n{i}", name=f"Node {i}", type=node_type, json_data=data))
    links = [
        Link(id=f"l{i}", source_node_id=src.id, target_node_id=dst.id)
        for i, (src, dst) in enumerate(zip(nodes, nodes[1:]), start=1)
    ]
    return Graph(name=name, nodes=nodes, links=links)


@pytest.fixture
def make_chain() -> Callable[..., Graph]:
    """Factory for chain graphs, see chain_graph()."""
    return chain_graph


@pytest.fixture
def write_graph(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a chain graph to tmp_path and returning its path.

    Example:
        path = write_graph("main.json", [{"Type": "wait", "IntValues": [10]}])
    """

    def _write(filename: str, payloads: list[dict[str, Any] | str]) -> Path:
        path = tmp_path / filename
        GraphStore().save(chain_graph(payloads, name=Path(filename).stem), path)
        return path

    return _write


@pytest.fixture
def recorder() -> RecordingInjector:
    return RecordingInjector()


class FakeSleep:
    """Async sleep replacement that records durations and returns at once."""

    def __init__(self):
        self.calls: list[float] = []
        self.on_sleep: Callable[[float], None] | None = None

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds)

    @property
    def milliseconds(self) -> list[int]:
        return [round(s * 1000) for s in self.calls]


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fixed_clock() -> Callable[[date], Callable[[], date]]:
    """Factory for clocks pinned to a given date."""

    def _clock(day: date) -> Callable[[], date]:
        return lambda: day

    return _clock


@pytest.fixture
def engine(recorder: RecordingInjector, fake_sleep: FakeSleep) -> ExecutionEngine:
    """Engine with a recording injector, instant sleeps and clock 2025-01-02."""
    return ExecutionEngine(
        recorder,
        resolver=ValueResolver(clock=lambda: date(2025, 1, 2)),
        sleep=fake_sleep,
    )
