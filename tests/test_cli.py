"""Tests for CLI commands.

Tests all graphrunner CLI commands using Click's CliRunner:
- init: Create project config
- new: Write starter graphs
- show: Render plan and statistics
- validate: Structural and engine validation
- run: Load and execute graphs
- version: Show version information
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from graphrunner.cli import main
from graphrunner.core.graph_schema import Graph, Link, Node
from graphrunner.core.graph_store import GraphStore
from graphrunner.core.injector import RecordingInjector


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def isolated_fs(cli_runner):
    """Create an isolated filesystem for CLI tests."""
    with cli_runner.isolated_filesystem():
        yield Path.cwd()


def _new_graph(cli_runner, filename: str, *types: str):
    args = ["new", filename]
    for t in types:
        args += ["-t", t]
    return cli_runner.invoke(main, args)


class TestInitCommand:
    """Tests for 'graphrunner init' command."""

    def test_init_creates_config(self, cli_runner, isolated_fs):
        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "Project initialized!" in result.output
        config = yaml.safe_load(Path(".graphrunner/config.yaml").read_text())
        assert config["engine"]["repeat_pause_ms"] == 50

    def test_init_twice(self, cli_runner, isolated_fs):
        cli_runner.invoke(main, ["init"])
        result = cli_runner.invoke(main, ["init"])
        assert result.exit_code == 0
        assert "already initialized" in result.output


class TestNewCommand:
    """Tests for 'graphrunner new' command."""

    def test_new_writes_chain(self, cli_runner, isolated_fs):
        result = _new_graph(cli_runner, "demo.json", "mouse_left_click", "TYPE_TEXT", "wait")

        assert result.exit_code == 0, result.output
        graph = GraphStore().load("demo.json")
        assert graph.name == "demo"
        assert [n.type for n in graph.nodes] == ["start", "mouse_left_click", "type_text", "wait"]
        assert len(graph.links) == 3
        assert graph.validate_graph() == []
        payloads = [json.loads(n.json_data) for n in graph.nodes[1:]]
        assert payloads[0]["IntValues"] == [100, 100]
        assert payloads[1]["StringValues"] == ["Hello World"]
        assert payloads[2]["IntValues"] == [1000]

    def test_new_refuses_overwrite(self, cli_runner, isolated_fs):
        _new_graph(cli_runner, "demo.json", "wait")
        result = _new_graph(cli_runner, "demo.json", "wait")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_new_rejects_unknown_type(self, cli_runner, isolated_fs):
        result = _new_graph(cli_runner, "demo.json", "teleport")
        assert result.exit_code != 0
        assert not Path("demo.json").exists()


class TestShowCommand:
    def test_show_renders_plan(self, cli_runner, isolated_fs):
        _new_graph(cli_runner, "demo.json", "key_press", "scroll_down")
        result = cli_runner.invoke(main, ["show", "demo.json"])

        assert result.exit_code == 0, result.output
        assert "Key Press" in result.output
        assert "Scroll Down" in result.output
        assert "Max depth" in result.output

    def test_show_missing_file(self, cli_runner, isolated_fs):
        result = cli_runner.invoke(main, ["show", "nope.json"])
        assert result.exit_code == 1
        assert "Graph file not found" in result.output


class TestValidateCommand:
    def test_validate_passes(self, cli_runner, isolated_fs):
        _new_graph(cli_runner, "demo.json", "mouse_move", "key_press")
        result = cli_runner.invoke(main, ["validate", "demo.json"])

        assert result.exit_code == 0, result.output
        assert "Graph validation passed" in result.output
        assert "Operations: 2" in result.output

    def test_validate_structural_errors(self, cli_runner, isolated_fs):
        graph = Graph(nodes=[Node(id="a", type="start"), Node(id="b", type="start")])
        GraphStore().save(graph, "bad.json")

        result = cli_runner.invoke(main, ["validate", "bad.json"])

        assert result.exit_code == 1
        assert "Multiple start nodes" in result.output

    def test_validate_engine_errors(self, cli_runner, isolated_fs):
        graph = Graph(
            nodes=[
                Node(id="s", type="start"),
                Node(id="k", type="key_press", json_data='{"Type": "key_press"}'),
            ],
            links=[Link(source_node_id="s", target_node_id="k")],
        )
        GraphStore().save(graph, "bad.json")

        result = cli_runner.invoke(main, ["validate", "bad.json"])

        assert result.exit_code == 1
        assert "requires a key code" in result.output


class TestRunCommand:
    """Tests for 'graphrunner run' command."""

    def test_run_without_execute_only_loads(self, cli_runner, isolated_fs, mocker):
        injector_cls = mocker.patch("graphrunner.cli.PynputInjector")
        _new_graph(cli_runner, "demo.json", "mouse_left_click")

        result = cli_runner.invoke(main, ["run", "demo.json"])

        assert result.exit_code == 0, result.output
        assert "Nodes: 2  Links: 1" in result.output
        assert "Operations:" not in result.output
        assert "pass --execute" in result.output
        injector_cls.assert_not_called()

    @pytest.mark.parametrize(
        "graph",
        [
            Graph(nodes=[Node(id="w", type="wait", json_data='{"Type": "wait", "IntValues": [10]}')]),
            Graph(
                nodes=[
                    Node(id="s", type="start"),
                    Node(id="x", type="wait", json_data='{"Type": "wait", "IntValues": "soon"}'),
                ],
                links=[Link(source_node_id="s", target_node_id="x")],
            ),
        ],
        ids=["no-start-node", "bad-payload"],
    )
    def test_run_without_execute_skips_plan_building(self, cli_runner, isolated_fs, graph):
        GraphStore().save(graph, "odd.json")

        result = cli_runner.invoke(main, ["run", "odd.json"])

        assert result.exit_code == 0, result.output
        assert f"Nodes: {len(graph.nodes)}" in result.output
        assert "pass --execute" in result.output

    def test_run_execute_without_start_node(self, cli_runner, isolated_fs):
        graph = Graph(nodes=[Node(id="w", type="wait", json_data='{"Type": "wait"}')])
        GraphStore().save(graph, "odd.json")

        result = cli_runner.invoke(main, ["run", "odd.json", "--execute", "--dry-run"])

        assert result.exit_code == 1
        assert "No start node" in result.output

    def test_run_dry_run(self, cli_runner, isolated_fs):
        _new_graph(cli_runner, "demo.json", "mouse_left_click", "key_press")

        result = cli_runner.invoke(main, ["run", "demo.json", "--execute", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Execution complete!" in result.output
        assert "click_at(100, 100)" in result.output
        assert "press_key(13)" in result.output

    def test_run_execute_uses_real_injector(self, cli_runner, isolated_fs, mocker):
        recorder = RecordingInjector()
        mocker.patch("graphrunner.cli.PynputInjector", return_value=recorder)
        _new_graph(cli_runner, "demo.json", "scroll_up")

        result = cli_runner.invoke(main, ["run", "demo.json", "--execute"])

        assert result.exit_code == 0, result.output
        assert recorder.names == ["scroll"]

    def test_run_missing_file(self, cli_runner, isolated_fs):
        result = cli_runner.invoke(main, ["run", "nope.json", "--execute", "--dry-run"])
        assert result.exit_code == 1
        assert "Graph file not found" in result.output

    def test_run_circular_reference(self, cli_runner, isolated_fs):
        graph = Graph(
            nodes=[
                Node(id="s", type="start"),
                Node(id="g", type="graph", json_data='{"Type": "graph", "GraphFilePath": "loop.json"}'),
            ],
            links=[Link(source_node_id="s", target_node_id="g")],
        )
        GraphStore().save(graph, "loop.json")

        result = cli_runner.invoke(main, ["run", "loop.json", "--execute", "--dry-run"])

        assert result.exit_code == 1
        assert "Circular dependency" in result.output

    def test_run_with_config(self, cli_runner, isolated_fs):
        Path("cfg.yaml").write_text("engine:\n  repeat_pause_ms: -5\n")
        _new_graph(cli_runner, "demo.json", "key_press")

        result = cli_runner.invoke(
            main, ["run", "demo.json", "--execute", "--dry-run", "--config", "cfg.yaml"]
        )

        assert result.exit_code == 1
        assert "repeat_pause_ms" in result.output


class TestVersionCommand:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(main, ["version"])
        assert result.exit_code == 0
        assert "graphrunner v0.1.0" in result.output
