"""Graph persistence: load and save graph documents as JSON files."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import pydantic

from graphrunner.core.errors import GraphFileNotFoundError, GraphLoadError
from graphrunner.core.graph_schema import Graph

logger = logging.getLogger(__name__)


class GraphStore:
    """Reads and writes graph files.

    Load failures are reported as GraphRunnerError subclasses that carry the
    file path; callers never see raw OSError or ValidationError.
    """

    encoding = "utf-8"

    def load(self, path: str | Path) -> Graph:
        path = Path(path)
        try:
            # utf-8-sig tolerates a BOM written by Windows tools
            text = path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            raise GraphFileNotFoundError(
                f"Graph file not found: {path}",
                hint="Verify the file path is correct and the file exists.",
            ) from None
        except (OSError, UnicodeDecodeError) as e:
            raise GraphLoadError(
                f"Failed to read graph file {path}: {e}", path=path
            ) from e

        if not text.strip():
            raise GraphLoadError(f"Graph file is empty: {path}", path=path)

        try:
            graph = Graph.model_validate_json(text)
        except pydantic.ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(x) for x in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()[:5]
            )
            raise GraphLoadError(
                f"Failed to load graph from file {path}: {details}",
                path=path,
                hint="The file may be corrupted or in an invalid format.",
            ) from e

        logger.debug(f"Loaded graph '{graph.name}' from {path} ({len(graph.nodes)} nodes)")
        return graph

    def save(self, graph: Graph, path: str | Path) -> None:
        """Write the graph atomically (temp file in the same directory, then replace)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = graph.model_dump_json(by_alias=True, indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=self.encoding) as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Saved graph '{graph.name}' to {path}")
