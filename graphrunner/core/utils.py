"""Shared path helpers for graph file references."""

import os
from pathlib import Path


def canonical_graph_path(file_path: str | Path, base_dir: Path | None = None) -> Path:
    """Resolve a graph file reference to an absolute path.

    Relative references are resolved against ``base_dir`` (normally the
    directory of the graph that contains the reference), falling back to the
    current working directory.

    Args:
        file_path: Path as written in the operation payload
        base_dir: Directory relative references are anchored to

    Returns:
        Absolute, symlink-resolved path
    """
    path = Path(file_path).expanduser()
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    return path.resolve()


def same_graph_path(a: Path, b: Path) -> bool:
    """Compare canonical paths the way the host filesystem does (case-folded on Windows)."""
    return os.path.normcase(str(a)) == os.path.normcase(str(b))
