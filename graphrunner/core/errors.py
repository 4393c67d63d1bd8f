"""Error taxonomy for graph loading, planning and execution.

Every error raised by the engine derives from GraphRunnerError and carries the
identity of the offending node/operation plus a short remediation hint. The
engine is fail-fast: the first error aborts the whole run and nothing is
retried.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path


class GraphRunnerError(Exception):
    """Base error for graphrunner."""

    def __init__(self, message: str, *, node: str | None = None, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.node = node
        self.hint = hint

    def __str__(self) -> str:
        text = self.message
        if self.node:
            text = f"{text} [operation: {self.node}]"
        if self.hint:
            text = f"{text}\nHint: {self.hint}"
        return text


class ConfigurationError(GraphRunnerError):
    """Graph, dynamic source or settings are misconfigured."""

    pass


class GraphFileNotFoundError(ConfigurationError, FileNotFoundError):
    """A referenced graph file does not exist."""

    pass


class GraphLoadError(ConfigurationError):
    """A graph file could not be read or decoded."""

    def __init__(self, message: str, *, path: str | Path, **kwargs):
        super().__init__(message, **kwargs)
        self.path = Path(path)


class ValueExtractionError(ConfigurationError):
    """A value mapping path does not resolve in the dynamic data."""

    def __init__(self, message: str, *, path: str, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path


class ParseError(GraphRunnerError):
    """Node payload or dynamic data item is not valid JSON for its schema."""

    pass


class OutOfRangeError(GraphRunnerError):
    """Date-based array accessed before its start date or past its end.

    Always fatal; the run stops and is never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        current_date: date | None = None,
        bound: date | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.current_date = current_date
        self.bound = bound


class CycleDetectedError(GraphRunnerError):
    """Plan traversal revisited a node."""

    def __init__(self, message: str, *, node_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.node_id = node_id


class CircularDependencyError(GraphRunnerError):
    """A nested graph is already part of the active execution chain."""

    def __init__(self, message: str, *, chain: tuple[Path, ...], **kwargs):
        super().__init__(message, **kwargs)
        self.chain = chain


class NotSupportedError(GraphRunnerError):
    """Unknown operation type or unimplemented dynamic source kind."""

    pass


class ArgumentError(GraphRunnerError):
    """Operation values do not match the arity its type requires."""

    pass


class CustomCodeNotImplementedError(GraphRunnerError, NotImplementedError):
    """custom_code operations are reserved and cannot run yet."""

    pass


class OperationFailedError(GraphRunnerError):
    """The input injector raised while performing an operation."""

    pass


class ExecutionCancelledError(GraphRunnerError):
    """The run was cancelled through its cancellation token."""

    pass
