"""Execution engine for operation graphs.

Coordinates:
- Plan linearization (graph -> ordered operations)
- Dynamic value resolution before every dispatch
- Delays, repeat counts and priority ordering
- Nested graph invocation guarded by a per-engine call stack
- Input injection

Runs are fail-fast: the first error aborts the whole run, nested runs
included, and nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from graphrunner.core.config import EngineSettings
from graphrunner.core.errors import (
    ArgumentError,
    CircularDependencyError,
    ConfigurationError,
    CustomCodeNotImplementedError,
    ExecutionCancelledError,
    GraphFileNotFoundError,
    GraphLoadError,
    GraphRunnerError,
    OperationFailedError,
)
from graphrunner.core.graph_schema import Graph
from graphrunner.core.graph_store import GraphStore
from graphrunner.core.injector import InputInjector
from graphrunner.core.linearizer import linearize
from graphrunner.core.models import OperationSpec, OperationType, ValueMode
from graphrunner.core.resolver import ValueResolver
from graphrunner.core.utils import canonical_graph_path, same_graph_path

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class CancellationToken:
    """Cooperative cancellation for a run.

    The engine checks the token before every operation and repetition, and
    every engine sleep wakes up as soon as the token is cancelled. The wake-up
    event is created on the running loop, so one token can be reused across
    separate ``asyncio.run`` calls.
    """

    def __init__(self):
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        loop = asyncio.get_running_loop()
        if self._event is None or self._loop is not loop:
            self._event = asyncio.Event()
            self._loop = loop
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExecutionCancelledError(
                "Execution was cancelled", hint="The run stopped before completing its plan."
            )


@dataclass
class RunStats:
    """Counters collected during one run"""

    operations_executed: int = 0
    operations_skipped: int = 0
    dispatches: int = 0
    graphs_executed: int = 0
    slept_ms: int = 0


@dataclass
class ValidationReport:
    """Result of a validation pass"""

    graph_files: list[Path] = field(default_factory=list)
    operations_checked: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class _RunContext:
    cancel: CancellationToken | None
    stats: RunStats = field(default_factory=RunStats)

    def check(self) -> None:
        if self.cancel is not None:
            self.cancel.raise_if_cancelled()


class ExecutionEngine:
    """Executes operation plans against an input injector.

    One engine owns one execution call stack; do not share an engine
    between concurrent runs.
    """

    def __init__(
        self,
        injector: InputInjector,
        store: GraphStore | None = None,
        resolver: ValueResolver | None = None,
        settings: EngineSettings | None = None,
        sleep: SleepFunc | None = None,
    ):
        """
        Args:
            injector: Performs primitive mouse/keyboard actions
            store: Loads nested graph files
            resolver: Computes values for Dynamic operations
            settings: Engine tunables
            sleep: Replacement for the engine's sleep (seconds); used by tests
        """
        self.injector = injector
        self.store = store or GraphStore()
        self.resolver = resolver or ValueResolver()
        self.settings = settings or EngineSettings()
        self._sleep = sleep
        self._call_stack: list[Path] = []

    @property
    def call_stack(self) -> tuple[Path, ...]:
        """Graph files currently executing, outermost first."""
        return tuple(self._call_stack)

    # ========== Public entry points ==========

    async def execute_plan(
        self, operations: Iterable[OperationSpec], cancel: CancellationToken | None = None
    ) -> RunStats:
        """Execute operations in the given order."""
        ctx = _RunContext(cancel)
        await self._execute_operations(list(operations), ctx, base_dir=None)
        return ctx.stats

    async def execute_batch(
        self, operations: Iterable[OperationSpec], cancel: CancellationToken | None = None
    ) -> RunStats:
        """Execute operations ordered by ascending priority (stable for ties)."""
        ordered = sorted(operations, key=lambda op: op.priority)
        return await self.execute_plan(ordered, cancel)

    async def execute_graph(
        self, graph: Graph, cancel: CancellationToken | None = None
    ) -> RunStats:
        """Linearize an in-memory graph and execute it."""
        operations = linearize(graph)
        if not operations:
            logger.warning(f"Graph '{graph.name}' contains no operations to execute")
        return await self.execute_plan(operations, cancel)

    async def execute_file(
        self, path: str | Path, cancel: CancellationToken | None = None
    ) -> RunStats:
        """Load, linearize and execute a graph file.

        The file itself is the first entry of the call stack, so a graph that
        references itself is caught at the first nesting level.
        """
        ctx = _RunContext(cancel)
        graph_path = canonical_graph_path(path)
        logger.info(f"Executing graph file {graph_path}")
        await self._run_graph_file(graph_path, ctx)
        logger.info(
            f"Finished {graph_path}: {ctx.stats.operations_executed} operation(s), "
            f"{ctx.stats.dispatches} dispatch(es)"
        )
        return ctx.stats

    # ========== Execution ==========

    async def _run_graph_file(
        self, path: Path, ctx: _RunContext, caller: OperationSpec | None = None
    ) -> None:
        node = caller.describe() if caller is not None else None
        self._check_circular(path, self._call_stack, node)
        self._call_stack.append(path)
        try:
            graph = self._load(path)
            operations = linearize(graph, str(path))
            if not operations:
                if caller is not None:
                    raise ConfigurationError(
                        f"Nested graph file {path} contains no operations",
                        node=node,
                        hint="Add operations to the nested graph or remove the graph operation.",
                    )
                logger.warning(f"Graph file {path} contains no operations to execute")
            ctx.stats.graphs_executed += 1
            await self._execute_operations(operations, ctx, base_dir=path.parent)
        finally:
            self._call_stack.pop()

    async def _execute_operations(
        self, operations: list[OperationSpec], ctx: _RunContext, base_dir: Path | None
    ) -> None:
        for operation in operations:
            await self._execute_operation(operation, ctx, base_dir)

    async def _execute_operation(
        self, operation: OperationSpec, ctx: _RunContext, base_dir: Path | None
    ) -> None:
        if not operation.enabled:
            logger.debug(f"Skipping disabled operation {operation.describe()}")
            ctx.stats.operations_skipped += 1
            return

        ctx.check()
        await self._pause(operation.delay_before, ctx)

        repetitions = max(operation.frequency, 1)
        for iteration in range(repetitions):
            ctx.check()
            if operation.value_mode is ValueMode.DYNAMIC:
                resolved = self.resolver.resolve(operation, iteration=iteration)
            else:
                resolved = operation
            await self._dispatch(resolved, ctx, base_dir)
            ctx.stats.dispatches += 1
            if iteration < repetitions - 1:
                await self._pause(self.settings.repeat_pause_ms, ctx)

        await self._pause(operation.delay_after, ctx)
        ctx.stats.operations_executed += 1

    async def _dispatch(
        self, operation: OperationSpec, ctx: _RunContext, base_dir: Path | None
    ) -> None:
        op_type = operation.operation_type
        logger.debug(
            f"Dispatching {operation.describe()} "
            f"IntValues={operation.int_values} StringValues={operation.string_values}"
        )

        match op_type:
            case OperationType.START:
                pass
            case OperationType.MOUSE_LEFT_CLICK:
                await self._inject(operation, self.injector.click_at, *self._coordinates(operation))
            case OperationType.MOUSE_RIGHT_CLICK:
                await self._inject(
                    operation, self.injector.right_click_at, *self._coordinates(operation)
                )
            case OperationType.MOUSE_MOVE:
                await self._inject(operation, self.injector.move_to, *self._coordinates(operation))
            case OperationType.SCROLL_UP | OperationType.SCROLL_DOWN:
                await self._inject(
                    operation, self.injector.scroll, self._scroll_delta(operation, op_type)
                )
            case OperationType.SCROLL_LEFT | OperationType.SCROLL_RIGHT:
                await self._inject(
                    operation,
                    self.injector.scroll_horizontal,
                    self._scroll_delta(operation, op_type),
                )
            case OperationType.KEY_PRESS:
                await self._inject(operation, self.injector.press_key, self._key_code(operation))
            case OperationType.KEY_DOWN:
                await self._inject(operation, self.injector.key_down, self._key_code(operation))
            case OperationType.KEY_UP:
                await self._inject(operation, self.injector.key_up, self._key_code(operation))
            case OperationType.TYPE_TEXT:
                await self._inject(operation, self.injector.type_text, self._text(operation))
            case OperationType.WAIT:
                await self._pause(self._wait_ms(operation), ctx)
            case OperationType.CUSTOM_CODE:
                self._custom_code(operation)
            case OperationType.GRAPH:
                path = self._nested_path(operation, base_dir)
                logger.info(f"Executing nested graph {path} from {operation.describe()}")
                await self._run_graph_file(path, ctx, caller=operation)
                logger.info(f"Nested graph {path} completed")

    async def _inject(self, operation: OperationSpec, action: Callable[..., Any], *args) -> None:
        """Run a blocking injector call off the event loop."""
        try:
            await asyncio.to_thread(action, *args)
        except GraphRunnerError:
            raise
        except Exception as e:
            raise OperationFailedError(
                f"Failed to execute operation '{operation.type}': {e}",
                node=operation.describe(),
            ) from e

    async def _pause(self, ms: int, ctx: _RunContext) -> None:
        """Suspend for ``ms`` milliseconds; wakes early and raises on cancellation."""
        if ms <= 0:
            return
        ctx.check()
        ctx.stats.slept_ms += ms
        seconds = ms / 1000
        if self._sleep is not None:
            await self._sleep(seconds)
        elif ctx.cancel is not None:
            try:
                await asyncio.wait_for(ctx.cancel.wait(), timeout=seconds)
            except TimeoutError:
                pass
        else:
            await asyncio.sleep(seconds)
        ctx.check()

    # ========== Argument extraction ==========

    @staticmethod
    def _coordinates(operation: OperationSpec) -> tuple[int, int]:
        if len(operation.int_values) < 2:
            raise ArgumentError(
                f"{operation.type} requires x and y coordinates",
                node=operation.describe(),
                hint="Set IntValues to [x, y].",
            )
        return operation.int_values[0], operation.int_values[1]

    def _scroll_delta(self, operation: OperationSpec, op_type: OperationType) -> int:
        amount = (
            operation.int_values[0]
            if operation.int_values
            else self.settings.default_scroll_amount
        )
        if op_type in (OperationType.SCROLL_DOWN, OperationType.SCROLL_LEFT):
            return -amount
        return amount

    @staticmethod
    def _key_code(operation: OperationSpec) -> int:
        if not operation.int_values:
            raise ArgumentError(
                f"{operation.type} requires a key code",
                node=operation.describe(),
                hint="Set IntValues to [virtual_key_code], e.g. [13] for Enter.",
            )
        return operation.int_values[0]

    @staticmethod
    def _text(operation: OperationSpec) -> str:
        if not operation.string_values:
            raise ArgumentError(
                f"{operation.type} requires text",
                node=operation.describe(),
                hint="Set StringValues to [text].",
            )
        return operation.string_values[0]

    @staticmethod
    def _wait_ms(operation: OperationSpec) -> int:
        if not operation.int_values:
            raise ArgumentError(
                f"{operation.type} requires a duration in milliseconds",
                node=operation.describe(),
                hint="Set IntValues to [milliseconds].",
            )
        ms = operation.int_values[0]
        if ms < 0:
            raise ArgumentError(
                f"{operation.type} duration must not be negative, got {ms}",
                node=operation.describe(),
            )
        return ms

    @staticmethod
    def _custom_code(operation: OperationSpec) -> None:
        if not (operation.custom_code or "").strip():
            raise ArgumentError(
                "custom_code requires code to execute",
                node=operation.describe(),
                hint="Set CustomCode on the operation.",
            )
        raise CustomCodeNotImplementedError(
            "Custom code execution is not implemented",
            node=operation.describe(),
            hint="Replace the custom_code operation with built-in operations.",
        )

    def _check_arguments(self, operation: OperationSpec, op_type: OperationType) -> None:
        """Arity checks for static values, without dispatching."""
        match op_type:
            case (
                OperationType.MOUSE_LEFT_CLICK
                | OperationType.MOUSE_RIGHT_CLICK
                | OperationType.MOUSE_MOVE
            ):
                self._coordinates(operation)
            case OperationType.KEY_PRESS | OperationType.KEY_DOWN | OperationType.KEY_UP:
                self._key_code(operation)
            case OperationType.TYPE_TEXT:
                self._text(operation)
            case OperationType.WAIT:
                self._wait_ms(operation)
            case OperationType.CUSTOM_CODE:
                self._custom_code(operation)
            case (
                OperationType.START
                | OperationType.SCROLL_UP
                | OperationType.SCROLL_DOWN
                | OperationType.SCROLL_LEFT
                | OperationType.SCROLL_RIGHT
                | OperationType.GRAPH
            ):
                pass

    # ========== Nested graphs ==========

    def _nested_path(self, operation: OperationSpec, base_dir: Path | None) -> Path:
        """Canonical path of a graph operation's target file.

        Relative references resolve against the referencing graph's directory,
        then the configured search root, then the working directory.
        """
        reference = (operation.graph_file_path or "").strip()
        if not reference:
            raise ConfigurationError(
                "Graph operation requires a graph file path",
                node=operation.describe(),
                hint="Set GraphFilePath to the graph file to execute.",
            )

        path = canonical_graph_path(reference, base_dir or self.settings.graph_search_root)
        if not path.is_file():
            raise GraphFileNotFoundError(
                f"Graph file not found: {path}",
                node=operation.describe(),
                hint="Verify the file path is correct and the file exists.",
            )
        return path

    @staticmethod
    def _check_circular(path: Path, chain: list[Path], node: str | None = None) -> None:
        if any(same_graph_path(path, active) for active in chain):
            full_chain = (*chain, path)
            raise CircularDependencyError(
                "Circular dependency detected: " + " -> ".join(str(p) for p in full_chain),
                chain=full_chain,
                node=node,
                hint="A graph cannot invoke itself directly or through other graphs.",
            )

    def _load(self, path: Path) -> Graph:
        try:
            return self.store.load(path)
        except GraphRunnerError:
            raise
        except (OSError, ValueError) as e:
            raise GraphLoadError(f"Failed to load graph file {path}: {e}", path=path) from e

    # ========== Validation ==========

    def validate_plan(
        self, operations: Iterable[OperationSpec], base_dir: Path | None = None
    ) -> ValidationReport:
        """Check a plan without injecting input or sleeping.

        Follows nested graphs the way execution would and raises the first
        fatal error found.
        """
        report = ValidationReport()
        self._validate_operations(list(operations), report, base_dir, chain=[])
        return report

    def validate_file(self, path: str | Path) -> ValidationReport:
        """Validation pass for a graph file and every graph it references."""
        report = ValidationReport()
        self._validate_graph_file(canonical_graph_path(path), report, chain=[])
        return report

    def _validate_graph_file(
        self,
        path: Path,
        report: ValidationReport,
        chain: list[Path],
        caller: OperationSpec | None = None,
    ) -> None:
        node = caller.describe() if caller is not None else None
        self._check_circular(path, chain, node)
        chain.append(path)
        try:
            graph = self._load(path)
            report.graph_files.append(path)
            operations = linearize(graph, str(path))
            report.warnings.extend(f"{path.name}: {w}" for w in graph.warnings())
            if not operations:
                if caller is not None:
                    raise ConfigurationError(
                        f"Nested graph file {path} contains no operations",
                        node=node,
                        hint="Add operations to the nested graph or remove the graph operation.",
                    )
                report.warnings.append(f"{path.name}: graph contains no operations")
            self._validate_operations(operations, report, path.parent, chain)
        finally:
            chain.pop()

    def _validate_operations(
        self,
        operations: list[OperationSpec],
        report: ValidationReport,
        base_dir: Path | None,
        chain: list[Path],
    ) -> None:
        for operation in operations:
            if not operation.enabled:
                continue
            op_type = operation.operation_type
            if operation.value_mode is ValueMode.DYNAMIC:
                self.resolver.check(operation)
            else:
                self._check_arguments(operation, op_type)
            report.operations_checked += 1

            if op_type is OperationType.GRAPH:
                path = self._nested_path(operation, base_dir)
                self._validate_graph_file(path, report, chain, caller=operation)
