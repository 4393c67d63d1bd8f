"""Dynamic value resolution for operations.

An operation in Dynamic mode gets its IntValues/StringValues from a
DynamicSource every time it is dispatched. The source yields a JSON object;
``ValueMappings`` then copy fields out of it into indexed value slots::

    {"IntValues[0]": "$.x", "IntValues[1]": "$.y", "StringValues[0]": "$.label.text"}

Paths are dotted object-field lookups from the root. Array indexing and
filters are deliberately not supported and are rejected instead of being
silently misread.

Only DateBasedArray is implemented: entry N of ``DataArray`` is used on the
Nth day after ``StartDate``. Running before the start date or after the last
entry stops the run (OutOfRangeError). The other declared kinds fail closed
with NotSupportedError.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from graphrunner.core.errors import (
    ConfigurationError,
    GraphRunnerError,
    NotSupportedError,
    OutOfRangeError,
    ParseError,
    ValueExtractionError,
)
from graphrunner.core.models import DynamicSource, DynamicSourceType, OperationSpec, ValueMode

logger = logging.getLogger(__name__)

INT_VALUES = "IntValues"
STRING_VALUES = "StringValues"

_TARGET_RE = re.compile(r"^(IntValues|StringValues)\[(\d+)\]$")
_MISSING = object()


@dataclass(frozen=True)
class MappingTarget:
    """Destination slot of a value mapping, e.g. IntValues[1]."""

    kind: str  # INT_VALUES or STRING_VALUES
    index: int


def parse_target(target: str) -> MappingTarget:
    """Parse ``Kind[index]``; anything else is a configuration error."""
    match = _TARGET_RE.match(target.strip())
    if not match:
        raise ConfigurationError(
            f"Invalid mapping target: {target}. Must be 'IntValues[index]' or 'StringValues[index]'"
        )
    return MappingTarget(kind=match.group(1), index=int(match.group(2)))


def parse_start_date(value: str) -> date:
    """Parse a yyyy-MM-dd start date; a time component is accepted and dropped."""
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        raise ConfigurationError(
            f"Invalid start date format: {value}. Use yyyy-MM-dd format."
        ) from None


def extract_json_path(document: Any, path: str) -> Any:
    """Follow a dotted field path (``$.a.b``) through nested JSON objects.

    Returns the module sentinel ``_MISSING`` when a field is absent, an
    intermediate value is not an object, or the value is JSON null.
    """
    expression = path.strip().lstrip("$.")
    if "[" in expression or "]" in expression:
        raise ConfigurationError(
            f"Unsupported JSON path '{path}': array indexing is not supported",
            hint="Use dotted field access only, e.g. '$.point.x'.",
        )
    if not expression:
        return document

    value = document
    for part in expression.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return _MISSING if value is None else value


def _to_int(value: Any, path: str) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, float):
            return round(value)
        if isinstance(value, str):
            return int(value.strip())
    except (ValueError, OverflowError):
        pass
    raise ValueExtractionError(
        f"Value at path '{path}' cannot be converted to an integer: {value!r}", path=path
    )


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


class ValueResolver:
    """Computes concrete operation values from a dynamic source.

    The resolver never mutates its input: ``resolve`` returns a new
    OperationSpec, so the same operation can be re-resolved on every repetition.
    """

    def __init__(self, clock: Callable[[], date] = date.today):
        """
        Args:
            clock: Returns the local calendar date used for date-based sources
        """
        self.clock = clock

    def validate_source(self, source: DynamicSource, check_items: bool = True) -> str | None:
        """Check that a source has the fields its kind requires.

        Used for pre-flight validation; returns a description of the first
        problem found instead of raising.

        Args:
            source: Source configuration to check
            check_items: Also parse every DataArray entry as JSON

        Returns:
            None when valid, otherwise an error message
        """
        match source.source_type:
            case DynamicSourceType.DATE_BASED_ARRAY:
                if not source.start_date:
                    return "Start date is required for date-based array"
                try:
                    parse_start_date(source.start_date)
                except ConfigurationError as e:
                    return e.message
                if not source.data_array:
                    return "Data array cannot be empty for date-based array"
                if check_items:
                    for i, item in enumerate(source.data_array):
                        try:
                            json.loads(item)
                        except ValueError as e:
                            return f"Invalid JSON at array index {i}: {e}"
            case DynamicSourceType.API:
                if not source.api_endpoint:
                    return "API endpoint is required for API source type"
            case DynamicSourceType.FILE_CONTENT:
                if not source.file_path:
                    return "File path is required for file content source type"
            case (
                DynamicSourceType.ITERATION_BASED_ARRAY
                | DynamicSourceType.DATE_EXPRESSION
                | DynamicSourceType.EXPRESSION
            ):
                pass

        for target in (source.value_mappings or {}):
            try:
                parse_target(target)
            except ConfigurationError as e:
                return e.message
        return None

    def check(self, operation: OperationSpec, check_items: bool = True) -> DynamicSource:
        """Raise if a dynamic operation could never resolve; return its source.

        Does not depend on the current date, so it is safe for pre-flight use.
        """
        source = operation.dynamic_source
        if source is None:
            raise ConfigurationError(
                f"Operation '{operation.type}' is set to Dynamic mode but has no DynamicSource configured",
                node=operation.describe(),
                hint="Configure a dynamic source or switch the operation to Static mode.",
            )

        problem = self.validate_source(source, check_items=check_items)
        if problem:
            raise ConfigurationError(
                f"Invalid dynamic source configuration: {problem}",
                node=operation.describe(),
                hint="Fix the DynamicSource settings of this operation.",
            )

        match source.source_type:
            case DynamicSourceType.DATE_BASED_ARRAY:
                pass
            case (
                DynamicSourceType.ITERATION_BASED_ARRAY
                | DynamicSourceType.API
                | DynamicSourceType.DATE_EXPRESSION
                | DynamicSourceType.EXPRESSION
                | DynamicSourceType.FILE_CONTENT
            ):
                raise NotSupportedError(
                    f"{source.source_type.value} source type is not yet implemented",
                    node=operation.describe(),
                    hint=f"Use {DynamicSourceType.DATE_BASED_ARRAY.value} for now.",
                )

        if not source.value_mappings:
            raise ConfigurationError(
                "Value mappings are required to map resolved data to operation values",
                node=operation.describe(),
                hint='Add ValueMappings such as {"IntValues[0]": "$.x"}.',
            )
        return source

    def resolve(self, operation: OperationSpec, iteration: int = 0) -> OperationSpec:
        """Return a copy of the operation with dynamic values filled in.

        Static operations are returned unchanged.

        Args:
            operation: Operation to resolve
            iteration: Zero-based repetition index within the current dispatch
                loop. Reserved for iteration-based sources, which wrap it modulo
                the array length; date-based sources ignore it.

        Raises:
            ConfigurationError: Missing or invalid source, mappings or paths
            OutOfRangeError: Date-based array not valid for today
            ParseError: Data item for today is not a JSON object
            NotSupportedError: Source kind is declared but not implemented
        """
        if operation.value_mode is ValueMode.STATIC:
            return operation

        # DataArray items are parsed lazily; only today's entry must be valid
        source = self.check(operation, check_items=False)

        try:
            document = self._resolve_date_based_array(source, operation)
        except GraphRunnerError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to resolve dynamic values for operation '{operation.type}': {e}",
                node=operation.describe(),
            ) from e

        int_values, string_values = self._map_values(source, document, operation)
        logger.debug(
            f"Resolved {operation.describe()}: IntValues={int_values} StringValues={string_values}"
        )
        return operation.model_copy(
            update={"int_values": int_values, "string_values": string_values}
        )

    def _resolve_date_based_array(
        self, source: DynamicSource, operation: OperationSpec
    ) -> dict[str, Any]:
        start = parse_start_date(source.start_date)
        data = source.data_array
        today = self.clock()
        day_index = (today - start).days

        if day_index < 0:
            raise OutOfRangeError(
                f"Current date ({today:%Y-%m-%d}) precedes the start date ({start:%Y-%m-%d}) "
                f"by {-day_index} day(s); execution stopped",
                current_date=today,
                bound=start,
                node=operation.describe(),
                hint="Update the start date or wait until the start date arrives.",
            )

        if day_index >= len(data):
            last_valid = start + timedelta(days=len(data) - 1)
            raise OutOfRangeError(
                f"Date-based array exceeded: current date ({today:%Y-%m-%d}) is {day_index} "
                f"day(s) after the start date ({start:%Y-%m-%d}) but the array only has "
                f"{len(data)} item(s) (indices 0-{len(data) - 1}); "
                f"last valid date was {last_valid:%Y-%m-%d}",
                current_date=today,
                bound=last_valid,
                node=operation.describe(),
                hint="Add more items to the data array or move the start date forward.",
            )

        try:
            document = json.loads(data[day_index])
        except ValueError as e:
            raise ParseError(
                f"Failed to parse JSON at day index {day_index} (date: {today:%Y-%m-%d}): {e}",
                node=operation.describe(),
                hint=f"Fix DataArray[{day_index}] so it is a valid JSON object.",
            ) from e
        if not isinstance(document, dict):
            raise ParseError(
                f"DataArray[{day_index}] must be a JSON object, got {type(document).__name__}",
                node=operation.describe(),
            )
        return document

    def _map_values(
        self, source: DynamicSource, document: dict[str, Any], operation: OperationSpec
    ) -> tuple[list[int], list[str]]:
        int_values: list[int] = []
        string_values: list[str] = []
        for target_text, path in source.value_mappings.items():
            try:
                target = parse_target(target_text)
                value = extract_json_path(document, path)
            except GraphRunnerError as e:
                e.node = e.node or operation.describe()
                raise
            if value is _MISSING:
                raise ValueExtractionError(
                    f"Failed to extract value from path '{path}'; "
                    "the path does not exist in the resolved data",
                    path=path,
                    node=operation.describe(),
                )

            if target.kind == INT_VALUES:
                while len(int_values) <= target.index:
                    int_values.append(0)
                try:
                    int_values[target.index] = _to_int(value, path)
                except ValueExtractionError as e:
                    e.node = operation.describe()
                    raise
            else:
                while len(string_values) <= target.index:
                    string_values.append("")
                string_values[target.index] = _to_str(value)

        return int_values, string_values
