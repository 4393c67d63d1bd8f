"""Operation data models.

Uses Pydantic for the per-node operation payloads. Payload keys follow the
PascalCase names written by the graph editor (``IntValues``, ``DelayBefore``,
...); snake_case names and any key casing are accepted on input.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_pascal

from graphrunner.core.errors import NotSupportedError


def _match_member(enum_cls: type[Enum], value: Any) -> Enum | None:
    """Case-insensitive lookup by value or name; ints select by declaration order."""
    members = list(enum_cls)
    if isinstance(value, int) and not isinstance(value, bool):
        return members[value] if 0 <= value < len(members) else None
    if not isinstance(value, str):
        return None
    wanted = value.strip().replace("_", "").casefold()
    for member in members:
        if wanted in (
            str(member.value).replace("_", "").casefold(),
            member.name.replace("_", "").casefold(),
        ):
            return member
    return None


class ValueMode(str, Enum):
    """Where an operation gets its values from"""

    STATIC = "Static"  # IntValues/StringValues used as written
    DYNAMIC = "Dynamic"  # Values computed from DynamicSource on every dispatch

    @classmethod
    def _missing_(cls, value):
        return _match_member(cls, value)


class DynamicSourceType(str, Enum):
    """Kinds of dynamic value sources.

    Declaration order matches the editor's numeric encoding. Only
    DATE_BASED_ARRAY is implemented; the rest fail closed.
    """

    API = "API"
    DATE_BASED_ARRAY = "DateBasedArray"
    ITERATION_BASED_ARRAY = "IterationBasedArray"
    DATE_EXPRESSION = "DateExpression"
    EXPRESSION = "Expression"
    FILE_CONTENT = "FileContent"

    @classmethod
    def _missing_(cls, value):
        return _match_member(cls, value)


class OperationType(str, Enum):
    """Operation types understood by the execution engine"""

    START = "start"
    MOUSE_LEFT_CLICK = "mouse_left_click"
    MOUSE_RIGHT_CLICK = "mouse_right_click"
    MOUSE_MOVE = "mouse_move"
    SCROLL_UP = "scroll_up"
    SCROLL_DOWN = "scroll_down"
    SCROLL_LEFT = "scroll_left"
    SCROLL_RIGHT = "scroll_right"
    KEY_PRESS = "key_press"
    KEY_DOWN = "key_down"
    KEY_UP = "key_up"
    TYPE_TEXT = "type_text"
    WAIT = "wait"
    CUSTOM_CODE = "custom_code"
    GRAPH = "graph"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class PayloadModel(BaseModel):
    """Base for editor payloads: PascalCase aliases, case-insensitive keys."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def match_keys_case_insensitively(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            alias = field.alias or name
            lookup[name.lower()] = alias
            lookup[alias.lower()] = alias
        return {
            (lookup.get(key.lower(), key) if isinstance(key, str) else key): value
            for key, value in data.items()
        }


class DynamicSource(PayloadModel):
    """Configuration for computing operation values at run time.

    ``value_mappings`` maps a target slot (``IntValues[0]``, ``StringValues[2]``)
    to a dotted JSON path such as ``$.point.x``. Array indexing inside paths
    is not supported.
    """

    source_type: DynamicSourceType

    # Date-based array: one JSON object per elapsed day since start_date
    start_date: str | None = None
    data_array: list[str] | None = None

    value_mappings: dict[str, str] | None = None

    # Reserved for the unimplemented source kinds
    api_endpoint: str | None = None
    api_method: str | None = None
    api_headers: dict[str, str] | None = None
    api_body: str | None = None
    expression: str | None = None
    file_path: str | None = None
    file_format: str | None = None

    @field_validator("source_type", mode="before")
    @classmethod
    def coerce_source_type(cls, v):
        member = _match_member(DynamicSourceType, v)
        return member if member is not None else v

    @field_validator("data_array", mode="before")
    @classmethod
    def encode_inline_items(cls, v):
        """Accept inline JSON objects as well as JSON-encoded strings."""
        if isinstance(v, list):
            return [item if isinstance(item, str) else json.dumps(item) for item in v]
        return v


class OperationSpec(PayloadModel):
    """One executable step, deserialized from a node's JSON payload."""

    type: str = ""
    int_values: list[int] = Field(default_factory=list)
    string_values: list[str] = Field(default_factory=list)
    value_mode: ValueMode = ValueMode.STATIC
    dynamic_source: DynamicSource | None = None
    priority: int = 0  # Batch ordering only, lower runs first
    delay_before: int = 0  # Milliseconds
    delay_after: int = 0  # Milliseconds
    frequency: int = 1  # Repeat count, values below 1 run once
    enabled: bool = True
    graph_file_path: str | None = None
    custom_code: str | None = None
    description: str | None = None

    # Identity of the originating node, attached during linearization
    node_id: str | None = Field(default=None, exclude=True)
    node_name: str | None = Field(default=None, exclude=True)

    @field_validator("type", mode="before")
    @classmethod
    def none_type_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("int_values", "string_values", mode="before")
    @classmethod
    def none_is_empty_list(cls, v):
        return [] if v is None else v

    @field_validator("value_mode", mode="before")
    @classmethod
    def coerce_value_mode(cls, v):
        if v is None:
            return ValueMode.STATIC
        member = _match_member(ValueMode, v)
        return member if member is not None else v

    @property
    def operation_type(self) -> OperationType:
        """Typed operation kind; unknown type strings are not supported."""
        try:
            return OperationType(self.type)
        except ValueError:
            supported = ", ".join(member.value for member in OperationType)
            raise NotSupportedError(
                f"Operation type '{self.type}' is not supported.",
                node=self.describe(),
                hint=f"Use one of: {supported}",
            ) from None

    def describe(self) -> str:
        """Short human-readable identity used in logs and errors."""
        label = self.type or "<untyped>"
        if self.node_name:
            return f"{label} (node '{self.node_name}')"
        if self.node_id:
            return f"{label} (node {self.node_id})"
        if self.description:
            return f"{label} ({self.description})"
        return label

    def to_payload(self) -> str:
        """Serialize to the JSON payload stored on a graph node."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


DEFAULT_INT_VALUES: dict[OperationType, list[int]] = {
    OperationType.MOUSE_LEFT_CLICK: [100, 100],
    OperationType.MOUSE_RIGHT_CLICK: [100, 100],
    OperationType.MOUSE_MOVE: [100, 100],
    OperationType.SCROLL_UP: [120],
    OperationType.SCROLL_DOWN: [120],
    OperationType.SCROLL_LEFT: [120],
    OperationType.SCROLL_RIGHT: [120],
    OperationType.KEY_PRESS: [13],
    OperationType.KEY_DOWN: [13],
    OperationType.KEY_UP: [13],
    OperationType.WAIT: [1000],
}

DEFAULT_STRING_VALUES: dict[OperationType, list[str]] = {
    OperationType.TYPE_TEXT: ["Hello World"],
}


def default_operation(op_type: OperationType) -> OperationSpec:
    """Starter payload for a freshly created node of the given type."""
    return OperationSpec(
        type=op_type.value,
        int_values=list(DEFAULT_INT_VALUES.get(op_type, [])),
        string_values=list(DEFAULT_STRING_VALUES.get(op_type, [])),
        description=op_type.value.replace("_", " ").title(),
    )
