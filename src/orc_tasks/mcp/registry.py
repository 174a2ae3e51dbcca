"""Operation catalogue: named operations with typed argument schemas.

The catalogue is built once at startup and handed to whichever transport
serves it. It is read-only afterwards, so concurrent requests can share it
without locking.
"""

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import mcp.types as types

from orc_tasks.config import Config
from orc_tasks.core.context import AgentContext
from orc_tasks.core.errors import ArgumentError, NoContext, NotFound, ProtocolError, ValidationError

logger = logging.getLogger(__name__)

_JSON_TYPES = {str: "string", int: "integer", bool: "boolean", float: "number"}


@dataclass(frozen=True)
class Field:
    name: str
    type: type = str
    required: bool = False
    description: str = ""
    choices: tuple[str, ...] | None = None
    default: Any = None

    def coerce(self, value: Any) -> Any:
        """Return the value if it fits this field, else raise ArgumentError."""
        if self.type is int:
            ok = isinstance(value, int) and not isinstance(value, bool)
        elif self.type is float:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
            value = float(value) if ok else value
        else:
            ok = isinstance(value, self.type)
        if not ok:
            raise ArgumentError(f"{self.name} must be {_JSON_TYPES[self.type]}")
        if self.choices is not None and value not in self.choices:
            raise ArgumentError(f"{self.name} must be one of: {', '.join(self.choices)}")
        return value

    def json_schema(self) -> dict:
        schema: dict[str, Any] = {"type": _JSON_TYPES[self.type]}
        if self.description:
            schema["description"] = self.description
        if self.choices is not None:
            schema["enum"] = list(self.choices)
        if self.default is not None:
            schema["default"] = self.default
        return schema


@dataclass(frozen=True)
class ArgumentSchema:
    fields: tuple[Field, ...] = ()

    def validate(self, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        """Check a raw payload and return handler keyword arguments.

        Keys the schema does not declare are dropped. ``None`` counts as
        absent, and so does an empty string for a required field.
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ArgumentError("arguments must be an object")

        arguments = {}
        for f in self.fields:
            value = payload.get(f.name)
            missing = value is None or (f.required and f.type is str and value == "")
            if missing:
                if f.required:
                    raise ArgumentError(f"{f.name} is missing")
                if f.default is not None:
                    arguments[f.name] = f.default
                continue
            arguments[f.name] = f.coerce(value)
        return arguments

    def to_json_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {f.name: f.json_schema() for f in self.fields},
            "required": [f.name for f in self.fields if f.required],
        }


@dataclass(frozen=True)
class OperationContext:
    db: sqlite3.Connection
    agent: AgentContext
    config: Config


@dataclass(frozen=True)
class Outcome:
    value: str | dict
    is_error: bool = False

    @property
    def text(self) -> str:
        if isinstance(self.value, str):
            return self.value
        return json.dumps(self.value, indent=2, default=str)


@dataclass(frozen=True)
class Operation:
    name: str
    description: str
    handler: Callable[..., str | dict]
    schema: ArgumentSchema = field(default_factory=ArgumentSchema)

    def validate(self, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        return self.schema.validate(arguments)

    def execute(self, ctx: OperationContext, arguments: dict[str, Any]) -> str | dict:
        return self.handler(ctx, **arguments)

    def to_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.schema.to_json_schema(),
        )


class Catalogue:
    """Immutable lookup table of operations by name."""

    def __init__(self, operations: Iterable[Operation]):
        index: dict[str, Operation] = {}
        for op in operations:
            if op.name in index:
                raise ValueError(f"Duplicate operation name: {op.name}")
            index[op.name] = op
        self._operations = MappingProxyType(index)

    def __contains__(self, name: str) -> bool:
        return name in self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def names(self) -> list[str]:
        return list(self._operations)

    def get(self, name: str) -> Operation | None:
        return self._operations.get(name)

    def tools(self) -> list[types.Tool]:
        return [op.to_tool() for op in self._operations.values()]

    def invoke(
        self,
        name: str,
        arguments: Mapping[str, Any] | None,
        ctx: OperationContext,
    ) -> Outcome:
        """Validate and run an operation.

        Schema mismatches and unknown names raise ProtocolError. Ledger
        failures come back as a failure message with ``is_error`` set.
        """
        op = self._operations.get(name)
        if op is None:
            raise ProtocolError(types.INVALID_PARAMS, f"Unknown tool: {name}")
        validated = op.validate(arguments)

        logger.info("Operation %s called by %s", name, ctx.agent.agent_id)
        try:
            return Outcome(op.execute(ctx, validated))
        except (ValidationError, NotFound, NoContext) as e:
            logger.info("Operation %s failed: %s", name, e)
            return Outcome(f"❌ {e}", is_error=True)
