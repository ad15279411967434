"""Tool contributions exposed over MCP and the registry collecting them."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Annotated, Any, Awaitable, Callable, Iterable

from pydantic import Field

from .dispatcher import CommandDispatcher

ToolHandler = Callable[..., Awaitable[str]]


@dataclass(frozen=True, slots=True)
class ToolCapability:
    """A named tool with the coroutine that serves it."""

    name: str
    description: str
    handler: ToolHandler | None = None


class ToolRegistry:
    """Collects tool capabilities before they are mounted on a server."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolCapability] = {}

    def register(self, capability: ToolCapability) -> None:
        """Register a tool capability."""

        if capability.handler is None:
            raise ValueError(f"Tool '{capability.name}' is missing a handler")
        if capability.name in self._tools:
            raise ValueError(f"Tool '{capability.name}' is already registered")
        self._tools[capability.name] = capability

    def register_many(self, capabilities: Iterable[ToolCapability]) -> None:
        for capability in capabilities:
            self.register(capability)

    def list_tools(self) -> list[ToolCapability]:
        """Return the known tools in registration order."""

        return list(self._tools.values())

    async def execute(self, name: str, **kwargs: Any) -> str:
        """Run a registered tool by name."""

        handler = self._tools[name].handler
        assert handler is not None  # register() guards this
        return await handler(**kwargs)


def to_text(result: Any) -> str:
    """Serialize a driver result as indented JSON for the calling client."""

    return json.dumps(result, indent=2, default=_json_default, ensure_ascii=False)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


SpaceArg = Annotated[str | int, Field(description="Space name or ID")]
TupleArg = Annotated[list[Any], Field(description="Tuple field values")]
KeyArg = Annotated[list[Any], Field(description="Primary key values")]
OperationsArg = Annotated[
    list[Any],
    Field(description='Update operations, e.g. [["=", 1, "new_value"]]'),
]


def build_tools(dispatcher: CommandDispatcher) -> list[ToolCapability]:
    """Return the tool capabilities backed by ``dispatcher``."""

    async def eval_tool(
        code: Annotated[str, Field(description="Lua code to execute")],
    ) -> str:
        return to_text(await dispatcher.eval(code))

    async def call_tool(
        func: Annotated[str, Field(description="Function name to call")],
        args: Annotated[list[Any] | None, Field(description="Arguments to pass to the function")] = None,
    ) -> str:
        return to_text(await dispatcher.call(func, args or []))

    async def select_tool(
        space: SpaceArg,
        key: Annotated[list[Any] | None, Field(description="Key values for selection")] = None,
        index: Annotated[str | int | None, Field(description="Index name or ID (default: primary)")] = None,
        limit: Annotated[int | None, Field(description="Maximum number of tuples to return (default: 100)")] = None,
        offset: Annotated[int | None, Field(description="Number of tuples to skip (default: 0)")] = None,
    ) -> str:
        return to_text(await dispatcher.select(space, key or [], index, limit, offset))

    async def insert_tool(space: SpaceArg, tuple: TupleArg) -> str:
        return to_text(await dispatcher.insert(space, tuple))

    async def replace_tool(space: SpaceArg, tuple: TupleArg) -> str:
        return to_text(await dispatcher.replace(space, tuple))

    async def update_tool(space: SpaceArg, key: KeyArg, operations: OperationsArg) -> str:
        return to_text(await dispatcher.update(space, key, operations))

    async def upsert_tool(space: SpaceArg, tuple: TupleArg, operations: OperationsArg) -> str:
        return to_text(await dispatcher.upsert(space, tuple, operations))

    async def delete_tool(space: SpaceArg, key: KeyArg) -> str:
        return to_text(await dispatcher.delete(space, key))

    async def list_spaces_tool() -> str:
        return to_text(await dispatcher.list_spaces())

    return [
        ToolCapability("eval", "Execute Lua code on Tarantool", eval_tool),
        ToolCapability("call", "Call a stored procedure on Tarantool", call_tool),
        ToolCapability("select", "Select data from a space", select_tool),
        ToolCapability("insert", "Insert a tuple into a space", insert_tool),
        ToolCapability("replace", "Replace a tuple in a space (insert or update)", replace_tool),
        ToolCapability("update", "Update a tuple in a space by primary key", update_tool),
        ToolCapability("upsert", "Insert a tuple or update the existing one by primary key", upsert_tool),
        ToolCapability("delete", "Delete a tuple from a space by primary key", delete_tool),
        ToolCapability("list_spaces", "List all user spaces in the database", list_spaces_tool),
    ]


__all__ = ["ToolCapability", "ToolRegistry", "build_tools", "to_text"]
