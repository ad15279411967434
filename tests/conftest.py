"""Shared fixtures: an in-memory stand-in for a Tarantool instance."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import pytest

from tarantool_mcp.config import ConnectionConfig
from tarantool_mcp.dispatcher import LIST_SPACES_LUA, CommandDispatcher
from tarantool_mcp.errors import ConnectError, RemoteOperationError
from tarantool_mcp.resolver import INDEX_ID_LUA, SPACE_ID_LUA
from tarantool_mcp.session import SessionManager


@dataclass
class FakeSpace:
    id: int
    # index name -> (index id, field position)
    indexes: dict[str, tuple[int, int]] = field(default_factory=lambda: {"primary": (0, 0)})
    rows: dict[Any, list[Any]] = field(default_factory=dict)

    def field_for(self, index_id: int) -> int:
        for candidate, position in self.indexes.values():
            if candidate == index_id:
                return position
        raise RemoteOperationError("select", f"No index #{index_id} is defined in space #{self.id}", code=35)


class FakeTarantool:
    """Server-side state shared by every driver handle the factory builds."""

    def __init__(self) -> None:
        self.spaces: dict[str, FakeSpace] = {
            "_space": FakeSpace(id=280),
            "_index": FakeSpace(id=288),
        }
        self.procedures: dict[str, Callable[..., Any]] = {}
        self.eval_results: dict[str, list[Any]] = {}
        self.requests: list[tuple[Any, ...]] = []
        self.connect_attempts = 0
        self.destroyed = 0
        self.fail_connects = 0
        self.connect_gate: asyncio.Event | None = None
        self.last_config: ConnectionConfig | None = None

    def add_space(self, name: str, space_id: int, **indexes: tuple[int, int]) -> FakeSpace:
        space = FakeSpace(id=space_id)
        space.indexes.update(indexes)
        self.spaces[name] = space
        return space

    def space_by_id(self, space_id: int) -> FakeSpace:
        for space in self.spaces.values():
            if space.id == space_id:
                return space
        raise RemoteOperationError("request", f"Space '{space_id}' does not exist", code=36)

    def evals(self, expression: str) -> list[tuple[Any, ...]]:
        return [request for request in self.requests if request[0] == "eval" and request[1] == expression]

    def factory(self, config: ConnectionConfig) -> "FakeDriver":
        self.last_config = config
        return FakeDriver(self)


class FakeDriver:
    def __init__(self, server: FakeTarantool) -> None:
        self._server = server
        self.open = False

    async def connect(self) -> None:
        server = self._server
        server.connect_attempts += 1
        if server.connect_gate is not None:
            await server.connect_gate.wait()
        await asyncio.sleep(0)
        if server.fail_connects:
            server.fail_connects -= 1
            raise ConnectError("Failed to connect to Tarantool at localhost:3301: refused")
        self.open = True

    async def destroy(self) -> None:
        self.open = False
        self._server.destroyed += 1

    async def eval(self, expression: str, args: Sequence[Any]) -> list[Any]:
        server = self._server
        server.requests.append(("eval", expression, list(args)))
        if expression == SPACE_ID_LUA:
            space = server.spaces.get(args[0])
            return [space.id if space else None]
        if expression == INDEX_ID_LUA:
            space_id, name = args
            try:
                space = server.space_by_id(space_id)
            except RemoteOperationError:
                return [None]
            index = space.indexes.get(name)
            return [index[0] if index else None]
        if expression == LIST_SPACES_LUA:
            return [
                [
                    {"name": name, "id": space.id}
                    for name, space in server.spaces.items()
                    if not name.startswith("_")
                ]
            ]
        return list(server.eval_results.get(expression, []))

    async def call(self, name: str, *args: Any) -> list[Any]:
        self._server.requests.append(("call", name, list(args)))
        procedure = self._server.procedures.get(name)
        if procedure is None:
            raise RemoteOperationError("call", f"Procedure '{name}' is not defined", code=33)
        return [procedure(*args)]

    async def select(self, space_id, index_id, limit, offset, iterator, key):  # type: ignore[no-untyped-def]
        self._server.requests.append(("select", space_id, index_id, limit, offset, iterator, list(key)))
        space = self._server.space_by_id(space_id)
        position = space.field_for(index_id)
        rows = [row for _, row in sorted(space.rows.items())]
        if key:
            rows = [row for row in rows if row[position] == key[0]]
        return [list(row) for row in rows[offset : offset + limit]]

    async def insert(self, space_id, tuple_):  # type: ignore[no-untyped-def]
        self._server.requests.append(("insert", space_id, list(tuple_)))
        space = self._server.space_by_id(space_id)
        if tuple_[0] in space.rows:
            raise RemoteOperationError(
                "insert", "Duplicate key exists in unique index \"primary\"", code=3
            )
        space.rows[tuple_[0]] = list(tuple_)
        return [list(tuple_)]

    async def replace(self, space_id, tuple_):  # type: ignore[no-untyped-def]
        self._server.requests.append(("replace", space_id, list(tuple_)))
        space = self._server.space_by_id(space_id)
        space.rows[tuple_[0]] = list(tuple_)
        return [list(tuple_)]

    async def update(self, space_id, index_id, key, operations):  # type: ignore[no-untyped-def]
        self._server.requests.append(("update", space_id, index_id, list(key), list(operations)))
        space = self._server.space_by_id(space_id)
        row = space.rows.get(key[0])
        if row is None:
            return []
        _apply(row, operations)
        return [list(row)]

    async def delete(self, space_id, index_id, key):  # type: ignore[no-untyped-def]
        self._server.requests.append(("delete", space_id, index_id, list(key)))
        space = self._server.space_by_id(space_id)
        row = space.rows.pop(key[0], None)
        return [row] if row is not None else []

    async def upsert(self, space_id, tuple_, operations):  # type: ignore[no-untyped-def]
        self._server.requests.append(("upsert", space_id, list(tuple_), list(operations)))
        space = self._server.space_by_id(space_id)
        row = space.rows.get(tuple_[0])
        if row is None:
            space.rows[tuple_[0]] = list(tuple_)
        else:
            _apply(row, operations)
        return []


def _apply(row: list[Any], operations: Sequence[Sequence[Any]]) -> None:
    # Field numbers are 1-based, as in Tarantool update operations.
    for operator, field_no, operand in operations:
        position = field_no - 1
        if operator == "=":
            row[position] = operand
        elif operator == "+":
            row[position] += operand
        else:
            raise RemoteOperationError("update", f"Unknown UPDATE operation '{operator}'", code=28)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def tarantool() -> FakeTarantool:
    server = FakeTarantool()
    server.add_space("orders", 512, by_customer=(1, 1))
    server.add_space("customers", 513)
    return server


@pytest.fixture
def session(tarantool: FakeTarantool) -> SessionManager:
    return SessionManager(ConnectionConfig(), driver_factory=tarantool.factory)


@pytest.fixture
def dispatcher(session: SessionManager) -> CommandDispatcher:
    return CommandDispatcher(session)
