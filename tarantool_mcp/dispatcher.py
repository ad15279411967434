"""Command dispatcher mapping tool operations onto driver requests."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .models import IndexRef, SpaceInfo, SpaceRef, TarantoolValue, Tuple, UpdateOperation
from .resolver import NameResolver
from .session import SessionManager

LOG = logging.getLogger(__name__)

PRIMARY_INDEX = 0
DEFAULT_SELECT_LIMIT = 100
DEFAULT_SELECT_OFFSET = 0
SELECT_ITERATOR = "EQ"

# System spaces are prefixed with an underscore.
LIST_SPACES_LUA = """
local spaces = {}
for name, space in pairs(box.space) do
    if type(name) == 'string' and not name:match('^_') then
        table.insert(spaces, { name = name, id = space.id })
    end
end
return spaces
"""


class CommandDispatcher:
    """Uniform request/result operations over the shared session."""

    def __init__(self, session: SessionManager, *, name_cache_size: int = 0) -> None:
        self._session = session
        self._resolver = NameResolver(self._evaluate, cache_size=name_cache_size)

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def resolver(self) -> NameResolver:
        return self._resolver

    async def connect(self) -> None:
        await self._session.connect()

    async def disconnect(self) -> None:
        """Close the session and drop cached names; the next call reconnects."""

        await self._session.disconnect()
        self._resolver.clear()

    async def eval(self, code: str, args: Sequence[TarantoolValue] = ()) -> list[Any]:
        return await self._evaluate(code, args)

    async def call(self, func: str, args: Sequence[TarantoolValue] = ()) -> list[Any]:
        handle = await self._session.ensure_connected()
        return await handle.call(func, *args)

    async def select(
        self,
        space: SpaceRef,
        key: Sequence[TarantoolValue] = (),
        index: IndexRef | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Any]:
        """Return tuples whose ``index`` key equals ``key``.

        ``limit`` and ``offset`` default to 100 and 0 so an empty key never
        streams a whole space back to the caller.
        """

        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        index_id = PRIMARY_INDEX if index is None else await self._resolver.resolve_index(space_id, index)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.select(
                space_id,
                index_id,
                DEFAULT_SELECT_LIMIT if limit is None else limit,
                DEFAULT_SELECT_OFFSET if offset is None else offset,
                SELECT_ITERATOR,
                list(key),
            )

    async def insert(self, space: SpaceRef, tuple_: Tuple) -> list[Any]:
        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.insert(space_id, list(tuple_))

    async def replace(self, space: SpaceRef, tuple_: Tuple) -> list[Any]:
        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.replace(space_id, list(tuple_))

    async def update(
        self,
        space: SpaceRef,
        key: Sequence[TarantoolValue],
        operations: Sequence[UpdateOperation],
    ) -> list[Any]:
        """Apply ``operations`` to the tuple with primary key ``key``."""

        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.update(space_id, PRIMARY_INDEX, list(key), list(operations))

    async def upsert(
        self,
        space: SpaceRef,
        tuple_: Tuple,
        operations: Sequence[UpdateOperation],
    ) -> list[Any]:
        """Insert ``tuple_`` or, when its primary key exists, apply ``operations``."""

        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.upsert(space_id, list(tuple_), list(operations))

    async def delete(self, space: SpaceRef, key: Sequence[TarantoolValue]) -> list[Any]:
        handle = await self._session.ensure_connected()
        space_id = await self._resolver.resolve_space(space)
        with self._resolver.invalidate_on_error(space, space_id):
            return await handle.delete(space_id, PRIMARY_INDEX, list(key))

    async def list_spaces(self) -> list[dict[str, object]]:
        """Enumerate user spaces; an unexpected result shape yields ``[]``."""

        result = await self._evaluate(LIST_SPACES_LUA, ())
        return [info.as_dict() for info in _parse_spaces(result)]

    async def _evaluate(self, code: str, args: Sequence[TarantoolValue]) -> list[Any]:
        handle = await self._session.ensure_connected()
        return await handle.eval(code, list(args))


def _parse_spaces(result: object) -> list[SpaceInfo]:
    if not isinstance(result, list) or not result or not isinstance(result[0], list):
        LOG.debug("Unexpected space listing shape", extra={"result_type": type(result).__name__})
        return []
    spaces: list[SpaceInfo] = []
    for entry in result[0]:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        space_id = entry.get("id")
        if isinstance(name, str) and isinstance(space_id, int) and not isinstance(space_id, bool):
            spaces.append(SpaceInfo(name=name, id=space_id))
    return spaces


__all__ = [
    "CommandDispatcher",
    "DEFAULT_SELECT_LIMIT",
    "DEFAULT_SELECT_OFFSET",
    "LIST_SPACES_LUA",
    "PRIMARY_INDEX",
]
