"""Space and index name resolution through Lua introspection."""

from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Hashable, Iterator, Sequence

from .errors import NotFoundError, RemoteOperationError
from .models import IndexRef, SpaceRef, TarantoolValue

LOG = logging.getLogger(__name__)

Evaluator = Callable[[str, Sequence[TarantoolValue]], Awaitable[list[Any]]]

SPACE_ID_LUA = """
local name = ...
local space = box.space[name]
return space and space.id
"""

INDEX_ID_LUA = """
local space_id, name = ...
local space = box.space[space_id]
if space == nil then
    return nil
end
local index = space.index[name]
return index and index.id
"""


class NameCache:
    """Bounded LRU map of resolved names to numeric ids."""

    def __init__(self, max_size: int) -> None:
        self._max_size = max_size
        self._entries: OrderedDict[Hashable, int] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._max_size > 0

    def get(self, key: Hashable) -> int | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def put(self, key: Hashable, value: int) -> None:
        if not self.enabled:
            return
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def discard(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def discard_space(self, space_id: int) -> None:
        for key in [key for key in self._entries if key[:2] == ("index", space_id)]:  # type: ignore[index]
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NameResolver:
    """Translates space and index names into the ids IPROTO requests need.

    Integers pass through without a round trip. Names cost one ``eval`` unless
    the optional cache already holds them; a cached id can go stale after a
    schema change, which is why callers invalidate entries on remote failures.
    """

    def __init__(self, evaluate: Evaluator, *, cache_size: int = 0) -> None:
        self._evaluate = evaluate
        self._cache = NameCache(cache_size)

    @property
    def cache(self) -> NameCache:
        return self._cache

    async def resolve_space(self, space: SpaceRef) -> int:
        if _is_numeric(space):
            return int(space)
        name = str(space)
        key = ("space", name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = await self._evaluate(SPACE_ID_LUA, [name])
        space_id = _first_int(result)
        if space_id is None:
            raise NotFoundError("space", name)
        self._cache.put(key, space_id)
        LOG.debug("Resolved space", extra={"space": name, "space_id": space_id})
        return space_id

    async def resolve_index(self, space_id: int, index: IndexRef) -> int:
        if _is_numeric(index):
            return int(index)
        name = str(index)
        key = ("index", space_id, name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = await self._evaluate(INDEX_ID_LUA, [space_id, name])
        index_id = _first_int(result)
        if index_id is None:
            raise NotFoundError("index", name, space_id=space_id)
        self._cache.put(key, index_id)
        LOG.debug("Resolved index", extra={"space_id": space_id, "index": name, "index_id": index_id})
        return index_id

    def forget(self, space: SpaceRef, space_id: int | None = None) -> None:
        """Drop cached ids for a space name and the indexes under it."""

        if not _is_numeric(space):
            self._cache.discard(("space", str(space)))
        if space_id is not None:
            self._cache.discard_space(space_id)

    @contextmanager
    def invalidate_on_error(self, space: SpaceRef, space_id: int) -> Iterator[None]:
        """Forget ``space`` if the wrapped request is rejected by the server."""

        try:
            yield
        except RemoteOperationError:
            if self._cache.enabled:
                LOG.debug("Invalidating cached ids after remote error", extra={"space": space})
                self.forget(space, space_id)
            raise

    def clear(self) -> None:
        self._cache.clear()


def _is_numeric(ref: SpaceRef | IndexRef) -> bool:
    return isinstance(ref, int) and not isinstance(ref, bool)


def _first_int(result: Sequence[Any]) -> int | None:
    if not result:
        return None
    value = result[0]
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


__all__ = ["INDEX_ID_LUA", "NameCache", "NameResolver", "SPACE_ID_LUA"]
