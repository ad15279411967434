"""Driver handles that talk IPROTO to a Tarantool instance."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable

import asynctnt
from asynctnt.exceptions import TarantoolDatabaseError, TarantoolError, TarantoolNetworkError

from .config import ConnectionConfig
from .errors import ConnectError, RemoteOperationError
from .models import TarantoolValue, Tuple, UpdateOperation

LOG = logging.getLogger(__name__)


@runtime_checkable
class DriverHandle(Protocol):
    """Protocol implemented by Tarantool drivers; spaces and indexes are ids only."""

    async def connect(self) -> None:
        """Open the physical connection."""

    async def destroy(self) -> None:
        """Close the physical connection."""

    async def eval(self, expression: str, args: Sequence[TarantoolValue]) -> list[Any]: ...

    async def call(self, name: str, *args: TarantoolValue) -> list[Any]: ...

    async def select(
        self,
        space_id: int,
        index_id: int,
        limit: int,
        offset: int,
        iterator: str,
        key: Sequence[TarantoolValue],
    ) -> list[Any]: ...

    async def insert(self, space_id: int, tuple_: Tuple) -> list[Any]: ...

    async def replace(self, space_id: int, tuple_: Tuple) -> list[Any]: ...

    async def update(
        self,
        space_id: int,
        index_id: int,
        key: Sequence[TarantoolValue],
        operations: Sequence[UpdateOperation],
    ) -> list[Any]: ...

    async def delete(self, space_id: int, index_id: int, key: Sequence[TarantoolValue]) -> list[Any]: ...

    async def upsert(
        self,
        space_id: int,
        tuple_: Tuple,
        operations: Sequence[UpdateOperation],
    ) -> list[Any]: ...


DriverFactory = Callable[[ConnectionConfig], DriverHandle]


class AsynctntDriver:
    """Driver handle backed by an asynctnt connection.

    Schema fetching and automatic reconnects are disabled: names are resolved
    by the caller and reconnecting is the session's decision. A request that
    hits a dropped transport raises ``ConnectError``; the session itself is not
    reset, so callers must ``disconnect()`` to recover.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self._config = config
        self._conn = asynctnt.Connection(**self._connect_kwargs(config))

    @staticmethod
    def _connect_kwargs(config: ConnectionConfig) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "host": config.host,
            "port": config.port,
            "fetch_schema": False,
            "auto_refetch_schema": False,
            "reconnect_timeout": 0,
            "connect_timeout": config.connect_timeout,
        }
        if config.username:
            kwargs["username"] = config.username
            kwargs["password"] = config.password
        if config.request_timeout is not None:
            kwargs["request_timeout"] = config.request_timeout
        return kwargs

    @property
    def endpoint(self) -> str:
        return f"{self._config.host}:{self._config.port}"

    async def connect(self) -> None:
        try:
            await self._conn.connect()
        except (OSError, asyncio.TimeoutError, TarantoolError) as exc:
            raise ConnectError(f"Failed to connect to Tarantool at {self.endpoint}: {exc}") from exc

    async def destroy(self) -> None:
        await self._conn.disconnect()

    async def eval(self, expression: str, args: Sequence[TarantoolValue]) -> list[Any]:
        return await self._request("eval", lambda: self._conn.eval(expression, list(args)))

    async def call(self, name: str, *args: TarantoolValue) -> list[Any]:
        return await self._request("call", lambda: self._conn.call(name, list(args)))

    async def select(
        self,
        space_id: int,
        index_id: int,
        limit: int,
        offset: int,
        iterator: str,
        key: Sequence[TarantoolValue],
    ) -> list[Any]:
        return await self._request(
            "select",
            lambda: self._conn.select(
                space_id,
                list(key),
                offset=offset,
                limit=limit,
                index=index_id,
                iterator=asynctnt.Iterator[iterator.upper()],
            ),
        )

    async def insert(self, space_id: int, tuple_: Tuple) -> list[Any]:
        return await self._request("insert", lambda: self._conn.insert(space_id, list(tuple_)))

    async def replace(self, space_id: int, tuple_: Tuple) -> list[Any]:
        return await self._request("replace", lambda: self._conn.replace(space_id, list(tuple_)))

    async def update(
        self,
        space_id: int,
        index_id: int,
        key: Sequence[TarantoolValue],
        operations: Sequence[UpdateOperation],
    ) -> list[Any]:
        ops = [list(op) for op in operations]
        return await self._request("update", lambda: self._conn.update(space_id, list(key), ops, index=index_id))

    async def delete(self, space_id: int, index_id: int, key: Sequence[TarantoolValue]) -> list[Any]:
        return await self._request("delete", lambda: self._conn.delete(space_id, list(key), index=index_id))

    async def upsert(
        self,
        space_id: int,
        tuple_: Tuple,
        operations: Sequence[UpdateOperation],
    ) -> list[Any]:
        ops = [list(op) for op in operations]
        return await self._request("upsert", lambda: self._conn.upsert(space_id, list(tuple_), ops))

    async def _request(self, operation: str, send: Callable[[], Awaitable[Any]]) -> list[Any]:
        # asynctnt raises synchronously when the transport is already gone.
        try:
            response = await send()
        except TarantoolDatabaseError as exc:
            code = getattr(exc, "code", None)
            message = getattr(exc, "message", None) or str(exc)
            raise RemoteOperationError(
                operation, str(message), code=int(code) if code is not None else None
            ) from exc
        except (TarantoolNetworkError, OSError) as exc:
            LOG.warning("Transport failure during request", extra={"operation": operation, "endpoint": self.endpoint})
            raise ConnectError(f"Connection to {self.endpoint} lost during {operation}: {exc}") from exc
        except TarantoolError as exc:
            raise RemoteOperationError(operation, str(exc)) from exc
        return [to_plain(item) for item in (response.body or ())]


def to_plain(value: Any) -> Any:
    """Convert driver values (TarantoolTuple etc.) into plain lists and dicts."""

    if value is None or isinstance(value, (bool, int, float, str, bytes)):
        return value
    if isinstance(value, Mapping):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if hasattr(value, "__iter__") and hasattr(value, "__len__"):
        return [to_plain(item) for item in value]
    return value


__all__ = [
    "AsynctntDriver",
    "DriverFactory",
    "DriverHandle",
    "to_plain",
]
