"""Session manager owning the single Tarantool connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from .config import ConnectionConfig
from .connections import AsynctntDriver, DriverFactory, DriverHandle
from .errors import ConfigurationError, ConnectError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Disconnected:
    """No driver handle exists."""


@dataclass(frozen=True, slots=True)
class Connecting:
    """A physical connect attempt is in flight; every caller awaits ``attempt``."""

    attempt: asyncio.Future[DriverHandle]


@dataclass(frozen=True, slots=True)
class Connected:
    """The driver handle is open."""

    handle: DriverHandle


SessionState = Union[Disconnected, Connecting, Connected]

DISCONNECTED = Disconnected()


class SessionManager:
    """Owns at most one driver handle and serializes connection setup.

    All transitions happen on the event loop without awaiting between the
    state check and the state change, so concurrent ``connect()`` callers share
    one physical attempt and observe the same outcome.
    """

    def __init__(
        self,
        config: ConnectionConfig | None = None,
        *,
        driver_factory: DriverFactory | None = None,
    ) -> None:
        self._config = config
        self._driver_factory = driver_factory or AsynctntDriver
        self._state: SessionState = DISCONNECTED

    @property
    def state(self) -> SessionState:
        """Current session state."""

        return self._state

    @property
    def is_connected(self) -> bool:
        return isinstance(self._state, Connected)

    def set_config(self, config: ConnectionConfig) -> None:
        """Store connection settings; an open session keeps its current handle."""

        self._config = config

    async def connect(self) -> None:
        """Open the connection unless it is already open or being opened."""

        state = self._state
        if isinstance(state, Connected):
            return
        if isinstance(state, Connecting):
            await asyncio.shield(state.attempt)
            return
        config = self._require_config()
        attempt = asyncio.ensure_future(self._establish(config))
        attempt.add_done_callback(_consume_outcome)
        self._state = Connecting(attempt)
        await asyncio.shield(attempt)

    async def disconnect(self) -> None:
        """Close the connection; no-op when nothing is open."""

        state = self._state
        if isinstance(state, Connecting):
            try:
                await asyncio.shield(state.attempt)
            except Exception:
                # The failed attempt already reset the state.
                return
            state = self._state
        if not isinstance(state, Connected):
            return
        self._state = DISCONNECTED
        LOG.info("Disconnecting from Tarantool", extra={"endpoint": self._endpoint()})
        await state.handle.destroy()

    async def ensure_connected(self) -> DriverHandle:
        """Return the open handle, connecting lazily if needed."""

        state = self._state
        if isinstance(state, Connected):
            return state.handle
        await self.connect()
        state = self._state
        if not isinstance(state, Connected):
            raise ConnectError("Session was closed while connecting")
        return state.handle

    async def _establish(self, config: ConnectionConfig) -> DriverHandle:
        LOG.info("Connecting to Tarantool", extra={"endpoint": self._endpoint(config)})
        try:
            handle = self._driver_factory(config)
            await handle.connect()
        except BaseException:
            self._state = DISCONNECTED
            LOG.warning("Connection attempt failed", extra={"endpoint": self._endpoint(config)})
            raise
        self._state = Connected(handle)
        LOG.info("Connected to Tarantool", extra={"endpoint": self._endpoint(config)})
        return handle

    def _require_config(self) -> ConnectionConfig:
        if self._config is None:
            raise ConfigurationError("Tarantool configuration not set")
        return self._config

    def _endpoint(self, config: ConnectionConfig | None = None) -> str:
        config = config or self._config
        if config is None:
            return "<unconfigured>"
        return f"{config.host}:{config.port}"


def _consume_outcome(attempt: asyncio.Future[DriverHandle]) -> None:
    # Waiters may all have been cancelled; mark the failure as retrieved.
    if not attempt.cancelled():
        attempt.exception()


__all__ = [
    "Connected",
    "Connecting",
    "Disconnected",
    "SessionManager",
    "SessionState",
]
