"""Error kinds surfaced by the session and dispatch layers."""

from __future__ import annotations


class TarantoolMcpError(RuntimeError):
    """Base error for everything raised by tarantool_mcp."""


class ConfigurationError(TarantoolMcpError):
    """Raised when connection configuration is missing or invalid."""


class ConnectError(TarantoolMcpError):
    """Raised when the transport cannot be established or has dropped."""


class NotFoundError(TarantoolMcpError):
    """Raised when a space or index name does not exist on the server."""

    def __init__(self, kind: str, name: str, *, space_id: int | None = None) -> None:
        self.kind = kind
        self.name = name
        self.space_id = space_id
        if space_id is None:
            message = f"{kind.capitalize()} '{name}' not found"
        else:
            message = f"{kind.capitalize()} '{name}' not found in space {space_id}"
        super().__init__(message)


class RemoteOperationError(TarantoolMcpError):
    """Raised when Tarantool rejects a request (duplicate key, bad field type, ...)."""

    def __init__(self, operation: str, message: str, *, code: int | None = None) -> None:
        self.operation = operation
        self.code = code
        prefix = f"{operation} failed"
        if code is not None:
            prefix = f"{prefix} (code {code})"
        super().__init__(f"{prefix}: {message}")


__all__ = [
    "ConfigurationError",
    "ConnectError",
    "NotFoundError",
    "RemoteOperationError",
    "TarantoolMcpError",
]
