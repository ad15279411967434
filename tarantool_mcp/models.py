"""Shared types used across the session, resolver and dispatcher modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

# Mirrors the MessagePack value model carried by IPROTO.
TarantoolValue = Union[
    None,
    bool,
    int,
    float,
    str,
    bytes,
    Sequence["TarantoolValue"],
    Mapping[str, "TarantoolValue"],
]

Tuple = Sequence[TarantoolValue]

# (operator, field, operand), forwarded to the server untouched.
UpdateOperation = Sequence[TarantoolValue]

SpaceRef = Union[str, int]
IndexRef = Union[str, int]


@dataclass(frozen=True, slots=True)
class SpaceInfo:
    """A user-defined space as reported by the server."""

    name: str
    id: int

    def as_dict(self) -> dict[str, object]:
        return {"name": self.name, "id": self.id}


__all__ = ["IndexRef", "SpaceInfo", "SpaceRef", "TarantoolValue", "Tuple", "UpdateOperation"]
