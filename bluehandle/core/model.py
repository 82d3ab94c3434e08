"""Core data models shared by handles, transports and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ObjectKind(str, Enum):
    ADAPTER = "adapter"
    DEVICE = "device"


class CallStatus(str, Enum):
    """Outcome of a remote write or pass-through operation.

    Only ``OK`` is truthy, so ``if device.set_trusted(True):`` reads naturally.
    """

    OK = "ok"
    UNBOUND = "unbound"
    FAILED = "failed"

    def __bool__(self) -> bool:
        return self is CallStatus.OK


@dataclass(frozen=True)
class ObjectInfo:
    """A remote object as listed by the daemon."""

    ref: str
    kind: ObjectKind
    identity: str
    parent_ref: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
