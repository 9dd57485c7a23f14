"""
Pydantic models for the agent's local state.

An Interface is this device's membership in one network: its keys,
listen port and the current peer snapshot. The reconciliation log
records what was last done to bring the tunnel in line with it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .protocol import Device, Network


class Operation(str, Enum):
    """Kind of reconciliation step recorded in the log."""

    JOIN = "join"
    REFRESH = "refresh"
    APPLY = "apply"
    UP = "up"
    DOWN = "down"


class State(str, Enum):
    """Outcome of a reconciliation step."""

    JOINED = "joined"
    REFRESHED = "refreshed"
    APPLIED = "applied"
    UP = "up"
    DOWN = "down"
    FAILED = "failed"


class Interface(BaseModel):
    """This device's membership in one mesh network.

    ``id`` is 0 until the store assigns one on first insert. ``key`` and
    ``device_token`` are plaintext in memory only; the store encrypts
    them on write.
    """

    id: int = 0
    api_url: str
    network: Network
    device: Device
    listen_port: int = 0
    key: bytes = Field(repr=False)
    device_token: bytes = Field(repr=False)
    peers: list[Device] = Field(default_factory=list)

    @property
    def label(self) -> str:
        """Human-readable identity, ``device@network``."""
        return f"{self.device.name}@{self.network.name}"


class InterfaceLog(BaseModel):
    """A single append-only reconciliation log entry."""

    id: int
    timestamp: datetime
    operation: Operation
    state: State
    dirty: bool = False
    message: str = ""


class InterfaceWithLog(BaseModel):
    """An interface with its most recent log entry, if any."""

    interface: Interface
    log: Optional[InterfaceLog] = None
