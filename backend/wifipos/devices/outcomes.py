# Overview: Closed result type returned by every administrative device action.

"""
Device outcomes

Every device action resolves to exactly one of:
- Success(data): the device accepted the command
- DeviceError(message): the device answered and refused (its own text)
- TransportError(message): the device could not be talked to (timeouts,
  refused connections, exhausted re-authentication, unparseable replies)

Callers branch on the type; nothing loosely typed leaves the devices package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


DEVICE_UNREACHABLE = "Device unreachable"


@dataclass(frozen=True)
class Success:
    data: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class DeviceError:
    message: str

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class TransportError:
    message: str = DEVICE_UNREACHABLE

    @property
    def ok(self) -> bool:
        return False


DeviceOutcome = Union[Success, DeviceError, TransportError]
