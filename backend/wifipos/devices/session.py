# Overview: Per-device admin session leases and the with_session entry point.

"""
Device Session Manager

WHY: An admin console supports effectively one live session. A second login
silently invalidates the first one mid-operation, so every call against a
device goes through that device's lease:

- Leases live in a keyed registry (one per device id), acquired under a
  per-device lock and released on completion or error.
- The authenticated R710AdminApi is cached on the lease and reused.
- A lapsed session triggers exactly one re-login and one retry of the
  pending action. A second consecutive auth failure ends the call as
  TransportError(DEVICE_UNREACHABLE).
- Timeouts and connection failures end the call as
  TransportError(DEVICE_UNREACHABLE) and drop the cached session.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

import httpx
from flask import current_app

from .outcomes import DEVICE_UNREACHABLE, DeviceError, DeviceOutcome, TransportError
from .r710 import (
    AuthenticationFailed,
    DeviceConfig,
    MalformedResponse,
    R710AdminApi,
    SessionExpired,
)

logger = logging.getLogger(__name__)

EXTENSION_KEY = "device_sessions"

DeviceAction = Callable[[R710AdminApi], DeviceOutcome]


@dataclass
class SessionLease:
    device_id: int
    lock: threading.Lock = field(default_factory=threading.Lock)
    api: Optional[R710AdminApi] = None


class SessionRegistry:
    """Keyed registry of per-device leases."""

    def __init__(self):
        self._guard = threading.Lock()
        self._leases: dict[int, SessionLease] = {}

    @contextmanager
    def lease(self, device_id: int) -> Iterator[SessionLease]:
        with self._guard:
            lease = self._leases.get(device_id)
            if lease is None:
                lease = SessionLease(device_id=device_id)
                self._leases[device_id] = lease

        lease.lock.acquire()
        try:
            yield lease
        finally:
            lease.lock.release()

    def close_all(self) -> None:
        with self._guard:
            leases = list(self._leases.values())
        for lease in leases:
            with lease.lock:
                if lease.api is not None:
                    lease.api.close()
                    lease.api = None


class DeviceSessionManager:
    def __init__(
        self,
        registry: SessionRegistry | None = None,
        api_factory: Callable[[DeviceConfig], R710AdminApi] = R710AdminApi,
    ):
        self.registry = registry or SessionRegistry()
        self._api_factory = api_factory

    def with_session(self, config: DeviceConfig, action: DeviceAction) -> DeviceOutcome:
        """
        Run one administrative action inside the device's admin session.

        Returns the action's outcome, or a DeviceError/TransportError when
        the session itself could not be established.
        """
        with self.registry.lease(config.device_id) as lease:
            if lease.api is None or lease.api.config != config:
                if lease.api is not None:
                    lease.api.close()
                lease.api = self._api_factory(config)

            try:
                return self._run(lease.api, action)
            except AuthenticationFailed as exc:
                logger.warning("Device %s refused admin login: %s", config.device_id, exc)
                self._discard(lease)
                return DeviceError(str(exc))
            except SessionExpired as exc:
                logger.error(
                    "Device %s session expired again after re-authentication: %s",
                    config.device_id, exc,
                )
                self._discard(lease)
                return TransportError(DEVICE_UNREACHABLE)
            except httpx.TransportError as exc:
                logger.warning("Device %s unreachable: %s", config.device_id, exc)
                self._discard(lease)
                return TransportError(DEVICE_UNREACHABLE)
            except MalformedResponse as exc:
                logger.error("Device %s sent an unexpected reply: %s", config.device_id, exc)
                self._discard(lease)
                return TransportError("Unexpected response from device")

    def _run(self, api: R710AdminApi, action: DeviceAction) -> DeviceOutcome:
        if not api.is_authenticated:
            api.login()

        try:
            return action(api)
        except SessionExpired:
            logger.info("Device %s session lapsed; re-authenticating once", api.config.device_id)

        try:
            api.login()
        except AuthenticationFailed as exc:
            raise SessionExpired(f"Re-authentication failed: {exc}") from exc

        return action(api)

    @staticmethod
    def _discard(lease: SessionLease) -> None:
        if lease.api is not None:
            lease.api.close()
            lease.api = None


def get_session_manager() -> DeviceSessionManager:
    """The application's shared manager (one registry per process)."""
    manager = current_app.extensions.get(EXTENSION_KEY)
    if manager is None:
        manager = DeviceSessionManager()
        current_app.extensions[EXTENSION_KEY] = manager
    return manager
