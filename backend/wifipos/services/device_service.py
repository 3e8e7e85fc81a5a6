# Overview: Device registration, business binding, and health checks for admin consoles and portals.

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..devices import PortalClient, PortalError, Success, SystemInfo, get_session_manager
from ..extensions import db
from ..models import Business, BusinessIntegration, DeviceRegistry
from ..models.devices import (
    CONNECTION_CONNECTED,
    CONNECTION_DISCONNECTED,
    DEVICE_FAMILIES,
    DEVICE_FAMILY_ESP32,
    DEVICE_FAMILY_R710,
)
from wifipos.time_utils import utcnow
from . import credential_vault
from .token_issuance_service import build_device_config

logger = logging.getLogger(__name__)


class DeviceServiceError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DeviceNotFoundError(DeviceServiceError):
    pass


def get_device(device_id: int) -> DeviceRegistry:
    device = db.session.get(DeviceRegistry, device_id)
    if device is None:
        raise DeviceNotFoundError("Device not found")
    return device


def register_device(
    *,
    device_family: str,
    address: str,
    secret: str,
    admin_username: str | None = None,
    description: str | None = None,
) -> DeviceRegistry:
    """
    Register a device; the admin password (R710) or API key (ESP32) is
    encrypted before it is stored.
    """
    if device_family not in DEVICE_FAMILIES:
        raise DeviceServiceError(f"Invalid device family: {device_family}. Must be one of {list(DEVICE_FAMILIES)}")
    if not address or not address.strip():
        raise DeviceServiceError("address is required")
    if device_family == DEVICE_FAMILY_R710 and not admin_username:
        raise DeviceServiceError("admin_username is required for R710 devices")

    try:
        encrypted = credential_vault.encrypt(secret)
    except credential_vault.CredentialVaultError as exc:
        raise DeviceServiceError(str(exc)) from exc

    device = DeviceRegistry(
        device_family=device_family,
        address=address.strip(),
        admin_username=admin_username,
        encrypted_secret=encrypted,
        description=description,
    )
    db.session.add(device)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DeviceServiceError(
            "A device with this address is already registered",
            details={"device_family": device_family, "address": address},
        ) from exc

    logger.info("Registered %s device %s at %s", device_family, device.id, device.address)
    return device


def bind_business(business_id: int, device_id: int) -> BusinessIntegration:
    """Make device_id the business's active device for its family; any previous binding is deactivated."""
    business = db.session.get(Business, business_id)
    if business is None:
        raise DeviceServiceError("Business not found")
    device = get_device(device_id)

    existing = db.session.query(BusinessIntegration).filter_by(
        business_id=business_id,
        device_family=device.device_family,
        is_active=True,
    ).all()
    for integration in existing:
        if integration.device_registry_id == device.id:
            return integration
        integration.is_active = False

    integration = BusinessIntegration(
        business_id=business_id,
        device_registry_id=device.id,
        device_family=device.device_family,
        is_active=True,
    )
    db.session.add(integration)
    db.session.commit()
    return integration


def _probe_r710(device: DeviceRegistry, session_manager) -> tuple[bool, str | None, SystemInfo | None]:
    manager = session_manager or get_session_manager()
    outcome = manager.with_session(build_device_config(device), lambda api: api.get_system_info())
    if isinstance(outcome, Success):
        return True, None, outcome.data
    return False, outcome.message, None


def _probe_esp32(device: DeviceRegistry, portal_client_factory) -> tuple[bool, str | None, str | None]:
    if portal_client_factory is not None:
        client = portal_client_factory(device)
    else:
        client = PortalClient(
            device.address,
            credential_vault.decrypt(device.encrypted_secret),
            timeout=current_app.config.get("DEVICE_REQUEST_TIMEOUT_SECONDS", 30.0),
        )
    try:
        with client:
            health = client.check_health()
    except PortalError as exc:
        return False, str(exc), None
    return True, None, health.get("version")


def check_device_health(device_id: int, *, session_manager=None, portal_client_factory=None) -> DeviceRegistry:
    """Probe a device and record the result on its registry row."""
    device = get_device(device_id)
    now = utcnow()

    try:
        if device.device_family == DEVICE_FAMILY_ESP32:
            online, error, firmware = _probe_esp32(device, portal_client_factory)
            model = None
        else:
            online, error, info = _probe_r710(device, session_manager)
            firmware = info.firmware_version if info else None
            model = info.model if info else None
    except credential_vault.CredentialVaultError as exc:
        online, error, firmware, model = False, str(exc), None, None

    device.last_health_check = now
    if online:
        device.connection_status = CONNECTION_CONNECTED
        device.last_connected_at = now
        device.last_error = None
        if firmware:
            device.firmware_version = firmware
        if model:
            device.model = model
    else:
        device.connection_status = CONNECTION_DISCONNECTED
        device.last_error = error
        logger.warning("Health check failed for device %s: %s", device.id, error)

    db.session.commit()
    return device


def check_all_devices(*, session_manager=None, portal_client_factory=None) -> list[DeviceRegistry]:
    devices = db.session.query(DeviceRegistry).filter_by(is_active=True).order_by(DeviceRegistry.id).all()
    return [
        check_device_health(d.id, session_manager=session_manager, portal_client_factory=portal_client_factory)
        for d in devices
    ]
