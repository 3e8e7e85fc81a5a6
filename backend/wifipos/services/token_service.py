# Overview: Token lifecycle after issuance: expiry, disable, purge, package edits, unrecorded-credential audit.

from __future__ import annotations

import logging
import time

from flask import current_app

from ..devices import PortalError, Success, get_session_manager
from ..extensions import db
from ..models import TokenPackageConfig, WifiToken
from ..models.devices import DEVICE_FAMILY_ESP32, DEVICE_FAMILY_R710
from ..models.tokens import (
    TOKEN_STATUS_ACTIVE,
    TOKEN_STATUS_AVAILABLE,
    TOKEN_STATUS_DISABLED,
    TOKEN_STATUS_EXPIRED,
    TOKEN_STATUS_SOLD,
)
from ..models import DeviceRegistry
from wifipos.config import PORTAL_MAX_DISABLE_BATCH
from wifipos.time_utils import utcnow
from . import credential_vault
from .client_sync_service import default_portal_client_factory, find_portal_device
from .concurrency import lock_for_update, run_with_retry
from .token_issuance_service import DURATION_UNIT_MAP, build_device_config, load_active_device

logger = logging.getLogger(__name__)

"""
Token lifecycle (authoritative):

    AVAILABLE -> SOLD -> ACTIVE -> EXPIRED
         \\________\\_______\\-----> DISABLED

- Only AVAILABLE tokens may be purged (rows deleted). Packages are never
  touched by a purge.
- Device-side deletion happens first; a device failure leaves the local
  row unchanged.
- A package is frozen once any token references it.
"""

EDITABLE_PACKAGE_FIELDS = {
    "name",
    "description",
    "duration_value",
    "duration_unit",
    "device_limit",
    "bandwidth_down_mb",
    "bandwidth_up_mb",
    "base_price_cents",
    "is_active",
    "display_order",
    "wlan_id",
}


class TokenServiceError(Exception):
    """Base for token lifecycle errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class TokenNotFoundError(TokenServiceError):
    pass


class TokenStateError(TokenServiceError):
    """Operation not allowed in the token's (or package's) current state."""
    pass


class TokenDeviceError(TokenServiceError):
    """The device refused or could not be reached; nothing changed locally."""
    pass


def list_tokens(business_id: int, status: str | None = None) -> list[WifiToken]:
    query = db.session.query(WifiToken).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(WifiToken.id.desc()).all()


def get_token(token_id: int, business_id: int) -> WifiToken:
    token = db.session.get(WifiToken, token_id)
    if token is None or token.business_id != business_id:
        raise TokenNotFoundError("Token not found")
    return token


def _due_filter(cutoff):
    return (
        WifiToken.status.in_([TOKEN_STATUS_SOLD, TOKEN_STATUS_ACTIVE]),
        WifiToken.expires_at.isnot(None),
        WifiToken.expires_at <= cutoff,
    )


def _expire_local(cutoff) -> int:
    due = lock_for_update(
        db.session.query(WifiToken).filter(
            WifiToken.device_family != DEVICE_FAMILY_ESP32,
            *_due_filter(cutoff),
        )
    ).all()
    for token in due:
        token.status = TOKEN_STATUS_EXPIRED
    db.session.commit()
    return len(due)


def _mark_expired(token_ids: list[int]) -> int:
    tokens = lock_for_update(
        db.session.query(WifiToken).filter(
            WifiToken.id.in_(token_ids),
            WifiToken.status.in_([TOKEN_STATUS_SOLD, TOKEN_STATUS_ACTIVE]),
        )
    ).all()
    for token in tokens:
        token.status = TOKEN_STATUS_EXPIRED
    db.session.commit()
    return len(tokens)


def _expire_on_portal(business_id: int, due: list[tuple[int, str]], portal_client_factory, sleep) -> int:
    device = find_portal_device(business_id)
    if device is None:
        logger.warning(
            "No active portal for business %s; %d due tokens left unexpired", business_id, len(due)
        )
        return 0

    factory = portal_client_factory or default_portal_client_factory
    batch_delay = float(current_app.config.get("PORTAL_DISABLE_BATCH_DELAY_SECONDS", 1.0))
    try:
        client = factory(device)
    except (PortalError, credential_vault.CredentialVaultError) as exc:
        logger.error("Cannot reach portal for business %s: %s", business_id, exc)
        return 0

    expired = 0
    with client:
        for start in range(0, len(due), PORTAL_MAX_DISABLE_BATCH):
            if start:
                sleep(batch_delay)
            batch = due[start:start + PORTAL_MAX_DISABLE_BATCH]
            try:
                client.disable_tokens([username for _, username in batch])
            except PortalError as exc:
                logger.error(
                    "Portal disable failed for business %s after %d tokens: %s", business_id, expired, exc
                )
                break
            token_ids = [token_id for token_id, _ in batch]
            expired += run_with_retry(lambda: _mark_expired(token_ids))
    return expired


def expire_tokens(now=None, *, portal_client_factory=None, sleep=time.sleep) -> int:
    """
    Mark SOLD/ACTIVE tokens whose expiry has passed as EXPIRED.

    Admin-console guest passes lapse on the device by themselves and only
    change locally. Portal tokens are disabled on the portal first, at most
    50 per request with PORTAL_DISABLE_BATCH_DELAY_SECONDS between requests,
    and a batch is marked EXPIRED only once the portal accepted it. Tokens
    of a business whose portal fails stay as they are for the next run.
    """
    cutoff = now or utcnow()
    expired = run_with_retry(lambda: _expire_local(cutoff))

    due_on_portal: dict[int, list[tuple[int, str]]] = {}
    rows = (
        db.session.query(WifiToken.id, WifiToken.username, WifiToken.business_id)
        .filter(WifiToken.device_family == DEVICE_FAMILY_ESP32, *_due_filter(cutoff))
        .order_by(WifiToken.id)
        .all()
    )
    for token_id, username, business_id in rows:
        due_on_portal.setdefault(business_id, []).append((token_id, username))

    for business_id, due in due_on_portal.items():
        expired += _expire_on_portal(business_id, due, portal_client_factory, sleep)

    if expired:
        logger.info("Expired %d WiFi tokens", expired)
    return expired


def _delete_on_device(token: WifiToken, session_manager) -> None:
    if not token.device_object_id or token.device_family != DEVICE_FAMILY_R710 or not token.device_registry_id:
        return

    device = db.session.get(DeviceRegistry, token.device_registry_id)
    if device is None:
        raise TokenDeviceError("Device for token no longer registered", details={"token_id": token.id})

    manager = session_manager or get_session_manager()
    object_id = token.device_object_id
    outcome = manager.with_session(build_device_config(device), lambda api: api.delete_guest_pass(object_id))
    if not isinstance(outcome, Success):
        logger.warning("Device %s refused to delete guest pass %s: %s", device.id, token.username, outcome.message)
        raise TokenDeviceError(outcome.message, details={"token_id": token.id})


def disable_token(token_id: int, business_id: int, *, session_manager=None) -> WifiToken:
    """
    Revoke a token: delete the guest pass on the device, then mark DISABLED.

    Raises:
        TokenNotFoundError: missing or owned by another business
        TokenStateError: already disabled or expired
        TokenDeviceError: device refused/unreachable (local row untouched)
    """
    token = get_token(token_id, business_id)
    if token.status in (TOKEN_STATUS_DISABLED, TOKEN_STATUS_EXPIRED):
        raise TokenStateError(f"Cannot disable a token in {token.status} state")

    _delete_on_device(token, session_manager)

    def _op():
        row = lock_for_update(db.session.query(WifiToken).filter_by(id=token_id)).first()
        row.status = TOKEN_STATUS_DISABLED
        db.session.commit()
        return row

    disabled = run_with_retry(_op)
    logger.info("Disabled token %s for business %s", disabled.username, business_id)
    return disabled


def purge_available_tokens(business_id: int, token_ids: list[int], *, session_manager=None) -> int:
    """
    Delete unsold tokens on the device and locally.

    Every id is checked before any device call; one non-AVAILABLE token
    aborts the whole request.
    """
    if not token_ids:
        raise TokenServiceError("token_ids is required")

    tokens = db.session.query(WifiToken).filter(WifiToken.id.in_(token_ids)).all()
    found = {t.id: t for t in tokens}
    missing = [tid for tid in token_ids if tid not in found or found[tid].business_id != business_id]
    if missing:
        raise TokenNotFoundError("Token not found", details={"token_ids": missing})

    blocked = [t.id for t in tokens if t.status != TOKEN_STATUS_AVAILABLE]
    if blocked:
        raise TokenStateError(
            "Only AVAILABLE tokens can be purged",
            details={"token_ids": blocked},
        )

    purged = 0
    for token in tokens:
        _delete_on_device(token, session_manager)
        db.session.delete(token)
        db.session.commit()
        purged += 1

    logger.info("Purged %d available tokens for business %s", purged, business_id)
    return purged


def find_unrecorded_guest_passes(business_id: int, *, session_manager=None) -> list[str]:
    """
    Usernames present on the business's R710 with no local WifiToken.

    These are the leftovers of sales whose local write failed after the
    device had already minted the credential.
    """
    device = load_active_device(business_id)
    manager = session_manager or get_session_manager()
    outcome = manager.with_session(build_device_config(device), lambda api: api.list_guest_passes())
    if not isinstance(outcome, Success):
        raise TokenDeviceError(outcome.message)

    on_device = {guest.username for guest in outcome.data if guest.username}
    if not on_device:
        return []

    recorded = {
        row[0]
        for row in db.session.query(WifiToken.username).filter(
            WifiToken.business_id == business_id,
            WifiToken.device_family == DEVICE_FAMILY_R710,
            WifiToken.username.in_(on_device),
        ).all()
    }
    unrecorded = sorted(on_device - recorded)
    if unrecorded:
        logger.warning(
            "Device %s holds %d guest passes with no local record for business %s",
            device.id, len(unrecorded), business_id,
        )
    return unrecorded


def update_token_package(package_id: int, business_id: int, **fields) -> TokenPackageConfig:
    package = db.session.get(TokenPackageConfig, package_id)
    if package is None or package.business_id != business_id:
        raise TokenNotFoundError("Token package not found")

    unknown = set(fields) - EDITABLE_PACKAGE_FIELDS
    if unknown:
        raise TokenServiceError(f"Unknown package fields: {sorted(unknown)}")

    if "duration_unit" in fields and fields["duration_unit"] not in DURATION_UNIT_MAP:
        raise TokenServiceError(f"Unsupported duration unit: {fields['duration_unit']}")
    if "base_price_cents" in fields and fields["base_price_cents"] < 0:
        raise TokenServiceError("base_price_cents cannot be negative")

    in_use = db.session.query(WifiToken.id).filter_by(token_package_id=package_id).first()
    if in_use is not None:
        raise TokenStateError(
            "Token package has tokens issued against it and cannot be modified",
            details={"token_package_id": package_id},
        )

    for key, value in fields.items():
        setattr(package, key, value)
    db.session.commit()
    return package
