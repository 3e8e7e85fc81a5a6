# Overview: Reconciles connected-client projections against the ESP32 portal's active-token report.

"""
Connected Client Sync

The portal controller is a microcontroller; asking it for everything at once
crashes it. The pass therefore:
- pages through active tokens 20 at a time (never more),
- commits each page's upserts before fetching the next,
- sleeps CLIENT_SYNC_PAGE_DELAY_SECONDS between pages,
- only after the whole pass flips unseen projections offline.

Projections are never deleted. An aborted pass leaves earlier pages committed
and flips nothing offline.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..devices import PortalClient, PortalError
from ..devices.portal import PortalToken
from ..extensions import db
from ..mac_address import normalize_mac
from ..models import BusinessIntegration, ConnectedClientProjection, DeviceRegistry, WifiToken
from ..models.devices import DEVICE_FAMILY_ESP32
from ..models.tokens import TOKEN_STATUS_ACTIVE, TOKEN_STATUS_SOLD
from wifipos.config import PORTAL_MAX_PAGE_SIZE
from wifipos.time_utils import utcnow
from . import credential_vault

logger = logging.getLogger(__name__)

PortalClientFactory = Callable[[DeviceRegistry], PortalClient]


class ClientSyncError(Exception):
    """Raised when a business cannot be reconciled."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class ClientSyncResult:
    business_id: int
    clients_checked: int = 0
    clients_updated: int = 0
    clients_removed: int = 0
    tokens_unmatched: int = 0
    pages_fetched: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SyncAllResult:
    businesses_synced: int = 0
    businesses_failed: int = 0
    results: list[ClientSyncResult] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "businesses_synced": self.businesses_synced,
            "businesses_failed": self.businesses_failed,
            "results": [r.to_dict() for r in self.results],
            "errors": {str(k): v for k, v in self.errors.items()},
        }


def default_portal_client_factory(device: DeviceRegistry) -> PortalClient:
    return PortalClient(
        device.address,
        credential_vault.decrypt(device.encrypted_secret),
        timeout=current_app.config.get("DEVICE_REQUEST_TIMEOUT_SECONDS", 30.0),
    )


def find_portal_device(business_id: int) -> DeviceRegistry | None:
    return (
        db.session.query(DeviceRegistry)
        .join(BusinessIntegration, BusinessIntegration.device_registry_id == DeviceRegistry.id)
        .filter(
            BusinessIntegration.business_id == business_id,
            BusinessIntegration.device_family == DEVICE_FAMILY_ESP32,
            BusinessIntegration.is_active.is_(True),
            DeviceRegistry.is_active.is_(True),
        )
        .order_by(BusinessIntegration.id.desc())
        .first()
    )


def _page_size() -> int:
    configured = int(current_app.config.get("CLIENT_SYNC_PAGE_SIZE", PORTAL_MAX_PAGE_SIZE))
    return max(1, min(configured, PORTAL_MAX_PAGE_SIZE))


def _find_local_token(business_id: int, username: str) -> WifiToken | None:
    if not username:
        return None
    return (
        db.session.query(WifiToken)
        .filter(WifiToken.business_id == business_id, WifiToken.username == username)
        .order_by((WifiToken.device_family == DEVICE_FAMILY_ESP32).desc(), WifiToken.id.desc())
        .first()
    )


def _apply_token(
    business_id: int,
    remote: PortalToken,
    now,
    seen: set[tuple[int, str]],
    result: ClientSyncResult,
) -> None:
    token = _find_local_token(business_id, remote.token)
    if token is None:
        logger.warning(
            "Portal reports token %r for business %s with no local record",
            remote.token, business_id,
        )
        result.tokens_unmatched += 1
        return

    online_devices = [d for d in remote.devices if d.online]

    if token.status == TOKEN_STATUS_SOLD and (remote.first_used_at or online_devices or remote.usage_count > 0):
        token.status = TOKEN_STATUS_ACTIVE
        token.first_used_at = token.first_used_at or remote.first_used_at or now
    if token.expires_at is None and remote.expires_at is not None:
        token.expires_at = remote.expires_at
    token.last_synced_at = now

    for client in online_devices:
        result.clients_checked += 1
        try:
            mac = normalize_mac(client.mac)
        except ValueError:
            logger.warning("Skipping client with unparseable MAC %r on token %s", client.mac, token.username)
            continue

        key = (token.id, mac)
        if key in seen:
            continue
        seen.add(key)

        projection = db.session.query(ConnectedClientProjection).filter_by(
            token_id=token.id,
            mac_address=mac,
        ).first()
        if projection is None:
            projection = ConnectedClientProjection(
                business_id=business_id,
                token_id=token.id,
                mac_address=mac,
                first_seen_at=now,
            )
            db.session.add(projection)

        projection.is_online = True
        projection.ip_address = client.current_ip
        projection.hostname = client.hostname or projection.hostname
        projection.device_type = client.device_type or projection.device_type
        projection.bandwidth_used_down_mb = remote.bandwidth_used_down_mb
        projection.bandwidth_used_up_mb = remote.bandwidth_used_up_mb
        projection.usage_count = remote.usage_count
        projection.last_seen_at = now
        projection.last_synced_at = now
        result.clients_updated += 1


def _flip_unseen_offline(business_id: int, seen: set[tuple[int, str]], now) -> int:
    flipped = 0
    online = db.session.query(ConnectedClientProjection).filter_by(
        business_id=business_id,
        is_online=True,
    ).all()
    for projection in online:
        if (projection.token_id, projection.mac_address) in seen:
            continue
        projection.is_online = False
        projection.last_synced_at = now
        flipped += 1
    db.session.commit()
    return flipped


def sync_business(
    business_id: int,
    *,
    portal_client_factory: PortalClientFactory | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ClientSyncResult:
    """
    Reconcile one business's connected clients against its portal device.

    Raises:
        ClientSyncError: no active portal integration, or the portal failed
            mid-pass (pages already committed stay committed)
    """
    device = find_portal_device(business_id)
    if device is None:
        raise ClientSyncError(
            "No active ESP32 integration or device found",
            details={"business_id": business_id},
        )

    factory = portal_client_factory or default_portal_client_factory
    page_size = _page_size()
    page_delay = float(current_app.config.get("CLIENT_SYNC_PAGE_DELAY_SECONDS", 2.0))

    result = ClientSyncResult(business_id=business_id)
    seen: set[tuple[int, str]] = set()
    offset = 0

    try:
        client = factory(device)
    except (PortalError, credential_vault.CredentialVaultError) as exc:
        raise ClientSyncError(str(exc), details={"business_id": business_id}) from exc

    with client:
        while True:
            if result.pages_fetched:
                sleep(page_delay)

            try:
                page = client.list_tokens(
                    status="active",
                    business_id=str(business_id),
                    offset=offset,
                    limit=page_size,
                )
            except PortalError as exc:
                db.session.rollback()
                logger.error(
                    "Client sync for business %s stopped at offset %s: %s",
                    business_id, offset, exc,
                )
                raise ClientSyncError(
                    f"Portal request failed: {exc}",
                    details={"business_id": business_id, "offset": offset, "pages_fetched": result.pages_fetched},
                ) from exc

            result.pages_fetched += 1
            now = utcnow()
            for remote in page.tokens:
                _apply_token(business_id, remote, now, seen, result)
            db.session.commit()

            if not page.has_more or not page.tokens:
                break
            offset += len(page.tokens)

    result.clients_removed = _flip_unseen_offline(business_id, seen, utcnow())

    logger.info(
        "Client sync for business %s: %d pages, %d checked, %d updated, %d offline, %d unmatched",
        business_id, result.pages_fetched, result.clients_checked,
        result.clients_updated, result.clients_removed, result.tokens_unmatched,
    )
    return result


def businesses_with_portal() -> list[int]:
    rows = (
        db.session.query(BusinessIntegration.business_id)
        .join(DeviceRegistry, BusinessIntegration.device_registry_id == DeviceRegistry.id)
        .filter(
            BusinessIntegration.device_family == DEVICE_FAMILY_ESP32,
            BusinessIntegration.is_active.is_(True),
            DeviceRegistry.is_active.is_(True),
        )
        .distinct()
        .order_by(BusinessIntegration.business_id)
        .all()
    )
    return [r[0] for r in rows]


def sync_all(
    *,
    portal_client_factory: PortalClientFactory | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncAllResult:
    """Sync every business with a portal, one at a time; one failure never stops the run."""
    business_delay = float(current_app.config.get("CLIENT_SYNC_BUSINESS_DELAY_SECONDS", 5.0))
    summary = SyncAllResult()

    for index, business_id in enumerate(businesses_with_portal()):
        if index:
            sleep(business_delay)
        try:
            result = sync_business(business_id, portal_client_factory=portal_client_factory, sleep=sleep)
        except (ClientSyncError, SQLAlchemyError) as exc:
            db.session.rollback()
            logger.error("Client sync failed for business %s: %s", business_id, exc)
            summary.businesses_failed += 1
            summary.errors[business_id] = str(exc)
            continue
        summary.businesses_synced += 1
        summary.results.append(result)

    return summary


def list_connected_clients(business_id: int, *, online_only: bool = False) -> list[ConnectedClientProjection]:
    query = db.session.query(ConnectedClientProjection).filter_by(business_id=business_id)
    if online_only:
        query = query.filter(ConnectedClientProjection.is_online.is_(True))
    return query.order_by(ConnectedClientProjection.last_seen_at.desc()).all()
