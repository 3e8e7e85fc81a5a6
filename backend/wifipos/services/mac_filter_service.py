# Overview: Blocks client hardware addresses on a business's admin-console device.

from __future__ import annotations

import logging

from ..devices import Success, get_session_manager
from ..extensions import db
from ..mac_address import normalize_mac
from ..models import MacAclEntry
from .token_issuance_service import build_device_config, load_active_device

logger = logging.getLogger(__name__)

# Deny ACL name on the device, one per business
ACL_NAME_TEMPLATE = "wifipos-deny-{business_id}"


class MacFilterError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def list_blocked(business_id: int, device_id: int) -> list[MacAclEntry]:
    return db.session.query(MacAclEntry).filter_by(
        business_id=business_id,
        device_registry_id=device_id,
    ).order_by(MacAclEntry.id).all()


def block_mac(
    *,
    business_id: int,
    mac_address: str,
    created_by: str,
    reason: str | None = None,
    session_manager=None,
) -> MacAclEntry:
    """
    Push the business's deny list plus mac_address to the device, then record it.

    The device ACL is replaced wholesale, so the full list is always sent.
    Nothing is recorded locally unless the device accepted the new list.
    """
    try:
        mac = normalize_mac(mac_address)
    except ValueError as exc:
        raise MacFilterError(str(exc)) from exc

    device = load_active_device(business_id)
    existing = list_blocked(business_id, device.id)
    for entry in existing:
        if entry.mac_address == mac:
            return entry

    macs = [entry.mac_address for entry in existing] + [mac]
    acl_name = ACL_NAME_TEMPLATE.format(business_id=business_id)
    manager = session_manager or get_session_manager()
    outcome = manager.with_session(build_device_config(device), lambda api: api.set_mac_filter(acl_name, macs))
    if not isinstance(outcome, Success):
        raise MacFilterError(outcome.message, details={"mac_address": mac})

    entry = MacAclEntry(
        business_id=business_id,
        device_registry_id=device.id,
        mac_address=mac,
        reason=reason,
        created_by=created_by,
    )
    db.session.add(entry)
    db.session.commit()
    logger.info("Blocked %s on device %s for business %s", mac, device.id, business_id)
    return entry
