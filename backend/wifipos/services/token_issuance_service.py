# Overview: Sells a WiFi token: mints the guest pass on the device, then records token, sale and deposit.

"""
Token Issuance

WHY: A sale is only real once the access point has issued the credential,
and the ledger must reflect exactly the sales that happened.

SEQUENCE (a two-step saga, not a distributed transaction):
1. Local checks with no side effects: package ownership, active device
   integration, duration-unit mapping, credential decryption.
2. Mint on the device. This is the only external side effect and it is
   never retried automatically: a retry after an ambiguous failure could
   mint twice.
3. One local transaction: WifiToken(SOLD) + TokenSale + (amount > 0 only)
   Deposit + balance recompute.

If step 3 fails after step 2 succeeded, the device holds a credential with
no local record. That is logged at CRITICAL with the username and surfaces
later through token_service.find_unrecorded_guest_passes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import BusinessIntegration, DeviceRegistry, TokenPackageConfig, TokenSale, WifiToken, Wlan
from ..models.devices import DEVICE_FAMILY_R710
from ..models.ledger import DEPOSIT_SOURCE_TOKEN_SALE
from ..models.tokens import SALE_CHANNEL_POS, SALE_CHANNELS, TOKEN_STATUS_SOLD
from ..devices import DeviceConfig, DeviceError, GuestPass, Success, TransportError, get_session_manager
from wifipos.time_utils import utcnow
from . import credential_vault, ledger_service
from .concurrency import run_with_retry
from .ledger_service import LedgerError
from .username_service import generate_direct_sale_username

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_MOBILE_MONEY = "MOBILE_MONEY"
PAYMENT_BANK_TRANSFER = "BANK_TRANSFER"
PAYMENT_COMPLIMENTARY = "COMPLIMENTARY"

VALID_PAYMENT_METHODS = [
    PAYMENT_CASH,
    PAYMENT_CARD,
    PAYMENT_MOBILE_MONEY,
    PAYMENT_BANK_TRANSFER,
    PAYMENT_COMPLIMENTARY,
]

# Platform duration vocabulary -> device vocabulary
DURATION_UNIT_MAP = {
    "hour_Hours": "hour",
    "day_Days": "day",
    "week_Weeks": "week",
}


# =============================================================================
# ERRORS
# =============================================================================

class TokenIssuanceError(Exception):
    """Base for issuance failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class TokenPackageNotFoundError(TokenIssuanceError):
    """Package missing or owned by another business (reported identically)."""
    pass


class IntegrationMissingError(TokenIssuanceError):
    """Business has no active admin-console device."""
    pass


class ConfigurationError(TokenIssuanceError):
    """Package cannot be expressed on the device. Not retried."""
    pass


class DurationConfigurationError(ConfigurationError):
    """Package duration unit has no device equivalent."""
    pass


class DeviceRejectedError(TokenIssuanceError):
    """The device answered and refused; message is the device's own text."""
    pass


class DeviceUnreachableError(TokenIssuanceError):
    """The device could not be reached or its session could not be restored."""
    pass


class TokenPersistenceError(TokenIssuanceError):
    """Mint succeeded but the local write failed; the device holds an unrecorded credential."""
    pass


@dataclass(frozen=True)
class IssuedToken:
    token: WifiToken
    sale: TokenSale
    package_name: str
    network_ssid: str
    deposit_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "credentials": {
                "username": self.token.username,
                "password": self.token.password,
                "expires_at": self.token.to_dict()["expires_at"],
            },
            "token": self.token.to_dict(),
            "sale": self.sale.to_dict(),
            "package_name": self.package_name,
            "network_ssid": self.network_ssid,
            "deposit_id": self.deposit_id,
        }


# =============================================================================
# LOOKUPS (NO SIDE EFFECTS)
# =============================================================================

def map_duration(duration_value: int, duration_unit: str) -> tuple[int, str]:
    """
    Translate a package duration into the device's vocabulary.

    {7, "day_Days"} -> (7, "day")
    """
    device_unit = DURATION_UNIT_MAP.get(duration_unit)
    if device_unit is None:
        raise DurationConfigurationError(
            f"Unsupported duration unit: {duration_unit}",
            details={"duration_unit": duration_unit, "supported": sorted(DURATION_UNIT_MAP)},
        )
    if duration_value is None or duration_value <= 0:
        raise DurationConfigurationError("Package duration must be positive", details={"duration_value": duration_value})
    return int(duration_value), device_unit


def load_package_for_business(business_id: int, token_package_id: int) -> TokenPackageConfig:
    package = db.session.get(TokenPackageConfig, token_package_id)
    # Foreign packages report exactly like missing ones
    if package is None or package.business_id != business_id:
        raise TokenPackageNotFoundError("Token package not found")
    return package


def load_active_device(business_id: int, device_family: str = DEVICE_FAMILY_R710) -> DeviceRegistry:
    row = (
        db.session.query(BusinessIntegration, DeviceRegistry)
        .join(DeviceRegistry, BusinessIntegration.device_registry_id == DeviceRegistry.id)
        .filter(
            BusinessIntegration.business_id == business_id,
            BusinessIntegration.device_family == device_family,
            BusinessIntegration.is_active.is_(True),
            DeviceRegistry.is_active.is_(True),
        )
        .order_by(BusinessIntegration.id.desc())
        .first()
    )
    if row is None:
        raise IntegrationMissingError(f"No active {device_family} integration or device found")
    return row[1]


def _resolve_wlan(package: TokenPackageConfig, device: DeviceRegistry) -> Wlan:
    wlan = package.wlan
    if wlan is None:
        wlan = db.session.query(Wlan).filter_by(
            business_id=package.business_id,
            device_registry_id=device.id,
            is_active=True,
        ).order_by(Wlan.id).first()
    if wlan is None or not wlan.is_active:
        raise ConfigurationError("Token package has no active guest WLAN")
    if wlan.device_registry_id != device.id:
        raise ConfigurationError("Token package WLAN belongs to a different device")
    return wlan


def build_device_config(device: DeviceRegistry) -> DeviceConfig:
    return DeviceConfig(
        device_id=device.id,
        address=device.address,
        admin_username=device.admin_username or "",
        admin_password=credential_vault.decrypt(device.encrypted_secret),
        timeout=current_app.config.get("DEVICE_REQUEST_TIMEOUT_SECONDS", 30.0),
        verify_tls=current_app.config.get("DEVICE_VERIFY_TLS", False),
    )


def _validate_request(sale_amount_cents, payment_method: str, sold_by: str, sale_channel: str) -> None:
    if not isinstance(sale_amount_cents, int) or isinstance(sale_amount_cents, bool):
        raise TokenIssuanceError("sale_amount_cents must be an integer")
    if sale_amount_cents < 0:
        raise TokenIssuanceError("sale_amount_cents cannot be negative")
    if payment_method not in VALID_PAYMENT_METHODS:
        raise TokenIssuanceError(
            f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}"
        )
    if sale_channel not in SALE_CHANNELS:
        raise TokenIssuanceError(f"Invalid sale channel: {sale_channel}. Must be one of {list(SALE_CHANNELS)}")
    if not sold_by:
        raise TokenIssuanceError("sold_by is required")


# =============================================================================
# ISSUANCE
# =============================================================================

def issue_token(
    *,
    business_id: int,
    token_package_id: int,
    sale_amount_cents: int,
    payment_method: str,
    sold_by: str,
    sale_channel: str = SALE_CHANNEL_POS,
    session_manager=None,
) -> IssuedToken:
    """
    Mint a guest pass on the business's device and record the sale.

    Args:
        business_id: Selling business (already authorized by the caller)
        token_package_id: Package being sold; must belong to business_id
        sale_amount_cents: Price charged; 0 for complimentary tokens
        payment_method: One of VALID_PAYMENT_METHODS
        sold_by: Seller identifier
        sale_channel: POS (default) or DIRECT
        session_manager: Device session manager; defaults to the app's shared one

    Returns:
        IssuedToken with credentials, sale, package name and SSID

    Raises:
        TokenIssuanceError and subclasses; see module docstring for ordering
    """
    _validate_request(sale_amount_cents, payment_method, sold_by, sale_channel)

    package = load_package_for_business(business_id, token_package_id)
    device = load_active_device(business_id)
    duration, duration_unit = map_duration(package.duration_value, package.duration_unit)
    wlan = _resolve_wlan(package, device)
    try:
        config = build_device_config(device)
    except credential_vault.CredentialVaultError as exc:
        raise ConfigurationError(str(exc)) from exc

    username = generate_direct_sale_username()
    package_name = package.name
    network_ssid = wlan.ssid
    manager = session_manager or get_session_manager()

    outcome = manager.with_session(
        config,
        lambda api: api.mint_guest_pass(
            username=username,
            duration=duration,
            duration_unit=duration_unit,
            device_limit=package.device_limit,
            wlan_name=wlan.device_wlan_name,
        ),
    )

    if isinstance(outcome, DeviceError):
        logger.warning("Device %s refused guest pass for business %s: %s", device.id, business_id, outcome.message)
        raise DeviceRejectedError(outcome.message)
    if isinstance(outcome, TransportError):
        logger.warning("Device %s unreachable while minting for business %s: %s", device.id, business_id, outcome.message)
        raise DeviceUnreachableError(outcome.message)
    if not isinstance(outcome, Success) or not isinstance(outcome.data, GuestPass):
        raise DeviceUnreachableError("Unexpected response from device")

    guest: GuestPass = outcome.data
    device_id = device.id

    def _op():
        return _record_sale(
            business_id=business_id,
            package_id=token_package_id,
            device_id=device_id,
            guest=guest,
            fallback_username=username,
            sale_amount_cents=sale_amount_cents,
            payment_method=payment_method,
            sale_channel=sale_channel,
            sold_by=sold_by,
        )

    try:
        token, sale, deposit_id = run_with_retry(_op)
    except (SQLAlchemyError, LedgerError) as exc:
        db.session.rollback()
        logger.critical(
            "Guest pass %r was minted on device %s for business %s but the sale could not be recorded: %s. "
            "The credential exists on the device without a local record.",
            guest.username or username, device_id, business_id, exc,
        )
        raise TokenPersistenceError(
            "Token was created on the device but the sale could not be recorded",
            details={"username": guest.username or username, "device_registry_id": device_id},
        ) from exc

    logger.info(
        "Sold token %s (package %s) for business %s: %s cents via %s",
        token.username, token_package_id, business_id, sale_amount_cents, payment_method,
    )
    return IssuedToken(
        token=token,
        sale=sale,
        package_name=package_name,
        network_ssid=network_ssid,
        deposit_id=deposit_id,
    )


def _record_sale(
    *,
    business_id: int,
    package_id: int,
    device_id: int,
    guest: GuestPass,
    fallback_username: str,
    sale_amount_cents: int,
    payment_method: str,
    sale_channel: str,
    sold_by: str,
):
    now = utcnow()
    account = ledger_service.get_or_create_token_sales_account(business_id)

    token = WifiToken(
        business_id=business_id,
        token_package_id=package_id,
        device_registry_id=device_id,
        device_family=DEVICE_FAMILY_R710,
        username=guest.username or fallback_username,
        password=guest.password,
        device_object_id=guest.object_id or None,
        status=TOKEN_STATUS_SOLD,
        expires_at=guest.expires_at,
    )
    db.session.add(token)
    db.session.flush()

    sale = TokenSale(
        business_id=business_id,
        token_id=token.id,
        expense_account_id=account.id,
        amount_cents=sale_amount_cents,
        payment_method=payment_method,
        sale_channel=sale_channel,
        sold_by=sold_by,
        sold_at=now,
    )
    db.session.add(sale)
    db.session.flush()

    deposit_id = None
    if sale_amount_cents > 0:
        deposit = ledger_service.record_deposit(
            account_id=account.id,
            amount_cents=sale_amount_cents,
            source_type=DEPOSIT_SOURCE_TOKEN_SALE,
            token_sale_id=sale.id,
            created_by=sold_by,
            description=f"WiFi token sale {token.username}",
            commit=False,
        )
        deposit_id = deposit.id

    db.session.commit()
    return token, sale, deposit_id
