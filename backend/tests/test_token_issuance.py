"""
Token issuance tests.

Verifies:
- A sale writes exactly one token, one sale and (for paid sales) one deposit
- Checks that fail before the device call never reach the device
- Device failures leave no local rows
- A local write failure after a successful mint is logged at CRITICAL
"""

import logging
import re

import pytest

from wifipos.devices import DeviceError, GuestPass, Success, TransportError
from wifipos.models import ExpenseAccountDeposit, TokenSale, WifiToken
from wifipos.models.ledger import DEPOSIT_SOURCE_MANUAL, DEPOSIT_SOURCE_TOKEN_SALE
from wifipos.models.tokens import TOKEN_STATUS_SOLD
from wifipos.services import ledger_service, token_issuance_service
from wifipos.services.token_issuance_service import (
    DeviceRejectedError,
    DeviceUnreachableError,
    DurationConfigurationError,
    IntegrationMissingError,
    TokenIssuanceError,
    TokenPackageNotFoundError,
    TokenPersistenceError,
    map_duration,
)

from conftest import make_package, make_token


def _sell(package, fake_device, amount=500, **overrides):
    kwargs = {
        "business_id": package.business_id,
        "token_package_id": package.id,
        "sale_amount_cents": amount,
        "payment_method": "CASH",
        "sold_by": "cashier-7",
        "session_manager": fake_device,
    }
    kwargs.update(overrides)
    return token_issuance_service.issue_token(**kwargs)


# =============================================================================
# SUCCESSFUL SALES
# =============================================================================


class TestSuccessfulSale:

    def test_paid_sale_records_token_sale_and_deposit(self, db_session, fake_device, week_package):
        issued = _sell(week_package, fake_device, amount=500)

        assert re.match(r"^DS-\d{6}-\d{6}-[A-Z0-9]{3}$", issued.token.username)
        assert issued.token.status == TOKEN_STATUS_SOLD
        assert issued.token.password == "K7QX2MPLWZ"
        assert issued.package_name == "7 Day Pass"
        assert issued.network_ssid == "CafeCentral-Guest"

        assert db_session.query(WifiToken).count() == 1
        sale = db_session.query(TokenSale).one()
        assert sale.token_id == issued.token.id
        assert sale.amount_cents == 500
        assert sale.sale_channel == "POS"

        deposit = db_session.query(ExpenseAccountDeposit).one()
        assert deposit.amount_cents == 500
        assert deposit.source_type == DEPOSIT_SOURCE_TOKEN_SALE
        assert deposit.token_sale_id == sale.id
        assert issued.deposit_id == deposit.id

    def test_duration_is_mapped_to_device_units(self, db_session, fake_device, week_package):
        _sell(week_package, fake_device)

        name, kwargs = fake_device.api.calls[0]
        assert name == "mint_guest_pass"
        assert kwargs["duration"] == 7
        assert kwargs["duration_unit"] == "day"
        assert kwargs["device_limit"] == 2
        assert kwargs["wlan_name"] == "Guest-WiFi"

    def test_deposit_adds_to_existing_balance(self, db_session, fake_device, business, week_package):
        account = ledger_service.get_or_create_token_sales_account(business.id)
        db_session.commit()
        ledger_service.record_deposit(
            account_id=account.id, amount_cents=4000,
            source_type=DEPOSIT_SOURCE_MANUAL, created_by="owner",
        )

        _sell(week_package, fake_device, amount=500)

        db_session.refresh(account)
        assert account.balance_cents == 4500

    def test_free_token_creates_no_deposit(self, db_session, fake_device, week_package):
        issued = _sell(week_package, fake_device, amount=0, payment_method="COMPLIMENTARY")

        assert issued.sale.amount_cents == 0
        assert issued.deposit_id is None
        assert db_session.query(ExpenseAccountDeposit).count() == 0
        assert db_session.query(TokenSale).count() == 1

    def test_direct_channel(self, db_session, fake_device, week_package):
        issued = _sell(week_package, fake_device, sale_channel="DIRECT")
        assert issued.sale.sale_channel == "DIRECT"

    def test_to_dict_carries_credentials(self, db_session, fake_device, week_package):
        payload = _sell(week_package, fake_device).to_dict()
        assert payload["credentials"]["password"] == "K7QX2MPLWZ"
        assert payload["network_ssid"] == "CafeCentral-Guest"
        assert "password" not in payload["token"]


# =============================================================================
# FAILURES BEFORE THE DEVICE CALL
# =============================================================================


class TestPreDeviceFailures:

    def test_foreign_package_reports_not_found(self, db_session, fake_device, other_business, week_package):
        with pytest.raises(TokenPackageNotFoundError) as foreign:
            _sell(week_package, fake_device, business_id=other_business.id)
        with pytest.raises(TokenPackageNotFoundError) as missing:
            _sell(week_package, fake_device, token_package_id=99999)

        assert str(foreign.value) == str(missing.value) == "Token package not found"
        assert fake_device.configs == []

    def test_no_integration_never_calls_device(self, db_session, fake_device, business, guest_wlan):
        # guest_wlan registers a device but nothing binds it to the business
        package = make_package(db_session, business, guest_wlan)

        with pytest.raises(IntegrationMissingError, match="No active R710 integration or device found"):
            _sell(package, fake_device)
        assert fake_device.configs == []
        assert db_session.query(WifiToken).count() == 0

    def test_unmapped_duration_unit_is_fatal(self, db_session, fake_device, business, guest_wlan, r710_integration):
        package = make_package(db_session, business, guest_wlan, duration_unit="month_Months")

        with pytest.raises(DurationConfigurationError):
            _sell(package, fake_device)
        assert fake_device.configs == []

    @pytest.mark.parametrize("overrides", [
        {"sale_amount_cents": -1},
        {"payment_method": "IOU"},
        {"sale_channel": "KIOSK"},
        {"sold_by": ""},
    ])
    def test_invalid_request(self, db_session, fake_device, week_package, overrides):
        with pytest.raises(TokenIssuanceError):
            _sell(week_package, fake_device, **overrides)
        assert fake_device.configs == []

    def test_map_duration(self):
        assert map_duration(7, "day_Days") == (7, "day")
        assert map_duration(3, "hour_Hours") == (3, "hour")
        assert map_duration(1, "week_Weeks") == (1, "week")


# =============================================================================
# DEVICE FAILURES
# =============================================================================


class TestDeviceFailures:

    def test_rejection_text_is_surfaced_verbatim(self, db_session, fake_device, week_package):
        fake_device.api.mint_outcome = DeviceError("Guest pass limit reached")

        with pytest.raises(DeviceRejectedError, match="^Guest pass limit reached$"):
            _sell(week_package, fake_device)

        assert db_session.query(WifiToken).count() == 0
        assert db_session.query(TokenSale).count() == 0
        assert db_session.query(ExpenseAccountDeposit).count() == 0

    def test_unreachable_device_leaves_no_rows(self, db_session, fake_device, week_package):
        fake_device.forced_outcome = TransportError()

        with pytest.raises(DeviceUnreachableError, match="Device unreachable"):
            _sell(week_package, fake_device)

        assert db_session.query(WifiToken).count() == 0
        assert db_session.query(TokenSale).count() == 0
        assert db_session.query(ExpenseAccountDeposit).count() == 0

    def test_mint_is_not_retried(self, db_session, fake_device, week_package):
        fake_device.forced_outcome = TransportError()

        with pytest.raises(DeviceUnreachableError):
            _sell(week_package, fake_device)
        assert len(fake_device.configs) == 1


# =============================================================================
# MINT SUCCEEDS, LOCAL WRITE FAILS
# =============================================================================


class TestPersistenceFailure:

    def test_logged_critical_with_username(self, db_session, fake_device, business, week_package, caplog):
        make_token(db_session, business, week_package, "DS-260101-090000-DUP", status=TOKEN_STATUS_SOLD)
        fake_device.api.mint_outcome = Success(GuestPass(
            object_id="41",
            username="DS-260101-090000-DUP",
            password="ZZZZ9999",
        ))

        with caplog.at_level(logging.CRITICAL, logger="wifipos.services.token_issuance_service"):
            with pytest.raises(TokenPersistenceError) as exc_info:
                _sell(week_package, fake_device, amount=500)

        assert exc_info.value.details["username"] == "DS-260101-090000-DUP"
        critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert critical
        assert "DS-260101-090000-DUP" in critical[0].getMessage()

        # Only the pre-existing token survives; no sale, no deposit
        assert db_session.query(WifiToken).count() == 1
        assert db_session.query(TokenSale).count() == 0
        assert db_session.query(ExpenseAccountDeposit).count() == 0
