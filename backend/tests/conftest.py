"""
Pytest fixtures for WiFi POS backend tests.

Provides test database setup, business/device fixtures, and a fake device
session manager so no test talks to real hardware.
"""

from datetime import datetime, timedelta

import pytest
from cryptography.fernet import Fernet

from wifipos import create_app
from wifipos.extensions import db
from wifipos.devices import DeviceError, GuestPass, Success, SystemInfo
from wifipos.devices.session import EXTENSION_KEY
from wifipos.models import (
    Business,
    BusinessIntegration,
    TokenPackageConfig,
    WifiToken,
    Wlan,
)
from wifipos.models.devices import DEVICE_FAMILY_ESP32, DEVICE_FAMILY_R710
from wifipos.models.tokens import TOKEN_STATUS_AVAILABLE
from wifipos.services import device_service


TEST_CREDENTIAL_KEY = Fernet.generate_key().decode("utf-8")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEVICE_CREDENTIAL_KEY': TEST_CREDENTIAL_KEY,
        'CLIENT_SYNC_PAGE_SIZE': 20,
        'CLIENT_SYNC_PAGE_DELAY_SECONDS': 2.0,
        'CLIENT_SYNC_BUSINESS_DELAY_SECONDS': 5.0,
        'AUTHORIZER': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FAKE DEVICE
# =============================================================================

class FakeDeviceApi:
    """Stands in for R710AdminApi inside a session; records every call."""

    def __init__(self):
        self.calls = []
        self.mint_outcome = None
        self.delete_outcome = None
        self.mac_filter_outcome = None
        self.guest_passes = []
        self.system_info_outcome = None

    def mint_guest_pass(self, **kwargs):
        self.calls.append(("mint_guest_pass", kwargs))
        if self.mint_outcome is not None:
            return self.mint_outcome
        return Success(GuestPass(
            object_id=str(len(self.calls)),
            username=kwargs["username"],
            password="K7QX2MPLWZ",
            wlan=kwargs["wlan_name"],
            expires_at=datetime(2030, 1, 8, 12, 0, 0),
        ))

    def delete_guest_pass(self, object_id):
        self.calls.append(("delete_guest_pass", object_id))
        return self.delete_outcome or Success(object_id)

    def set_mac_filter(self, acl_name, macs):
        macs = list(macs)
        self.calls.append(("set_mac_filter", acl_name, macs))
        return self.mac_filter_outcome or Success(macs)

    def list_guest_passes(self):
        self.calls.append(("list_guest_passes",))
        return Success(list(self.guest_passes))

    def get_system_info(self):
        self.calls.append(("get_system_info",))
        return self.system_info_outcome or Success(SystemInfo(firmware_version="200.7.10.202", model="R710"))


class FakeSessionManager:
    """
    Drop-in for DeviceSessionManager.

    forced_outcome short-circuits the action, like a failed login would.
    """

    def __init__(self):
        self.api = FakeDeviceApi()
        self.configs = []
        self.forced_outcome = None

    def with_session(self, config, action):
        self.configs.append(config)
        if self.forced_outcome is not None:
            return self.forced_outcome
        return action(self.api)


@pytest.fixture(scope='function')
def fake_device(app):
    """Fake session manager, also installed as the app's shared manager."""
    fake = FakeSessionManager()
    previous = app.extensions.get(EXTENSION_KEY)
    app.extensions[EXTENSION_KEY] = fake
    yield fake
    app.extensions[EXTENSION_KEY] = previous


# =============================================================================
# BUSINESSES, DEVICES, PACKAGES
# =============================================================================

@pytest.fixture(scope='function')
def business(db_session):
    business = Business(name="Cafe Central", code="CAFE", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def other_business(db_session):
    business = Business(name="Harbor Hostel", code="HARBOR", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def r710_device(db_session):
    return device_service.register_device(
        device_family=DEVICE_FAMILY_R710,
        address="192.168.0.1",
        admin_username="super",
        secret="sp-admin",
    )


@pytest.fixture(scope='function')
def r710_integration(db_session, business, r710_device):
    return device_service.bind_business(business.id, r710_device.id)


@pytest.fixture(scope='function')
def guest_wlan(db_session, business, r710_device):
    wlan = Wlan(
        business_id=business.id,
        device_registry_id=r710_device.id,
        device_wlan_name="Guest-WiFi",
        ssid="CafeCentral-Guest",
        is_active=True,
    )
    db_session.add(wlan)
    db_session.commit()
    return wlan


def make_package(db_session, business, wlan=None, **overrides) -> TokenPackageConfig:
    values = {
        "business_id": business.id,
        "wlan_id": wlan.id if wlan else None,
        "name": "7 Day Pass",
        "duration_value": 7,
        "duration_unit": "day_Days",
        "device_limit": 2,
        "bandwidth_down_mb": 5000,
        "bandwidth_up_mb": 1000,
        "base_price_cents": 500,
    }
    values.update(overrides)
    package = TokenPackageConfig(**values)
    db_session.add(package)
    db_session.commit()
    return package


@pytest.fixture(scope='function')
def week_package(db_session, business, guest_wlan, r710_integration):
    return make_package(db_session, business, guest_wlan)


def make_token(db_session, business, package, username, status=TOKEN_STATUS_AVAILABLE, **overrides) -> WifiToken:
    values = {
        "business_id": business.id,
        "token_package_id": package.id,
        "device_family": DEVICE_FAMILY_R710,
        "username": username,
        "password": "PW" + username[-4:],
        "status": status,
    }
    values.update(overrides)
    token = WifiToken(**values)
    db_session.add(token)
    db_session.commit()
    return token


@pytest.fixture(scope='function')
def esp32_device(db_session):
    return device_service.register_device(
        device_family=DEVICE_FAMILY_ESP32,
        address="192.168.4.1",
        secret="portal-api-key",
    )


@pytest.fixture(scope='function')
def esp32_integration(db_session, business, esp32_device):
    integration = BusinessIntegration(
        business_id=business.id,
        device_registry_id=esp32_device.id,
        device_family=DEVICE_FAMILY_ESP32,
        is_active=True,
    )
    db_session.add(integration)
    db_session.commit()
    return integration


def actor_headers(actor_id: str = "cashier-7") -> dict:
    """Helper to create the acting-user header."""
    return {'X-Actor-Id': actor_id}


def expires_in(days: int) -> datetime:
    return datetime.utcnow() + timedelta(days=days)


def device_rejection(message: str) -> DeviceError:
    return DeviceError(message)
