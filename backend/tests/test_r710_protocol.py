"""
R710 admin protocol tests against an in-process fake console (httpx.MockTransport).
"""

from urllib.parse import parse_qs

import httpx
import pytest

from wifipos.devices import DeviceError, GuestPass, Success
from wifipos.devices.r710 import (
    AuthenticationFailed,
    DeviceConfig,
    MalformedResponse,
    R710AdminApi,
    SessionExpired,
    SystemInfo,
    parse_ajax_response,
)


CONFIG = DeviceConfig(device_id=1, address="192.168.0.1", admin_username="super", admin_password="sp-admin")

GUEST_REPLY = (
    "<?xml version='1.0' encoding='UTF-8'?>"
    "<ajax-response><response type='object' id='guest-list.1'>"
    "<guest id='17' full-name='DS-260101-120000-ABC' key='K7QX2MPLWZ' wlan='Guest-WiFi' "
    "create-time='1767268800' expire-time='1767873600'/>"
    "</response></ajax-response>"
)


class FakeConsole:
    """Minimal admin console: login, then XML commands guarded by the CSRF token."""

    def __init__(self):
        self.requests = []
        self.command_reply = GUEST_REPLY
        self.login_status = 302
        self.csrf = "csrf-123"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/admin/login.jsp":
            headers = {"location": "/admin/dashboard.jsp"}
            if self.login_status == 302:
                headers["HTTP_X_CSRF_TOKEN"] = self.csrf
                headers["set-cookie"] = "session=abc; Path=/"
            return httpx.Response(self.login_status, headers=headers)
        if request.headers.get("X-CSRF-Token") != self.csrf:
            return httpx.Response(302, headers={"location": "/admin/login.jsp"})
        return httpx.Response(200, text=self.command_reply)


@pytest.fixture
def console():
    return FakeConsole()


@pytest.fixture
def api(console):
    api = R710AdminApi(CONFIG, transport=httpx.MockTransport(console))
    yield api
    api.close()


class TestLogin:

    def test_login_posts_form_and_captures_token(self, api, console):
        api.login()

        assert api.is_authenticated
        form = parse_qs(console.requests[0].content.decode())
        assert form == {"username": ["super"], "password": ["sp-admin"], "ok": ["Log in"]}

    def test_non_redirect_is_authentication_failure(self, api, console):
        console.login_status = 200
        with pytest.raises(AuthenticationFailed):
            api.login()
        assert not api.is_authenticated

    def test_base_url_defaults_to_https(self):
        assert CONFIG.base_url == "https://192.168.0.1"


class TestCommands:

    def test_mint_sends_csrf_and_parses_guest(self, api, console):
        api.login()
        outcome = api.mint_guest_pass(
            username="DS-260101-120000-ABC", duration=7, duration_unit="day",
            device_limit=2, wlan_name="Guest-WiFi",
        )

        assert isinstance(outcome, Success)
        guest = outcome.data
        assert isinstance(guest, GuestPass)
        assert guest.object_id == "17"
        assert guest.password == "K7QX2MPLWZ"
        assert guest.expires_at is not None

        command = console.requests[-1]
        assert command.url.path == "/admin/_conf.jsp"
        assert command.headers["X-CSRF-Token"] == "csrf-123"
        body = command.content.decode()
        assert "action='addobj'" in body
        assert "duration='7'" in body
        assert "duration-unit='day'" in body

    def test_device_error_message_is_returned(self, api, console):
        console.command_reply = "<ajax-response><error msg='Guest pass limit reached'/></ajax-response>"
        api.login()

        outcome = api.delete_guest_pass("17")
        assert outcome == DeviceError("Guest pass limit reached")

    def test_redirect_to_login_is_session_expiry(self, api, console):
        api.login()
        console.csrf = "rotated"

        with pytest.raises(SessionExpired):
            api.set_mac_filter("deny", ["aa:bb:cc:dd:ee:ff"])
        assert not api.is_authenticated

    def test_command_without_login_is_session_expiry(self, api):
        with pytest.raises(SessionExpired):
            api.list_guest_passes()

    def test_unsupported_unit_rejected_locally(self, api, console):
        api.login()
        with pytest.raises(ValueError):
            api.mint_guest_pass(
                username="x", duration=1, duration_unit="month", device_limit=1, wlan_name="w",
            )
        assert len(console.requests) == 1

    def test_system_info(self, api, console):
        console.command_reply = (
            "<ajax-response><response type='object'>"
            "<sysinfo version='200.7.10.202' model='R710' serial='231604000123'/>"
            "</response></ajax-response>"
        )
        api.login()

        outcome = api.get_system_info()
        assert outcome == Success(SystemInfo("200.7.10.202", "R710", "231604000123"))
        assert console.requests[-1].url.path == "/admin/_cmdstat.jsp"


class TestParseAjaxResponse:

    def test_garbage_is_malformed(self):
        with pytest.raises(MalformedResponse):
            parse_ajax_response("<html>Service Unavailable</html>")

    def test_error_without_message(self):
        assert parse_ajax_response("<ajax-response><error/></ajax-response>") == DeviceError(
            "Device rejected the command"
        )
