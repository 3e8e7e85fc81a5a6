"""
Device session manager tests.

Verifies:
- A lapsed session is re-established once and the action retried once
- A second consecutive lapse ends as "Device unreachable"
- Connection failures end as "Device unreachable" and drop the session
- Calls against one device never overlap
"""

import threading
import time

import httpx

from wifipos.devices import DEVICE_UNREACHABLE, DeviceError, Success, TransportError
from wifipos.devices.r710 import DeviceConfig, R710AdminApi
from wifipos.devices.session import DeviceSessionManager


CONFIG = DeviceConfig(device_id=5, address="10.0.0.5", admin_username="super", admin_password="sp-admin")

OK_REPLY = "<ajax-response><response type='object'/></ajax-response>"


class ExpiringConsole:
    """Console whose first N command calls bounce to the login page."""

    def __init__(self, lapses: int = 0, refuse_connections: bool = False):
        self.lapses = lapses
        self.refuse_connections = refuse_connections
        self.logins = 0
        self.commands = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.refuse_connections:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/admin/login.jsp":
            self.logins += 1
            return httpx.Response(302, headers={
                "location": "/admin/dashboard.jsp",
                "HTTP_X_CSRF_TOKEN": f"csrf-{self.logins}",
            })
        self.commands += 1
        if self.lapses > 0:
            self.lapses -= 1
            return httpx.Response(302, headers={"location": "/admin/login.jsp"})
        return httpx.Response(200, text=OK_REPLY)


def _manager(console):
    return DeviceSessionManager(
        api_factory=lambda config: R710AdminApi(config, transport=httpx.MockTransport(console)),
    )


class TestReauthentication:

    def test_lapse_triggers_one_relogin_and_one_retry(self):
        console = ExpiringConsole(lapses=1)
        manager = _manager(console)

        outcome = manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        assert outcome == Success("17")
        assert console.logins == 2
        assert console.commands == 2

    def test_second_lapse_is_device_unreachable(self):
        console = ExpiringConsole(lapses=2)
        manager = _manager(console)

        outcome = manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        assert isinstance(outcome, TransportError)
        assert outcome.message.startswith(DEVICE_UNREACHABLE)
        assert console.logins == 2
        assert console.commands == 2

    def test_session_is_reused_between_calls(self):
        console = ExpiringConsole()
        manager = _manager(console)

        manager.with_session(CONFIG, lambda api: api.delete_guest_pass("1"))
        manager.with_session(CONFIG, lambda api: api.delete_guest_pass("2"))

        assert console.logins == 1
        assert console.commands == 2


class TestTransportFailures:

    def test_connection_refused_is_device_unreachable(self):
        console = ExpiringConsole(refuse_connections=True)
        manager = _manager(console)

        outcome = manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        assert outcome == TransportError(DEVICE_UNREACHABLE)

    def test_failed_session_is_discarded(self):
        console = ExpiringConsole(refuse_connections=True)
        manager = _manager(console)
        manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        console.refuse_connections = False
        outcome = manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        assert outcome == Success("17")
        assert console.logins == 1

    def test_rejected_credentials_are_device_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>login.jsp</html>")

        manager = DeviceSessionManager(
            api_factory=lambda config: R710AdminApi(config, transport=httpx.MockTransport(handler)),
        )
        outcome = manager.with_session(CONFIG, lambda api: api.delete_guest_pass("17"))

        assert isinstance(outcome, DeviceError)


class SlowApi:
    """Tracks how many callers are inside the device at once."""

    active = 0
    peak = 0
    guard = threading.Lock()

    def __init__(self, config):
        self.config = config
        self.is_authenticated = True

    def login(self):
        pass

    def close(self):
        pass

    def work(self):
        with SlowApi.guard:
            SlowApi.active += 1
            SlowApi.peak = max(SlowApi.peak, SlowApi.active)
        time.sleep(0.02)
        with SlowApi.guard:
            SlowApi.active -= 1
        return Success(None)


class TestLeaseSerialization:

    def test_concurrent_calls_on_one_device_queue(self):
        SlowApi.active = SlowApi.peak = 0
        manager = DeviceSessionManager(api_factory=SlowApi)

        threads = [
            threading.Thread(target=manager.with_session, args=(CONFIG, lambda api: api.work()))
            for _ in range(6)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert SlowApi.peak == 1

    def test_different_devices_do_not_block_each_other(self):
        SlowApi.active = SlowApi.peak = 0
        manager = DeviceSessionManager(api_factory=SlowApi)
        configs = [
            DeviceConfig(device_id=i, address=f"10.0.0.{i}", admin_username="a", admin_password="b")
            for i in range(1, 5)
        ]
        barrier = threading.Barrier(len(configs))

        def action(api):
            barrier.wait(timeout=5)
            return api.work()

        threads = [threading.Thread(target=manager.with_session, args=(c, action)) for c in configs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert SlowApi.peak > 1
