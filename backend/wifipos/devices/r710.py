# Overview: Typed wrapper around the R710 admin console's form login and XML command dialect.

"""
R710 Admin Protocol

The admin console speaks a stringly-typed dialect:
- Login is a form POST to /admin/login.jsp; a 302 means success. The
  anti-forgery token comes back in the HTTP_X_CSRF_TOKEN response header and
  the session cookie lands in the client's cookie jar.
- Administrative calls POST an <ajax-request .../> body carrying the
  X-CSRF-Token header. A reply containing <response> is success; one
  containing <error msg="..."> is a device rejection.
- An expired session shows up as a redirect to the login page, a 401/403,
  or the login form served in place of the XML reply.

All parsing of that dialect lives in this module.
"""

from __future__ import annotations

import logging
import random
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from xml.sax.saxutils import escape, unescape

import httpx

from wifipos.time_utils import from_unix_seconds
from .outcomes import DeviceError, DeviceOutcome, Success

logger = logging.getLogger(__name__)


LOGIN_PATH = "/admin/login.jsp"
LOGOUT_PATH = "/admin/_logout.jsp"
CONF_PATH = "/admin/_conf.jsp"
CMDSTAT_PATH = "/admin/_cmdstat.jsp"
CSRF_RESPONSE_HEADER = "HTTP_X_CSRF_TOKEN"

DEVICE_DURATION_UNITS = ("hour", "day", "week")

_ERROR_MSG_RE = re.compile(r"<error[^>]*\bmsg\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_ATTR_ESCAPES = {"'": "&apos;", '"': "&quot;"}


class R710ProtocolError(Exception):
    """Base for protocol-level failures (never a device rejection)."""
    pass


class SessionExpired(R710ProtocolError):
    """The admin session lapsed; the caller may log in again once."""
    pass


class AuthenticationFailed(R710ProtocolError):
    """The console refused the admin credentials."""
    pass


class MalformedResponse(R710ProtocolError):
    """The console answered with something that is not its XML dialect."""
    pass


@dataclass(frozen=True)
class DeviceConfig:
    device_id: int
    address: str
    admin_username: str
    admin_password: str = field(repr=False)
    timeout: float = 30.0
    verify_tls: bool = False

    @property
    def base_url(self) -> str:
        if self.address.startswith(("http://", "https://")):
            return self.address.rstrip("/")
        return f"https://{self.address}"


@dataclass(frozen=True)
class GuestPass:
    object_id: str
    username: str
    password: str
    wlan: str = ""
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    used: bool = False


@dataclass(frozen=True)
class SystemInfo:
    firmware_version: str
    model: str
    serial_number: Optional[str] = None


def _attr(value) -> str:
    return escape(str(value), _ATTR_ESCAPES)


def _updater_id(component: str) -> str:
    return f"{component}.{int(time.time() * 1000)}.{random.randint(0, 9999)}"


def parse_ajax_response(text: str) -> DeviceOutcome:
    """
    Classify a console reply by its markers.

    Returns Success(<response> element) or DeviceError(msg).
    Raises MalformedResponse when neither marker parses.
    """
    error_match = _ERROR_MSG_RE.search(text)
    if error_match or "<error" in text:
        message = unescape(error_match.group(1)) if error_match else ""
        return DeviceError(message or "Device rejected the command")

    if "<response" not in text:
        raise MalformedResponse("Reply carried neither <response> nor <error>")

    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        raise MalformedResponse(f"Unparseable device reply: {exc}") from exc

    response_el = root if root.tag == "response" else root.find(".//response")
    if response_el is None:
        raise MalformedResponse("Reply has no <response> element")
    return Success(response_el)


def _guest_from_element(el: ET.Element) -> GuestPass:
    return GuestPass(
        object_id=el.get("id", ""),
        username=el.get("full-name", ""),
        password=el.get("key") or el.get("x-key") or "",
        wlan=el.get("wlan", ""),
        created_at=from_unix_seconds(el.get("create-time")),
        expires_at=from_unix_seconds(el.get("expire-time")),
        used=el.get("used") is not None or el.get("start-time") not in (None, "", "0"),
    )


class R710AdminApi:
    """
    One admin session against one console.

    Not thread-safe: DeviceSessionManager hands an instance to one caller at
    a time under the device's lease.
    """

    def __init__(self, config: DeviceConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self._csrf_token: Optional[str] = None
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_tls,
            follow_redirects=False,
            transport=transport,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
                "Accept": "*/*",
            },
        )

    @property
    def is_authenticated(self) -> bool:
        return self._csrf_token is not None

    def close(self) -> None:
        self._csrf_token = None
        self._client.close()

    # =========================================================================
    # SESSION
    # =========================================================================

    def login(self) -> None:
        """
        Submit the login form and capture the anti-forgery token.

        Raises AuthenticationFailed if the console does not redirect into
        the dashboard. Transport failures propagate as httpx errors.
        """
        self._csrf_token = None
        response = self._client.post(
            LOGIN_PATH,
            data={
                "username": self.config.admin_username,
                "password": self.config.admin_password,
                "ok": "Log in",
            },
            headers={
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Origin": self.config.base_url,
                "Referer": f"{self.config.base_url}{LOGIN_PATH}",
            },
        )

        if response.status_code != 302:
            raise AuthenticationFailed(f"Login failed with status {response.status_code}")
        if "login.jsp" in response.headers.get("location", ""):
            raise AuthenticationFailed("Login rejected by device")

        token = response.headers.get(CSRF_RESPONSE_HEADER)
        if not token:
            raise AuthenticationFailed("Device did not issue an anti-forgery token")

        self._csrf_token = token
        logger.info("Logged in to device %s at %s", self.config.device_id, self.config.address)

    def logout(self) -> None:
        try:
            self._client.get(LOGOUT_PATH)
        except httpx.HTTPError as exc:
            logger.debug("Logout from device %s failed: %s", self.config.device_id, exc)
        self._csrf_token = None

    @staticmethod
    def _session_lapsed(response: httpx.Response) -> bool:
        if response.status_code in (401, 403):
            return True
        if response.status_code in (301, 302, 303, 307):
            return "login" in response.headers.get("location", "").lower()
        body = response.text
        return "login.jsp" in body and "<response" not in body and "<error" not in body

    def _execute(self, path: str, body: str) -> DeviceOutcome:
        if not self._csrf_token:
            raise SessionExpired("No authenticated session")

        response = self._client.post(
            path,
            content=body.encode("utf-8"),
            headers={
                "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
                "X-CSRF-Token": self._csrf_token,
                "X-Requested-With": "XMLHttpRequest",
                "Referer": f"{self.config.base_url}/admin/dashboard.jsp",
            },
        )

        if self._session_lapsed(response):
            self._csrf_token = None
            raise SessionExpired(f"Session lapsed (status {response.status_code})")

        return parse_ajax_response(response.text)

    # =========================================================================
    # ADMINISTRATIVE ACTIONS
    # =========================================================================

    def mint_guest_pass(
        self,
        *,
        username: str,
        duration: int,
        duration_unit: str,
        device_limit: int,
        wlan_name: str,
    ) -> DeviceOutcome:
        """Create one guest pass; Success carries the GuestPass with its key."""
        if duration_unit not in DEVICE_DURATION_UNITS:
            raise ValueError(f"Unsupported device duration unit: {duration_unit}")
        if duration <= 0:
            raise ValueError("Guest pass duration must be positive")

        body = (
            f"<ajax-request action='addobj' updater='{_updater_id('guest-list')}' comp='guest-list'>"
            f"<guest full-name='{_attr(username)}' duration='{int(duration)}' "
            f"duration-unit='{duration_unit}' limitnumber='{int(device_limit)}' "
            f"wlan='{_attr(wlan_name)}' shared='true' reauth='false'/>"
            f"</ajax-request>"
        )
        outcome = self._execute(CONF_PATH, body)
        if not isinstance(outcome, Success):
            return outcome

        guest_el = outcome.data.find("guest")
        if guest_el is None:
            raise MalformedResponse("Guest creation reply carried no <guest> element")

        guest = _guest_from_element(guest_el)
        if not guest.password:
            raise MalformedResponse("Guest creation reply carried no key")
        return Success(guest)

    def delete_guest_pass(self, object_id: str) -> DeviceOutcome:
        body = (
            f"<ajax-request action='delobj' updater='{_updater_id('guest-list')}' comp='guest-list'>"
            f"<guest id='{_attr(object_id)}'/>"
            f"</ajax-request>"
        )
        outcome = self._execute(CONF_PATH, body)
        if isinstance(outcome, Success):
            return Success(object_id)
        return outcome

    def set_mac_filter(self, acl_name: str, macs: Iterable[str]) -> DeviceOutcome:
        """Replace the deny entries of a named L2 ACL; everything else stays allowed."""
        mac_list = list(macs)
        entries = "".join(f"<deny mac='{_attr(mac)}' type='single'/>" for mac in mac_list)
        body = (
            f"<ajax-request action='updobj' updater='{_updater_id('acl-list')}' comp='acl-list'>"
            f"<acl name='{_attr(acl_name)}' default-mode='allow' EDITABLE='true'>{entries}</acl>"
            f"</ajax-request>"
        )
        outcome = self._execute(CONF_PATH, body)
        if isinstance(outcome, Success):
            return Success(mac_list)
        return outcome

    def list_guest_passes(self) -> DeviceOutcome:
        body = (
            f"<ajax-request action='getconf' DECRYPT_X='true' updater='{_updater_id('guest-list')}' comp='guest-list'>"
            f"<guest self-service='!true'/>"
            f"</ajax-request>"
        )
        outcome = self._execute(CONF_PATH, body)
        if not isinstance(outcome, Success):
            return outcome
        return Success([_guest_from_element(el) for el in outcome.data.iter("guest")])

    def get_system_info(self) -> DeviceOutcome:
        body = (
            f"<ajax-request action='getstat' updater='{_updater_id('system')}' comp='system'>"
            f"<sysinfo/><identity/>"
            f"</ajax-request>"
        )
        outcome = self._execute(CMDSTAT_PATH, body)
        if not isinstance(outcome, Success):
            return outcome

        sysinfo = outcome.data.find(".//sysinfo")
        if sysinfo is None:
            sysinfo = outcome.data
        return Success(SystemInfo(
            firmware_version=sysinfo.get("version", "unknown"),
            model=sysinfo.get("model", "R710"),
            serial_number=sysinfo.get("serial"),
        ))
