"""
ESP32 portal client tests (httpx.MockTransport).
"""

from urllib.parse import parse_qs

import httpx
import pytest

from wifipos.devices import PortalClient, PortalError, PortalValidationError
from wifipos.devices.portal import parse_online_flag


def _client(handler, sleep=None):
    return PortalClient(
        "192.168.4.1", "portal-api-key",
        transport=httpx.MockTransport(handler),
        sleep=sleep if sleep is not None else (lambda seconds: None),
    )


def _listing(tokens):
    return {"success": True, "has_more": False, "offset": 0, "limit": 20, "tokens": tokens}


class TestPageSizeCeiling:

    def test_limit_above_twenty_is_refused_before_any_request(self):
        seen = []
        client = _client(lambda request: seen.append(request) or httpx.Response(200, json={"success": True}))

        with pytest.raises(PortalValidationError):
            client.list_tokens(limit=21)
        assert seen == []

    @pytest.mark.parametrize("limit", [0, -1])
    def test_limit_below_one_is_refused(self, limit):
        client = _client(lambda request: httpx.Response(200, json={"success": True}))
        with pytest.raises(PortalValidationError):
            client.list_tokens(limit=limit)


class TestListTokens:

    def test_query_and_parsing(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "success": True,
                "has_more": True,
                "offset": 20,
                "limit": 20,
                "tokens": [{
                    "token": "ESP-AB12",
                    "status": "active",
                    "bandwidth_used_down": 12.5,
                    "bandwidth_used_up": 1.25,
                    "usage_count": 3,
                    "first_use": 1767268800,
                    "devices": [
                        {"mac": "AA:BB:CC:DD:EE:01", "online": True, "current_ip": "192.168.4.20",
                         "hostname": "pixel-7"},
                        {"mac": "AA:BB:CC:DD:EE:02", "online": False},
                    ],
                }],
            })

        page = _client(handler).list_tokens(business_id="3", offset=20, limit=20)

        params = seen[0].url.params
        assert seen[0].url.path == "/api/tokens/list"
        assert params["api_key"] == "portal-api-key"
        assert params["status"] == "active"
        assert params["offset"] == "20"
        assert params["limit"] == "20"
        assert params["business_id"] == "3"

        assert page.has_more is True
        token = page.tokens[0]
        assert token.token == "ESP-AB12"
        assert token.bandwidth_used_down_mb == 12.5
        assert token.usage_count == 3
        assert token.first_used_at is not None
        assert [d.online for d in token.devices] == [True, False]
        assert token.devices[0].hostname == "pixel-7"

    def test_busy_portal_is_retried_with_growing_waits(self):
        seen = []
        sleeps = []

        def handler(request):
            seen.append(request)
            return httpx.Response(503, headers={"Retry-After": "7"})

        with pytest.raises(PortalError) as exc_info:
            _client(handler, sleep=sleeps.append).list_tokens()

        assert exc_info.value.status_code == 503
        assert len(seen) == 3
        assert sleeps == [7, 14]

    def test_single_busy_reply_then_success(self):
        replies = [
            httpx.Response(503, headers={"Retry-After": "1"}),
            httpx.Response(200, json=_listing([{"token": "ESP-AB12", "usage_count": 1}])),
        ]
        sleeps = []

        page = _client(lambda request: replies.pop(0), sleep=sleeps.append).list_tokens()

        assert [t.token for t in page.tokens] == ["ESP-AB12"]
        assert sleeps == [1]

    def test_unreachable_portal(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(PortalError, match="Portal unreachable"):
            _client(handler).list_tokens()

    def test_unsuccessful_listing(self):
        client = _client(lambda request: httpx.Response(200, json={"success": False, "error": "Invalid API key"}))
        with pytest.raises(PortalError, match="Invalid API key"):
            client.list_tokens()


class TestMalformedReplies:

    @pytest.mark.parametrize(
        "token",
        [
            {"token": "ESP-1", "usage_count": "n/a"},
            {"token": "ESP-1", "bandwidth_used_down": "12MB"},
            {"token": "ESP-1", "devices": ["aa:bb:cc:dd:ee:ff"]},
            "ESP-1",
        ],
    )
    def test_bad_token_fields_raise_portal_error(self, token):
        client = _client(lambda request: httpx.Response(200, json=_listing([token])))
        with pytest.raises(PortalError, match="Malformed portal response"):
            client.list_tokens()

    def test_top_level_list_raises_portal_error(self):
        client = _client(lambda request: httpx.Response(200, json=[{"token": "ESP-1"}]))
        with pytest.raises(PortalError, match="Malformed portal response"):
            client.list_tokens()


class TestOnlineFlag:

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        ("true", True),
        ("TRUE", True),
        (1, True),
        (False, False),
        ("false", False),
        ("0", False),
        (0, False),
        (None, False),
    ])
    def test_parse_online_flag(self, value, expected):
        assert parse_online_flag(value) is expected

    def test_string_false_device_is_offline(self):
        client = _client(lambda request: httpx.Response(200, json=_listing([
            {"token": "ESP-1", "devices": [{"mac": "aa:bb:cc:dd:ee:01", "online": "false"}]},
        ])))
        assert client.list_tokens().tokens[0].devices[0].online is False


class TestDisableTokens:

    def test_posts_comma_separated_codes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "disabled_count": 2, "available_slots": 98})

        assert _client(handler).disable_tokens(["ESP-1", "ESP-2"]) == 2

        request = seen[0]
        form = parse_qs(request.content.decode())
        assert request.method == "POST"
        assert request.url.path == "/api/token/disable"
        assert form["api_key"] == ["portal-api-key"]
        assert form["tokens"] == ["ESP-1,ESP-2"]

    def test_more_than_fifty_refused_before_any_request(self):
        seen = []
        client = _client(lambda request: seen.append(request) or httpx.Response(200, json={"success": True}))

        with pytest.raises(PortalValidationError):
            client.disable_tokens([f"ESP-{i}" for i in range(51)])
        assert seen == []

    def test_rejection(self):
        client = _client(lambda request: httpx.Response(200, json={"success": False, "error": "Unknown token"}))
        with pytest.raises(PortalError, match="Unknown token"):
            client.disable_tokens(["ESP-1"])
