"""Unit tests for the signed SwitchBot client."""

import base64
import hashlib
import hmac
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.geoshutoff.exceptions import VendorConnectionError
from core.geoshutoff.switchbot_client import (
    SwitchBotClient,
    describe_vendor_status,
    mask,
    sign,
)


def http_response(status_code=200, json_body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_body
    return response


@pytest.fixture()
def switchbot():
    client = SwitchBotClient("token-abc", "secret-xyz", base_url="https://api.example.test/v1.1/", max_retries=1)
    yield client
    client.session.close()


class TestSigning:
    def test_sign_matches_hmac_sha256(self):
        expected = base64.b64encode(
            hmac.new(b"secret-xyz", b"token-abc1700000000000nonce-1", hashlib.sha256).digest()
        ).decode()
        assert sign("token-abc", "secret-xyz", "1700000000000", "nonce-1") == expected

    def test_sign_is_deterministic(self):
        assert sign("t", "s", "1", "n") == sign("t", "s", "1", "n")

    def test_sign_depends_on_nonce(self):
        assert sign("t", "s", "1", "n1") != sign("t", "s", "1", "n2")

    def test_auth_headers(self, switchbot):
        headers = switchbot.auth_headers(timestamp="1700000000000", nonce="nonce-1")
        assert headers["Authorization"] == "token-abc"
        assert headers["t"] == "1700000000000"
        assert headers["nonce"] == "nonce-1"
        assert headers["sign"] == sign("token-abc", "secret-xyz", "1700000000000", "nonce-1")
        assert headers["Content-Type"] == "application/json"

    def test_auth_headers_fresh_nonce(self, switchbot):
        assert switchbot.auth_headers()["nonce"] != switchbot.auth_headers()["nonce"]


class TestRequests:
    def test_send_command_payload(self, switchbot):
        body = {"statusCode": 100, "message": "success", "body": {}}
        with patch.object(switchbot.session, "request", return_value=http_response(200, body)) as request:
            response = switchbot.send_command("DEV1", "27,2,4,off")

        assert response.ok is True
        assert response.vendor_status == 100
        method, url = request.call_args.args
        assert method == "POST"
        assert url == "https://api.example.test/v1.1/devices/DEV1/commands"
        assert request.call_args.kwargs["json"] == {
            "command": "setAll",
            "parameter": "27,2,4,off",
            "commandType": "command",
        }
        assert 0 < request.call_args.kwargs["timeout"] <= 10

    def test_http_error_is_returned_not_raised(self, switchbot):
        body = {"message": "Unauthorized"}
        with patch.object(switchbot.session, "request", return_value=http_response(401, body)):
            response = switchbot.read_status("DEV1")

        assert response.ok is False
        assert response.status_code == 401
        assert response.vendor_message == "Unauthorized"

    def test_non_json_body(self, switchbot):
        with patch.object(switchbot.session, "request", return_value=http_response(502, text="Bad Gateway")):
            response = switchbot.read_status("DEV1")
        assert response.body == {"raw": "Bad Gateway"}

    def test_retries_connection_error_with_new_signature(self, switchbot):
        body = {"statusCode": 100, "message": "success", "body": {}}
        side_effect = [requests.exceptions.ConnectionError("reset"), http_response(200, body)]
        with patch.object(switchbot.session, "request", side_effect=side_effect) as request:
            response = switchbot.send_command("DEV1", "27,2,4,off")

        assert response.ok is True
        assert request.call_count == 2
        first, second = (c.kwargs["headers"]["nonce"] for c in request.call_args_list)
        assert first != second

    def test_gives_up_after_retries(self, switchbot):
        with patch.object(switchbot.session, "request", side_effect=requests.exceptions.Timeout("slow")) as request:
            with pytest.raises(VendorConnectionError) as exc_info:
                switchbot.send_command("DEV1", "27,2,4,off")

        assert request.call_count == 2
        assert exc_info.value.timed_out is True

    def test_retries_share_one_time_budget(self, switchbot):
        # deadline at 10s; the first attempt ends at 11s, leaving nothing for a retry
        ticks = iter([0.0, 0.0])
        with patch(
            "core.geoshutoff.switchbot_client.time.monotonic", side_effect=lambda: next(ticks, 11.0)
        ), patch.object(
            switchbot.session, "request", side_effect=requests.exceptions.Timeout("slow")
        ) as request:
            with pytest.raises(VendorConnectionError) as exc_info:
                switchbot.send_command("DEV1", "27,2,4,off")

        assert request.call_count == 1
        assert request.call_args.kwargs["timeout"] == 10.0
        assert exc_info.value.timed_out is True

    def test_retry_gets_remaining_budget(self, switchbot):
        body = {"statusCode": 100, "message": "success", "body": {}}
        ticks = iter([0.0, 0.0, 4.0])
        with patch(
            "core.geoshutoff.switchbot_client.time.monotonic", side_effect=lambda: next(ticks, 4.5)
        ), patch.object(
            switchbot.session,
            "request",
            side_effect=[requests.exceptions.ConnectionError("reset"), http_response(200, body)],
        ) as request:
            switchbot.send_command("DEV1", "27,2,4,off")

        assert [c.kwargs["timeout"] for c in request.call_args_list] == [10.0, 6.0]

    def test_other_request_errors_not_retried(self, switchbot):
        with patch.object(
            switchbot.session, "request", side_effect=requests.exceptions.InvalidURL("bad url")
        ) as request:
            with pytest.raises(VendorConnectionError) as exc_info:
                switchbot.read_status("DEV1")

        assert request.call_count == 1
        assert exc_info.value.timed_out is False


class TestListDevices:
    def test_formats_devices_and_remotes(self, switchbot):
        body = {
            "statusCode": 100,
            "message": "success",
            "body": {
                "deviceList": [
                    {"deviceId": "HUB1", "deviceName": "Hub Mini", "deviceType": "Hub Mini", "hubDeviceId": ""},
                ],
                "infraredRemoteList": [
                    {"deviceId": "02-AC", "deviceName": "Living AC", "remoteType": "Air Conditioner",
                     "hubDeviceId": "HUB1"},
                ],
            },
        }
        with patch.object(switchbot.session, "request", return_value=http_response(200, body)):
            devices = switchbot.list_devices()

        assert devices == [
            {"deviceId": "HUB1", "deviceName": "Hub Mini", "deviceType": "Hub Mini",
             "hubDeviceId": "", "category": "device"},
            {"deviceId": "02-AC", "deviceName": "Living AC", "deviceType": "Air Conditioner",
             "hubDeviceId": "HUB1", "category": "infrared"},
        ]

    def test_vendor_error_raises(self, switchbot):
        body = {"statusCode": 190, "message": "wrong deviceId"}
        with patch.object(switchbot.session, "request", return_value=http_response(200, body)):
            with pytest.raises(RuntimeError, match="Failed to list devices"):
                switchbot.list_devices()


class TestHelpers:
    def test_mask(self):
        assert mask("abcdefgh") == "abcd***"
        assert mask(None) == "MISSING"

    def test_describe_vendor_status(self):
        assert describe_vendor_status(100) == []
        assert any("offline" in cause for cause in describe_vendor_status(151))
        assert describe_vendor_status(999) == ["Unknown error - check with SwitchBot support"]
