"""
Simple SwitchBot API v1.1 Client for Geoshutoff

Minimal signed client for sending infrared commands and reading device status.
"""

import base64
import hashlib
import hmac
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .exceptions import VendorConnectionError

logger = logging.getLogger(__name__)

BASE_URL = "https://api.switch-bot.com/v1.1"

# Body-level statusCode values returned with HTTP 200
VENDOR_SUCCESS = 100
VENDOR_NO_HISTORY = 190

VENDOR_STATUS_CAUSES = {
    151: [
        "Device type does not support this command",
        "Device is offline or the hub lost its connection",
        "Check the hub's power and WiFi",
    ],
    152: ["Device not found"],
    160: ["Command is not supported by this device"],
    161: [
        "Command format is invalid",
        "Parameter value is out of range",
        "Command does not match the device type",
    ],
    171: [
        "Hub is out of range of the air conditioner",
        "Infrared learning for the remote is incomplete",
        "Something is physically blocking the infrared path",
    ],
    190: [
        "Device id does not exist or is not registered to this account",
        "For infrared remotes: no command history to report",
    ],
}


def describe_vendor_status(status_code: Optional[int]) -> list[str]:
    """Likely causes for a SwitchBot body statusCode."""
    if status_code == VENDOR_SUCCESS:
        return []
    return VENDOR_STATUS_CAUSES.get(status_code, ["Unknown error - check with SwitchBot support"])


def mask(value: Optional[str], keep: int = 4) -> str:
    """Mask a credential or device id for logging."""
    if not value:
        return "MISSING"
    return value[:keep] + "***"


def sign(token: str, secret: str, timestamp: str, nonce: str) -> str:
    """Base64 HMAC-SHA256 of token + t + nonce, keyed with the secret."""
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{token}{timestamp}{nonce}".encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


@dataclass
class TransportResponse:
    """Raw outcome of one HTTP exchange with the vendor."""

    ok: bool
    status_code: int
    body: Any

    @property
    def vendor_status(self) -> Optional[int]:
        if isinstance(self.body, dict):
            return self.body.get("statusCode")
        return None

    @property
    def vendor_message(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("message")
        return str(self.body) if self.body else None


class SwitchBotClient:
    """Signed SwitchBot REST API client."""

    def __init__(
        self,
        token: str,
        secret: str,
        base_url: str = BASE_URL,
        timeout: float = 10,
        max_retries: int = 1,
    ):
        """Initialize SwitchBot client.

        Args:
            token: SwitchBot open token
            secret: SwitchBot client secret
            base_url: API base URL
            timeout: Budget in seconds for one call, retries included
            max_retries: Extra attempts after a connection error or timeout
        """
        self.token = token
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        # Create a session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.timeout = timeout
        self.max_retries = max_retries

    def auth_headers(self, timestamp: Optional[str] = None, nonce: Optional[str] = None) -> dict[str, str]:
        """Build the signed headers for one request."""
        t = timestamp or str(int(time.time() * 1000))
        nonce = nonce or str(uuid.uuid4())
        return {
            "Authorization": self.token,
            "sign": sign(self.token, self.secret, t, nonce),
            "t": t,
            "nonce": nonce,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> TransportResponse:
        url = f"{self.base_url}{path}"
        last_error: Optional[requests.exceptions.RequestException] = None
        # One budget for the whole call, retries included
        deadline = time.monotonic() + self.timeout

        for attempt in range(self.max_retries + 1):
            started = time.monotonic()
            remaining = deadline - started
            if remaining <= 0:
                logger.warning(f"{method} {path}: no time left for attempt {attempt + 1}")
                break
            if attempt:
                logger.warning(f"Retrying {method} {path} (attempt {attempt + 1}) after: {last_error}")
            try:
                # Fresh signature per attempt; t and nonce must not be reused
                response = self.session.request(
                    method,
                    url,
                    headers=self.auth_headers(),
                    json=json,
                    timeout=remaining,
                )
                elapsed_ms = (time.monotonic() - started) * 1000
                logger.debug(f"{method} {path} -> {response.status_code} in {elapsed_ms:.0f}ms")
                try:
                    body = response.json()
                except ValueError:
                    body = {"raw": response.text}
                return TransportResponse(ok=response.ok, status_code=response.status_code, body=body)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
            except requests.exceptions.RequestException as e:
                raise VendorConnectionError(f"SwitchBot API request failed: {e}") from e

        raise VendorConnectionError(
            f"SwitchBot API unreachable within {self.timeout}s: {last_error}",
            timed_out=last_error is None or isinstance(last_error, requests.exceptions.Timeout),
        ) from last_error

    def send_command(
        self,
        device_id: str,
        parameter: str,
        command: str = "setAll",
        command_type: str = "command",
    ) -> TransportResponse:
        """Send a command to a device.

        Args:
            device_id: SwitchBot device id of the infrared remote
            parameter: Command parameter, e.g. "27,2,4,off"
            command: Command name
            command_type: "command" or "customize"

        Raises:
            VendorConnectionError: If the API cannot be reached
        """
        payload = {"command": command, "parameter": parameter, "commandType": command_type}
        logger.info(f"Sending {command}({parameter}) to device {mask(device_id)}")
        return self._request("POST", f"/devices/{device_id}/commands", json=payload)

    def read_status(self, device_id: str) -> TransportResponse:
        """Read device status. Infrared remotes rarely return anything useful.

        Raises:
            VendorConnectionError: If the API cannot be reached
        """
        return self._request("GET", f"/devices/{device_id}/status")

    def list_devices(self) -> list[dict[str, Any]]:
        """List physical devices and infrared remotes on the account.

        Raises:
            VendorConnectionError: If the API cannot be reached
            RuntimeError: If the API returns an error
        """
        response = self._request("GET", "/devices")
        if not response.ok or response.vendor_status != VENDOR_SUCCESS:
            raise RuntimeError(
                f"Failed to list devices: HTTP {response.status_code} - {response.vendor_message}"
            )

        body = response.body.get("body") or {}
        devices = []
        for device in body.get("deviceList", []):
            devices.append({
                "deviceId": device.get("deviceId"),
                "deviceName": device.get("deviceName"),
                "deviceType": device.get("deviceType"),
                "hubDeviceId": device.get("hubDeviceId"),
                "category": "device",
            })
        for remote in body.get("infraredRemoteList", []):
            devices.append({
                "deviceId": remote.get("deviceId"),
                "deviceName": remote.get("deviceName"),
                "deviceType": remote.get("remoteType"),
                "hubDeviceId": remote.get("hubDeviceId"),
                "category": "infrared",
            })
        return devices
