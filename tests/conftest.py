"""Global test configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

import api
from app import app
from core.geoshutoff.exceptions import VendorConnectionError
from core.geoshutoff.models import Coordinate
from core.geoshutoff.settings import GeofenceSettings
from core.geoshutoff.switchbot_client import TransportResponse

HOME = Coordinate(35.681236, 139.767125)
DEVICE_ID = "02-202401010000-12345678"


def vendor_ok(body=None) -> TransportResponse:
    return TransportResponse(
        ok=True,
        status_code=200,
        body={"statusCode": 100, "message": "success", "body": body or {}},
    )


def vendor_no_history() -> TransportResponse:
    return TransportResponse(
        ok=True,
        status_code=200,
        body={"statusCode": 190, "message": "wrong deviceId", "body": {}},
    )


class FakeSwitchBot:
    """Stands in for SwitchBotClient; records every call."""

    def __init__(self):
        self.commands = []
        self.status_reads = 0
        self.command_response = vendor_ok()
        self.status_response = vendor_no_history()
        self.command_error = None
        self.devices = []

    def send_command(self, device_id, parameter, command="setAll", command_type="command"):
        self.commands.append({
            "device_id": device_id,
            "parameter": parameter,
            "command": command,
            "command_type": command_type,
        })
        if self.command_error is not None:
            raise self.command_error
        return self.command_response

    def read_status(self, device_id):
        self.status_reads += 1
        return self.status_response

    def list_devices(self):
        return self.devices

    def fail_with_status(self, status_code, message="error"):
        self.command_response = TransportResponse(
            ok=False, status_code=status_code, body={"message": message}
        )

    def fail_with_timeout(self):
        self.command_error = VendorConnectionError("read timed out", timed_out=True)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 7, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def settings():
    return GeofenceSettings(
        home_latitude=HOME.latitude,
        home_longitude=HOME.longitude,
        trigger_distance=100,
        device_id=DEVICE_ID,
        switchbot_token="test-token",
        switchbot_secret="test-secret",
    )


@pytest.fixture()
def transport():
    return FakeSwitchBot()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def services(settings, transport, clock):
    return api.build_services(settings, client=transport, clock=clock)


@pytest.fixture()
def client(services):
    """Test client wired to fake services."""
    app.dependency_overrides[api.get_services] = lambda: services
    app.dependency_overrides[api.get_settings] = lambda: services.settings
    client = TestClient(app)
    yield client
    # Clean up
    app.dependency_overrides.clear()
