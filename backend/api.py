"""
Geoshutoff API Endpoints
"""

import asyncio
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.geoshutoff.coordinator import GeofenceCoordinator
from core.geoshutoff.dispatcher import CommandDispatcher
from core.geoshutoff.exceptions import (
    ConfigurationError,
    InvalidCoordinateError,
    InvalidInputError,
)
from core.geoshutoff.geodesy import format_coordinates
from core.geoshutoff.models import Coordinate, Intent, PositionSample, StateSource
from core.geoshutoff.seasons import SeasonalProfileResolver
from core.geoshutoff.settings import GeofenceSettings
from core.geoshutoff.state_store import DeviceStateStore
from core.geoshutoff.switchbot_client import SwitchBotClient, mask
from core.geoshutoff.trigger import TriggerDecisionEngine

router = APIRouter()

VERSION = "0.1.0"

# Client timestamps older than this, or further ahead than the skew, are replaced by server time
MAX_SAMPLE_AGE = timedelta(hours=24)
MAX_CLOCK_SKEW = timedelta(seconds=60)

INFRARED_STATE_NOTE = (
    "Infrared devices cannot report their live state; this is the last recorded "
    "state and may differ from the actual device."
)


@dataclass
class Services:
    """Process-wide collaborators, built once from settings."""

    settings: GeofenceSettings
    client: SwitchBotClient
    store: DeviceStateStore
    resolver: SeasonalProfileResolver
    engine: TriggerDecisionEngine
    dispatcher: CommandDispatcher
    coordinator: GeofenceCoordinator


def build_services(
    settings: GeofenceSettings,
    client: Optional[SwitchBotClient] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Services:
    """Wire the decision core from settings.

    Args:
        settings: Loaded settings
        client: Transport override; defaults to a SwitchBotClient
        clock: Time source for the state store and trigger history

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    home = settings.validate()
    resolver = SeasonalProfileResolver(settings.seasonal_profiles)
    client = client or SwitchBotClient(
        settings.switchbot_token,
        settings.switchbot_secret,
        timeout=settings.command_timeout,
        max_retries=settings.command_retries,
    )
    store = DeviceStateStore(clock=clock)
    engine = TriggerDecisionEngine(
        cooldown_seconds=settings.cooldown_seconds,
        hysteresis_meters=settings.hysteresis_meters,
        clock=clock,
    )
    dispatcher = CommandDispatcher(
        client,
        store,
        resolver,
        settings.device_id,
        read_back=settings.read_back,
    )
    coordinator = GeofenceCoordinator(
        home,
        settings.trigger_distance,
        engine,
        dispatcher,
        store,
        trust_remote_off=settings.trust_remote_off,
    )
    return Services(settings, client, store, resolver, engine, dispatcher, coordinator)


settings: Optional[GeofenceSettings] = None
services: Optional[Services] = None
config_error: Optional[ConfigurationError] = None


def load_services_from_config():
    """Load settings from config.yaml/environment and build services."""
    global settings, services, config_error

    try:
        settings = GeofenceSettings.from_env()
        services = build_services(settings)
        config_error = None
        logger.info(
            f"Geofence configured: home=({settings.home_latitude:.4f}, {settings.home_longitude:.4f}), "
            f"trigger distance={settings.trigger_distance}m, device={mask(settings.device_id)}"
        )
    except ConfigurationError as e:
        services = None
        config_error = e
        logger.error(f"Geofence not configured: {e}")


# Load configuration on module import
load_services_from_config()


def get_settings() -> GeofenceSettings:
    if settings is None:
        raise config_error or ConfigurationError("Settings not loaded")
    return settings


def get_services() -> Services:
    if services is None:
        raise config_error or ConfigurationError("Services not initialized")
    return services


class LocationCheckRequest(BaseModel):
    """Request body for a position check."""
    latitude: Optional[Union[float, str]] = None
    longitude: Optional[Union[float, str]] = None
    timestamp: Optional[Union[int, float, str]] = None  # Unix ms


class ControlRequest(BaseModel):
    """Request body for manual air conditioner control."""
    action: str = "off"


class StateReportRequest(BaseModel):
    """Request body for an explicit device state report."""
    power: Optional[str] = None
    temperature: Optional[float] = None
    mode: Optional[str] = None
    # Only manual reports come in over HTTP; the other sources are written internally
    source: Literal["local_manual"] = "local_manual"


def parse_coordinate(latitude, longitude) -> Coordinate:
    """Build a Coordinate from request values (numbers or numeric strings).

    Raises:
        InvalidInputError: If a value is missing
        InvalidCoordinateError: If a value is not numeric or out of range
    """
    if latitude is None or longitude is None:
        raise InvalidInputError("latitude and longitude are required")
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinateError(
            f"Invalid coordinates: latitude={latitude!r}, longitude={longitude!r}"
        ) from None
    return Coordinate(lat, lon)


def resolve_timestamp(timestamp, now: Optional[datetime] = None) -> datetime:
    """Client capture time if plausible, otherwise server time.

    Accepts Unix milliseconds within the last 24 hours and at most 60 seconds
    in the future.
    """
    now = now or datetime.now(timezone.utc)
    if timestamp in (None, ""):
        return now
    try:
        ts_ms = int(float(timestamp))
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"Ignoring unparseable timestamp: {timestamp!r}")
        return now
    if ts_ms <= 0:
        return now

    try:
        captured = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return now
    if now - MAX_SAMPLE_AGE <= captured <= now + MAX_CLOCK_SKEW:
        return captured
    logger.debug(f"Ignoring out-of-window timestamp: {captured.isoformat()}")
    return now


def parse_intent(action: str) -> Intent:
    actions = {"on": Intent.POWER_ON, "off": Intent.POWER_OFF}
    intent = actions.get((action or "").strip().lower())
    if intent is None:
        raise InvalidInputError(f"Invalid action: {action!r}. Allowed: on, off")
    return intent


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Geoshutoff",
        "version": VERSION,
        "configured": services is not None,
        "missing": config_error.missing if config_error else [],
    }


@router.get("/api/config")
async def get_config(current: GeofenceSettings = Depends(get_settings)):
    """Home location and trigger distance, read-only for the client."""
    home = current.home_location
    return {
        "success": True,
        "homeLocation": home.to_dict(),
        "triggerDistance": current.trigger_distance,
        "debugMode": current.debug,
        "readonly": True,
    }


@router.post("/api/location-check")
async def location_check(request: LocationCheckRequest, svc: Services = Depends(get_services)):
    """Check the distance from home and switch the air conditioner off when outside."""
    coordinate = parse_coordinate(request.latitude, request.longitude)
    captured_at = resolve_timestamp(request.timestamp)

    if svc.settings.debug:
        logger.debug(
            f"Location check: ({format_coordinates(coordinate)}) captured {captured_at.isoformat()}"
        )

    result = await svc.coordinator.check_position(PositionSample(coordinate, captured_at))

    response = {
        "success": True,
        "distance": result.distance,
        "triggered": result.triggered,
        "action": result.action,
        "message": result.message,
        "timestamp": result.captured_at.isoformat(),
    }
    if svc.settings.debug:
        response["debug"] = {
            "location": {
                "current": coordinate.to_dict(),
                "home": svc.coordinator.home.to_dict(),
            },
            "threshold": result.threshold,
            "suppressedBy": result.suppressed_by.value if result.suppressed_by else None,
            "controlResult": result.dispatch.vendor_response if result.dispatch else None,
            "coordinator": svc.coordinator.describe(),
        }
    return response


@router.post("/api/aircon/control")
async def control_aircon(request: ControlRequest, svc: Services = Depends(get_services)):
    """Manual on/off with the current season's settings."""
    intent = parse_intent(request.action)
    result = await svc.dispatcher.send(intent, source=StateSource.LOCAL_MANUAL)
    profile = svc.resolver.resolve(intent)

    action = intent.power.value
    response = {
        "success": True,
        "action": action,
        "message": f"Air conditioner turned {action}",
        "parameter": result.command.encoded_parameter,
        "season": profile.season.value,
        "state": result.state.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if svc.settings.debug:
        response["debug"] = {"apiResponse": result.vendor_response}
    return response


@router.get("/api/aircon/state")
async def get_aircon_state(svc: Services = Depends(get_services)):
    """Last recorded air conditioner state."""
    return {
        "success": True,
        "state": svc.store.read().to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "note": INFRARED_STATE_NOTE,
    }


@router.post("/api/aircon/state")
async def report_aircon_state(request: StateReportRequest, svc: Services = Depends(get_services)):
    """Record an explicit state report, e.g. after using the physical remote."""
    fields = request.model_dump(exclude_unset=True)
    source = fields.pop("source", StateSource.LOCAL_MANUAL.value)
    state = svc.store.write(source, **fields)
    return {
        "success": True,
        "message": "Air conditioner state updated",
        "state": state.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/aircon/status")
async def get_remote_status(svc: Services = Depends(get_services)):
    """Diagnostic remote status read. Does not change the recorded state."""
    remote = await svc.dispatcher.read_remote_state()
    return {
        "success": True,
        "remote": remote.to_dict(),
        "local": svc.store.read().to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "note": INFRARED_STATE_NOTE,
    }


@router.get("/api/aircon/settings")
async def get_aircon_settings(svc: Services = Depends(get_services)):
    """Seasonal profiles and the season in effect today."""
    return {"success": True, **svc.resolver.describe()}


@router.get("/api/devices")
async def get_devices(svc: Services = Depends(get_services)):
    """Devices and infrared remotes registered to the SwitchBot account."""
    try:
        devices = await asyncio.to_thread(svc.client.list_devices)
    except RuntimeError as e:
        logger.error(f"Error listing devices: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "success": True,
        "devices": devices,
        "count": len(devices),
        "configuredDeviceFound": any(d["deviceId"] == svc.settings.device_id for d in devices),
    }
