"""Geoshutoff geofence-triggered air conditioner control package."""

# Define public API
__all__ = [
    "GeofenceSettings",
    "Coordinate",
    "PositionSample",
    "DeviceStateStore",
    "SeasonalProfileResolver",
    "TriggerDecisionEngine",
    "CommandDispatcher",
    "GeofenceCoordinator",
    "SwitchBotClient",
]

# Import settings
from .settings import GeofenceSettings

# Import models
from .models import Coordinate, PositionSample

# Import decision core
from .state_store import DeviceStateStore
from .seasons import SeasonalProfileResolver
from .trigger import TriggerDecisionEngine
from .dispatcher import CommandDispatcher
from .coordinator import GeofenceCoordinator

# Import SwitchBot client
from .switchbot_client import SwitchBotClient
