"""
Geoshutoff Data Models

Value objects passed between the geodesy, trigger, dispatch and coordination
layers. Only DeviceState and TriggerHistory outlive a single decision cycle.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .exceptions import InvalidCoordinateError


class PowerState(str, Enum):
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"


class StateSource(str, Enum):
    """Who last wrote the device state record."""

    LOCAL_MANUAL = "local_manual"
    LOCAL_CONTROL = "local_control"
    REMOTE_API = "remote_api"
    UNKNOWN = "unknown"


class Intent(str, Enum):
    POWER_ON = "power_on"
    POWER_OFF = "power_off"

    @property
    def power(self) -> PowerState:
        return PowerState.ON if self is Intent.POWER_ON else PowerState.OFF


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class AirconMode(str, Enum):
    """Operating modes; ``code`` is the SwitchBot setAll mode number."""

    AUTO = "auto"
    COOL = "cool"
    HEAT = "heat"
    FAN = "fan"
    DEHUMIDIFY = "dehumidify"

    @property
    def code(self) -> int:
        return _MODE_CODES[self]


class FanSpeed(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    AUTO = "auto"

    @property
    def code(self) -> int:
        return _FAN_CODES[self]


_MODE_CODES = {
    AirconMode.AUTO: 1,
    AirconMode.COOL: 2,
    AirconMode.HEAT: 3,
    AirconMode.FAN: 4,
    AirconMode.DEHUMIDIFY: 5,
}

_FAN_CODES = {
    FanSpeed.LOW: 1,
    FanSpeed.MEDIUM: 2,
    FanSpeed.HIGH: 3,
    FanSpeed.AUTO: 4,
}


class TriggerReason(str, Enum):
    OVER_THRESHOLD = "over_threshold"
    WITHIN_THRESHOLD = "within_threshold"


class Suppression(str, Enum):
    COOLDOWN = "cooldown"
    HYSTERESIS = "hysteresis"


@dataclass(frozen=True)
class Coordinate:
    """A validated WGS84 point. Out-of-range values are rejected, never clamped."""

    latitude: float
    longitude: float

    def __post_init__(self):
        for name, value, limit in (
            ("latitude", self.latitude, 90.0),
            ("longitude", self.longitude, 180.0),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidCoordinateError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or not -limit <= value <= limit:
                raise InvalidCoordinateError(
                    f"{name} out of range [-{limit:g}, {limit:g}]: {value!r}"
                )

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class PositionSample:
    """A single position report from the tracked device."""

    coordinate: Coordinate
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class TriggerDecision:
    distance_meters: float
    should_trigger: bool
    reason: TriggerReason
    suppressed_by: Optional[Suppression] = None


@dataclass
class DeviceState:
    """Last-known actuator state.

    Infrared actuators cannot report their live state, so this is what we
    last commanded or were told, not what the device is doing.
    """

    power: PowerState = PowerState.UNKNOWN
    temperature: Optional[float] = None
    mode: Optional[AirconMode] = None
    last_update: Optional[datetime] = None
    source: StateSource = StateSource.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "power": self.power.value,
            "temperature": self.temperature,
            "mode": self.mode.value if self.mode else None,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class SeasonalProfile:
    season: Season
    temperature: int
    mode: AirconMode
    fan_speed: FanSpeed
    power: PowerState

    def encode(self) -> str:
        """SwitchBot setAll parameter: ``temperature,mode,fan,power``."""
        return f"{self.temperature},{self.mode.code},{self.fan_speed.code},{self.power.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "season": self.season.value,
            "temperature": self.temperature,
            "mode": self.mode.value,
            "fanSpeed": self.fan_speed.value,
            "power": self.power.value,
        }


@dataclass(frozen=True)
class ControlCommand:
    intent: Intent
    encoded_parameter: str
    command: str = "setAll"
    command_type: str = "command"

    def payload(self) -> dict[str, str]:
        return {
            "command": self.command,
            "parameter": self.encoded_parameter,
            "commandType": self.command_type,
        }


@dataclass
class TriggerHistory:
    last_trigger_at: Optional[datetime] = None
    last_trigger_distance: Optional[float] = None


@dataclass
class DispatchResult:
    success: bool
    vendor_response: Any
    command: ControlCommand
    state: DeviceState


@dataclass
class CheckResult:
    """Outcome of one position check, shaped for the API response."""

    distance: int
    triggered: bool
    action: Optional[str]
    message: str
    threshold: int
    captured_at: datetime
    suppressed_by: Optional[Suppression] = None
    dispatch: Optional[DispatchResult] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "distance": self.distance,
            "triggered": self.triggered,
            "action": self.action,
            "message": self.message,
            "threshold": self.threshold,
            "captured_at": self.captured_at.isoformat(),
            "suppressed_by": self.suppressed_by.value if self.suppressed_by else None,
        }
