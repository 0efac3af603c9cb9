"""
Geoshutoff Configuration Settings

Settings come from three layers, later wins:
built-in defaults, the ``options`` section of config.yaml, environment
variables (as injected by the hosting platform).
"""

import os
import re
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional

import yaml

from .exceptions import ConfigurationError, InvalidCoordinateError
from .models import Coordinate

# Environment variable -> settings field
ENV_VARS = {
    "HOME_LATITUDE": "home_latitude",
    "HOME_LONGITUDE": "home_longitude",
    "TRIGGER_DISTANCE": "trigger_distance",
    "AIRCON_DEVICE_ID": "device_id",
    "SWITCHBOT_TOKEN": "switchbot_token",
    "SWITCHBOT_SECRET": "switchbot_secret",
    "DEBUG_MODE": "debug",
    "COOLDOWN_SECONDS": "cooldown_seconds",
    "HYSTERESIS_METERS": "hysteresis_meters",
    "COMMAND_TIMEOUT": "command_timeout",
    "COMMAND_RETRIES": "command_retries",
    "TRUST_REMOTE_OFF": "trust_remote_off",
    "READ_BACK_AFTER_COMMAND": "read_back",
}

# Config-file keys named after their environment variable
_ALIASES = {
    "aircon_device_id": "device_id",
    "debug_mode": "debug",
    "read_back_after_command": "read_back",
}

_REQUIRED = {
    "home_latitude": "HOME_LATITUDE",
    "home_longitude": "HOME_LONGITUDE",
    "device_id": "AIRCON_DEVICE_ID",
    "switchbot_token": "SWITCHBOT_TOKEN",
    "switchbot_secret": "SWITCHBOT_SECRET",
}


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GeofenceSettings:
    """Configuration for the home geofence and the air conditioner."""

    home_latitude: Optional[float] = None
    home_longitude: Optional[float] = None
    trigger_distance: int = 100  # meters
    device_id: Optional[str] = None
    switchbot_token: Optional[str] = None
    switchbot_secret: Optional[str] = None
    debug: bool = False
    cooldown_seconds: float = 120.0
    hysteresis_meters: float = 10.0
    command_timeout: float = 10.0  # seconds per vendor call, retries included
    command_retries: int = 1  # extra attempts on connection errors
    trust_remote_off: bool = False
    read_back: bool = False  # post-command status poll, logged only
    seasonal_profiles: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Coerce string values coming from env vars or YAML
        try:
            if self.home_latitude not in (None, ""):
                self.home_latitude = float(self.home_latitude)
            else:
                self.home_latitude = None
            if self.home_longitude not in (None, ""):
                self.home_longitude = float(self.home_longitude)
            else:
                self.home_longitude = None
            self.trigger_distance = int(self.trigger_distance)
            self.cooldown_seconds = float(self.cooldown_seconds)
            self.hysteresis_meters = float(self.hysteresis_meters)
            self.command_timeout = float(self.command_timeout)
            self.command_retries = int(self.command_retries)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        self.debug = _to_bool(self.debug)
        self.trust_remote_off = _to_bool(self.trust_remote_off)
        self.read_back = _to_bool(self.read_back)
        self.device_id = self.device_id or None
        self.switchbot_token = self.switchbot_token or None
        self.switchbot_secret = self.switchbot_secret or None
        self.seasonal_profiles = self.seasonal_profiles or {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeofenceSettings":
        """Create from dictionary (camelCase or snake_case keys)."""
        known = {f.name for f in fields(cls)}
        converted = {_camel_to_snake(k): v for k, v in data.items()}
        for alias, name in _ALIASES.items():
            if alias in converted:
                converted.setdefault(name, converted.pop(alias))

        # Nested homeLocation: {latitude, longitude}
        home = converted.pop("home_location", None)
        if isinstance(home, Mapping):
            converted.setdefault("home_latitude", home.get("latitude"))
            converted.setdefault("home_longitude", home.get("longitude"))

        return cls(**{k: v for k, v in converted.items() if k in known})

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        config_path: Optional[str] = None,
    ) -> "GeofenceSettings":
        """Load config.yaml (if present) and overlay environment variables.

        Args:
            environ: Environment mapping; defaults to os.environ
            config_path: YAML file; defaults to $GEOSHUTOFF_CONFIG, then
                ./config.yaml
        """
        environ = os.environ if environ is None else environ
        config_path = config_path or environ.get("GEOSHUTOFF_CONFIG", "config.yaml")

        data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config = yaml.safe_load(f) or {}
            data.update(config.get("options", config))

        data = {_camel_to_snake(k): v for k, v in data.items()}
        for env_name, field_name in ENV_VARS.items():
            if environ.get(env_name) not in (None, ""):
                data[field_name] = environ[env_name]

        return cls.from_dict(data)

    def missing(self) -> list[str]:
        """Environment variable names of required settings that are unset."""
        return [env for name, env in _REQUIRED.items() if getattr(self, name) in (None, "")]

    def validate(self) -> Coordinate:
        """Raise ConfigurationError unless everything needed to run is present.

        Returns:
            The validated home location
        """
        missing = self.missing()
        if missing:
            raise ConfigurationError(
                f"Missing configuration: {', '.join(missing)}", missing=missing
            )
        if self.trigger_distance <= 0:
            raise ConfigurationError(
                f"TRIGGER_DISTANCE must be positive, got {self.trigger_distance}"
            )
        return self.home_location

    @property
    def home_location(self) -> Coordinate:
        if self.home_latitude is None or self.home_longitude is None:
            raise ConfigurationError(
                "Home location is not configured (HOME_LATITUDE, HOME_LONGITUDE)",
                missing=[env for env in ("HOME_LATITUDE", "HOME_LONGITUDE")
                         if getattr(self, _REQUIRED_BY_ENV[env]) is None],
            )
        try:
            return Coordinate(self.home_latitude, self.home_longitude)
        except InvalidCoordinateError as e:
            raise ConfigurationError(f"Invalid home location: {e}") from e


_REQUIRED_BY_ENV = {env: name for name, env in _REQUIRED.items()}
