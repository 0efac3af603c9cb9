"""
Seasonal Air Conditioner Profiles

Maps the calendar month to a season and each (season, intent) pair to the
temperature/mode/fan triple sent with a setAll command.

The table is data: DEFAULT_SEASONAL_TABLE is used unless ``seasonal_profiles``
is set in config.yaml. Layout:

    seasonal_profiles:
      summer:
        on:  {temperature: 26, mode: cool, fanSpeed: auto}
        off: {temperature: 27, mode: cool, fanSpeed: auto}
"""

import logging
from datetime import date
from typing import Any, Optional

from .exceptions import ConfigurationError, InvalidInputError
from .models import AirconMode, FanSpeed, Intent, PowerState, Season, SeasonalProfile

logger = logging.getLogger(__name__)

MIN_TEMPERATURE = 16
MAX_TEMPERATURE = 30

_SEASON_MONTHS = {
    Season.SPRING: (3, 4, 5),
    Season.SUMMER: (6, 7, 8),
    Season.AUTUMN: (9, 10, 11),
}

DEFAULT_SEASONAL_TABLE: dict[str, dict[str, dict[str, Any]]] = {
    "spring": {
        "on": {"temperature": 27, "mode": "auto", "fan_speed": "auto"},
        "off": {"temperature": 27, "mode": "auto", "fan_speed": "auto"},
    },
    "summer": {
        "on": {"temperature": 27, "mode": "cool", "fan_speed": "auto"},
        "off": {"temperature": 27, "mode": "cool", "fan_speed": "auto"},
    },
    "autumn": {
        "on": {"temperature": 28, "mode": "auto", "fan_speed": "auto"},
        "off": {"temperature": 28, "mode": "auto", "fan_speed": "auto"},
    },
    "winter": {
        "on": {"temperature": 22, "mode": "heat", "fan_speed": "auto"},
        "off": {"temperature": 22, "mode": "auto", "fan_speed": "auto"},
    },
}


def season_for_month(month: int) -> Season:
    """Meteorological season for a month number (1-12)."""
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInputError(f"Month must be 1-12, got {month!r}")

    for season, months in _SEASON_MONTHS.items():
        if month in months:
            return season
    return Season.WINTER


def _power_key(key) -> str:
    # YAML 1.1 loads bare on/off keys as booleans
    if key is True:
        return "on"
    if key is False:
        return "off"
    if key not in ("on", "off"):
        raise ConfigurationError(f"Profile key must be 'on' or 'off', got {key!r}")
    return key


def _parse_profile(season: Season, power: PowerState, raw: dict) -> SeasonalProfile:
    where = f"seasonal_profiles.{season.value}.{power.value}"
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{where} must be a mapping")

    fan_raw = raw.get("fan_speed", raw.get("fanSpeed"))
    try:
        temperature = int(raw["temperature"])
        mode = AirconMode(raw["mode"])
        fan_speed = FanSpeed(fan_raw)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid profile {where}: {e}") from e

    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ConfigurationError(
            f"{where}.temperature must be {MIN_TEMPERATURE}-{MAX_TEMPERATURE}, got {temperature}"
        )

    return SeasonalProfile(
        season=season,
        temperature=temperature,
        mode=mode,
        fan_speed=fan_speed,
        power=power,
    )


class SeasonalProfileResolver:
    """Resolves the climate profile to send for an intent.

    Pure apart from reading today's date when no month is given.
    """

    def __init__(self, table: Optional[dict] = None):
        """Build the lookup table.

        Args:
            table: season -> {"on"|"off" -> profile dict}; defaults to
                DEFAULT_SEASONAL_TABLE. Missing seasons fall back to the
                defaults.

        Raises:
            ConfigurationError: If an entry is malformed or out of range
        """
        merged = {season: dict(entries) for season, entries in DEFAULT_SEASONAL_TABLE.items()}
        for season_name, entries in (table or {}).items():
            if season_name not in merged:
                raise ConfigurationError(f"Unknown season in seasonal_profiles: {season_name}")
            for key, profile in (entries or {}).items():
                merged[season_name][_power_key(key)] = profile

        self._profiles: dict[tuple[Season, PowerState], SeasonalProfile] = {}
        for season in Season:
            for power in (PowerState.ON, PowerState.OFF):
                raw = merged[season.value].get(power.value)
                if raw is None:
                    raise ConfigurationError(
                        f"Missing profile seasonal_profiles.{season.value}.{power.value}"
                    )
                self._profiles[(season, power)] = _parse_profile(season, power, raw)

        if table:
            logger.info(f"Loaded custom seasonal profiles for: {sorted(table)}")

    def resolve(self, intent: Intent, month: Optional[int] = None) -> SeasonalProfile:
        """Profile for ``intent`` in the given month (default: current month)."""
        if month is None:
            month = date.today().month
        season = season_for_month(month)
        return self._profiles[(season, Intent(intent).power)]

    def encode(self, intent: Intent, month: Optional[int] = None) -> str:
        return self.resolve(intent, month).encode()

    def describe(self, month: Optional[int] = None) -> dict[str, Any]:
        """Whole table plus the current season, for the settings endpoint."""
        if month is None:
            month = date.today().month
        return {
            "currentSeason": season_for_month(month).value,
            "modes": {mode.value: mode.code for mode in AirconMode},
            "fanSpeeds": {fan.value: fan.code for fan in FanSpeed},
            "settings": {
                season.value: {
                    power.value: self._profiles[(season, power)].to_dict()
                    for power in (PowerState.ON, PowerState.OFF)
                }
                for season in Season
            },
        }
