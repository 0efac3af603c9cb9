"""
Device State Store

In-memory record of the air conditioner's last-known state.
Lives for the process lifetime only; a restart resets it to unknown, which
the dispatcher treats the same as "on" for off-triggers.
"""

import logging
import math
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .exceptions import InvalidInputError
from .models import AirconMode, DeviceState, PowerState, StateSource
from .seasons import MAX_TEMPERATURE, MIN_TEMPERATURE

logger = logging.getLogger(__name__)

_UNSET = object()


class DeviceStateStore:
    """Tracks power/temperature/mode with provenance.

    Writes are field-level merges under a lock, so a manual report and an
    automatic command racing on the same record never lose each other's
    fields.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """Initialize the store in the unknown state.

        Args:
            clock: Returns the current time; defaults to UTC now
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = DeviceState()
        self.lock = threading.Lock()

    def read(self) -> DeviceState:
        """Return a copy of the current state."""
        with self.lock:
            return replace(self._state)

    def write(
        self,
        source: Union[StateSource, str],
        power: Union[PowerState, str, None, object] = _UNSET,
        temperature: Union[float, None, object] = _UNSET,
        mode: Union[AirconMode, str, None, object] = _UNSET,
    ) -> DeviceState:
        """Merge the given fields into the record.

        Omitted fields keep their value; ``last_update`` and ``source`` are
        always refreshed.

        Args:
            source: Who is reporting this state
            power: New power state
            temperature: New target temperature, or None to clear
            mode: New operating mode, or None to clear

        Returns:
            Copy of the state after the write

        Raises:
            InvalidInputError: If a value is not a known enum member, or the
                temperature is not a finite value in the supported range
        """
        try:
            source = StateSource(source)
            if power is not _UNSET:
                power = PowerState(power if power is not None else PowerState.UNKNOWN)
            if mode is not _UNSET and mode is not None:
                mode = AirconMode(mode)
            if temperature is not _UNSET and temperature is not None:
                temperature = float(temperature)
                if not math.isfinite(temperature) or not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
                    raise ValueError(
                        f"temperature must be {MIN_TEMPERATURE}-{MAX_TEMPERATURE}, got {temperature}"
                    )
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Invalid device state value: {e}") from e

        with self.lock:
            if power is not _UNSET:
                self._state.power = power
            if temperature is not _UNSET:
                self._state.temperature = temperature
            if mode is not _UNSET:
                self._state.mode = mode
            self._state.source = source
            self._state.last_update = self._clock()
            snapshot = replace(self._state)

        logger.info(
            f"Device state updated by {source.value}: power={snapshot.power.value}, "
            f"temperature={snapshot.temperature}, "
            f"mode={snapshot.mode.value if snapshot.mode else None}"
        )
        return snapshot

    def reset(self) -> None:
        """Forget everything; back to the process-start state."""
        with self.lock:
            self._state = DeviceState()
