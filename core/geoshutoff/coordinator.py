"""
Geofence Coordinator

Runs one position check end to end:
distance -> trigger decision -> state observation -> dispatch -> history.
"""

import asyncio
import logging

from .dispatcher import CommandDispatcher
from .exceptions import DispatchFailure
from .geodesy import distance as geo_distance
from .geodesy import format_coordinates, format_distance
from .models import (
    CheckResult,
    Coordinate,
    DeviceState,
    Intent,
    PositionSample,
    PowerState,
    StateSource,
)
from .state_store import DeviceStateStore
from .trigger import TriggerDecisionEngine

logger = logging.getLogger(__name__)

ACTION_DEVICE_OFF = "device_off"
ACTION_ALREADY_OFF = "already_off"


class GeofenceCoordinator:
    """Turns position samples into (at most) rate-limited off-commands."""

    def __init__(
        self,
        home: Coordinate,
        threshold: int,
        engine: TriggerDecisionEngine,
        dispatcher: CommandDispatcher,
        store: DeviceStateStore,
        trust_remote_off: bool = False,
    ):
        """Initialize coordinator.

        Args:
            home: Home location
            threshold: Trigger distance in meters
            engine: Trigger decision engine (owns the trigger history)
            dispatcher: Command dispatcher for the air conditioner
            store: Device state store shared with manual control
            trust_remote_off: Skip the off-command when the remote status
                definitely says "off". Off by default: infrared status is
                unreliable and re-sending is the only safe choice.
        """
        self.home = home
        self.threshold = threshold
        self.engine = engine
        self.dispatcher = dispatcher
        self.store = store
        self.trust_remote_off = trust_remote_off
        self._trigger_lock = asyncio.Lock()

    async def check_position(self, sample: PositionSample) -> CheckResult:
        """Evaluate a position sample and switch the air conditioner off if needed.

        Raises:
            InvalidCoordinateError: If the sample coordinate is invalid
            ComputationAnomalyError: If the distance is impossible
            DispatchFailure: If the off-command was sent and failed; the
                attempt still counts toward cooldown
        """
        meters = geo_distance(sample.coordinate, self.home)
        rounded = round(meters)

        logger.debug(
            f"Position check: ({format_coordinates(sample.coordinate)}) {rounded}m from home "
            f"(threshold {self.threshold}m, "
            f"captured {sample.captured_at.isoformat()})"
        )

        async with self._trigger_lock:
            decision = self.engine.evaluate(meters, self.threshold)

            if not decision.should_trigger:
                if decision.suppressed_by is not None:
                    message = (
                        f"Trigger suppressed by {decision.suppressed_by.value} "
                        f"(distance: {format_distance(meters)})"
                    )
                else:
                    message = f"{format_distance(meters)} from home"
                logger.info(message)
                return CheckResult(
                    distance=rounded,
                    triggered=False,
                    action=None,
                    message=message,
                    threshold=self.threshold,
                    captured_at=sample.captured_at,
                    suppressed_by=decision.suppressed_by,
                )

            logger.info(f"Geofence exit: {rounded}m > {self.threshold}m, switching air conditioner off")
            observed, read_remotely = await self._observe_state()

            if self.trust_remote_off and read_remotely and observed.power == PowerState.OFF:
                # Counts as a trigger so cooldown and hysteresis apply to the next samples
                self.engine.record_trigger(meters)
                message = f"Air conditioner already off (distance: {format_distance(meters)})"
                logger.info(f"{message}; skipping command (trust_remote_off enabled)")
                return CheckResult(
                    distance=rounded,
                    triggered=True,
                    action=ACTION_ALREADY_OFF,
                    message=message,
                    threshold=self.threshold,
                    captured_at=sample.captured_at,
                )

            try:
                result = await self.dispatcher.send(Intent.POWER_OFF, source=StateSource.LOCAL_CONTROL)
            except DispatchFailure:
                self.engine.record_trigger(meters)
                raise
            self.engine.record_trigger(meters)

        return CheckResult(
            distance=rounded,
            triggered=True,
            action=ACTION_DEVICE_OFF,
            message=f"Air conditioner turned off (distance: {format_distance(meters)})",
            threshold=self.threshold,
            captured_at=sample.captured_at,
            dispatch=result,
        )

    async def _observe_state(self) -> tuple[DeviceState, bool]:
        """Local state first, then a best-effort remote read when unknown.

        Returns the state and whether it came from a remote read made now.
        The remote read is made only with trust_remote_off, the one case
        where its answer can change what is sent.
        """
        local = self.store.read()
        if local.power != PowerState.UNKNOWN or not self.trust_remote_off:
            logger.debug(f"Local state: {local.power.value} (source {local.source.value})")
            return local, False

        remote = await self.dispatcher.read_remote_state()
        if remote.power != PowerState.UNKNOWN:
            return self.store.write(StateSource.REMOTE_API, power=remote.power), True
        return remote, False

    def describe(self) -> dict:
        """Snapshot for debug output."""
        history = self.engine.history
        return {
            "home": self.home.to_dict(),
            "threshold": self.threshold,
            "cooldownSeconds": self.engine.cooldown.total_seconds(),
            "hysteresisMeters": self.engine.hysteresis_meters,
            "trustRemoteOff": self.trust_remote_off,
            "lastTriggerAt": history.last_trigger_at.isoformat() if history.last_trigger_at else None,
            "lastTriggerDistance": history.last_trigger_distance,
            "state": self.store.read().to_dict(),
        }


def make_sample(latitude, longitude, captured_at=None) -> PositionSample:
    """Build a validated PositionSample from raw values."""
    coordinate = Coordinate(latitude, longitude)
    if captured_at is None:
        return PositionSample(coordinate)
    return PositionSample(coordinate, captured_at)
