"""
Trigger Decision Engine

Decides whether a distance sample should fire the off-command.

Guard chain, first match wins:
1. within threshold         -> no trigger
2. inside cooldown window   -> suppressed
3. within hysteresis margin -> suppressed (GPS jitter at the same spot)
4. otherwise                -> trigger

There is no inside/outside mode; the only memory is the last trigger's
time and distance.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .models import Suppression, TriggerDecision, TriggerHistory, TriggerReason

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 120
DEFAULT_HYSTERESIS_METERS = 10.0


class TriggerDecisionEngine:
    """Stateless evaluation over a two-field trigger history."""

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        hysteresis_meters: float = DEFAULT_HYSTERESIS_METERS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.hysteresis_meters = hysteresis_meters
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._history = TriggerHistory()
        self.lock = threading.Lock()

    @property
    def history(self) -> TriggerHistory:
        with self.lock:
            return replace(self._history)

    def evaluate(
        self,
        distance: float,
        threshold: float,
        now: Optional[datetime] = None,
    ) -> TriggerDecision:
        """Decide whether ``distance`` should trigger the off-command.

        Args:
            distance: Distance from home in meters
            threshold: Trigger distance in meters
            now: Evaluation time; defaults to the engine clock

        Returns:
            TriggerDecision; never triggers when distance <= threshold
        """
        if distance <= threshold:
            return TriggerDecision(distance, False, TriggerReason.WITHIN_THRESHOLD)

        now = now or self._clock()
        history = self.history

        if history.last_trigger_at is not None:
            elapsed = now - history.last_trigger_at
            if elapsed < self.cooldown:
                logger.debug(
                    f"Suppressed by cooldown: {elapsed.total_seconds():.0f}s since last trigger"
                )
                return TriggerDecision(
                    distance, False, TriggerReason.OVER_THRESHOLD, Suppression.COOLDOWN
                )

            if (history.last_trigger_distance is not None and
                    abs(distance - history.last_trigger_distance) < self.hysteresis_meters):
                logger.debug(
                    f"Suppressed by hysteresis: {distance:.1f}m vs "
                    f"{history.last_trigger_distance:.1f}m at last trigger"
                )
                return TriggerDecision(
                    distance, False, TriggerReason.OVER_THRESHOLD, Suppression.HYSTERESIS
                )

        return TriggerDecision(distance, True, TriggerReason.OVER_THRESHOLD)

    def record_trigger(self, distance: float, at: Optional[datetime] = None) -> TriggerHistory:
        """Remember a dispatch attempt, successful or not."""
        with self.lock:
            self._history = TriggerHistory(
                last_trigger_at=at or self._clock(),
                last_trigger_distance=distance,
            )
            snapshot = replace(self._history)

        logger.info(f"Recorded trigger at {snapshot.last_trigger_at.isoformat()} ({distance:.0f}m)")
        return snapshot

    def reset(self) -> None:
        with self.lock:
            self._history = TriggerHistory()
