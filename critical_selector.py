"""
FarmSense - Critical-Condition Selector
Nominates one animal as critical and holds that designation for a fixed time.

One selector is owned by the application and shared by the read API and the
simulator, so every reader sees the same selection.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Iterable
import logging
import random
import threading

from alert_engine import record_field

logger = logging.getLogger(__name__)


# ============================================================================
# ELIGIBILITY
# ============================================================================

CRITICAL_TEMP_THRESHOLD = 40.0        # °C
CRITICAL_HEART_RATE_THRESHOLD = 100   # bpm


def is_eligible(record) -> bool:
    """A record qualifies when it runs a fever or a high heart rate."""
    temperature = record_field(record, 'temperature_c')
    heart_rate = record_field(record, 'heart_rate_bpm')
    if temperature is not None and temperature >= CRITICAL_TEMP_THRESHOLD:
        return True
    return heart_rate is not None and heart_rate >= CRITICAL_HEART_RATE_THRESHOLD


@dataclass(frozen=True)
class Holding:
    selected_id: str
    since: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CriticalSelector:
    """
    Two-state machine: Idle (``state is None``) or Holding(selected_id, since).

    While a hold is active the selection is kept even if the animal's vitals
    recover. Once it expires the next evaluation picks uniformly at random among
    the currently eligible records, or goes Idle when there are none.
    """

    def __init__(self, hold_seconds: float = 60,
                 clock: Optional[Callable[[], datetime]] = None,
                 rng: Optional[random.Random] = None):
        self.hold_duration = timedelta(seconds=hold_seconds)
        self._clock = clock or _utcnow
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._state: Optional[Holding] = None

    @property
    def state(self) -> Optional[Holding]:
        with self._lock:
            return self._state

    def current(self) -> Optional[str]:
        """Held identifier, without re-evaluating."""
        with self._lock:
            return self._state.selected_id if self._state else None

    def reset(self):
        with self._lock:
            self._state = None

    def evaluate(self, records: Iterable) -> Optional[str]:
        """Run one evaluation tick and return the selected id (None when Idle)."""
        with self._lock:
            now = self._clock()

            if self._state is not None and now - self._state.since < self.hold_duration:
                return self._state.selected_id

            candidates = [record_field(r, 'id') for r in records if is_eligible(r)]
            if not candidates:
                if self._state is not None:
                    logger.info("Critical hold on %s expired, no eligible animals", self._state.selected_id)
                self._state = None
                return None

            chosen = self._rng.choice(candidates)
            self._state = Holding(selected_id=chosen, since=now)
            logger.info("Animal %s selected as critical (%d eligible)", chosen, len(candidates))
            return chosen
