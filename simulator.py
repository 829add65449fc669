"""
FarmSense - Herd Simulator
Periodically perturbs stored animal records to emulate sensor drift.

A random "stable" subset of the herd is left untouched on each tick. Failures
on individual records are collected and reported; they never abort a tick.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Tuple
import logging
import random
import threading

from models import VITAL_BOUNDS, get_all_animals, update_animal

logger = logging.getLogger(__name__)


# ============================================================================
# SIMULATION PARAMETERS
# ============================================================================

# Maximum drift per tick for each perturbed field
VITAL_DELTAS = {
    'temperature_c': 0.3,
    'heart_rate_bpm': 5,
    'respiration_bpm': 2,
    'milk_yield_liters': 1.0,
}

SIMULATION_MODES = {
    'narrow': ('temperature_c',),
    'full': ('temperature_c', 'heart_rate_bpm', 'respiration_bpm', 'milk_yield_liters'),
}

ESTRUS_FLIP_PROBABILITY = 0.05
DAY_COUNTER_PROBABILITY = 0.10
STABLE_COUNT = 7


def clamp(value, low, high):
    return max(low, min(high, value))


@dataclass
class TickReport:
    """Outcome of one simulation tick."""
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    critical_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures


class Simulator:
    """
    Drives the herd simulation, either one tick at a time or on a background thread.

    ``mode`` picks the perturbed fields: "narrow" (temperature only) or "full"
    (temperature, heart rate, respiration and milk yield).
    """

    def __init__(self, app, selector=None, mode: str = 'full', interval_seconds: float = 5,
                 stable_count: int = STABLE_COUNT, rng: Optional[random.Random] = None):
        if mode not in SIMULATION_MODES:
            raise ValueError(f"Unknown simulation mode '{mode}'. Use one of: {', '.join(SIMULATION_MODES)}")
        self.app = app
        self.selector = selector
        self.mode = mode
        self.interval_seconds = interval_seconds
        self.stable_count = stable_count
        self.rng = rng or random.Random()
        self._stop = threading.Event()
        self._thread = None

    def perturb(self, animal) -> dict:
        """Compute the new field values for one animal (nothing is written here)."""
        changes = {}

        for name in SIMULATION_MODES[self.mode]:
            current = getattr(animal, name)
            if current is None:
                continue
            low, high = VITAL_BOUNDS[name]
            delta = self.rng.uniform(-VITAL_DELTAS[name], VITAL_DELTAS[name])
            value = clamp(current + delta, low, high)
            if isinstance(low, int):
                # Integer rates: round inside the bounds so they never escape them
                value = int(clamp(round(value), low, high))
            else:
                value = clamp(round(value, 1), low, high)
            changes[name] = value

        if self.rng.random() < ESTRUS_FLIP_PROBABILITY:
            changes['estrus_detected'] = not bool(animal.estrus_detected)

        for counter in ('days_since_insemination', 'postpartum_days'):
            current = getattr(animal, counter)
            if current is not None and self.rng.random() < DAY_COUNTER_PROBABILITY:
                changes[counter] = current + 1

        return changes

    def tick(self) -> TickReport:
        """Run one simulation step over the whole herd."""
        report = TickReport()

        with self.app.app_context():
            animals = get_all_animals()
            ids = [a.id for a in animals]
            stable = set(self.rng.sample(ids, min(self.stable_count, len(ids))))

            for animal_id, animal in zip(ids, animals):
                if animal_id in stable:
                    report.skipped.append(animal_id)
                    continue
                try:
                    update_animal(animal_id, self.perturb(animal))
                    report.updated.append(animal_id)
                except Exception as e:
                    logger.warning(f"Simulation update failed for animal {animal_id}: {e}")
                    report.failures.append((animal_id, str(e)))

            if self.selector is not None:
                report.critical_id = self.selector.evaluate(get_all_animals())

        logger.debug(f"Simulation tick: {len(report.updated)} updated, "
                     f"{len(report.skipped)} stable, {len(report.failures)} failed")
        return report

    def run(self):
        """Tick on a fixed period until stop() is called."""
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                # e.g. database unreachable; retry on the next period
                logger.exception("Simulation tick failed")
            self._stop.wait(self.interval_seconds)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name='farmsense-simulator', daemon=True)
        self._thread.start()
        logger.info(f"Simulator started ({self.mode} mode, every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Simulator stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
