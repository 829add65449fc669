"""
FarmSense - Herd Monitor
Polls the FarmSense API, renders animal cards and pops up critical-condition alerts.

Usage:
    python monitor.py [--url URL] [--interval SECONDS] [--count N] [--details DISPLAY_ID]
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, List
import argparse
import logging
import os
import time

import requests

logger = logging.getLogger(__name__)

# API Configuration
API_URL = os.environ.get('FARMSENSE_API_URL', "http://127.0.0.1:5000/api/animals")
POLL_SECONDS = float(os.environ.get('MONITOR_POLL_SECONDS', '5'))
REQUEST_TIMEOUT = 10
POPUP_SECONDS = 10

SEVERITY_ORDER = {'danger': 3, 'warning': 2, 'info': 1, 'success': 0}
SEVERITY_LABELS = {'danger': 'Critical', 'warning': 'Warning', 'info': 'Info', 'success': 'Normal'}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fetch_animals(session=None, url: str = API_URL, timeout: float = REQUEST_TIMEOUT) -> list:
    """Fetch the enriched herd snapshot from the API."""
    http = session or requests
    response = http.get(url, timeout=timeout)
    response.raise_for_status()
    return response.json()


# ============================================================================
# CRITICAL EDGE DETECTION
# ============================================================================

class CriticalWatch:
    """
    Remembers which animals were critical on the previous poll.

    The server keeps `is_critical` set for the whole hold window, so only
    animals newly entering the critical set are reported.
    """

    def __init__(self):
        self.known = set()

    def update(self, animals: list) -> list:
        current = set(a['id'] for a in animals if a.get('is_critical'))
        newly_critical = [a for a in animals if a.get('is_critical') and a['id'] not in self.known]
        self.known = current
        return newly_critical


# ============================================================================
# RENDERING
# ============================================================================

def display_value(value, suffix: str = '') -> str:
    if value is None or value == '':
        return 'N/A'
    return f"{value}{suffix}"


def card_alert_level(animal: dict) -> str:
    """Label of the most severe alert on the card ("Normal" when none)."""
    alerts = animal.get('alerts') or []
    highest = 'success'
    for alert in alerts:
        if SEVERITY_ORDER.get(alert.get('severity'), 0) > SEVERITY_ORDER[highest]:
            highest = alert['severity']
    return SEVERITY_LABELS[highest]


def render_card(animal: dict) -> str:
    lines = [f"Animal {animal.get('display_id') or 'N/A'}"]
    for alert in animal.get('alerts') or []:
        lines.append(f"  [{alert['severity'].upper()}] {alert['message']}")
    lines.append(f"  Health: {display_value(animal.get('health_condition'))}"
                 f" | Alert: {card_alert_level(animal)}")
    lines.append(f"  Milk Yield: {animal.get('milk_yield_liters') or 0} L"
                 f" | Temperature: {animal.get('temperature_c') or 0}°C")
    return "\n".join(lines)


def render_details(animal: dict) -> str:
    """Full detail view of one animal, alerts first."""
    lines = [f"Animal {animal.get('display_id') or 'N/A'} - Full Details", "-" * 50]

    alerts = animal.get('alerts') or []
    if alerts:
        lines.append("Active Alerts:")
        for alert in alerts:
            lines.append(f"  [{alert['severity'].upper()}] {alert['message']}")
        lines.append("-" * 50)

    details = [
        ('Reproductive Stage', display_value(animal.get('reproductive_stage'))),
        ('Last AI Date', display_value(animal.get('last_insemination_date'))),
        ('Days Since AI', display_value(animal.get('days_since_insemination'))),
        ('Postpartum Days', display_value(animal.get('postpartum_days'))),
        ('Pregnancy Status', display_value(animal.get('pregnancy_status'))),
        ('Heart Rate', display_value(animal.get('heart_rate_bpm'), ' BPM')),
        ('Respiration', display_value(animal.get('respiration_bpm'), ' BPM')),
        ('Activity Level', display_value(animal.get('activity_level'))),
        ('Estrus Detected', 'Yes' if animal.get('estrus_detected') else 'No'),
        ('Health Condition', display_value(animal.get('health_condition'))),
        ('Alert Level', animal.get('alert_level') or card_alert_level(animal)),
        ('Milk Yield', f"{animal.get('milk_yield_liters') or 0} L"),
        ('Temperature', f"{animal.get('temperature_c') or 0}°C"),
    ]
    for label, value in details:
        lines.append(f"  {label + ':':<20}{value}")
    return "\n".join(lines)


def render_critical_alert(animal: dict) -> str:
    return "\n".join([
        "=" * 60,
        "  🚨 CRITICAL CONDITION ALERT",
        "=" * 60,
        f"  Animal {animal.get('display_id')} is in critical condition and requires immediate attention!",
        f"    Temperature:    {animal.get('temperature_c')}°C",
        f"    Heart Rate:     {animal.get('heart_rate_bpm')} BPM",
        "    Current Status: CRITICAL",
        "  ⚠️ URGENT: Immediate veterinary treatment required!",
        "=" * 60,
    ])


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationBoard:
    """
    Holds the visible critical popup.

    Only one popup is shown at a time; a new one replaces the old. Popups expire
    after a fixed wall-clock duration regardless of how often the herd is polled.
    """

    def __init__(self, dismiss_after: float = POPUP_SECONDS,
                 clock: Optional[Callable[[], datetime]] = None):
        self.dismiss_after = timedelta(seconds=dismiss_after)
        self._clock = clock or _utcnow
        self.animal = None
        self.shown_at = None

    def show(self, animal: dict):
        self.animal = animal
        self.shown_at = self._clock()

    def dismiss(self):
        self.animal = None
        self.shown_at = None

    def acknowledge(self) -> Optional[str]:
        """Close the popup and return the details view of its animal."""
        animal = self.visible()
        self.dismiss()
        return render_details(animal) if animal else None

    def visible(self) -> Optional[dict]:
        if self.animal is not None and self._clock() - self.shown_at >= self.dismiss_after:
            self.dismiss()
        return self.animal


# ============================================================================
# POLLING
# ============================================================================

class HerdMonitor:
    """One poll produces one rendered screen; fetch errors never stop the loop."""

    def __init__(self, url: str = API_URL, session=None, board: Optional[NotificationBoard] = None,
                 timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.session = session or requests.Session()
        self.board = board or NotificationBoard()
        self.watch = CriticalWatch()
        self.timeout = timeout
        self.animals: List[dict] = []

    def poll_once(self) -> str:
        try:
            animals = fetch_animals(self.session, self.url, self.timeout)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Poll failed: {e}")
            return self.render_screen(error=f"Error loading animal data: {e}")

        self.animals = animals
        for animal in self.watch.update(animals):
            logger.info(f"Animal {animal.get('display_id')} entered critical condition")
            self.board.show(animal)

        if not animals:
            return self.render_screen(error="No animal data found in the database.")
        return self.render_screen()

    def render_screen(self, error: Optional[str] = None) -> str:
        sections = []
        popup = self.board.visible()
        if popup is not None:
            sections.append(render_critical_alert(popup))
        if error:
            sections.append(error)
        else:
            sections.extend(render_card(a) for a in self.animals)
        return "\n\n".join(sections)

    def find(self, display_id: str) -> Optional[dict]:
        for animal in self.animals:
            if animal.get('display_id') == display_id or animal.get('id') == display_id:
                return animal
        return None


def continuous_mode(monitor: HerdMonitor, interval_seconds: float = POLL_SECONDS, count: Optional[int] = None):
    """Poll continuously at the given interval."""
    print("=" * 60)
    print("  FarmSense - Herd Monitor")
    print(f"  Source: {monitor.url}")
    print(f"  Interval: {interval_seconds} seconds")
    print(f"  Count: {'Unlimited' if count is None else count}")
    print("  Press Ctrl+C to stop")
    print("=" * 60 + "\n")

    polls = 0
    try:
        while count is None or polls < count:
            timestamp = datetime.now().strftime("%H:%M:%S")
            print(f"[{timestamp}]")
            print(monitor.poll_once())
            print()

            polls += 1
            if count is None or polls < count:
                time.sleep(interval_seconds)

    except KeyboardInterrupt:
        print(f"\n\nStopped. Total polls: {polls}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='FarmSense Herd Monitor')
    parser.add_argument('--url', '-u', type=str, default=API_URL, help='Animals API endpoint')
    parser.add_argument('--interval', '-i', type=float, default=POLL_SECONDS, help='Seconds between polls')
    parser.add_argument('--count', '-c', type=int, default=None, help='Number of polls (default: unlimited)')
    parser.add_argument('--details', '-d', type=str, help='Print full details for one animal and exit')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    monitor = HerdMonitor(url=args.url)

    if args.details:
        screen = monitor.poll_once()
        animal = monitor.find(args.details)
        if animal is None:
            print(screen if not monitor.animals else f"Animal {args.details} not found.")
            return 1
        print(render_details(animal))
        return 0

    continuous_mode(monitor, args.interval, args.count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
