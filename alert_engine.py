"""
FarmSense - Alert Engine
Derives health and reproductive alerts from a single animal record.

Alerts are computed on every read and never stored.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, List


# ============================================================================
# THRESHOLD CONSTANTS
# ============================================================================

PREGNANCY_CONFIRMED_DAYS = 45     # days since AI without return to estrus
PREGNANCY_FAILURE_DAYS = 21       # days since AI with estrus observed again
POSTPARTUM_INFECTION_DAYS = 10    # early postpartum window
FEVER_THRESHOLD_C = 40.0          # °C


class Severity(Enum):
    """Alert severity, ordered success < info < warning < danger."""
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.SUCCESS: 0,
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.DANGER: 3,
}

ALERT_LEVEL_LABELS = {
    Severity.DANGER: "Critical",
    Severity.WARNING: "Warning",
    Severity.INFO: "Info",
    Severity.SUCCESS: "Normal",
}


class AlertKind(Enum):
    PREGNANCY_CONFIRMED = "pregnancy_confirmed"
    CRITICAL_CONDITION = "critical_condition"
    POSTPARTUM_STAGE = "postpartum_stage"
    POSTPARTUM_INFECTION = "postpartum_infection"
    PREGNANCY_FAILURE = "pregnancy_failure"


@dataclass(frozen=True)
class Alert:
    kind: AlertKind
    message: str
    severity: Severity

    def to_dict(self):
        data = asdict(self)
        data['kind'] = self.kind.value
        data['severity'] = self.severity.value
        return data


def record_field(record, name):
    """Read a field from a model instance or a plain mapping; absent means unknown."""
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


# ============================================================================
# RULES
# ============================================================================

def derive_alerts(record, critical_id: Optional[str] = None) -> List[Alert]:
    """
    Map one animal record to its alerts, in display order.

    Each rule is evaluated on its own, so a record may carry several alerts.
    Rules touching an unknown field evaluate to false. The critical alert depends
    only on `critical_id`, which the critical selector supplies.
    """
    alerts = []

    days_since_ai = record_field(record, 'days_since_insemination')
    postpartum_days = record_field(record, 'postpartum_days')
    temperature = record_field(record, 'temperature_c')
    estrus = record_field(record, 'estrus_detected')

    if days_since_ai is not None and days_since_ai >= PREGNANCY_CONFIRMED_DAYS and estrus is False:
        alerts.append(Alert(
            kind=AlertKind.PREGNANCY_CONFIRMED,
            message=f"Pregnancy confirmed: {days_since_ai} days since AI without estrus",
            severity=Severity.SUCCESS
        ))

    if critical_id is not None and record_field(record, 'id') == critical_id:
        alerts.append(Alert(
            kind=AlertKind.CRITICAL_CONDITION,
            message="Critical condition: immediate veterinary attention required",
            severity=Severity.DANGER
        ))

    if record_field(record, 'pregnancy_status') == "delivered" and postpartum_days is not None and postpartum_days >= 0:
        alerts.append(Alert(
            kind=AlertKind.POSTPARTUM_STAGE,
            message=f"Postpartum stage: day {postpartum_days} after delivery",
            severity=Severity.INFO
        ))

    if (postpartum_days is not None and postpartum_days <= POSTPARTUM_INFECTION_DAYS
            and temperature is not None and temperature >= FEVER_THRESHOLD_C):
        alerts.append(Alert(
            kind=AlertKind.POSTPARTUM_INFECTION,
            message=f"Postpartum infection suspected: {temperature}°C on day {postpartum_days}",
            severity=Severity.WARNING
        ))

    if days_since_ai is not None and days_since_ai >= PREGNANCY_FAILURE_DAYS and estrus is True:
        alerts.append(Alert(
            kind=AlertKind.PREGNANCY_FAILURE,
            message=f"Pregnancy failure suspected: estrus detected {days_since_ai} days after AI",
            severity=Severity.WARNING
        ))

    return alerts


def highest_severity(alerts: List[Alert]) -> Optional[Severity]:
    if not alerts:
        return None
    return max((alert.severity for alert in alerts), key=lambda severity: severity.rank)


def alert_level(alerts: List[Alert]) -> str:
    """Display label of the most severe alert ("Normal" when there is none)."""
    severity = highest_severity(alerts)
    if severity is None:
        return ALERT_LEVEL_LABELS[Severity.SUCCESS]
    return ALERT_LEVEL_LABELS[severity]
