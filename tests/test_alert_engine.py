"""Tests for alert derivation."""

from alert_engine import (
    Alert,
    AlertKind,
    Severity,
    alert_level,
    derive_alerts,
    highest_severity,
)


def kinds(alerts):
    return [a.kind for a in alerts]


def make_record(**overrides):
    """A record that triggers no alert on its own."""
    record = {
        "id": "a1",
        "display_id": "101",
        "reproductive_stage": "Lactating",
        "pregnancy_status": "open",
        "days_since_insemination": None,
        "postpartum_days": None,
        "temperature_c": 38.6,
        "heart_rate_bpm": 70,
        "estrus_detected": False,
    }
    record.update(overrides)
    return record


class TestRules:
    """Each rule in isolation."""

    def test_quiet_record_has_no_alerts(self):
        assert derive_alerts(make_record()) == []

    def test_pregnancy_confirmed(self):
        """50 days after AI without estrus yields exactly one alert."""
        alerts = derive_alerts(make_record(days_since_insemination=50, estrus_detected=False))
        assert kinds(alerts) == [AlertKind.PREGNANCY_CONFIRMED]
        assert alerts[0].severity == Severity.SUCCESS

    def test_pregnancy_confirmed_boundary(self):
        assert kinds(derive_alerts(make_record(days_since_insemination=45))) == [AlertKind.PREGNANCY_CONFIRMED]
        assert derive_alerts(make_record(days_since_insemination=44)) == []

    def test_pregnancy_failure(self):
        alerts = derive_alerts(make_record(days_since_insemination=21, estrus_detected=True))
        assert kinds(alerts) == [AlertKind.PREGNANCY_FAILURE]
        assert alerts[0].severity == Severity.WARNING

    def test_pregnancy_failure_needs_21_days(self):
        assert derive_alerts(make_record(days_since_insemination=20, estrus_detected=True)) == []

    def test_postpartum_stage_and_infection(self):
        """Fever five days after delivery raises both postpartum alerts."""
        alerts = derive_alerts(make_record(postpartum_days=5, temperature_c=40.2, pregnancy_status="delivered"))
        assert kinds(alerts) == [AlertKind.POSTPARTUM_STAGE, AlertKind.POSTPARTUM_INFECTION]
        assert [a.severity for a in alerts] == [Severity.INFO, Severity.WARNING]

    def test_postpartum_stage_includes_day_zero(self):
        alerts = derive_alerts(make_record(postpartum_days=0, pregnancy_status="delivered"))
        assert kinds(alerts) == [AlertKind.POSTPARTUM_STAGE]

    def test_postpartum_infection_window(self):
        assert kinds(derive_alerts(make_record(postpartum_days=10, temperature_c=40.0))) == [
            AlertKind.POSTPARTUM_INFECTION
        ]
        assert derive_alerts(make_record(postpartum_days=11, temperature_c=40.5)) == []

    def test_critical_alert_follows_selection_only(self):
        """The critical alert ignores the record's own vitals."""
        calm = make_record(temperature_c=37.0, heart_rate_bpm=60)
        assert kinds(derive_alerts(calm, critical_id="a1")) == [AlertKind.CRITICAL_CONDITION]

        feverish = make_record(temperature_c=41.5, heart_rate_bpm=110)
        assert derive_alerts(feverish, critical_id="other") == []
        assert derive_alerts(feverish) == []


class TestEvaluation:
    """Ordering, independence and purity."""

    def test_display_order(self):
        record = make_record(
            days_since_insemination=60,
            estrus_detected=False,
            pregnancy_status="delivered",
            postpartum_days=3,
            temperature_c=40.5,
        )
        assert kinds(derive_alerts(record, critical_id="a1")) == [
            AlertKind.PREGNANCY_CONFIRMED,
            AlertKind.CRITICAL_CONDITION,
            AlertKind.POSTPARTUM_STAGE,
            AlertKind.POSTPARTUM_INFECTION,
        ]

    def test_repeated_evaluation_is_identical(self):
        record = make_record(days_since_insemination=30, estrus_detected=True, postpartum_days=4, temperature_c=40.1)
        first = derive_alerts(record, "a1")
        second = derive_alerts(record, "a1")
        assert first == second
        assert record["temperature_c"] == 40.1

    def test_toggling_estrus_swaps_only_reproductive_alerts(self):
        """Flipping estrus moves between confirmed and failed pregnancy, nothing else."""
        base = dict(days_since_insemination=50, pregnancy_status="delivered", postpartum_days=5, temperature_c=40.2)
        without = kinds(derive_alerts(make_record(estrus_detected=False, **base)))
        with_estrus = kinds(derive_alerts(make_record(estrus_detected=True, **base)))

        assert AlertKind.PREGNANCY_CONFIRMED in without
        assert AlertKind.PREGNANCY_FAILURE not in without
        assert AlertKind.PREGNANCY_FAILURE in with_estrus
        assert AlertKind.PREGNANCY_CONFIRMED not in with_estrus
        shared = [AlertKind.POSTPARTUM_STAGE, AlertKind.POSTPARTUM_INFECTION]
        assert [k for k in without if k in shared] == [k for k in with_estrus if k in shared]

    def test_toggling_temperature_flips_only_infection(self):
        base = dict(pregnancy_status="delivered", postpartum_days=5)
        cool = kinds(derive_alerts(make_record(temperature_c=38.5, **base)))
        hot = kinds(derive_alerts(make_record(temperature_c=40.5, **base)))
        assert cool == [AlertKind.POSTPARTUM_STAGE]
        assert hot == [AlertKind.POSTPARTUM_STAGE, AlertKind.POSTPARTUM_INFECTION]

    def test_missing_fields_evaluate_false(self):
        """Unknown values never raise and never trigger."""
        assert derive_alerts({"id": "a1"}) == []
        assert derive_alerts({"id": "a1", "pregnancy_status": "delivered"}) == []
        assert derive_alerts({"id": "a1", "days_since_insemination": 60}) == []

    def test_works_with_attribute_records(self):
        class Record:
            id = "a1"
            days_since_insemination = 50
            estrus_detected = False

        assert kinds(derive_alerts(Record())) == [AlertKind.PREGNANCY_CONFIRMED]


class TestAlertLevel:
    """Highest-severity label."""

    def test_no_alerts_is_normal(self):
        assert alert_level([]) == "Normal"
        assert highest_severity([]) is None

    def test_success_only_is_normal(self):
        alerts = derive_alerts(make_record(days_since_insemination=50))
        assert alert_level(alerts) == "Normal"

    def test_highest_severity_wins(self):
        alerts = [
            Alert(AlertKind.POSTPARTUM_STAGE, "stage", Severity.INFO),
            Alert(AlertKind.CRITICAL_CONDITION, "critical", Severity.DANGER),
            Alert(AlertKind.POSTPARTUM_INFECTION, "infection", Severity.WARNING),
        ]
        assert highest_severity(alerts) == Severity.DANGER
        assert alert_level(alerts) == "Critical"
        assert alert_level(alerts[::2]) == "Warning"
        assert alert_level(alerts[:1]) == "Info"

    def test_alert_serialization(self):
        alert = Alert(AlertKind.PREGNANCY_FAILURE, "failed", Severity.WARNING)
        assert alert.to_dict() == {"kind": "pregnancy_failure", "message": "failed", "severity": "warning"}
