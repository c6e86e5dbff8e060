from datetime import timedelta

import pytest
from secmon.models.security_event import (
    LogLevel,
    SecurityEventType,
    SuspiciousActivityType,
    ThreatLevel,
)
from secmon.security.sanitizer import REDACTED
from secmon.services.event_logger import AuditLog


@pytest.fixture
def audit_log(clock):
    log = AuditLog(
        max_suspicious_activities=10,
        suspicious_activities_trim_to=5,
        max_security_events=20,
        max_app_logs=3,
        high_risk_threshold=70,
        clock=clock,
    )
    yield log
    log.stop()


def record(audit_log, index=0, **kwargs):
    kwargs.setdefault("ip_address", f"10.0.0.{index}")
    kwargs.setdefault("risk_score", 60)
    return audit_log.record_suspicious_activity(
        activity_type=SuspiciousActivityType.RAPID_REQUESTS,
        severity=ThreatLevel.HIGH,
        description=f"activity {index}",
        **kwargs,
    )


def test_suspicious_activity_emits_security_event(audit_log):
    activity = record(audit_log, risk_score=85, blocked=True)
    events = audit_log.get_security_events()

    assert activity.action_taken == "IP Blocked"
    assert len(events) == 1
    assert events[0].type == SecurityEventType.SUSPICIOUS_ACTIVITY
    assert events[0].risk_score == 85
    assert events[0].severity == ThreatLevel.CRITICAL
    assert events[0].blocked is True


def test_unblocked_activity_is_logged(audit_log):
    activity = record(audit_log)
    assert activity.action_taken == "Logged"
    assert activity.blocked is False


def test_overflow_trims_to_most_recent(audit_log, clock):
    for index in range(11):
        clock.advance(1)
        record(audit_log, index)

    recent = audit_log.get_recent_suspicious_activities(limit=50)
    assert audit_log.count_suspicious_activities() == 5
    assert [a.description for a in recent] == [f"activity {i}" for i in range(10, 5, -1)]


def test_recent_activities_are_most_recent_first(audit_log, clock):
    record(audit_log, 1)
    clock.advance(5)
    record(audit_log, 2)

    recent = audit_log.get_recent_suspicious_activities(limit=1)
    assert [a.description for a in recent] == ["activity 2"]


def test_evidence_and_context_are_sanitized(audit_log):
    activity = record(audit_log, evidence={"url": "/login", "password": "hunter2"})
    event = audit_log.log_security_event(
        SecurityEventType.AUTHENTICATION_FAILURE,
        "bad login",
        headers={"Cookie": "session_id=abc", "Accept": "*/*"},
        context={"token": "t"},
    )

    assert activity.evidence == {"url": "/login", "password": REDACTED}
    assert event.headers == {"Cookie": REDACTED, "Accept": "*/*"}
    assert event.context == {"token": REDACTED}


def test_event_score_defaults_to_type_table(audit_log):
    event = audit_log.log_security_event(
        SecurityEventType.AUTHORIZATION_FAILURE,
        "admin page denied",
        context={"adminTarget": True},
    )
    assert event.risk_score == 55
    assert event.severity == ThreatLevel.MEDIUM


def test_high_risk_events_filter(audit_log):
    audit_log.log_security_event(SecurityEventType.AUTHENTICATION_FAILURE, "low")
    audit_log.log_security_event(SecurityEventType.SQL_INJECTION_ATTEMPT, "high")

    high_risk = audit_log.get_high_risk_events()
    assert [e.message for e in high_risk] == ["high"]


def test_failing_sink_does_not_stop_other_sinks(audit_log):
    received = []

    def broken(event):
        raise RuntimeError("sink down")

    audit_log.add_sink(broken)
    audit_log.add_sink(received.append)
    audit_log.log_security_event(SecurityEventType.INVALID_INPUT, "bad input")
    audit_log.flush()

    assert len(received) == 1
    assert received[0].message == "bad input"


def test_stop_delivers_queued_events_then_detaches_sinks(audit_log):
    received = []
    audit_log.add_sink(received.append)

    audit_log.log_security_event(SecurityEventType.INVALID_INPUT, "first")
    audit_log.stop()
    audit_log.log_security_event(SecurityEventType.INVALID_INPUT, "second")

    assert [e.message for e in received] == ["first"]
    assert len(audit_log.get_security_events()) == 2


def test_app_logs_are_bounded(audit_log):
    for index in range(5):
        audit_log.info(f"message {index}", component="test")

    logs = audit_log.get_logs()
    assert [entry.message for entry in logs] == ["message 4", "message 3", "message 2"]
    assert logs[0].level == LogLevel.INFO


def test_error_log_carries_error_detail(audit_log):
    entry = audit_log.error("sync failed", error=ValueError("bad payload"), action="sync")
    assert entry.level == LogLevel.ERROR
    assert entry.error.name == "ValueError"
    assert entry.error.message == "bad payload"


def test_export_and_clear(audit_log):
    audit_log.warn("careful")
    audit_log.log_security_event(SecurityEventType.INVALID_INPUT, "bad input")

    exported = audit_log.export()
    assert exported["logs"][0]["level"] == "warn"
    assert exported["security_events"][0]["type"] == "invalid_input"

    audit_log.clear()
    assert audit_log.get_logs() == []
    assert audit_log.get_security_events() == []


def test_prune_older_than_keeps_recent_entries(audit_log, clock):
    record(audit_log, 1)
    clock.advance(3600)
    record(audit_log, 2)

    removed = audit_log.prune_older_than(clock() - timedelta(minutes=30))

    assert removed == 2
    assert [a.description for a in audit_log.get_recent_suspicious_activities()] == ["activity 2"]
    assert len(audit_log.get_security_events()) == 1
