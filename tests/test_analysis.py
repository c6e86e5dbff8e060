from datetime import timedelta

import pytest
from secmon.models.security_event import SuspiciousActivityType, ThreatLevel
from secmon.security.activity_recorder import ActivityRecorder
from secmon.security.analysis_engine import (
    AnalysisEngine,
    average_interval_ms,
    describe_ip_risk,
    describe_user_risk,
    score_ip_activity,
)
from secmon.security.blocklist_manager import BlocklistManager
from secmon.services.event_logger import AuditLog


@pytest.fixture
def engine(clock):
    audit_log = AuditLog(clock=clock)
    return AnalysisEngine(
        ActivityRecorder(max_activities_per_ip=1000),
        BlocklistManager(audit_log),
        audit_log,
        retention_seconds=24 * 60 * 60,
        clock=clock,
    )


def test_ip_analysis_with_every_factor(engine, make_activity, clock):
    start = clock()
    for index in range(150):
        engine.recorder.record(make_activity(
            ip="8.8.8.8",
            status=401 if index < 20 else 200,
            url=f"/page/{index % 60}",
            user_agent=f"agent-{index % 6}",
            timestamp=start + timedelta(milliseconds=500 * index),
        ))
    clock.advance(120)

    analysis = engine.get_ip_analysis("8.8.8.8")

    assert analysis.request_count == 150
    assert analysis.failed_attempts == 20
    assert analysis.unique_user_agents == 6
    assert analysis.unique_endpoints == 60
    assert analysis.avg_request_interval == pytest.approx(500.0)
    assert analysis.risk_score == 100
    assert analysis.suspicious_patterns == [
        "high_request_volume",
        "repeated_failures",
        "multiple_user_agents",
        "rapid_request_interval",
        "endpoint_enumeration",
    ]
    assert analysis.first_seen == start
    assert analysis.last_seen == start + timedelta(milliseconds=500 * 149)


def test_single_request_counts_as_rapid_interval(engine, make_activity):
    engine.recorder.record(make_activity(ip="8.8.8.9"))

    analysis = engine.get_ip_analysis("8.8.8.9")
    assert analysis.request_count == 1
    assert analysis.avg_request_interval == 0.0
    assert analysis.risk_score == 20
    assert analysis.suspicious_patterns == ["rapid_request_interval"]
    assert "Rapid request pattern detected" in describe_ip_risk(analysis)[0]


def test_unknown_ip_has_no_analysis(engine):
    assert engine.get_ip_analysis("203.0.113.1") is None


def test_entries_outside_retention_are_ignored(engine, make_activity, clock):
    engine.recorder.record(make_activity(ip="8.8.8.10"))
    clock.advance(24 * 60 * 60 + 1)
    assert engine.get_ip_analysis("8.8.8.10") is None


def test_entry_exactly_at_retention_age_is_kept(engine, make_activity, clock):
    engine.recorder.record(make_activity(ip="8.8.8.13"))
    clock.advance(24 * 60 * 60)
    assert engine.get_ip_analysis("8.8.8.13").request_count == 1


def test_blocked_flag_reflects_blocklist(engine, make_activity):
    engine.recorder.record(make_activity(ip="8.8.8.11"))
    engine.blocklist.block_ip("8.8.8.11", "test")
    assert engine.get_ip_analysis("8.8.8.11").is_blocked is True


def test_average_interval_uses_sorted_timestamps(make_activity, clock):
    start = clock()
    activities = [
        make_activity(timestamp=start + timedelta(seconds=2)),
        make_activity(timestamp=start),
        make_activity(timestamp=start + timedelta(seconds=1)),
    ]
    assert average_interval_ms(activities) == pytest.approx(1000.0)
    assert average_interval_ms(activities[:1]) == 0.0


def test_score_ip_activity_partial():
    score, patterns = score_ip_activity(
        request_count=101,
        failed_attempts=10,
        unique_user_agents=5,
        avg_interval_ms=2000,
        unique_endpoints=51,
    )
    assert score == 40
    assert patterns == ["high_request_volume", "endpoint_enumeration"]


def test_user_behavior_analysis(engine, make_activity, clock):
    start = clock()
    for index in range(6):
        engine.recorder.record(make_activity(
            ip="10.1.1.1",
            user_id="dave",
            session_id=f"s{index}",
            url="/api/auth/login",
            status=401,
            timestamp=start + timedelta(seconds=index),
        ))
    for index in range(4):
        engine.recorder.record(make_activity(
            ip="10.1.1.1",
            user_id="dave",
            session_id="s0",
            url="/api/admin/users",
            status=403,
            timestamp=start + timedelta(seconds=10 + index),
        ))
    engine.audit_log.record_suspicious_activity(
        activity_type=SuspiciousActivityType.BRUTE_FORCE_ATTACK,
        severity=ThreatLevel.HIGH,
        description="test",
        ip_address="10.1.1.1",
        risk_score=75,
        user_id="dave",
    )
    clock.advance(60)

    analysis = engine.get_user_behavior_analysis("dave")

    assert analysis.request_count == 10
    assert analysis.session_count == 6
    assert analysis.failed_logins == 6
    assert analysis.privilege_escalation_attempts == 4
    assert analysis.risk_score == 90
    assert analysis.suspicious_activities == ["brute_force_attack"]
    assert analysis.is_blocked is False


def test_unknown_user_has_no_analysis(engine):
    assert engine.get_user_behavior_analysis("nobody") is None


def test_describe_ip_risk(engine, make_activity, clock):
    start = clock()
    for index in range(120):
        engine.recorder.record(make_activity(
            ip="8.8.8.12",
            status=500 if index < 11 else 200,
            timestamp=start + timedelta(milliseconds=100 * index),
        ))

    risk_factors, recommendations = describe_ip_risk(engine.get_ip_analysis("8.8.8.12"))

    assert risk_factors == [
        "High risk score detected",
        "Multiple failed authentication attempts",
        "Rapid request pattern detected",
    ]
    assert recommendations[0] == "Consider blocking this IP address"


def test_describe_user_risk_for_quiet_user(engine, make_activity):
    engine.recorder.record(make_activity(ip="10.1.1.2", user_id="erin"))
    assert describe_user_risk(engine.get_user_behavior_analysis("erin")) == ([], [])
