from datetime import timedelta

import pytest
from secmon.config import Settings
from secmon.models.activity import UNKNOWN_IP
from secmon.models.security_event import SuspiciousActivityType, ThreatLevel
from secmon.security.monitor import SecurityMonitor
from secmon.security.rule_engine import RuleEngine, default_rules


def suspicious(monitor, ip=None, activity_type=None, user_id=None):
    return [
        a for a in monitor.audit_log.get_suspicious_activities(ip_address=ip, user_id=user_id)
        if activity_type is None or a.type == activity_type
    ]


def test_default_rules_in_evaluation_order():
    assert [rule.id for rule in default_rules()] == [
        "rapid_requests",
        "failed_auth_attempts",
        "suspicious_user_agent",
        "admin_access_attempts",
        "privilege_escalation",
    ]


def test_rapid_requests_triggers_once_and_blocks(monitor, make_activity, clock):
    for _ in range(150):
        clock.advance(0.2)
        monitor.record(make_activity(ip="1.2.3.4"))

    triggered = suspicious(monitor, "1.2.3.4", SuspiciousActivityType.RAPID_REQUESTS)
    assert len(triggered) == 1
    assert triggered[0].severity == ThreatLevel.HIGH
    assert triggered[0].risk_score == 80
    assert monitor.is_ip_blocked("1.2.3.4") is True


def test_rapid_requests_needs_more_than_threshold(monitor, make_activity, clock):
    for _ in range(100):
        clock.advance(0.2)
        monitor.record(make_activity(ip="1.2.3.5"))

    assert suspicious(monitor, "1.2.3.5", SuspiciousActivityType.RAPID_REQUESTS) == []
    assert monitor.is_ip_blocked("1.2.3.5") is False


def test_rapid_requests_window_slides(monitor, make_activity, clock):
    for _ in range(100):
        monitor.record(make_activity(ip="1.2.3.6"))
    clock.advance(61)
    monitor.record(make_activity(ip="1.2.3.6"))

    assert suspicious(monitor, "1.2.3.6", SuspiciousActivityType.RAPID_REQUESTS) == []


def test_failed_auth_attempts(monitor, make_activity, clock):
    for _ in range(5):
        clock.advance(10)
        monitor.record(make_activity(ip="9.9.9.9", status=401, url="/api/auth/login", method="POST"))

    triggered = suspicious(monitor, "9.9.9.9", SuspiciousActivityType.BRUTE_FORCE_ATTACK)
    assert len(triggered) == 1
    assert triggered[0].severity == ThreatLevel.HIGH
    assert triggered[0].risk_score == 75
    assert triggered[0].blocked is True
    assert triggered[0].action_taken == "IP Blocked"
    assert triggered[0].description == (
        "Failed Authentication Detection: Detects multiple failed authentication attempts"
    )
    assert triggered[0].evidence["rule_id"] == "failed_auth_attempts"
    assert triggered[0].evidence["activity"]["url"] == "/api/auth/login"
    assert monitor.is_ip_blocked("9.9.9.9") is True


def test_cooldown_suppresses_repeat_triggers(monitor, make_activity, clock):
    for _ in range(20):
        clock.advance(5)
        monitor.record(make_activity(ip="9.9.9.8", status=401))
    assert len(suspicious(monitor, "9.9.9.8", SuspiciousActivityType.BRUTE_FORCE_ATTACK)) == 1

    clock.advance(10 * 60)
    for _ in range(5):
        clock.advance(5)
        monitor.record(make_activity(ip="9.9.9.8", status=401))
    assert len(suspicious(monitor, "9.9.9.8", SuspiciousActivityType.BRUTE_FORCE_ATTACK)) == 2


def test_cooldown_is_tracked_per_key(monitor, make_activity, clock):
    for ip in ("9.9.9.1", "9.9.9.2"):
        for _ in range(5):
            clock.advance(1)
            monitor.record(make_activity(ip=ip, status=401))

    assert len(suspicious(monitor, "9.9.9.1", SuspiciousActivityType.BRUTE_FORCE_ATTACK)) == 1
    assert len(suspicious(monitor, "9.9.9.2", SuspiciousActivityType.BRUTE_FORCE_ATTACK)) == 1


def test_suspicious_user_agent_is_logged_not_blocked(monitor, make_activity, clock):
    monitor.record(make_activity(ip="4.4.4.4", user_agent="SQLMap/1.7-dev"))
    monitor.record(make_activity(ip="4.4.4.4", user_agent="SQLMap/1.7-dev"))

    triggered = suspicious(monitor, "4.4.4.4", SuspiciousActivityType.SUSPICIOUS_USER_AGENT)
    assert len(triggered) == 1
    assert triggered[0].severity == ThreatLevel.MEDIUM
    assert triggered[0].risk_score == 60
    assert triggered[0].action_taken == "Logged"
    assert monitor.is_ip_blocked("4.4.4.4") is False

    clock.advance(61)
    monitor.record(make_activity(ip="4.4.4.4", user_agent="SQLMap/1.7-dev"))
    assert len(suspicious(monitor, "4.4.4.4", SuspiciousActivityType.SUSPICIOUS_USER_AGENT)) == 2


def test_admin_access_attempt(monitor, make_activity):
    monitor.record(make_activity(ip="5.5.5.5", url="/wp-admin/options.php", status=403))
    monitor.record(make_activity(ip="5.5.5.6", url="/wp-admin/options.php", status=200))

    triggered = suspicious(monitor, "5.5.5.5", SuspiciousActivityType.PRIVILEGE_ESCALATION)
    assert len(triggered) == 1
    assert triggered[0].risk_score == 70
    assert triggered[0].severity == ThreatLevel.HIGH
    assert monitor.is_ip_blocked("5.5.5.5") is False
    assert suspicious(monitor, "5.5.5.6") == []


def test_privilege_escalation_spans_ips_for_one_user(monitor, make_activity, clock):
    for index, status in enumerate([401, 403, 403]):
        clock.advance(30)
        monitor.record(make_activity(ip=f"7.7.7.{index}", status=status, url="/api/orders", user_id="mallory"))

    triggered = [
        a for a in suspicious(monitor, user_id="mallory")
        if a.evidence["rule_id"] == "privilege_escalation"
    ]
    assert len(triggered) == 1
    assert triggered[0].severity == ThreatLevel.CRITICAL
    assert triggered[0].risk_score == 90
    assert triggered[0].ip_address == "7.7.7.2"
    assert monitor.is_ip_blocked("7.7.7.2") is True
    assert monitor.is_user_blocked("mallory") is False


def test_unknown_ip_is_auto_blocked_like_any_other(monitor, make_activity):
    for _ in range(5):
        monitor.record(make_activity(ip=None, status=401))

    triggered = suspicious(monitor, UNKNOWN_IP, SuspiciousActivityType.BRUTE_FORCE_ATTACK)
    assert len(triggered) == 1
    assert triggered[0].blocked is True
    assert monitor.is_ip_blocked(UNKNOWN_IP) is True


def test_unknown_ip_block_can_be_switched_off(clock, make_activity):
    config = Settings(_env_file=None, block_unknown_ip=False)
    with SecurityMonitor(config=config, clock=clock) as security_monitor:
        for _ in range(5):
            security_monitor.record(make_activity(ip=None, status=401))
        security_monitor.record(make_activity(ip=None, url="/?id=1' UNION SELECT 1"))

        triggered = suspicious(security_monitor, UNKNOWN_IP)
        assert len(triggered) == 2
        assert all(a.blocked is False for a in triggered)
        assert security_monitor.is_ip_blocked(UNKNOWN_IP) is False


def test_disabled_rule_does_not_trigger(monitor, make_activity):
    assert monitor.set_rule_enabled("suspicious_user_agent", False) is True
    monitor.record(make_activity(ip="4.4.4.5", user_agent="curl/8.4.0"))
    assert suspicious(monitor, "4.4.4.5") == []
    assert monitor.get_monitoring_stats()["active_rules"] == 4


def test_failing_rule_does_not_stop_the_others(monitor, make_activity):
    def broken(condition, activity, buffer, now):
        raise RuntimeError("evaluator bug")

    monitor.rule_engine._evaluators["request_rate"] = broken
    monitor.record(make_activity(ip="4.4.4.6", user_agent="curl/8.4.0"))

    triggered = suspicious(monitor, "4.4.4.6")
    assert [a.type for a in triggered] == [SuspiciousActivityType.SUSPICIOUS_USER_AGENT]
    assert monitor.is_ip_blocked("4.4.4.6") is False


def test_evaluate_skips_user_rules_without_user_buffer(monitor, make_activity, clock):
    engine = RuleEngine(monitor.audit_log, monitor.blocklist, clock=clock)
    with monitor.recorder.by_ip.locked("8.8.4.4") as ip_buffer:
        for _ in range(3):
            ip_buffer.entries.append(make_activity(ip="8.8.4.4", status=403))
        triggered = engine.evaluate(ip_buffer.entries[-1], ip_buffer, None)

    assert triggered == []
