from datetime import datetime, timedelta
from typing import Callable, Optional

from secmon.config import settings
from secmon.models.activity import ActivityData, utcnow
from secmon.models.analysis import IPAnalysis, UserBehaviorAnalysis
from secmon.security.activity_recorder import ActivityRecorder
from secmon.security.blocklist_manager import BlocklistManager
from secmon.security.risk_scorer import weighted_score
from secmon.services.event_logger import AuditLog


def average_interval_ms(activities: list[ActivityData]) -> float:
    """Mean gap between consecutive activities in milliseconds, 0 below two entries."""
    if len(activities) < 2:
        return 0.0
    timestamps = sorted(a.timestamp for a in activities)
    deltas = [
        (later - earlier).total_seconds() * 1000
        for earlier, later in zip(timestamps, timestamps[1:])
    ]
    return sum(deltas) / len(deltas)


def score_ip_activity(
    request_count: int,
    failed_attempts: int,
    unique_user_agents: int,
    avg_interval_ms: float,
    unique_endpoints: int
) -> tuple[int, list[str]]:
    factors = [
        ("high_request_volume", request_count > 100, 30),
        ("repeated_failures", failed_attempts > 10, 25),
        ("multiple_user_agents", unique_user_agents > 5, 15),
        ("rapid_request_interval", avg_interval_ms < 1000, 20),
        ("endpoint_enumeration", unique_endpoints > 50, 10),
    ]
    score = weighted_score([(fired, weight) for _, fired, weight in factors])
    return score, [name for name, fired, _ in factors if fired]


def score_user_activity(
    failed_logins: int,
    privilege_escalation_attempts: int,
    session_count: int,
    request_count: int
) -> int:
    return weighted_score([
        (failed_logins > 5, 30),
        (privilege_escalation_attempts > 3, 40),
        (session_count > 5, 20),
        (request_count > 500, 10),
    ])


class AnalysisEngine:
    """On-demand behavioral statistics over the buffered history. Nothing is cached."""

    def __init__(
        self,
        recorder: ActivityRecorder,
        blocklist: BlocklistManager,
        audit_log: AuditLog,
        retention_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.recorder = recorder
        self.blocklist = blocklist
        self.audit_log = audit_log
        self.retention_seconds = retention_seconds or settings.activity_retention_seconds
        self.clock = clock

    def _recent(self, activities: list[ActivityData]) -> list[ActivityData]:
        cutoff = self.clock() - timedelta(seconds=self.retention_seconds)
        return [a for a in activities if a.timestamp >= cutoff]

    def get_ip_analysis(self, ip_address: str) -> Optional[IPAnalysis]:
        recent = self._recent(self.recorder.ip_activities(ip_address))
        if not recent:
            return None

        failed_attempts = sum(1 for a in recent if a.status is not None and a.status >= 400)
        unique_user_agents = len({a.user_agent for a in recent if a.user_agent})
        unique_endpoints = len({a.url for a in recent if a.url})
        avg_interval = average_interval_ms(recent)

        risk_score, patterns = score_ip_activity(
            len(recent),
            failed_attempts,
            unique_user_agents,
            avg_interval,
            unique_endpoints,
        )

        timestamps = [a.timestamp for a in recent]
        return IPAnalysis(
            ip_address=ip_address,
            request_count=len(recent),
            failed_attempts=failed_attempts,
            unique_user_agents=unique_user_agents,
            unique_endpoints=unique_endpoints,
            avg_request_interval=avg_interval,
            suspicious_patterns=patterns,
            risk_score=risk_score,
            is_blocked=self.blocklist.is_ip_blocked(ip_address),
            first_seen=min(timestamps),
            last_seen=max(timestamps),
        )

    def get_user_behavior_analysis(self, user_id: str) -> Optional[UserBehaviorAnalysis]:
        recent = self._recent(self.recorder.user_activities(user_id))
        if not recent:
            return None

        session_count = len({a.session_id for a in recent if a.session_id})
        failed_logins = sum(
            1 for a in recent
            if a.url and "/auth/" in a.url and a.status == 401
        )
        privilege_escalation_attempts = sum(1 for a in recent if a.status == 403)

        risk_score = score_user_activity(
            failed_logins,
            privilege_escalation_attempts,
            session_count,
            len(recent),
        )

        seen_types = []
        for suspicious in self.audit_log.get_suspicious_activities(user_id=user_id):
            if suspicious.type.value not in seen_types:
                seen_types.append(suspicious.type.value)

        timestamps = [a.timestamp for a in recent]
        return UserBehaviorAnalysis(
            user_id=user_id,
            session_count=session_count,
            request_count=len(recent),
            failed_logins=failed_logins,
            privilege_escalation_attempts=privilege_escalation_attempts,
            suspicious_activities=seen_types,
            risk_score=risk_score,
            is_blocked=self.blocklist.is_user_blocked(user_id),
            first_seen=min(timestamps),
            last_seen=max(timestamps),
        )


def describe_ip_risk(analysis: IPAnalysis) -> tuple[list[str], list[str]]:
    risk_factors = []
    recommendations = []

    if analysis.risk_score >= 70:
        risk_factors.append("High risk score detected")
        recommendations.append("Consider blocking this IP address")
    if analysis.failed_attempts > 10:
        risk_factors.append("Multiple failed authentication attempts")
        recommendations.append("Monitor for brute force attacks")
    if analysis.avg_request_interval < 1000:
        risk_factors.append("Rapid request pattern detected")
        recommendations.append("Check for automated scanning")
    if analysis.unique_user_agents > 5:
        risk_factors.append("Multiple user agents from same IP")
        recommendations.append("Possible bot or proxy usage")

    return risk_factors, recommendations


def describe_user_risk(analysis: UserBehaviorAnalysis) -> tuple[list[str], list[str]]:
    risk_factors = []
    recommendations = []

    if analysis.risk_score >= 70:
        risk_factors.append("High risk score detected")
        recommendations.append("Consider reviewing user account")
    if analysis.failed_logins > 5:
        risk_factors.append("Multiple failed login attempts")
        recommendations.append("User may be compromised")
    if analysis.privilege_escalation_attempts > 3:
        risk_factors.append("Privilege escalation attempts detected")
        recommendations.append("Review user permissions and access")
    if analysis.session_count > 5:
        risk_factors.append("Multiple concurrent sessions")
        recommendations.append("Check for account sharing or compromise")

    return risk_factors, recommendations
