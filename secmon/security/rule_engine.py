from datetime import datetime
from typing import Callable, Optional

from secmon.core.logger import logger
from secmon.models.activity import UNKNOWN_IP, ActivityData, utcnow
from secmon.models.rule import (
    MonitoringRule,
    PathStatusCondition,
    RequestRateCondition,
    RuleScope,
    StatusCountCondition,
    UserAgentCondition,
)
from secmon.models.security_event import SuspiciousActivity, SuspiciousActivityType, ThreatLevel
from secmon.security.activity_recorder import ActivityBuffer
from secmon.security.blocklist_manager import BlocklistManager
from secmon.services.event_logger import AuditLog

SUSPICIOUS_USER_AGENTS = [
    "sqlmap", "nikto", "nmap", "masscan", "zap", "burp",
    "python-requests", "curl", "wget", "bot", "crawler",
    "scanner", "exploit", "hack",
]

ADMIN_PATHS = ["/admin", "/administrator", "/wp-admin", "/phpmyadmin"]


def default_rules() -> list[MonitoringRule]:
    return [
        MonitoringRule(
            id="rapid_requests",
            name="Rapid Request Detection",
            description="Detects unusually high request rates from a single IP",
            condition=RequestRateCondition(threshold=100, window_seconds=60),
            severity=ThreatLevel.HIGH,
            risk_score=80,
            auto_block=True,
            cooldown_seconds=5 * 60,
            activity_type=SuspiciousActivityType.RAPID_REQUESTS,
        ),
        MonitoringRule(
            id="failed_auth_attempts",
            name="Failed Authentication Detection",
            description="Detects multiple failed authentication attempts",
            condition=StatusCountCondition(statuses=[401], min_count=5, window_seconds=5 * 60),
            severity=ThreatLevel.HIGH,
            risk_score=75,
            auto_block=True,
            cooldown_seconds=10 * 60,
            activity_type=SuspiciousActivityType.BRUTE_FORCE_ATTACK,
        ),
        MonitoringRule(
            id="suspicious_user_agent",
            name="Suspicious User Agent Detection",
            description="Detects known malicious or suspicious user agents",
            condition=UserAgentCondition(denylist=SUSPICIOUS_USER_AGENTS),
            severity=ThreatLevel.MEDIUM,
            risk_score=60,
            auto_block=False,
            cooldown_seconds=60,
            activity_type=SuspiciousActivityType.SUSPICIOUS_USER_AGENT,
        ),
        MonitoringRule(
            id="admin_access_attempts",
            name="Admin Access Monitoring",
            description="Monitors unauthorized admin access attempts",
            condition=PathStatusCondition(path_fragments=ADMIN_PATHS, status=403),
            severity=ThreatLevel.HIGH,
            risk_score=70,
            auto_block=False,
            cooldown_seconds=2 * 60,
            activity_type=SuspiciousActivityType.PRIVILEGE_ESCALATION,
        ),
        MonitoringRule(
            id="privilege_escalation",
            name="Privilege Escalation Detection",
            description="Detects attempts to escalate privileges",
            condition=StatusCountCondition(statuses=[401, 403], min_count=3, window_seconds=10 * 60),
            scope=RuleScope.USER,
            severity=ThreatLevel.CRITICAL,
            risk_score=90,
            auto_block=True,
            cooldown_seconds=15 * 60,
            activity_type=SuspiciousActivityType.PRIVILEGE_ESCALATION,
        ),
    ]


class RuleEngine:
    """Evaluates cooldown-gated monitoring rules against a key's recent activity.

    ``evaluate`` must be called while the caller holds the locks of the
    buffers it passes in; cooldowns live on the buffers, one per (rule, key).
    """

    def __init__(
        self,
        audit_log: AuditLog,
        blocklist: BlocklistManager,
        rules: Optional[list[MonitoringRule]] = None,
        clock: Callable[[], datetime] = utcnow,
        block_unknown_ip: bool = True
    ):
        self.audit_log = audit_log
        self.blocklist = blocklist
        self.rules = rules if rules is not None else default_rules()
        self.clock = clock
        self.block_unknown_ip = block_unknown_ip
        self._evaluators = {
            "request_rate": self._request_rate,
            "status_count": self._status_count,
            "user_agent": self._user_agent,
            "path_status": self._path_status,
        }

    def get_rule(self, rule_id: str) -> Optional[MonitoringRule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def active_rule_count(self) -> int:
        return sum(1 for rule in self.rules if rule.enabled)

    def evaluate(
        self,
        activity: ActivityData,
        ip_buffer: ActivityBuffer,
        user_buffer: Optional[ActivityBuffer] = None,
        now: Optional[datetime] = None
    ) -> list[SuspiciousActivity]:
        now = now or self.clock()
        triggered = []

        for rule in self.rules:
            if not rule.enabled:
                continue

            buffer = ip_buffer if rule.scope is RuleScope.IP else user_buffer
            if buffer is None:
                continue

            if self.is_cooling_down(rule, buffer, now):
                continue

            try:
                if not self.check(rule, activity, buffer, now):
                    continue
                buffer.last_triggered[rule.id] = now
                triggered.append(self._trigger(rule, activity))
            except Exception as e:
                logger.error(
                    "rule_evaluation_failed",
                    rule_id=rule.id,
                    ip=activity.ip_address,
                    error=str(e),
                )

        return triggered

    def is_cooling_down(self, rule: MonitoringRule, buffer: ActivityBuffer, now: datetime) -> bool:
        last = buffer.last_triggered.get(rule.id)
        if last is None:
            return False
        return (now - last).total_seconds() < rule.cooldown_seconds

    def check(
        self,
        rule: MonitoringRule,
        activity: ActivityData,
        buffer: ActivityBuffer,
        now: datetime
    ) -> bool:
        evaluator = self._evaluators.get(rule.condition.kind)
        if evaluator is None:
            raise ValueError(f"unsupported rule condition: {rule.condition.kind}")
        return evaluator(rule.condition, activity, buffer, now)

    def _request_rate(
        self,
        condition: RequestRateCondition,
        activity: ActivityData,
        buffer: ActivityBuffer,
        now: datetime
    ) -> bool:
        return len(buffer.within(now, condition.window_seconds)) > condition.threshold

    def _status_count(
        self,
        condition: StatusCountCondition,
        activity: ActivityData,
        buffer: ActivityBuffer,
        now: datetime
    ) -> bool:
        statuses = set(condition.statuses)
        matching = [
            a for a in buffer.within(now, condition.window_seconds)
            if a.status in statuses
        ]
        return len(matching) >= condition.min_count

    def _user_agent(
        self,
        condition: UserAgentCondition,
        activity: ActivityData,
        buffer: ActivityBuffer,
        now: datetime
    ) -> bool:
        user_agent = (activity.user_agent or "").lower()
        if not user_agent:
            return False
        return any(agent.lower() in user_agent for agent in condition.denylist)

    def _path_status(
        self,
        condition: PathStatusCondition,
        activity: ActivityData,
        buffer: ActivityBuffer,
        now: datetime
    ) -> bool:
        url = activity.url or ""
        on_path = any(fragment in url for fragment in condition.path_fragments)
        return on_path and activity.status == condition.status

    def _trigger(self, rule: MonitoringRule, activity: ActivityData) -> SuspiciousActivity:
        block = rule.auto_block and (self.block_unknown_ip or activity.ip_address != UNKNOWN_IP)

        suspicious_activity = self.audit_log.record_suspicious_activity(
            activity_type=rule.activity_type,
            severity=rule.severity,
            description=f"{rule.name}: {rule.description}",
            ip_address=activity.ip_address,
            risk_score=rule.risk_score,
            evidence={
                "rule": rule.name,
                "rule_id": rule.id,
                "activity": {
                    "url": activity.url,
                    "method": activity.method,
                    "timestamp": activity.timestamp,
                },
            },
            blocked=block,
            user_agent=activity.user_agent,
            user_id=activity.user_id,
            session_id=activity.session_id,
        )

        logger.warning(
            "monitoring_rule_triggered",
            rule_id=rule.id,
            ip=activity.ip_address,
            user_id=activity.user_id,
            risk_score=rule.risk_score,
            blocked=block,
        )

        if block:
            self.blocklist.block_ip(activity.ip_address, f"Blocked by rule: {rule.name}")

        return suspicious_activity
