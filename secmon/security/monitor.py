from datetime import datetime
from typing import Any, Callable, Optional, Union

from secmon.config import Settings, settings as default_settings
from secmon.core.logger import logger
from secmon.models.activity import ActivityData, utcnow
from secmon.models.analysis import IPAnalysis, UserBehaviorAnalysis
from secmon.models.rule import MonitoringRule
from secmon.models.security_event import SuspiciousActivity
from secmon.security.activity_recorder import ActivityBuffer, ActivityRecorder
from secmon.security.analysis_engine import AnalysisEngine
from secmon.security.blocklist_manager import BlocklistManager
from secmon.security.detectors.base import BaseDetector
from secmon.security.retention import RetentionSweeper
from secmon.security.rule_engine import RuleEngine
from secmon.security.threat_detector import ThreatPatternMatcher
from secmon.services.event_logger import AuditLog

CLEARABLE_DATA_TYPES = ("activities", "blocked_ips", "blocked_users", "all")


class SecurityMonitor:
    """Process-wide monitoring service.

    Build one at startup and hand it to every request path. ``record`` is the
    hot path: append to the key buffers, evaluate rules, then threat patterns,
    all inside the per-key critical section held by the recorder.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        rules: Optional[list[MonitoringRule]] = None,
        detectors: Optional[list[BaseDetector]] = None
    ):
        self.config = config or default_settings
        self.clock = clock

        self.audit_log = AuditLog(
            max_suspicious_activities=self.config.max_suspicious_activities,
            suspicious_activities_trim_to=self.config.suspicious_activities_trim_to,
            max_security_events=self.config.max_security_events,
            max_app_logs=self.config.max_app_logs,
            high_risk_threshold=self.config.high_risk_threshold,
            clock=clock,
        )
        self.blocklist = BlocklistManager(self.audit_log)
        self.rule_engine = RuleEngine(
            self.audit_log,
            self.blocklist,
            rules=rules,
            clock=clock,
            block_unknown_ip=self.config.block_unknown_ip,
        )
        self.threat_matcher = ThreatPatternMatcher(
            self.audit_log,
            self.blocklist,
            detectors=detectors,
            block_unknown_ip=self.config.block_unknown_ip,
        )
        self.recorder = ActivityRecorder(
            max_activities_per_ip=self.config.max_activities_per_ip,
            max_activities_per_user=self.config.max_activities_per_user,
            on_recorded=self._analyze_activity,
        )
        self.analysis = AnalysisEngine(
            self.recorder,
            self.blocklist,
            self.audit_log,
            retention_seconds=self.config.activity_retention_seconds,
            clock=clock,
        )
        self.sweeper = RetentionSweeper(
            self.recorder,
            self.audit_log,
            retention_seconds=self.config.activity_retention_seconds,
            interval_seconds=self.config.cleanup_interval_seconds,
            clock=clock,
        )
        self._shut_down = False

    def _analyze_activity(
        self,
        activity: ActivityData,
        ip_buffer: ActivityBuffer,
        user_buffer: Optional[ActivityBuffer]
    ) -> None:
        now = self.clock()
        self.rule_engine.evaluate(activity, ip_buffer, user_buffer, now=now)
        self.threat_matcher.evaluate(activity)

    def record(self, activity: Union[ActivityData, dict[str, Any]]) -> None:
        self.recorder.record(activity)

    def is_ip_blocked(self, ip_address: str) -> bool:
        return self.blocklist.is_ip_blocked(ip_address)

    def is_user_blocked(self, user_id: Optional[str]) -> bool:
        return self.blocklist.is_user_blocked(user_id)

    def block_ip(self, ip_address: str, reason: str) -> None:
        self.blocklist.block_ip(ip_address, reason)

    def unblock_ip(self, ip_address: str, reason: Optional[str] = None) -> None:
        self.blocklist.unblock_ip(ip_address, reason)

    def block_user(self, user_id: str, reason: str) -> None:
        self.blocklist.block_user(user_id, reason)

    def unblock_user(self, user_id: str, reason: Optional[str] = None) -> None:
        self.blocklist.unblock_user(user_id, reason)

    def get_ip_analysis(self, ip_address: str) -> Optional[IPAnalysis]:
        return self.analysis.get_ip_analysis(ip_address)

    def get_user_behavior_analysis(self, user_id: str) -> Optional[UserBehaviorAnalysis]:
        return self.analysis.get_user_behavior_analysis(user_id)

    def get_recent_suspicious_activities(self, limit: int = 50) -> list[SuspiciousActivity]:
        return self.audit_log.get_recent_suspicious_activities(limit)

    def get_monitoring_stats(self) -> dict[str, int]:
        blocked_ips, blocked_users = self.blocklist.counts()
        return {
            "total_activities": self.recorder.total_activities(),
            "blocked_ips": blocked_ips,
            "blocked_users": blocked_users,
            "suspicious_activities": self.audit_log.count_suspicious_activities(),
            "active_rules": self.rule_engine.active_rule_count(),
            "active_threat_patterns": self.threat_matcher.active_pattern_count(),
        }

    def list_rules(self) -> list[dict[str, Any]]:
        entries = [
            {
                "id": rule.id,
                "name": rule.name,
                "kind": "rule",
                "severity": rule.severity.value,
                "risk_score": rule.risk_score,
                "auto_block": rule.auto_block,
                "enabled": rule.enabled,
            }
            for rule in self.rule_engine.rules
        ]
        entries.extend(
            {
                "id": pattern.id,
                "name": pattern.name,
                "kind": "threat_pattern",
                "severity": None,
                "risk_score": pattern.risk_score,
                "auto_block": pattern.auto_block,
                "enabled": pattern.enabled,
            }
            for pattern in self.threat_matcher.patterns
        )
        return entries

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        """Toggle a rule or threat pattern by id. Returns False for an unknown id."""
        target = self.rule_engine.get_rule(rule_id) or self.threat_matcher.get_pattern(rule_id)
        if target is None:
            return False
        target.enabled = enabled
        logger.info("monitoring_rule_toggled", rule_id=rule_id, enabled=enabled)
        return True

    def clear_monitoring_data(self, data_type: str = "all") -> int:
        if data_type not in CLEARABLE_DATA_TYPES:
            raise ValueError(f"Unknown data type: {data_type}")

        deleted = 0
        if data_type in ("activities", "all"):
            deleted += self.recorder.clear()
            deleted += self.audit_log.clear_suspicious_activities()
        if data_type in ("blocked_ips", "all"):
            deleted += self.blocklist.clear_ips()
        if data_type in ("blocked_users", "all"):
            deleted += self.blocklist.clear_users()

        logger.warning("monitoring_data_cleared", data_type=data_type, deleted_items=deleted)
        return deleted

    def start(self) -> None:
        if self._shut_down:
            return
        self.audit_log.start()
        self.sweeper.start()

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        self.sweeper.stop()
        self.audit_log.stop()
        logger.info("security_monitor_shutdown")

    def __enter__(self) -> "SecurityMonitor":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
