import json
from typing import Any, Optional

from secmon.core.logger import logger
from secmon.models.activity import UNKNOWN_IP, ActivityData
from secmon.models.rule import ThreatPattern
from secmon.models.security_event import SuspiciousActivity
from secmon.security.blocklist_manager import BlocklistManager
from secmon.security.detectors.base import BaseDetector
from secmon.security.detectors.command_injection import CommandInjectionDetector
from secmon.security.detectors.path_traversal import PathTraversalDetector
from secmon.security.detectors.sql_injection import SQLInjectionDetector
from secmon.security.detectors.xss import XSSDetector
from secmon.security.risk_scorer import severity_of
from secmon.services.event_logger import AuditLog


def default_detectors() -> list[BaseDetector]:
    return [
        SQLInjectionDetector(),
        XSSDetector(),
        PathTraversalDetector(),
        CommandInjectionDetector(),
    ]


def _stringify(value: Any) -> str:
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


class ThreatPatternMatcher:
    """Scans URL, body and headers of an activity for attack-signature substrings."""

    def __init__(
        self,
        audit_log: AuditLog,
        blocklist: BlocklistManager,
        detectors: Optional[list[BaseDetector]] = None,
        block_unknown_ip: bool = True
    ):
        self.audit_log = audit_log
        self.blocklist = blocklist
        self.detectors = detectors if detectors is not None else default_detectors()
        self.block_unknown_ip = block_unknown_ip

    @property
    def patterns(self) -> list[ThreatPattern]:
        return [detector.pattern for detector in self.detectors]

    def get_pattern(self, pattern_id: str) -> Optional[ThreatPattern]:
        for pattern in self.patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    def active_pattern_count(self) -> int:
        return sum(1 for pattern in self.patterns if pattern.enabled)

    @staticmethod
    def build_search_content(activity: ActivityData) -> str:
        body = activity.body if activity.body is not None else {}
        return " ".join([
            activity.url or "",
            _stringify(body),
            _stringify(activity.headers or {}),
        ]).lower()

    def scan(self, activity: ActivityData) -> list[tuple[ThreatPattern, list[str]]]:
        content = self.build_search_content(activity)
        matches = []

        for detector in self.detectors:
            if not detector.pattern.enabled:
                continue
            try:
                matched = detector.match(content)
            except Exception as e:
                logger.error(
                    "threat_pattern_check_failed",
                    pattern_id=detector.pattern.id,
                    ip=activity.ip_address,
                    error=str(e),
                )
                continue
            if matched:
                matches.append((detector.pattern, matched))

        return matches

    def evaluate(self, activity: ActivityData) -> list[SuspiciousActivity]:
        triggered = []

        for pattern, matched in self.scan(activity):
            try:
                triggered.append(self._trigger(pattern, matched, activity))
            except Exception as e:
                logger.error(
                    "threat_pattern_trigger_failed",
                    pattern_id=pattern.id,
                    ip=activity.ip_address,
                    error=str(e),
                )

        return triggered

    def _trigger(
        self,
        pattern: ThreatPattern,
        matched: list[str],
        activity: ActivityData
    ) -> SuspiciousActivity:
        block = pattern.auto_block and (self.block_unknown_ip or activity.ip_address != UNKNOWN_IP)

        suspicious_activity = self.audit_log.record_suspicious_activity(
            activity_type=pattern.activity_type,
            severity=severity_of(pattern.risk_score),
            description=f"{pattern.name} detected: {', '.join(matched)}",
            ip_address=activity.ip_address,
            risk_score=pattern.risk_score,
            evidence={
                "pattern": pattern.name,
                "pattern_id": pattern.id,
                "indicators": matched,
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
            "threat_detected",
            threat_type=pattern.id,
            severity=suspicious_activity.severity.value,
            indicators=matched,
            ip=activity.ip_address,
            endpoint=activity.url,
            method=activity.method,
        )

        if block:
            self.blocklist.block_ip(activity.ip_address, f"Blocked by threat pattern: {pattern.name}")

        return suspicious_activity
