from secmon.models.activity import ActivityData, ActivityResponse
from secmon.models.analysis import IPAnalysis, UserBehaviorAnalysis
from secmon.models.rule import MonitoringRule, RuleScope, ThreatPattern
from secmon.models.security_event import (
    AppLog,
    LogLevel,
    SecurityEvent,
    SecurityEventType,
    SuspiciousActivity,
    SuspiciousActivityType,
    ThreatLevel,
)

__all__ = [
    "ActivityData",
    "ActivityResponse",
    "IPAnalysis",
    "UserBehaviorAnalysis",
    "MonitoringRule",
    "RuleScope",
    "ThreatPattern",
    "AppLog",
    "LogLevel",
    "SecurityEvent",
    "SecurityEventType",
    "SuspiciousActivity",
    "SuspiciousActivityType",
    "ThreatLevel",
]
