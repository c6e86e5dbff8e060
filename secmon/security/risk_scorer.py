from typing import Any, Optional

from secmon.models.security_event import SecurityEventType, ThreatLevel, cap_risk_score

EVENT_BASE_SCORES = {
    SecurityEventType.DATA_BREACH_ATTEMPT: 90,
    SecurityEventType.PRIVILEGE_ESCALATION: 90,
    SecurityEventType.SQL_INJECTION_ATTEMPT: 80,
    SecurityEventType.SESSION_HIJACK_ATTEMPT: 80,
    SecurityEventType.XSS_ATTEMPT: 70,
    SecurityEventType.BRUTE_FORCE_ATTEMPT: 70,
    SecurityEventType.CSRF_ATTEMPT: 60,
    SecurityEventType.PATH_TRAVERSAL_ATTEMPT: 60,
    SecurityEventType.MALICIOUS_FILE_UPLOAD: 50,
    SecurityEventType.SECURITY_SCAN_DETECTED: 50,
    SecurityEventType.RATE_LIMIT_EXCEEDED: 40,
    SecurityEventType.SUSPICIOUS_ACTIVITY: 40,
    SecurityEventType.AUTHORIZATION_FAILURE: 30,
    SecurityEventType.AUTHENTICATION_FAILURE: 20,
    SecurityEventType.INVALID_INPUT: 20,
}
DEFAULT_EVENT_SCORE = 10

CONTEXT_MODIFIERS = {
    "repeatOffender": 20,
    "multipleAttempts": 15,
    "adminTarget": 25,
    "sensitiveData": 30,
}


def severity_of(score: float) -> ThreatLevel:
    if score >= 80:
        return ThreatLevel.CRITICAL
    if score >= 60:
        return ThreatLevel.HIGH
    if score >= 40:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def event_risk_score(
    event_type: SecurityEventType,
    context: Optional[dict[str, Any]] = None
) -> int:
    score = EVENT_BASE_SCORES.get(event_type, DEFAULT_EVENT_SCORE)

    if context:
        for flag, bonus in CONTEXT_MODIFIERS.items():
            if context.get(flag):
                score += bonus

    return cap_risk_score(score)


def weighted_score(factors: list[tuple[bool, int]]) -> int:
    """Sum the weights of the factors that fired, capped to the 0-100 range."""
    return cap_risk_score(sum(weight for fired, weight in factors if fired))
