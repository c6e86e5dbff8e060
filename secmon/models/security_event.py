import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from secmon.models.activity import utcnow


class ThreatLevel(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(enum.Enum):
    AUTHENTICATION_FAILURE = "auth_failure"
    AUTHORIZATION_FAILURE = "authz_failure"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_INPUT = "invalid_input"
    SQL_INJECTION_ATTEMPT = "sql_injection_attempt"
    XSS_ATTEMPT = "xss_attempt"
    CSRF_ATTEMPT = "csrf_attempt"
    PATH_TRAVERSAL_ATTEMPT = "path_traversal_attempt"
    SESSION_HIJACK_ATTEMPT = "session_hijack_attempt"
    BRUTE_FORCE_ATTEMPT = "brute_force_attempt"
    DATA_BREACH_ATTEMPT = "data_breach_attempt"
    PRIVILEGE_ESCALATION = "privilege_escalation"
    MALICIOUS_FILE_UPLOAD = "malicious_file_upload"
    SECURITY_SCAN_DETECTED = "security_scan_detected"
    ACCOUNT_LOCKOUT = "account_lockout"
    ACCESS_VIOLATION = "access_violation"
    BLOCK_REMOVED = "block_removed"


class SuspiciousActivityType(enum.Enum):
    BRUTE_FORCE_ATTACK = "brute_force_attack"
    CREDENTIAL_STUFFING = "credential_stuffing"
    ACCOUNT_ENUMERATION = "account_enumeration"
    PRIVILEGE_ESCALATION = "privilege_escalation"
    DATA_EXFILTRATION = "data_exfiltration"
    AUTOMATED_SCANNING = "automated_scanning"
    SUSPICIOUS_USER_AGENT = "suspicious_user_agent"
    RAPID_REQUESTS = "rapid_requests"
    UNUSUAL_GEOGRAPHIC_ACCESS = "unusual_geographic_access"
    SESSION_HIJACKING = "session_hijacking"
    CSRF_ATTACK = "csrf_attack"
    XSS_ATTACK = "xss_attack"
    SQL_INJECTION = "sql_injection"
    PATH_TRAVERSAL = "path_traversal"
    MALICIOUS_FILE_UPLOAD = "malicious_file_upload"


class LogLevel(enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


def generate_id() -> str:
    return uuid.uuid4().hex


def cap_risk_score(score: float) -> int:
    return int(max(0, min(100, score)))


class SuspiciousActivity(BaseModel):
    id: str = Field(default_factory=generate_id)
    type: SuspiciousActivityType
    severity: ThreatLevel
    description: str
    ip_address: str
    user_agent: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    risk_score: int = 0
    evidence: dict[str, Any] = Field(default_factory=dict)
    blocked: bool = False
    action_taken: str = "Logged"

    @field_validator("risk_score", mode="before")
    @classmethod
    def cap_score(cls, value: float) -> int:
        return cap_risk_score(value)


class SecurityEvent(BaseModel):
    id: str = Field(default_factory=generate_id)
    type: SecurityEventType
    severity: ThreatLevel
    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[dict[str, Any]] = None
    payload: Any = None
    context: Optional[dict[str, Any]] = None
    blocked: bool = False
    risk_score: int = 0

    @field_validator("risk_score", mode="before")
    @classmethod
    def cap_score(cls, value: float) -> int:
        return cap_risk_score(value)


class ErrorDetail(BaseModel):
    name: str
    message: str


class AppLog(BaseModel):
    id: str = Field(default_factory=generate_id)
    level: LogLevel
    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    context: Optional[dict[str, Any]] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    component: Optional[str] = None
    action: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[ErrorDetail] = None
