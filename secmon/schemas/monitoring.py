from pydantic import BaseModel, Field
from typing import Optional, Literal
from secmon.models.analysis import IPAnalysis, UserBehaviorAnalysis
from secmon.schemas.security_event import SuspiciousActivityResponse


class SecurityActionRequest(BaseModel):
    action: str
    target: Optional[str] = None
    target_type: Optional[str] = Field(default=None, alias="targetType")
    reason: Optional[str] = None

    class Config:
        populate_by_name = True


class ActionResult(BaseModel):
    success: bool
    message: str


class MonitoringStats(BaseModel):
    total_activities: int
    blocked_ips: int
    blocked_users: int
    suspicious_activities: int
    active_rules: int
    active_threat_patterns: int


class LastHourSummary(BaseModel):
    events: int
    unique_ips: int
    blocked_ips: int


class ThreatSummary(BaseModel):
    high_risk_events: int
    critical_events: int
    blocked_attempts: int
    last_hour: LastHourSummary


class RiskEntry(BaseModel):
    key: str
    risk_score: int
    request_count: int
    is_blocked: bool


class MonitoringStatsResponse(BaseModel):
    stats: MonitoringStats
    recent_activities: list[SuspiciousActivityResponse]
    top_risk_ips: list[RiskEntry]
    top_risk_users: list[RiskEntry]
    threat_summary: ThreatSummary


class IPAnalysisResponse(BaseModel):
    analysis: IPAnalysis
    risk_factors: list[str]
    recommendations: list[str]


class UserAnalysisResponse(BaseModel):
    analysis: UserBehaviorAnalysis
    risk_factors: list[str]
    recommendations: list[str]


class ClearDataResponse(BaseModel):
    success: bool
    message: str
    deleted_items: int


class RuleStatus(BaseModel):
    id: str
    name: str
    kind: Literal["rule", "threat_pattern"]
    severity: Optional[str]
    risk_score: int
    auto_block: bool
    enabled: bool


class RuleUpdate(BaseModel):
    enabled: bool
