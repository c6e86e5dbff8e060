from datetime import datetime

from pydantic import BaseModel, Field


class IPAnalysis(BaseModel):
    ip_address: str
    request_count: int
    failed_attempts: int
    unique_user_agents: int
    unique_endpoints: int
    avg_request_interval: float
    suspicious_patterns: list[str] = Field(default_factory=list)
    risk_score: int
    is_blocked: bool
    first_seen: datetime
    last_seen: datetime


class UserBehaviorAnalysis(BaseModel):
    user_id: str
    session_count: int
    request_count: int
    failed_logins: int
    privilege_escalation_attempts: int
    suspicious_activities: list[str] = Field(default_factory=list)
    risk_score: int
    is_blocked: bool
    first_seen: datetime
    last_seen: datetime
