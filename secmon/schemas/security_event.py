from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Any
from secmon.models.security_event import SecurityEventType, SuspiciousActivityType, ThreatLevel


class SuspiciousActivityResponse(BaseModel):
    id: str
    type: SuspiciousActivityType
    severity: ThreatLevel
    description: str
    ip_address: str
    user_agent: Optional[str]
    user_id: Optional[str]
    session_id: Optional[str]
    timestamp: datetime
    risk_score: int
    evidence: dict[str, Any]
    blocked: bool
    action_taken: str

    class Config:
        from_attributes = True


class SecurityEventResponse(BaseModel):
    id: str
    type: SecurityEventType
    severity: ThreatLevel
    timestamp: datetime
    message: str
    user_id: Optional[str]
    session_id: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    url: Optional[str]
    method: Optional[str]
    context: Optional[dict[str, Any]]
    blocked: bool
    risk_score: int

    class Config:
        from_attributes = True
