import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from secmon.models.security_event import SuspiciousActivityType, ThreatLevel, cap_risk_score


class RuleScope(enum.Enum):
    IP = "ip"
    USER = "user"


class RequestRateCondition(BaseModel):
    """More than ``threshold`` activities within the window."""

    kind: Literal["request_rate"] = "request_rate"
    threshold: int
    window_seconds: float


class StatusCountCondition(BaseModel):
    """At least ``min_count`` activities answered with one of ``statuses`` within the window."""

    kind: Literal["status_count"] = "status_count"
    statuses: list[int]
    min_count: int
    window_seconds: float


class UserAgentCondition(BaseModel):
    kind: Literal["user_agent"] = "user_agent"
    denylist: list[str]


class PathStatusCondition(BaseModel):
    """The current activity hit one of ``path_fragments`` and was answered with ``status``."""

    kind: Literal["path_status"] = "path_status"
    path_fragments: list[str]
    status: int


RuleCondition = Annotated[
    Union[RequestRateCondition, StatusCountCondition, UserAgentCondition, PathStatusCondition],
    Field(discriminator="kind"),
]


class MonitoringRule(BaseModel):
    id: str
    name: str
    description: str
    condition: RuleCondition
    scope: RuleScope = RuleScope.IP
    severity: ThreatLevel
    risk_score: int
    auto_block: bool = False
    enabled: bool = True
    cooldown_seconds: float
    activity_type: SuspiciousActivityType

    @field_validator("risk_score", mode="before")
    @classmethod
    def cap_score(cls, value: float) -> int:
        return cap_risk_score(value)


class ThreatPattern(BaseModel):
    id: str
    name: str
    description: str
    indicators: list[str]
    risk_score: int
    auto_block: bool = True
    enabled: bool = True
    activity_type: SuspiciousActivityType

    @field_validator("risk_score", mode="before")
    @classmethod
    def cap_score(cls, value: float) -> int:
        return cap_risk_score(value)
