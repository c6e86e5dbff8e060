from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

UNKNOWN_IP = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityResponse(BaseModel):
    status: int
    headers: Optional[dict[str, str]] = None

    class Config:
        frozen = True


class ActivityData(BaseModel):
    """One inbound request as seen by the monitor. Write-once."""

    ip_address: str = UNKNOWN_IP
    user_agent: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    headers: Optional[dict[str, str]] = None
    body: Any = None
    response: Optional[ActivityResponse] = None

    class Config:
        frozen = True

    @field_validator("ip_address", mode="before")
    @classmethod
    def default_ip(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNKNOWN_IP
        return value

    @field_validator("user_id", "session_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response else None
