from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    monitoring_enabled: bool = True

    max_activities_per_ip: int = 1000
    max_activities_per_user: int = 1000
    activity_retention_seconds: int = 24 * 60 * 60
    cleanup_interval_seconds: int = 60 * 60

    max_suspicious_activities: int = 1000
    suspicious_activities_trim_to: int = 500
    max_security_events: int = 500
    max_app_logs: int = 1000
    high_risk_threshold: int = 70
    block_unknown_ip: bool = True

    track_all_requests: bool = True
    track_failed_requests: bool = True
    track_slow_requests: bool = True
    slow_request_threshold_ms: int = 5000
    exclude_paths: list[str] = [
        "/favicon.ico",
        "/robots.txt",
        "/health",
        "/docs",
        "/openapi.json",
    ]
    include_request_body: bool = False
    include_response_headers: bool = False
    max_body_size: int = 10 * 1024

    user_id_header: str = "x-user-id"
    session_cookie: str = "session_id"

    admin_api_key: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
