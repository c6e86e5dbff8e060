import json
import time
from typing import Any, Optional
from urllib.parse import parse_qsl, unquote_plus
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from secmon.config import Settings
from secmon.core.logger import logger
from secmon.models.activity import UNKNOWN_IP, ActivityData, ActivityResponse
from secmon.security.monitor import SecurityMonitor
from secmon.security.sanitizer import sanitize, sanitize_mapping

BLOCKED_IP_BODY = {
    "error": "Access denied",
    "message": "Your IP address has been blocked due to suspicious activity",
}

BLOCKED_USER_BODY = {
    "error": "Account suspended",
    "message": "Your account has been suspended due to suspicious activity",
}


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_IP


def get_user_id(request: Request, config: Settings) -> Optional[str]:
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    return request.headers.get(config.user_id_header) or None


def request_url(request: Request) -> str:
    query = request.url.query
    if query:
        return f"{request.url.path}?{unquote_plus(query)}"
    return request.url.path


def should_record(path: str, status_code: int, duration_ms: float, config: Settings) -> bool:
    if config.track_all_requests:
        return True
    if config.track_failed_requests and status_code >= 400:
        return True
    if config.track_slow_requests and duration_ms > config.slow_request_threshold_ms:
        return True
    if "/auth/" in path or "/login" in path or "/logout" in path:
        return True
    return path.startswith("/admin/")


class SecurityMonitoringMiddleware(BaseHTTPMiddleware):
    """Gates every request on the blocklists, then records it with the monitor.

    The monitor is read from ``app.state.monitor`` so the middleware can be
    registered before the lifespan has built it.
    """

    def __init__(self, app, monitor: Optional[SecurityMonitor] = None):
        super().__init__(app)
        self.monitor = monitor

    def _get_monitor(self, request: Request) -> Optional[SecurityMonitor]:
        if self.monitor is not None:
            return self.monitor
        return getattr(request.app.state, "monitor", None)

    @staticmethod
    def _is_excluded(path: str, config: Settings) -> bool:
        return any(path.startswith(excluded) for excluded in config.exclude_paths)

    async def dispatch(self, request: Request, call_next):
        monitor = self._get_monitor(request)
        if monitor is None or not monitor.config.monitoring_enabled:
            return await call_next(request)

        config = monitor.config
        path = request.url.path
        if self._is_excluded(path, config):
            return await call_next(request)

        started = time.perf_counter()
        ip_address = get_client_ip(request)
        user_id = get_user_id(request, config)
        user_agent = request.headers.get("user-agent")

        try:
            if monitor.is_ip_blocked(ip_address):
                logger.warning("blocked_ip_request", ip=ip_address, user_agent=user_agent, endpoint=path)
                return JSONResponse(status_code=403, content=BLOCKED_IP_BODY)

            if user_id and monitor.is_user_blocked(user_id):
                logger.warning("blocked_user_request", user_id=user_id, ip=ip_address, endpoint=path)
                return JSONResponse(status_code=403, content=BLOCKED_USER_BODY)
        except Exception as e:
            logger.error("block_check_failed", ip=ip_address, error=str(e))

        activity = {
            "timestamp": monitor.clock(),
            "ip_address": ip_address,
            "user_agent": user_agent,
            "user_id": user_id,
            "session_id": request.cookies.get(config.session_cookie),
            "url": request_url(request),
            "method": request.method,
            "headers": sanitize_mapping(dict(request.headers)),
            "body": await self._extract_body(request, config),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            self._record(monitor, activity, 500, None)
            logger.error(
                "request_failed",
                url=activity["url"],
                method=request.method,
                ip=ip_address,
                user_id=user_id,
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        if should_record(path, response.status_code, duration_ms, config):
            response_headers = (
                sanitize_mapping(dict(response.headers))
                if config.include_response_headers else None
            )
            self._record(monitor, activity, response.status_code, response_headers)

        if config.track_slow_requests and duration_ms > config.slow_request_threshold_ms:
            logger.warning(
                "slow_request",
                url=activity["url"],
                method=request.method,
                duration_ms=round(duration_ms, 2),
                ip=ip_address,
                user_id=user_id,
            )

        return response

    @staticmethod
    def _record(
        monitor: SecurityMonitor,
        activity: dict[str, Any],
        status_code: int,
        response_headers: Optional[dict[str, Any]]
    ) -> None:
        try:
            monitor.record(ActivityData(
                **activity,
                response=ActivityResponse(status=status_code, headers=response_headers),
            ))
        except Exception as e:
            logger.error("record_request_failed", ip=activity.get("ip_address"), error=str(e))

    @staticmethod
    async def _extract_body(request: Request, config: Settings) -> Any:
        if not config.include_request_body:
            return None

        content_type = request.headers.get("content-type", "")
        is_json = "application/json" in content_type
        is_form = "application/x-www-form-urlencoded" in content_type
        if not (is_json or is_form):
            return None

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > config.max_body_size:
            return {"truncated": True, "reason": "Body too large"}

        try:
            raw = await request.body()
            if len(raw) > config.max_body_size:
                return {"truncated": True, "reason": "Body too large"}
            if is_json:
                return sanitize(json.loads(raw or b"null"))
            return sanitize(dict(parse_qsl(raw.decode("utf-8", errors="replace"))))
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug("request_body_unreadable", error=str(e))
            return {"error": "Failed to extract body"}
