from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from secmon.security.monitor import SecurityMonitor


def get_monitor(request: Request) -> SecurityMonitor:
    return request.app.state.monitor


def require_admin(
    x_admin_key: Optional[str] = Header(default=None),
    monitor: SecurityMonitor = Depends(get_monitor)
) -> None:
    expected = monitor.config.admin_api_key
    if expected and x_admin_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized access to security monitoring"
        )
