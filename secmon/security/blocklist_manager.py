import threading
from typing import Optional

from secmon.core.logger import logger
from secmon.models.security_event import SecurityEventType
from secmon.services.event_logger import AuditLog


class BlocklistManager:
    """IP and user block sets.

    Membership checks and mutations take the same lock, so a block or unblock
    is visible to every request thread as soon as the call returns.
    """

    def __init__(self, audit_log: AuditLog):
        self.audit_log = audit_log
        self._lock = threading.Lock()
        self._blocked_ips: set[str] = set()
        self._blocked_users: set[str] = set()

    def block_ip(self, ip_address: str, reason: str) -> bool:
        """Returns True when the IP was not blocked before."""
        self._require(ip_address, "ip_address")
        with self._lock:
            added = ip_address not in self._blocked_ips
            self._blocked_ips.add(ip_address)

        logger.warning("ip_blocked", ip=ip_address, reason=reason, already_blocked=not added)
        self.audit_log.log_security_event(
            SecurityEventType.ACCESS_VIOLATION,
            f"IP address blocked: {reason}",
            ip_address=ip_address,
            blocked=True,
            context={"reason": reason, "timestamp": self.audit_log.clock().isoformat()},
        )
        return added

    def block_user(self, user_id: str, reason: str) -> bool:
        self._require(user_id, "user_id")
        with self._lock:
            added = user_id not in self._blocked_users
            self._blocked_users.add(user_id)

        logger.warning("user_blocked", user_id=user_id, reason=reason, already_blocked=not added)
        self.audit_log.log_security_event(
            SecurityEventType.ACCOUNT_LOCKOUT,
            f"User blocked: {reason}",
            user_id=user_id,
            blocked=True,
            context={"reason": reason, "timestamp": self.audit_log.clock().isoformat()},
        )
        return added

    def unblock_ip(self, ip_address: str, reason: Optional[str] = None) -> bool:
        with self._lock:
            removed = ip_address in self._blocked_ips
            self._blocked_ips.discard(ip_address)

        logger.info("ip_unblocked", ip=ip_address, was_blocked=removed)
        self.audit_log.log_security_event(
            SecurityEventType.BLOCK_REMOVED,
            f"IP address unblocked: {ip_address}",
            ip_address=ip_address,
            blocked=False,
            context={"reason": reason, "was_blocked": removed},
        )
        return removed

    def unblock_user(self, user_id: str, reason: Optional[str] = None) -> bool:
        with self._lock:
            removed = user_id in self._blocked_users
            self._blocked_users.discard(user_id)

        logger.info("user_unblocked", user_id=user_id, was_blocked=removed)
        self.audit_log.log_security_event(
            SecurityEventType.BLOCK_REMOVED,
            f"User unblocked: {user_id}",
            user_id=user_id,
            blocked=False,
            context={"reason": reason, "was_blocked": removed},
        )
        return removed

    def is_ip_blocked(self, ip_address: str) -> bool:
        with self._lock:
            return ip_address in self._blocked_ips

    def is_user_blocked(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        with self._lock:
            return user_id in self._blocked_users

    def blocked_ips(self) -> list[str]:
        with self._lock:
            return sorted(self._blocked_ips)

    def blocked_users(self) -> list[str]:
        with self._lock:
            return sorted(self._blocked_users)

    def counts(self) -> tuple[int, int]:
        with self._lock:
            return len(self._blocked_ips), len(self._blocked_users)

    def clear_ips(self) -> int:
        with self._lock:
            removed = len(self._blocked_ips)
            self._blocked_ips.clear()
        logger.warning("blocked_ips_cleared", count=removed)
        return removed

    def clear_users(self) -> int:
        with self._lock:
            removed = len(self._blocked_users)
            self._blocked_users.clear()
        logger.warning("blocked_users_cleared", count=removed)
        return removed

    @staticmethod
    def _require(value: Optional[str], name: str) -> None:
        if not value or not value.strip():
            raise ValueError(f"{name} must be a non-empty string")
