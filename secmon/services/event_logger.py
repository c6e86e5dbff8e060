import queue
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Optional

from secmon.config import settings
from secmon.core.logger import logger
from secmon.models.activity import utcnow
from secmon.models.security_event import (
    AppLog,
    ErrorDetail,
    LogLevel,
    SecurityEvent,
    SecurityEventType,
    SuspiciousActivity,
    SuspiciousActivityType,
    ThreatLevel,
)
from secmon.security.risk_scorer import event_risk_score, severity_of
from secmon.security.sanitizer import sanitize, sanitize_mapping

AuditSink = Callable[[SecurityEvent], None]

_STOP = object()

_LOG_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
    LogLevel.CRITICAL: "critical",
}


class AuditLog:
    """Bounded in-memory audit trail: suspicious activities, security events, app logs.

    Every list is append-only from the outside; overflow trims the oldest
    entries silently. Structured context is sanitized before it is stored.
    Security events reach the registered sinks through a queue drained by a
    dispatcher thread, never on the caller's thread.
    """

    def __init__(
        self,
        max_suspicious_activities: Optional[int] = None,
        suspicious_activities_trim_to: Optional[int] = None,
        max_security_events: Optional[int] = None,
        max_app_logs: Optional[int] = None,
        high_risk_threshold: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.max_suspicious_activities = max_suspicious_activities or settings.max_suspicious_activities
        self.suspicious_activities_trim_to = min(
            suspicious_activities_trim_to or settings.suspicious_activities_trim_to,
            self.max_suspicious_activities,
        )
        self.high_risk_threshold = (
            settings.high_risk_threshold if high_risk_threshold is None else high_risk_threshold
        )
        self.clock = clock

        self._lock = threading.Lock()
        self._suspicious_activities: list[SuspiciousActivity] = []
        self._security_events: deque[SecurityEvent] = deque(
            maxlen=max_security_events or settings.max_security_events
        )
        self._logs: deque[AppLog] = deque(maxlen=max_app_logs or settings.max_app_logs)
        self._sinks: list[AuditSink] = []
        self._sink_queue: "queue.Queue[Any]" = queue.Queue()
        self._dispatcher: Optional[threading.Thread] = None
        self._stopped = False

    def add_sink(self, sink: AuditSink) -> None:
        with self._lock:
            self._sinks.append(sink)
        self.start()

    def start(self) -> None:
        with self._lock:
            if self._dispatcher is not None or self._stopped:
                return
            self._dispatcher = threading.Thread(
                target=self._dispatch_events,
                name="audit-sink-dispatcher",
                daemon=True,
            )
            self._dispatcher.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Deliver whatever is queued, then stop the dispatcher for good."""
        with self._lock:
            dispatcher = self._dispatcher
            self._dispatcher = None
            self._stopped = True
        if dispatcher is None:
            return
        self._sink_queue.put(_STOP)
        dispatcher.join(timeout)

    def flush(self) -> None:
        """Block until every queued event has been handed to the sinks."""
        with self._lock:
            running = self._dispatcher is not None
        if running:
            self._sink_queue.join()

    def _dispatch_events(self) -> None:
        while True:
            event = self._sink_queue.get()
            try:
                if event is _STOP:
                    return
                with self._lock:
                    sinks = list(self._sinks)
                for sink in sinks:
                    try:
                        sink(event)
                    except Exception as e:
                        logger.error("audit_sink_failed", sink=repr(sink), error=str(e))
            finally:
                self._sink_queue.task_done()

    def record_suspicious_activity(
        self,
        activity_type: SuspiciousActivityType,
        severity: ThreatLevel,
        description: str,
        ip_address: str,
        risk_score: int,
        evidence: Optional[dict[str, Any]] = None,
        blocked: bool = False,
        user_agent: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> SuspiciousActivity:
        suspicious_activity = SuspiciousActivity(
            type=activity_type,
            severity=severity,
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
            user_id=user_id,
            session_id=session_id,
            timestamp=self.clock(),
            risk_score=risk_score,
            evidence=sanitize_mapping(evidence) or {},
            blocked=blocked,
            action_taken="IP Blocked" if blocked else "Logged",
        )

        with self._lock:
            self._suspicious_activities.append(suspicious_activity)
            if len(self._suspicious_activities) > self.max_suspicious_activities:
                self._suspicious_activities = self._suspicious_activities[
                    -self.suspicious_activities_trim_to:
                ]

        self.log_security_event(
            SecurityEventType.SUSPICIOUS_ACTIVITY,
            description,
            user_id=user_id,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
            blocked=blocked,
            context=suspicious_activity.evidence,
            risk_score=suspicious_activity.risk_score,
        )

        return suspicious_activity

    def log_security_event(
        self,
        event_type: SecurityEventType,
        message: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        url: Optional[str] = None,
        method: Optional[str] = None,
        headers: Optional[dict[str, Any]] = None,
        payload: Any = None,
        blocked: bool = False,
        context: Optional[dict[str, Any]] = None,
        risk_score: Optional[int] = None
    ) -> SecurityEvent:
        if risk_score is None:
            risk_score = event_risk_score(event_type, context)

        event = SecurityEvent(
            type=event_type,
            severity=severity_of(risk_score),
            timestamp=self.clock(),
            message=message,
            user_id=user_id,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
            url=url,
            method=method,
            headers=sanitize_mapping(headers),
            payload=sanitize(payload) if payload is not None else None,
            context=sanitize_mapping(context),
            blocked=blocked,
            risk_score=risk_score,
        )

        with self._lock:
            self._security_events.append(event)
            dispatch = bool(self._sinks) and self._dispatcher is not None

        logger.info(
            "security_event",
            event_type=event.type.value,
            severity=event.severity.value,
            ip=ip_address,
            user_id=user_id,
            blocked=blocked,
            risk_score=event.risk_score,
            message=message,
        )

        if event.risk_score >= self.high_risk_threshold:
            logger.warning(
                "high_risk_security_event",
                event_id=event.id,
                event_type=event.type.value,
                risk_score=event.risk_score,
                ip=ip_address,
            )

        if dispatch:
            self._sink_queue.put(event)

        return event

    def log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        component: Optional[str] = None,
        action: Optional[str] = None,
        duration: Optional[float] = None,
        error: Optional[BaseException] = None
    ) -> AppLog:
        entry = AppLog(
            level=level,
            timestamp=self.clock(),
            message=message,
            context=sanitize_mapping(context),
            user_id=user_id,
            session_id=session_id,
            component=component,
            action=action,
            duration=duration,
            error=ErrorDetail(name=type(error).__name__, message=str(error)) if error else None,
        )

        with self._lock:
            self._logs.append(entry)

        log_method = getattr(logger, _LOG_METHODS.get(level, "info"))
        log_method(
            message,
            component=component,
            action=action,
            user_id=user_id,
            context=entry.context,
            error=entry.error.message if entry.error else None,
        )

        return entry

    def debug(self, message: str, **kwargs: Any) -> AppLog:
        return self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> AppLog:
        return self.log(LogLevel.INFO, message, **kwargs)

    def warn(self, message: str, **kwargs: Any) -> AppLog:
        return self.log(LogLevel.WARN, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> AppLog:
        return self.log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> AppLog:
        return self.log(LogLevel.CRITICAL, message, **kwargs)

    def get_recent_suspicious_activities(self, limit: int = 50) -> list[SuspiciousActivity]:
        with self._lock:
            activities = list(self._suspicious_activities)
        activities.sort(key=lambda a: a.timestamp, reverse=True)
        return activities[:max(limit, 0)]

    def get_suspicious_activities(
        self,
        ip_address: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> list[SuspiciousActivity]:
        with self._lock:
            activities = list(self._suspicious_activities)
        return [
            a for a in activities
            if (ip_address is None or a.ip_address == ip_address)
            and (user_id is None or a.user_id == user_id)
        ]

    def count_suspicious_activities(self) -> int:
        with self._lock:
            return len(self._suspicious_activities)

    def get_security_events(self, limit: int = 50) -> list[SecurityEvent]:
        with self._lock:
            events = list(self._security_events)
        return list(reversed(events))[:max(limit, 0)]

    def get_high_risk_events(self, min_risk_score: Optional[int] = None) -> list[SecurityEvent]:
        threshold = self.high_risk_threshold if min_risk_score is None else min_risk_score
        with self._lock:
            events = list(self._security_events)
        return [e for e in reversed(events) if e.risk_score >= threshold]

    def get_logs(self, limit: int = 100) -> list[AppLog]:
        with self._lock:
            logs = list(self._logs)
        return list(reversed(logs))[:max(limit, 0)]

    def export(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            logs = list(self._logs)
            events = list(self._security_events)
        return {
            "logs": [entry.model_dump(mode="json") for entry in logs],
            "security_events": [event.model_dump(mode="json") for event in events],
        }

    def clear_suspicious_activities(self) -> int:
        with self._lock:
            removed = len(self._suspicious_activities)
            self._suspicious_activities = []
        return removed

    def clear(self) -> None:
        with self._lock:
            self._suspicious_activities = []
            self._security_events.clear()
            self._logs.clear()

    def prune_older_than(self, cutoff: datetime) -> int:
        """Drop every entry older than ``cutoff``."""
        with self._lock:
            before = (
                len(self._suspicious_activities)
                + len(self._security_events)
                + len(self._logs)
            )
            self._suspicious_activities = [
                a for a in self._suspicious_activities if a.timestamp >= cutoff
            ]
            kept_events = [e for e in self._security_events if e.timestamp >= cutoff]
            self._security_events.clear()
            self._security_events.extend(kept_events)
            kept_logs = [entry for entry in self._logs if entry.timestamp >= cutoff]
            self._logs.clear()
            self._logs.extend(kept_logs)
            after = (
                len(self._suspicious_activities)
                + len(self._security_events)
                + len(self._logs)
            )
        return before - after
