import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from secmon.config import settings
from secmon.core.logger import logger
from secmon.models.activity import utcnow
from secmon.security.activity_recorder import ActivityRecorder, KeyedActivityStore
from secmon.services.event_logger import AuditLog


class RetentionSweeper:
    """Background thread that evicts activity and audit entries by age.

    Each key is pruned under its own lock, one key at a time. After ``stop``
    no new sweep cycle starts.
    """

    def __init__(
        self,
        recorder: ActivityRecorder,
        audit_log: AuditLog,
        retention_seconds: Optional[float] = None,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.recorder = recorder
        self.audit_log = audit_log
        self.retention_seconds = retention_seconds or settings.activity_retention_seconds
        self.interval_seconds = interval_seconds or settings.cleanup_interval_seconds
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running or self._stop_event.is_set():
                return
            self._thread = threading.Thread(
                target=self._run,
                name="secmon-retention-sweeper",
                daemon=True,
            )
            self._thread.start()
        logger.info("retention_sweeper_started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("retention_sweeper_stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception as e:
                logger.error("retention_sweep_failed", error=str(e))

    def sweep(self) -> dict[str, int]:
        cutoff = self.clock() - timedelta(seconds=self.retention_seconds)

        ip_removed = self._sweep_store(self.recorder.by_ip, cutoff)
        user_removed = self._sweep_store(self.recorder.by_user, cutoff)
        audit_removed = self.audit_log.prune_older_than(cutoff)

        result = {
            "ip_activities_removed": ip_removed,
            "user_activities_removed": user_removed,
            "audit_entries_removed": audit_removed,
        }
        logger.debug("retention_sweep_completed", **result)
        return result

    def _sweep_store(self, store: KeyedActivityStore, cutoff: datetime) -> int:
        removed = 0
        for key in store.keys():
            if self._stop_event.is_set():
                break
            removed += store.prune(key, cutoff)
        return removed
