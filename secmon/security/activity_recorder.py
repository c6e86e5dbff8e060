import threading
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Union

from secmon.config import settings
from secmon.core.logger import logger
from secmon.models.activity import ActivityData


class ActivityBuffer:
    """Fixed-capacity FIFO of activities for one IP or user.

    ``lock`` guards ``entries`` and ``last_triggered``. A buffer that the
    retention sweep emptied is marked ``closed`` and must not be written to.
    """

    __slots__ = ("key", "entries", "lock", "last_triggered", "closed")

    def __init__(self, key: str, capacity: int):
        self.key = key
        self.entries: deque[ActivityData] = deque(maxlen=capacity)
        self.lock = threading.Lock()
        self.last_triggered: dict[str, datetime] = {}
        self.closed = False

    def within(self, now: datetime, window_seconds: float) -> list[ActivityData]:
        return [
            a for a in self.entries
            if (now - a.timestamp).total_seconds() < window_seconds
        ]


class KeyedActivityStore:
    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._buffers: dict[str, ActivityBuffer] = {}
        self._lock = threading.Lock()

    @contextmanager
    def locked(self, key: str) -> Iterator[ActivityBuffer]:
        """Hold the buffer lock for ``key``, creating the buffer when needed."""
        while True:
            with self._lock:
                buffer = self._buffers.get(key)
                if buffer is None:
                    buffer = ActivityBuffer(key, self.capacity)
                    self._buffers[key] = buffer
            buffer.lock.acquire()
            if not buffer.closed:
                break
            buffer.lock.release()

        try:
            yield buffer
        finally:
            buffer.lock.release()

    def snapshot(self, key: str) -> list[ActivityData]:
        with self._lock:
            buffer = self._buffers.get(key)
        if buffer is None:
            return []
        with buffer.lock:
            return list(buffer.entries)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._buffers)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._buffers

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)

    def total_activities(self) -> int:
        with self._lock:
            buffers = list(self._buffers.values())
        return sum(len(buffer.entries) for buffer in buffers)

    def prune(self, key: str, cutoff: datetime) -> int:
        """Drop entries older than ``cutoff``; remove the key once empty."""
        with self._lock:
            buffer = self._buffers.get(key)
        if buffer is None:
            return 0

        with buffer.lock:
            if buffer.closed:
                return 0
            before = len(buffer.entries)
            kept = [a for a in buffer.entries if a.timestamp >= cutoff]
            if len(kept) != before:
                buffer.entries.clear()
                buffer.entries.extend(kept)
            if not kept:
                with self._lock:
                    if self._buffers.get(key) is buffer:
                        del self._buffers[key]
                buffer.closed = True
            return before - len(kept)

    def clear(self) -> int:
        with self._lock:
            buffers = list(self._buffers.values())
            self._buffers = {}
        removed = 0
        for buffer in buffers:
            with buffer.lock:
                removed += len(buffer.entries)
                buffer.closed = True
        return removed


ActivityHandler = Callable[[ActivityData, ActivityBuffer, Optional[ActivityBuffer]], Any]


class ActivityRecorder:
    """Stores each activity under its IP and, when present, its user id.

    The append and the ``on_recorded`` callback run inside the key's critical
    section: IP lock first, then user lock.
    """

    def __init__(
        self,
        max_activities_per_ip: Optional[int] = None,
        max_activities_per_user: Optional[int] = None,
        on_recorded: Optional[ActivityHandler] = None
    ):
        self.by_ip = KeyedActivityStore(max_activities_per_ip or settings.max_activities_per_ip)
        self.by_user = KeyedActivityStore(max_activities_per_user or settings.max_activities_per_user)
        self.on_recorded = on_recorded

    def record(self, activity: Union[ActivityData, dict[str, Any]]) -> bool:
        try:
            if not isinstance(activity, ActivityData):
                activity = ActivityData.model_validate(activity)

            with self.by_ip.locked(activity.ip_address) as ip_buffer:
                ip_buffer.entries.append(activity)
                if activity.user_id:
                    with self.by_user.locked(activity.user_id) as user_buffer:
                        user_buffer.entries.append(activity)
                        self._handle(activity, ip_buffer, user_buffer)
                else:
                    self._handle(activity, ip_buffer, None)
            return True

        except Exception as e:
            logger.error(
                "record_activity_failed",
                ip=getattr(activity, "ip_address", None),
                error=str(e),
            )
            return False

    def _handle(
        self,
        activity: ActivityData,
        ip_buffer: ActivityBuffer,
        user_buffer: Optional[ActivityBuffer]
    ) -> None:
        if self.on_recorded is None:
            return
        try:
            self.on_recorded(activity, ip_buffer, user_buffer)
        except Exception as e:
            logger.error("analyze_activity_failed", ip=activity.ip_address, error=str(e))

    def ip_activities(self, ip_address: str) -> list[ActivityData]:
        return self.by_ip.snapshot(ip_address)

    def user_activities(self, user_id: str) -> list[ActivityData]:
        return self.by_user.snapshot(user_id)

    def total_activities(self) -> int:
        return self.by_ip.total_activities()

    def clear(self) -> int:
        self.by_user.clear()
        return self.by_ip.clear()
