import threading
from datetime import timedelta

import pytest
from secmon.models.activity import UNKNOWN_IP, ActivityData
from secmon.security.activity_recorder import ActivityRecorder, KeyedActivityStore


def test_activity_stored_under_ip_and_user(make_activity):
    recorder = ActivityRecorder()
    assert recorder.record(make_activity(ip="1.1.1.1", user_id="alice")) is True

    assert len(recorder.ip_activities("1.1.1.1")) == 1
    assert len(recorder.user_activities("alice")) == 1


def test_activity_without_user_only_stored_by_ip(make_activity):
    recorder = ActivityRecorder()
    recorder.record(make_activity(ip="1.1.1.1"))

    assert len(recorder.by_user) == 0
    assert recorder.total_activities() == 1


def test_missing_ip_uses_unknown_sentinel():
    recorder = ActivityRecorder()
    recorder.record({"url": "/", "method": "GET", "ip_address": None})
    recorder.record(ActivityData(ip_address="  "))

    assert len(recorder.ip_activities(UNKNOWN_IP)) == 2


def test_buffer_capacity_evicts_oldest_first(make_activity, clock):
    recorder = ActivityRecorder(max_activities_per_ip=3)
    for index in range(5):
        clock.advance(1)
        recorder.record(make_activity(ip="2.2.2.2", url=f"/page/{index}"))

    urls = [a.url for a in recorder.ip_activities("2.2.2.2")]
    assert urls == ["/page/2", "/page/3", "/page/4"]


def test_record_never_raises_on_invalid_input():
    recorder = ActivityRecorder()
    assert recorder.record({"timestamp": "not a date"}) is False
    assert recorder.total_activities() == 0


def test_failing_handler_does_not_lose_activity(make_activity):
    def explode(activity, ip_buffer, user_buffer):
        raise RuntimeError("analysis bug")

    recorder = ActivityRecorder(on_recorded=explode)
    assert recorder.record(make_activity(ip="3.3.3.3")) is True
    assert len(recorder.ip_activities("3.3.3.3")) == 1


def test_handler_receives_locked_buffers(make_activity):
    seen = []

    def handler(activity, ip_buffer, user_buffer):
        seen.append((ip_buffer.key, user_buffer.key if user_buffer else None, ip_buffer.lock.locked()))

    recorder = ActivityRecorder(on_recorded=handler)
    recorder.record(make_activity(ip="4.4.4.4", user_id="bob"))
    recorder.record(make_activity(ip="4.4.4.4"))

    assert seen == [("4.4.4.4", "bob", True), ("4.4.4.4", None, True)]


def test_concurrent_records_for_same_key_are_not_lost(make_activity):
    calls = []
    calls_lock = threading.Lock()

    def handler(activity, ip_buffer, user_buffer):
        with calls_lock:
            calls.append(len(ip_buffer.entries))

    recorder = ActivityRecorder(
        max_activities_per_ip=10000,
        max_activities_per_user=10000,
        on_recorded=handler,
    )
    activity = make_activity(ip="5.5.5.5", user_id="carol")

    def worker():
        for _ in range(250):
            recorder.record(activity)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(recorder.ip_activities("5.5.5.5")) == 2000
    assert len(recorder.user_activities("carol")) == 2000
    # every handler call saw a distinct buffer length
    assert sorted(calls) == list(range(1, 2001))


def test_prune_removes_old_entries_and_empty_keys(make_activity, clock):
    store = KeyedActivityStore(capacity=10)
    old = make_activity(ip="6.6.6.6")
    new = make_activity(ip="6.6.6.6", timestamp=clock() + timedelta(hours=2))
    with store.locked("6.6.6.6") as buffer:
        buffer.entries.extend([old, new])
    with store.locked("7.7.7.7") as buffer:
        buffer.entries.append(old)

    cutoff = clock() + timedelta(hours=1)
    assert store.prune("6.6.6.6", cutoff) == 1
    assert store.prune("7.7.7.7", cutoff) == 1

    assert store.snapshot("6.6.6.6") == [new]
    assert "7.7.7.7" not in store


def test_closed_buffer_is_replaced_on_next_write(make_activity, clock):
    store = KeyedActivityStore(capacity=10)
    with store.locked("8.8.8.8") as buffer:
        buffer.entries.append(make_activity(ip="8.8.8.8"))
    store.prune("8.8.8.8", clock() + timedelta(seconds=1))

    with store.locked("8.8.8.8") as fresh:
        assert fresh is not buffer
        assert fresh.closed is False
        fresh.entries.append(make_activity(ip="8.8.8.8"))

    assert len(store.snapshot("8.8.8.8")) == 1


def test_store_rejects_zero_capacity():
    with pytest.raises(ValueError):
        KeyedActivityStore(capacity=0)
