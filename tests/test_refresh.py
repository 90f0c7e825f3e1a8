"""
Test: Last-refresh-wins coordination between overlapping queue refreshes.
"""
import threading

import pytest

from gradequeue.errors import RefreshSuperseded
from gradequeue.models import AggregationResult, FetchOutcome
from gradequeue.services.refresh import QueueRefresher


class ScriptedAggregator:
    """Returns a result tagged with the call number; can run a hook mid-call."""

    def __init__(self):
        self.calls = 0
        self.hooks = {}
        self.cancel_seen = {}

    def aggregate(self, user_id, courses, should_cancel=None):
        call = self.calls
        self.calls += 1
        hook = self.hooks.get(call)
        if hook:
            hook()
        self.cancel_seen[call] = should_cancel()
        return AggregationResult(items=[], outcomes=[FetchOutcome(course_id=call, succeeded=True)])


def run_number(snapshot):
    return snapshot.result.outcomes[0].course_id


class TestRefresher:
    def test_publishes_snapshot(self):
        refresher = QueueRefresher(ScriptedAggregator())
        snapshot = refresher.refresh("u", [])
        assert snapshot.generation == 1
        assert refresher.snapshot("u") is snapshot
        assert snapshot.refreshed_at.tzinfo is not None

    def test_sequential_refreshes_replace(self):
        refresher = QueueRefresher(ScriptedAggregator())
        refresher.refresh("u", [])
        second = refresher.refresh("u", [])
        assert second.generation == 2
        assert run_number(refresher.snapshot("u")) == 1

    def test_newer_refresh_supersedes_running_one(self):
        aggregator = ScriptedAggregator()
        refresher = QueueRefresher(aggregator)
        inner = {}
        aggregator.hooks[0] = lambda: inner.setdefault("snapshot", refresher.refresh("u", []))

        with pytest.raises(RefreshSuperseded):
            refresher.refresh("u", [])

        assert aggregator.cancel_seen == {1: False, 0: True}
        assert refresher.snapshot("u") is inner["snapshot"]
        assert run_number(refresher.snapshot("u")) == 1

    def test_users_do_not_interfere(self):
        aggregator = ScriptedAggregator()
        refresher = QueueRefresher(aggregator)
        aggregator.hooks[0] = lambda: refresher.refresh("other", [])

        snapshot = refresher.refresh("u", [])
        assert snapshot.generation == 1
        assert refresher.snapshot("other").generation == 1
        assert aggregator.cancel_seen[0] is False

    def test_clear(self):
        refresher = QueueRefresher(ScriptedAggregator())
        refresher.refresh("u", [])
        refresher.clear("u")
        assert refresher.snapshot("u") is None

    def test_failed_refresh_keeps_previous_snapshot(self):
        class Failing(ScriptedAggregator):
            def aggregate(self, user_id, courses, should_cancel=None):
                if self.calls == 1:
                    self.calls += 1
                    raise RuntimeError("credential store down")
                return super().aggregate(user_id, courses, should_cancel)

        refresher = QueueRefresher(Failing())
        first = refresher.refresh("u", [])
        with pytest.raises(RuntimeError):
            refresher.refresh("u", [])
        assert refresher.snapshot("u") is first


class BlockingAggregator:
    """First call waits until released; later calls return immediately."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0
        self.lock = threading.Lock()

    def aggregate(self, user_id, courses, should_cancel=None):
        with self.lock:
            call = self.calls
            self.calls += 1
        if call == 0:
            self.started.set()
            self.release.wait(timeout=5)
        return AggregationResult(items=[], outcomes=[FetchOutcome(course_id=call, succeeded=True)])


def test_concurrent_refresh_last_wins():
    aggregator = BlockingAggregator()
    refresher = QueueRefresher(aggregator)
    errors = []

    def first():
        try:
            refresher.refresh("u", [])
        except RefreshSuperseded as e:
            errors.append(e)

    worker = threading.Thread(target=first)
    worker.start()
    assert aggregator.started.wait(timeout=5)

    second = refresher.refresh("u", [])
    aggregator.release.set()
    worker.join(timeout=5)

    assert len(errors) == 1
    assert refresher.snapshot("u") is second
    assert run_number(second) == 1


def test_snapshot_is_scoped_to_course_filter():
    refresher = QueueRefresher(ScriptedAggregator())
    snapshot = refresher.refresh("u", [], course_filter="active")
    assert snapshot.course_filter == "active"
    assert refresher.snapshot("u", "active") is snapshot
    assert refresher.snapshot("u", "unpublished") is None
    assert refresher.snapshot("u") is snapshot
