"""
Refresh coordination for the grading queue.

A manual refresh supersedes any refresh already running for the same user.
Each run is tagged with a per-user generation number; an older run notices
the newer generation at its next Canvas request and stops, and if it
finishes anyway its result is dropped instead of published.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from gradequeue.errors import RefreshSuperseded
from gradequeue.models import AggregationResult

logger = logging.getLogger(__name__)


@dataclass
class QueueSnapshot:
    result: AggregationResult
    refreshed_at: datetime
    generation: int
    course_filter: Optional[str] = None


class QueueRefresher:
    """Runs aggregations and keeps the latest published snapshot per user."""

    def __init__(self, aggregator):
        self.aggregator = aggregator
        self._lock = threading.Lock()
        self._generations = {}
        self._snapshots = {}

    def _is_current(self, user_id, generation):
        with self._lock:
            return self._generations.get(user_id) == generation

    def refresh(self, user_id, courses, course_filter=None):
        """Aggregate now, superseding any in-flight refresh for ``user_id``.

        ``course_filter`` is recorded on the snapshot so readers can tell
        which course selection it covers.
        """
        with self._lock:
            generation = self._generations.get(user_id, 0) + 1
            self._generations[user_id] = generation

        def superseded():
            return not self._is_current(user_id, generation)

        result = self.aggregator.aggregate(user_id, courses, should_cancel=superseded)

        with self._lock:
            if self._generations.get(user_id) != generation:
                logger.info("Discarding stale grading queue for user %s (generation %d)",
                            user_id, generation)
                raise RefreshSuperseded("Grading queue refresh superseded by a newer request")
            snapshot = QueueSnapshot(
                result=result,
                refreshed_at=datetime.now(timezone.utc),
                generation=generation,
                course_filter=course_filter,
            )
            self._snapshots[user_id] = snapshot
        return snapshot

    def snapshot(self, user_id, course_filter=None):
        """Latest published snapshot, or None if there is none for ``course_filter``."""
        with self._lock:
            snapshot = self._snapshots.get(user_id)
        if snapshot is None:
            return None
        if course_filter is not None and snapshot.course_filter != course_filter:
            return None
        return snapshot

    def clear(self, user_id):
        with self._lock:
            self._snapshots.pop(user_id, None)
