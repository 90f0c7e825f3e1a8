"""
Grading Queue Aggregation
=========================
Builds one "needs grading" list across all of a teacher's courses.

Each course is fetched on its own worker; within a course the three
categories (assignments, graded discussions, quizzes) are fetched in turn and
the per-topic / per-quiz lookups are paced to stay under Canvas rate limits.

Failure granularity:
- one quiz or discussion failing is logged and skipped
- one course failing is reported in its FetchOutcome, the rest still load
- missing credentials abort before any Canvas request is made
"""
import logging
import concurrent.futures

from gradequeue.config import COURSE_WORKERS
from gradequeue.errors import CanvasAPIError, RefreshSuperseded, ValidationError
from gradequeue.models import AggregationResult, ErrorKind, FetchOutcome, SortOrder
from gradequeue.services.normalizers import (
    AssignmentSource, DiscussionSource, QuizSource,
    is_delegated_assignment, normalize, requires_manual_grading,
)
from gradequeue.services.queue_sorter import sort_queue

logger = logging.getLogger(__name__)

# Ungraded surveys collect responses but never need a score
UNGRADED_QUIZ_TYPES = frozenset({"survey"})


def _never_cancelled():
    return False


class GradingQueueAggregator:
    """Fan out across courses and merge their gradable work into one queue."""

    def __init__(self, resolver, fetcher, max_workers=None):
        self.resolver = resolver
        self.fetcher = fetcher
        self.max_workers = max_workers or COURSE_WORKERS

    def aggregate(self, user_id, courses, should_cancel=None):
        """Return an AggregationResult for ``courses``.

        ``should_cancel`` is polled before every Canvas request; once it
        returns True the run stops and raises RefreshSuperseded.
        """
        check = should_cancel or _never_cancelled
        credential = self.resolver.resolve(user_id)
        self._checkpoint(check)

        courses = list(courses)
        outcomes = []
        if courses:
            workers = max(1, min(self.max_workers, len(courses)))
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_course = {
                    executor.submit(self._fetch_course, credential, course, check): course
                    for course in courses
                }
                for future in concurrent.futures.as_completed(future_to_course):
                    course = future_to_course[future]
                    try:
                        outcomes.append(future.result())
                    except RefreshSuperseded:
                        for f in future_to_course:
                            f.cancel()
                        raise
                    except Exception as e:
                        logger.exception("Unexpected error refreshing course %s", course.id)
                        outcomes.append(FetchOutcome(
                            course_id=course.id,
                            succeeded=False,
                            error_kind=ErrorKind.API_ERROR,
                            message=str(e),
                        ))

        # Completion order is arbitrary; report in the caller's course order
        position = {course.id: index for index, course in enumerate(courses)}
        outcomes.sort(key=lambda o: position.get(o.course_id, len(position)))

        items = self._merge(outcomes)
        failed = sum(1 for o in outcomes if not o.succeeded)
        logger.info("Grading queue for user %s: %d items from %d courses (%d failed)",
                    user_id, len(items), len(courses), failed)
        return AggregationResult(items=sort_queue(items, SortOrder.OLDEST_FIRST), outcomes=outcomes)

    @staticmethod
    def _checkpoint(check):
        if check():
            raise RefreshSuperseded("Grading queue refresh superseded by a newer request")

    @staticmethod
    def _merge(outcomes):
        """Union of items from courses that succeeded, first occurrence of each key wins."""
        seen = set()
        merged = []
        for outcome in outcomes:
            if not outcome.succeeded:
                continue
            for item in outcome.items:
                if item.key in seen:
                    continue
                seen.add(item.key)
                merged.append(item)
        return merged

    def _get_all(self, credential, path, check, params=None, envelope=None):
        self._checkpoint(check)
        return self.fetcher.request_all(credential, path, params, envelope=envelope)

    # ── Per-course fetch ──────────────────────────────────────

    def _fetch_course(self, credential, course, check):
        self._checkpoint(check)
        try:
            sources = []
            sources.extend(self._assignment_sources(credential, course, check))
            sources.extend(self._discussion_sources(credential, course, check))
            sources.extend(self._quiz_sources(credential, course, check))
        except CanvasAPIError as e:
            logger.warning("Course %s (%s) failed to refresh: %s", course.id, course.name, e)
            return FetchOutcome(
                course_id=course.id,
                succeeded=False,
                error_kind=ErrorKind(e.error_kind),
                message=str(e),
            )

        items = []
        for source in sources:
            try:
                item = normalize(source, course)
            except ValidationError as e:
                logger.warning("Skipping malformed %s in course %s: %s", source.kind.value, course.id, e)
                continue
            if item.needs_grading_count > 0:
                items.append(item)
        return FetchOutcome(course_id=course.id, succeeded=True, items=items)

    def _assignment_sources(self, credential, course, check):
        assignments = self._get_all(
            credential, f"courses/{course.id}/assignments", check,
            params={"include": ["needs_grading_count"]},
        )
        return [
            AssignmentSource(raw=a, base_url=credential.base_url)
            for a in assignments
            if isinstance(a, dict) and not is_delegated_assignment(a)
        ]

    def _discussion_sources(self, credential, course, check):
        topics = self._get_all(
            credential, f"courses/{course.id}/discussion_topics", check,
            params={"include": ["assignment"]},
        )
        graded = [t for t in topics if isinstance(t, dict) and t.get("assignment_id")]

        def load(topic):
            self._checkpoint(check)
            try:
                submissions = self.fetcher.request_all(
                    credential,
                    f"courses/{course.id}/assignments/{topic['assignment_id']}/submissions",
                )
            except CanvasAPIError as e:
                logger.warning("Skipping discussion %s in course %s: %s", topic.get("id"), course.id, e)
                return None
            return DiscussionSource(raw=topic, submissions=submissions, base_url=credential.base_url)

        return [s for s in self.fetcher.paced(graded, load) if s is not None]

    def _quiz_sources(self, credential, course, check):
        quizzes = self._get_all(credential, f"courses/{course.id}/quizzes", check)
        candidates = [
            q for q in quizzes
            if isinstance(q, dict)
            and q.get("published") is not False
            and q.get("quiz_type") not in UNGRADED_QUIZ_TYPES
        ]

        def load(quiz):
            self._checkpoint(check)
            quiz_path = f"courses/{course.id}/quizzes/{quiz.get('id')}"
            try:
                questions = self.fetcher.request_all(credential, f"{quiz_path}/questions")
                # All auto-graded: nothing for the teacher to do, skip the submissions call
                if not requires_manual_grading(questions):
                    return None
                self._checkpoint(check)
                submissions = self.fetcher.request_all(
                    credential, f"{quiz_path}/submissions", envelope="quiz_submissions",
                )
            except CanvasAPIError as e:
                logger.warning("Skipping quiz %s in course %s: %s", quiz.get("id"), course.id, e)
                return None
            return QuizSource(raw=quiz, questions=questions, submissions=submissions,
                              base_url=credential.base_url)

        return [s for s in self.fetcher.paced(candidates, load) if s is not None]
