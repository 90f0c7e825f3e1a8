"""
Course listing for the grading queue.

Supplies the CourseRef list the aggregator fans out over, using the same
filters the dashboard offers (current, past, active, unpublished, favorites).
"""
import logging
from datetime import datetime, timezone

from gradequeue.models import CourseRef

logger = logging.getLogger(__name__)

COURSE_FILTERS = ("all", "current", "past", "active", "unpublished", "favorites")
CONCLUDED_STATES = ("completed", "concluded")


def is_past_course(course, now=None):
    """A course is past once its term or its own end date has passed, or Canvas concluded it."""
    now = now or datetime.now(timezone.utc)
    if course.term_end_at is not None and course.term_end_at < now:
        return True
    if course.end_at is not None and course.end_at < now:
        return True
    return course.workflow_state in CONCLUDED_STATES


def is_current_course(course, now=None):
    return course.workflow_state == "available" and not is_past_course(course, now)


def filter_courses(courses, course_filter="all", now=None):
    if course_filter not in COURSE_FILTERS:
        raise ValueError(f"Unknown course filter: {course_filter}")
    if course_filter in ("all", "favorites"):
        return list(courses)
    if course_filter == "current":
        return [c for c in courses if is_current_course(c, now)]
    if course_filter == "past":
        return [c for c in courses if is_past_course(c, now)]
    if course_filter == "active":
        return [c for c in courses if c.workflow_state == "available"]
    return [c for c in courses if c.workflow_state == "unpublished"]


def list_courses(fetcher, credential, course_filter="active", now=None):
    """Fetch the teacher's courses from Canvas and apply ``course_filter``."""
    if course_filter not in COURSE_FILTERS:
        raise ValueError(f"Unknown course filter: {course_filter}")

    if course_filter == "favorites":
        raw = fetcher.request_all(credential, "users/self/favorites/courses",
                                  {"include": ["term"]})
    else:
        params = {"include": ["term", "total_students"]}
        # Unpublished and past courses are not "active" enrollments
        if course_filter in ("active", "current"):
            params["enrollment_state"] = "active"
        raw = fetcher.request_all(credential, "courses", params)

    courses = []
    for course in raw:
        # Date-restricted courses come back as stubs with no name or term
        if not isinstance(course, dict) or course.get("id") is None or course.get("access_restricted_by_date"):
            continue
        courses.append(CourseRef.from_canvas(course))

    filtered = filter_courses(courses, course_filter, now)
    logger.info("Course filter %r returned %d of %d courses", course_filter, len(filtered), len(courses))
    return filtered
