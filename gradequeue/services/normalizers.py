"""
Queue Item Normalization
========================
Assignments, graded discussions and quizzes come back from Canvas in three
different shapes. Each gets a small source wrapper that knows how to turn
itself into a QueueItem; ``normalize`` dispatches on that.

Counting rules:
- assignments: Canvas reports ``needs_grading_count`` directly
- discussions: submissions that were submitted and are not graded with a score
- quizzes: submissions in ``complete`` or ``pending_review``, and only when
  the quiz has at least one manually graded question type
"""
from dataclasses import dataclass, field

from gradequeue.errors import ValidationError
from gradequeue.models import QueueItem, SourceKind, parse_timestamp

# Question types that leave a submitted attempt waiting on the teacher
MANUAL_QUESTION_TYPES = frozenset({
    "essay_question",
    "fill_in_multiple_blanks_question",
    "file_upload_question",
})

PENDING_QUIZ_STATES = frozenset({"complete", "pending_review"})

# Assignment submission types that belong to another queue category
DISCUSSION_SUBMISSION_TYPE = "discussion_topic"
QUIZ_SUBMISSION_TYPE = "online_quiz"


def requires_manual_grading(questions):
    """True if any question in the quiz needs a teacher to score it."""
    return any((q or {}).get("question_type") in MANUAL_QUESTION_TYPES for q in questions)


def count_pending_quiz_submissions(submissions):
    return sum(1 for s in submissions if (s or {}).get("workflow_state") in PENDING_QUIZ_STATES)


def count_ungraded_discussion_submissions(submissions):
    """Count submitted entries that still lack a grade.

    Enrolled students who never posted have no ``submitted_at`` and are ignored.
    """
    count = 0
    for submission in submissions:
        submission = submission or {}
        if not submission.get("submitted_at"):
            continue
        graded = submission.get("workflow_state") == "graded" and submission.get("score") is not None
        if not graded:
            count += 1
    return count


def is_delegated_assignment(assignment):
    """Assignments that back a discussion or quiz are counted by those categories."""
    types = assignment.get("submission_types") or []
    if DISCUSSION_SUBMISSION_TYPE in types or QUIZ_SUBMISSION_TYPE in types:
        return True
    return bool(assignment.get("is_quiz_assignment") or assignment.get("quiz_id")
                or assignment.get("discussion_topic"))


def _require_id(raw, kind):
    source_id = raw.get("id") if isinstance(raw, dict) else None
    if source_id is None:
        raise ValidationError(f"{kind} without an id: {raw!r}")
    return source_id


def _count(value, kind, source_id):
    if value is None:
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{kind} {source_id} has a non-numeric grading count: {value!r}")
    if count < 0:
        raise ValidationError(f"{kind} {source_id} has a negative grading count: {count}")
    return count


def _points(value, kind, source_id):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{kind} {source_id} has invalid points_possible: {value!r}")


def _due(value, kind, source_id):
    try:
        return parse_timestamp(value)
    except ValueError:
        raise ValidationError(f"{kind} {source_id} has an unreadable due date: {value!r}")


def _course_url(base_url, course_id, suffix):
    return f"{base_url.rstrip('/')}/courses/{course_id}/{suffix}"


@dataclass
class AssignmentSource:
    raw: dict
    base_url: str = ""

    kind = SourceKind.ASSIGNMENT

    def to_queue_item(self, course):
        source_id = _require_id(self.raw, "Assignment")
        return QueueItem(
            source_kind=self.kind,
            source_id=source_id,
            course_id=course.id,
            course_name=course.name,
            course_code=course.code,
            title=self.raw.get("name") or f"Assignment {source_id}",
            due_at=_due(self.raw.get("due_at"), "Assignment", source_id),
            points_possible=_points(self.raw.get("points_possible"), "Assignment", source_id),
            needs_grading_count=_count(self.raw.get("needs_grading_count"), "Assignment", source_id),
            external_url=self.raw.get("html_url")
            or _course_url(self.base_url, course.id, f"assignments/{source_id}"),
        )


@dataclass
class DiscussionSource:
    raw: dict
    submissions: list = field(default_factory=list)
    base_url: str = ""

    kind = SourceKind.DISCUSSION

    def to_queue_item(self, course):
        source_id = _require_id(self.raw, "Discussion")
        assignment = self.raw.get("assignment") or {}
        due_value = assignment.get("due_at") or self.raw.get("todo_date")
        return QueueItem(
            source_kind=self.kind,
            source_id=source_id,
            course_id=course.id,
            course_name=course.name,
            course_code=course.code,
            title=self.raw.get("title") or f"Discussion {source_id}",
            due_at=_due(due_value, "Discussion", source_id),
            points_possible=_points(assignment.get("points_possible"), "Discussion", source_id),
            needs_grading_count=count_ungraded_discussion_submissions(self.submissions),
            external_url=self.raw.get("html_url")
            or _course_url(self.base_url, course.id, f"discussion_topics/{source_id}"),
        )


@dataclass
class QuizSource:
    raw: dict
    questions: list = field(default_factory=list)
    submissions: list = field(default_factory=list)
    base_url: str = ""

    kind = SourceKind.QUIZ

    @property
    def needs_manual_grading(self):
        return requires_manual_grading(self.questions)

    def to_queue_item(self, course):
        source_id = _require_id(self.raw, "Quiz")
        pending = count_pending_quiz_submissions(self.submissions) if self.needs_manual_grading else 0
        return QueueItem(
            source_kind=self.kind,
            source_id=source_id,
            course_id=course.id,
            course_name=course.name,
            course_code=course.code,
            title=self.raw.get("title") or f"Quiz {source_id}",
            due_at=_due(self.raw.get("due_at"), "Quiz", source_id),
            points_possible=_points(self.raw.get("points_possible"), "Quiz", source_id),
            needs_grading_count=pending,
            external_url=self.raw.get("html_url")
            or _course_url(self.base_url, course.id, f"quizzes/{source_id}"),
        )


def normalize(source, course):
    """Turn any source wrapper into a QueueItem for ``course``."""
    to_queue_item = getattr(source, "to_queue_item", None)
    if to_queue_item is None:
        raise ValidationError(f"Cannot normalize {type(source).__name__}")
    return to_queue_item(course)
