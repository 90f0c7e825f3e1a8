"""
Data model for the grading queue.

Everything here is transient: built on each refresh from Canvas responses and
thrown away on the next one.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Canvas ISO-8601 timestamp into an aware datetime.

    Canvas sends ``2025-03-01T23:59:00Z``. Empty values return None.
    Naive timestamps are assumed to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class SourceKind(str, Enum):
    ASSIGNMENT = "assignment"
    DISCUSSION = "discussion"
    QUIZ = "quiz"


class ErrorKind(str, Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    API_ERROR = "api_error"


class SortOrder(str, Enum):
    OLDEST_FIRST = "oldest-first"
    NEWEST_FIRST = "newest-first"

    @classmethod
    def parse(cls, value):
        """Accept a SortOrder, its wire value, or None (oldest first)."""
        if value is None or value == "":
            return cls.OLDEST_FIRST
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        aliases = {
            "oldest-first": cls.OLDEST_FIRST,
            "oldestfirst": cls.OLDEST_FIRST,
            "oldest": cls.OLDEST_FIRST,
            "newest-first": cls.NEWEST_FIRST,
            "newestfirst": cls.NEWEST_FIRST,
            "newest": cls.NEWEST_FIRST,
        }
        if normalized not in aliases:
            raise ValueError(f"Unknown sort order: {value}")
        return aliases[normalized]


@dataclass(frozen=True)
class Credential:
    base_url: str
    access_token: str

    def __repr__(self):
        # Never print the token
        return f"Credential(base_url={self.base_url!r}, access_token='***')"


@dataclass(frozen=True)
class CourseRef:
    id: int
    name: str
    code: str
    workflow_state: str
    term_name: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    term_end_at: Optional[datetime] = None

    @classmethod
    def from_canvas(cls, course: dict) -> "CourseRef":
        term = course.get("term") or {}
        return cls(
            id=course["id"],
            name=course.get("name") or "",
            code=course.get("course_code") or "",
            workflow_state=course.get("workflow_state") or "",
            term_name=term.get("name"),
            start_at=parse_timestamp(course.get("start_at")),
            end_at=parse_timestamp(course.get("end_at")),
            term_end_at=parse_timestamp(term.get("end_at")),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "course_code": self.code,
            "workflow_state": self.workflow_state,
            "term_name": self.term_name,
            "start_at": format_timestamp(self.start_at),
            "end_at": format_timestamp(self.end_at),
        }


@dataclass(frozen=True)
class QueueItem:
    source_kind: SourceKind
    source_id: int
    course_id: int
    course_name: str
    course_code: str
    title: str
    due_at: Optional[datetime]
    points_possible: Optional[float]
    needs_grading_count: int
    external_url: str

    @property
    def key(self):
        return (self.source_kind, self.source_id)

    def to_dict(self):
        return {
            "source_kind": self.source_kind.value,
            "source_id": self.source_id,
            "course_id": self.course_id,
            "course_name": self.course_name,
            "course_code": self.course_code,
            "title": self.title,
            "due_at": format_timestamp(self.due_at),
            "points_possible": self.points_possible,
            "needs_grading_count": self.needs_grading_count,
            "external_url": self.external_url,
        }


@dataclass
class FetchOutcome:
    course_id: int
    succeeded: bool
    items: List[QueueItem] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    def to_dict(self):
        return {
            "course_id": self.course_id,
            "succeeded": self.succeeded,
            "item_count": len(self.items),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }


@dataclass
class AggregationResult:
    items: List[QueueItem]
    outcomes: List[FetchOutcome]

    @property
    def failed_courses(self):
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def reconnect_required(self):
        """True when any course failed because Canvas rejected the token."""
        return any(o.error_kind == ErrorKind.AUTH for o in self.failed_courses)

    def to_dict(self):
        return {
            "items": [item.to_dict() for item in self.items],
            "total_count": len(self.items),
            "failed_courses": [
                {
                    "course_id": o.course_id,
                    "error_kind": o.error_kind.value if o.error_kind else None,
                    "message": o.message,
                }
                for o in self.failed_courses
            ],
            "reconnect_required": self.reconnect_required,
        }
