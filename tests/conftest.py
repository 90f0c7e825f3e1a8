"""
Shared test fixtures for the grading-queue backend.
Canvas is replaced by a fake requests session serving canned JSON.
Zero network calls, zero real sleeps. All data from local fixtures.
"""
import os
import json
import threading
from urllib.parse import urlsplit

import pytest

from gradequeue.models import CourseRef, Credential
from gradequeue.services.canvas_fetcher import RateLimitedFetcher
from gradequeue.services.credentials import CredentialResolver, InMemoryCredentialStore

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")
CANVAS_BASE = "https://canvas.test"
TEACHER_ID = "teacher-1"
TEACHER_TOKEN = "canvas-token-abc"


def load_fixture(name):
    with open(os.path.join(FIXTURES_DIR, name)) as fh:
        return json.load(fh)


class FakeResponse:
    """Just enough of requests.Response for the fetcher."""

    def __init__(self, status_code=200, body=None, headers=None, next_url=None):
        self.status_code = status_code
        self.headers = headers or {}
        self.links = {"next": {"url": next_url, "rel": "next"}} if next_url else {}
        self.content = b"" if body is None else json.dumps(body).encode()

    def json(self):
        return json.loads(self.content)


class FakeCanvasSession:
    """Canned Canvas responses keyed by API path.

    Each registered path holds a queue of responses (or exceptions to raise);
    the last entry repeats once the queue is drained. Unregistered paths 404.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, path, *responses):
        key = "/api/v1/" + path.lstrip("/")
        self.routes.setdefault(key, []).extend(responses)
        return self

    def add_json(self, path, body, **kwargs):
        return self.add(path, FakeResponse(200, body, **kwargs))

    def calls_to(self, path):
        key = "/api/v1/" + path.lstrip("/")
        return [url for url, _ in self.calls if urlsplit(url).path == key]

    def get(self, url, headers=None, timeout=None):
        with self._lock:
            self.calls.append((url, headers or {}))
            queue = self.routes.get(url) or self.routes.get(urlsplit(url).path)
            if not queue:
                response = FakeResponse(404, {"errors": [{"message": "The specified resource does not exist."}]})
            elif len(queue) > 1:
                response = queue.pop(0)
            else:
                response = queue[0]
        if isinstance(response, BaseException):
            raise response
        return response


def register_course(session, data):
    """Register every Canvas endpoint the aggregator reads for one course fixture."""
    course_id = data["course"]["id"]
    base = f"courses/{course_id}"
    session.add_json(f"{base}/assignments", data["assignments"])
    session.add_json(f"{base}/discussion_topics", data["discussion_topics"])
    for assignment_id, subs in data["discussion_submissions"].items():
        session.add_json(f"{base}/assignments/{assignment_id}/submissions", subs)
    session.add_json(f"{base}/quizzes", data["quizzes"])
    for quiz_id, questions in data["quiz_questions"].items():
        session.add_json(f"{base}/quizzes/{quiz_id}/questions", questions)
    for quiz_id, subs in data["quiz_submissions"].items():
        session.add_json(f"{base}/quizzes/{quiz_id}/submissions", {"quiz_submissions": subs})
    return CourseRef.from_canvas(data["course"])


def register_empty_course(session, course_id, name="Empty Course"):
    base = f"courses/{course_id}"
    for path in ("assignments", "discussion_topics", "quizzes"):
        session.add_json(f"{base}/{path}", [])
    return CourseRef(id=course_id, name=name, code=f"C-{course_id}", workflow_state="available")


@pytest.fixture
def fixtures_dir():
    """Return the path to the fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def canvas():
    """A fake Canvas session with nothing registered."""
    return FakeCanvasSession()


@pytest.fixture
def sleeps():
    """Records every delay the fetcher asks for."""
    return []


@pytest.fixture
def fetcher(canvas, sleeps):
    return RateLimitedFetcher(session=canvas, sleep=sleeps.append,
                              max_retries=2, backoff_base=1.0, pacing_delay=0.1)


@pytest.fixture
def credential():
    return Credential(base_url=CANVAS_BASE, access_token=TEACHER_TOKEN)


@pytest.fixture
def store():
    store = InMemoryCredentialStore()
    store.put(TEACHER_ID, CANVAS_BASE, TEACHER_TOKEN)
    return store


@pytest.fixture
def resolver(store):
    return CredentialResolver(store)


@pytest.fixture
def course_101(canvas):
    return register_course(canvas, load_fixture("course_101.json"))


@pytest.fixture
def course_202(canvas):
    return register_course(canvas, load_fixture("course_202.json"))
