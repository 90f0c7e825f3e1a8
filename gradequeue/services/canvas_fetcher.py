"""
Canvas REST Fetcher
===================
Every outbound Canvas call goes through RateLimitedFetcher:

- bearer token header on each request
- ``/api/v1`` URL building with Canvas-style ``key[]=v`` array params
- status classification into the errors in ``gradequeue.errors``
- exponential-backoff retry for transient failures only
- ``Link: rel="next"`` pagination
- fixed pacing between sequential per-resource calls

Usage:
    fetcher = RateLimitedFetcher()
    quizzes = fetcher.request_all(credential, f"courses/{course_id}/quizzes")
"""
import time
import logging
import threading
from urllib.parse import urlencode

import requests

from gradequeue.config import (
    CANVAS_API_PREFIX, CANVAS_BACKOFF_BASE, CANVAS_MAX_RETRIES, CANVAS_PACING_DELAY,
    CANVAS_PER_PAGE, CANVAS_TIMEOUT,
)
from gradequeue.errors import (
    AuthError, CanvasAPIError, NotFoundError, RateLimitError, TransientError,
)

logger = logging.getLogger(__name__)

# Network failures worth retrying; anything else from requests is a caller bug
_TRANSIENT_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def _param_value(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_canvas_url(base_url, resource_path, params=None):
    """Join a Canvas base URL, the versioned API prefix, a resource path and params.

    List values are sent as repeated ``key[]=v`` pairs, which Canvas requires
    for parameters such as ``include[]``.
    """
    url = base_url.rstrip("/") + CANVAS_API_PREFIX + "/" + resource_path.lstrip("/")
    pairs = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            array_key = key if key.endswith("[]") else key + "[]"
            for item in value:
                pairs.append((array_key, _param_value(item)))
        else:
            pairs.append((key, _param_value(value)))
    if pairs:
        url += "?" + urlencode(pairs, safe="[]")
    return url


def _retry_after_seconds(response):
    value = response.headers.get("Retry-After") if response.headers else None
    if not value:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def classify_response(response, url):
    """Raise the matching CanvasAPIError for a non-2xx response."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status in (401, 403):
        if status == 401:
            message = "Invalid Canvas API token. Please reconnect Canvas."
        else:
            message = "Access denied by Canvas for this resource."
        raise AuthError(message, status=status, url=url)
    if status == 404:
        raise NotFoundError("Canvas resource not found.", status=status, url=url)
    if status == 429:
        raise RateLimitError("Canvas rate limit exceeded.", url=url,
                             retry_after=_retry_after_seconds(response))
    if status >= 500:
        raise TransientError(f"Canvas API returned {status}.", status=status, url=url)
    raise CanvasAPIError(f"Canvas API returned {status}.", status=status, url=url)


class RateLimitedFetcher:
    """Read-only Canvas client with retry, pagination and pacing.

    ``sleep`` is injectable so tests can record backoff delays instead of
    waiting on them.
    """

    def __init__(self, session=None, timeout=None, max_retries=None,
                 backoff_base=None, pacing_delay=None, per_page=None,
                 sleep=time.sleep):
        self._session = session
        self._local = threading.local()
        self.timeout = CANVAS_TIMEOUT if timeout is None else timeout
        self.max_retries = CANVAS_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_base = CANVAS_BACKOFF_BASE if backoff_base is None else backoff_base
        self.pacing_delay = CANVAS_PACING_DELAY if pacing_delay is None else pacing_delay
        self.per_page = CANVAS_PER_PAGE if per_page is None else per_page
        self._sleep = sleep

    @property
    def session(self):
        # requests.Session is not safe to share between course worker threads
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _headers(self, credential):
        return {
            "Authorization": f"Bearer {credential.access_token}",
            "Accept": "application/json",
        }

    def _send_once(self, credential, url):
        try:
            response = self.session.get(url, headers=self._headers(credential), timeout=self.timeout)
        except _TRANSIENT_EXCEPTIONS as e:
            raise TransientError(f"Network error contacting Canvas: {e}", url=url) from e
        except requests.exceptions.RequestException as e:
            raise CanvasAPIError(f"Invalid Canvas request: {e}", url=url) from e
        classify_response(response, url)
        return response

    def _send(self, credential, url):
        """GET ``url``, retrying transient failures with exponential backoff."""
        attempt = 0
        while True:
            try:
                return self._send_once(credential, url)
            except TransientError as e:
                if attempt >= self.max_retries:
                    logger.error("Canvas request failed after %d attempts: %s (%s)",
                                 attempt + 1, url, e)
                    raise
                delay = self.backoff_base * (2 ** attempt)
                if isinstance(e, RateLimitError) and e.retry_after and e.retry_after > delay:
                    delay = e.retry_after
                attempt += 1
                logger.warning("Transient Canvas error on %s (%s), retry %d/%d in %.1fs",
                               url, e, attempt, self.max_retries, delay)
                self._sleep(delay)

    @staticmethod
    def _decode(response, url):
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CanvasAPIError("Canvas returned a non-JSON body.",
                                 status=response.status_code, url=url) from e

    def request(self, credential, resource_path, params=None):
        """Fetch one Canvas resource and return its decoded JSON body."""
        url = build_canvas_url(credential.base_url, resource_path, params)
        response = self._send(credential, url)
        return self._decode(response, url)

    def request_all(self, credential, resource_path, params=None, envelope=None):
        """Fetch every page of a Canvas list endpoint.

        ``envelope`` names the key holding the list when Canvas wraps it
        (quiz submissions come back as ``{"quiz_submissions": [...]}``).
        """
        params = dict(params or {})
        params.setdefault("per_page", self.per_page)
        url = build_canvas_url(credential.base_url, resource_path, params)

        results = []
        while url:
            response = self._send(credential, url)
            body = self._decode(response, url)
            if envelope is not None and isinstance(body, dict):
                body = body.get(envelope) or []
            if isinstance(body, list):
                results.extend(body)
            elif body is not None:
                results.append(body)
            url = (response.links or {}).get("next", {}).get("url")
        return results

    def paced(self, items, fn):
        """Call ``fn`` on each item in order, pausing ``pacing_delay`` between calls."""
        results = []
        for index, item in enumerate(items):
            if index > 0 and self.pacing_delay:
                self._sleep(self.pacing_delay)
            results.append(fn(item))
        return results
