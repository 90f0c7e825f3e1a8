"""
Grading queue API routes.
Serves the cross-course "needs grading" list and handles manual refreshes.
"""
import logging
from flask import Blueprint, request, jsonify, g

from gradequeue.config import config
from gradequeue.errors import AuthError, GradeQueueError
from gradequeue.models import SortOrder, format_timestamp
from gradequeue.routes.responses import error_response
from gradequeue.services.courses import COURSE_FILTERS, list_courses
from gradequeue.services.queue_sorter import sort_queue

queue_bp = Blueprint('grading_queue', __name__)
logger = logging.getLogger(__name__)

# Set by the app factory during initialization
services = None


def init_queue_routes(services_ref):
    """Initialize queue routes with the service container from the app factory."""
    global services
    services = services_ref


def _parse_order(value):
    return SortOrder.parse(value or config.default_sort_order)


def _parse_filter(value):
    course_filter = value or config.default_course_filter
    if course_filter not in COURSE_FILTERS:
        raise ValueError(f"Unknown course filter: {course_filter}")
    return course_filter


def _queue_payload(snapshot, order):
    body = snapshot.result.to_dict()
    body["items"] = [item.to_dict() for item in sort_queue(snapshot.result.items, order)]
    body["success"] = True
    body["order"] = order.value
    body["filter"] = snapshot.course_filter
    body["refreshed_at"] = format_timestamp(snapshot.refreshed_at)
    return body


def _run_refresh(user_id, course_filter, course_ids=None):
    credential = services.resolver.resolve(user_id)
    courses = list_courses(services.fetcher, credential, course_filter)
    if course_ids:
        wanted = {str(cid) for cid in course_ids}
        courses = [c for c in courses if str(c.id) in wanted]
    return services.refresher.refresh(user_id, courses, course_filter)


@queue_bp.route('/api/grading-queue', methods=['GET'])
def get_grading_queue():
    """Return the last refreshed queue for ``filter``, refreshing first if there is none yet."""
    try:
        order = _parse_order(request.args.get('order'))
        course_filter = _parse_filter(request.args.get('filter'))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        snapshot = services.refresher.snapshot(g.user_id, course_filter)
        if snapshot is None:
            snapshot = _run_refresh(g.user_id, course_filter)
        return jsonify(_queue_payload(snapshot, order))
    except GradeQueueError as e:
        if isinstance(e, AuthError):
            services.resolver.forget(g.user_id)
        return error_response(e)


@queue_bp.route('/api/grading-queue/refresh', methods=['POST'])
def refresh_grading_queue():
    """Run a fresh aggregation, superseding any refresh already in flight."""
    data = request.get_json(silent=True) or {}
    try:
        order = _parse_order(data.get('order'))
        course_filter = _parse_filter(data.get('filter'))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    course_ids = data.get('course_ids')
    if course_ids is not None and not isinstance(course_ids, list):
        return jsonify({"error": "course_ids must be a list"}), 400

    try:
        snapshot = _run_refresh(g.user_id, course_filter, course_ids)
        logger.info("Manual grading queue refresh for user %s: %d items",
                    g.user_id, len(snapshot.result.items))
        return jsonify(_queue_payload(snapshot, order))
    except GradeQueueError as e:
        if isinstance(e, AuthError):
            services.resolver.forget(g.user_id)
        return error_response(e)
