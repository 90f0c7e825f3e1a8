"""
Canvas API routes.
Course listing for the course picker and a connection check for Settings.
"""
import logging
from flask import Blueprint, request, jsonify, g

from gradequeue.config import config
from gradequeue.errors import AuthError, GradeQueueError
from gradequeue.routes.responses import error_response
from gradequeue.services.courses import COURSE_FILTERS, list_courses

canvas_bp = Blueprint('canvas', __name__)
logger = logging.getLogger(__name__)

# Set by the app factory during initialization
services = None


def init_canvas_routes(services_ref):
    """Initialize Canvas routes with the service container from the app factory."""
    global services
    services = services_ref


@canvas_bp.route('/api/canvas/courses', methods=['GET'])
def get_courses():
    """List the teacher's Canvas courses with the requested filter."""
    course_filter = request.args.get('filter') or config.default_course_filter
    if course_filter not in COURSE_FILTERS:
        return jsonify({"error": f"Unknown course filter: {course_filter}"}), 400

    try:
        credential = services.resolver.resolve(g.user_id)
        courses = list_courses(services.fetcher, credential, course_filter)
        return jsonify({
            "success": True,
            "courses": [c.to_dict() for c in courses],
            "filter": course_filter,
        })
    except GradeQueueError as e:
        if isinstance(e, AuthError):
            services.resolver.forget(g.user_id)
        return error_response(e)


@canvas_bp.route('/api/canvas/test-connection', methods=['GET'])
def test_connection():
    """Check that the stored Canvas URL and token work."""
    try:
        credential = services.resolver.resolve(g.user_id)
        profile = services.fetcher.request(credential, "users/self") or {}
        logger.info("Canvas connection OK for user %s", g.user_id)
        return jsonify({
            "success": True,
            "canvas_user": {
                "id": profile.get("id"),
                "name": profile.get("name", ""),
            },
            "canvas_instance_url": credential.base_url,
        })
    except GradeQueueError as e:
        if isinstance(e, AuthError):
            services.resolver.forget(g.user_id)
        return error_response(e)
