"""
Shared JSON error responses for route handlers.
"""
import logging
from flask import jsonify

from gradequeue.errors import (
    AuthError, CanvasAPIError, MissingCredentialError, NotFoundError,
    RefreshSuperseded, TransientError,
)

logger = logging.getLogger(__name__)


def error_response(error):
    """Map a grading-queue exception to ``(json, status)``."""
    if isinstance(error, MissingCredentialError):
        return jsonify({
            "error": "Canvas credentials not configured. Please connect Canvas in Settings.",
            "reconnect_required": True,
        }), 400
    if isinstance(error, AuthError):
        return jsonify({"error": str(error), "reconnect_required": True}), 401
    if isinstance(error, NotFoundError):
        return jsonify({"error": str(error)}), 404
    if isinstance(error, TransientError):
        return jsonify({"error": str(error), "retryable": True}), 503
    if isinstance(error, CanvasAPIError):
        return jsonify({"error": str(error)}), 502
    if isinstance(error, RefreshSuperseded):
        return jsonify({"error": str(error), "superseded": True}), 409
    logger.exception("Unhandled error: %s", error)
    return jsonify({"error": str(error)}), 500
