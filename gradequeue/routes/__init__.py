"""
Grading Queue API Routes
========================

All API route blueprints for the grading-queue backend.

Usage:
    from gradequeue.routes import register_routes
    register_routes(app, services)
"""
from .queue_routes import queue_bp, init_queue_routes
from .canvas_routes import canvas_bp, init_canvas_routes


def register_routes(app, services):
    """Register all route blueprints with the Flask app."""

    # Hand the shared service container to each blueprint
    init_queue_routes(services)
    init_canvas_routes(services)

    # Register all blueprints
    app.register_blueprint(queue_bp)
    app.register_blueprint(canvas_bp)


__all__ = [
    'register_routes',
    'queue_bp',
    'canvas_bp',
    'init_queue_routes',
    'init_canvas_routes',
]
