"""
Grading Queue Backend Package
=============================

Flask-based backend that builds a teacher's "needs grading" queue from
Canvas LMS courses.

Structure:
- routes/: API route blueprints
- services/: Canvas fetching, aggregation, sorting, credentials
- config.py: Configuration management
"""

from .config import config, Config

__version__ = "1.0.0"

__all__ = ['config', 'Config']
