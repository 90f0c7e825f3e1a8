"""
Grading Queue Services
======================

Services:
- credentials: Canvas URL/token lookup with a TTL session cache
- canvas_fetcher: retrying, paginating, paced Canvas client
- normalizers: assignment / discussion / quiz -> QueueItem
- grading_queue: cross-course aggregation
- queue_sorter: due-date ordering
- courses: course listing and filters
- refresh: last-refresh-wins coordination
"""

# Services are imported directly when needed to avoid circular imports
# Example: from gradequeue.services.grading_queue import GradingQueueAggregator

__all__ = [
    'credentials',
    'canvas_fetcher',
    'normalizers',
    'grading_queue',
    'queue_sorter',
    'courses',
    'refresh',
]
