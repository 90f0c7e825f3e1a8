"""
Due-date ordering for the grading queue.

Items without a due date go last for oldest-first and first for newest-first.
Equal due dates keep their input order in both directions.
"""
from gradequeue.models import SortOrder


def sort_queue(items, order=SortOrder.OLDEST_FIRST):
    """Return a new list of queue items ordered by ``due_at``."""
    order = SortOrder.parse(order)
    dated = [item for item in items if item.due_at is not None]
    undated = [item for item in items if item.due_at is None]

    # sorted() is stable, and reverse=True keeps equal keys in input order
    dated = sorted(dated, key=lambda item: item.due_at,
                   reverse=(order == SortOrder.NEWEST_FIRST))

    if order == SortOrder.OLDEST_FIRST:
        return dated + undated
    return undated + dated
