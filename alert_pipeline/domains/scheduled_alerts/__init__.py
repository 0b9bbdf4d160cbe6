"""Scheduled alerts domain package.

Recurrence, due/expired queries, the execution scheduler and its celery triggers.
"""

__all__ = [
    "models",
    "recurrence",
    "repository",
    "scheduler",
    "tasks",
]
