"""
Alert pipeline exception classes.

Provides the hierarchical exception structure used across the scheduled alert
delivery pipeline. Every failure is isolated to the smallest unit of work
(recipient, then alert, then tick); these types let callers tell them apart.
"""

from typing import Optional, Dict, Any


class AlertPipelineError(Exception):
    """Base exception for all alert pipeline errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class PersistenceError(AlertPipelineError):
    """Document store read or write failed"""

    def __init__(
        self,
        message: str = "Document store operation failed",
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code="PERSISTENCE_ERROR", details=details)
        self.collection = collection
        self.operation = operation


class NotFoundError(AlertPipelineError):
    """Referenced document does not exist"""

    def __init__(self, resource: str, resource_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{resource} with id '{resource_id}' not found",
            error_code="NOT_FOUND",
        )
        self.resource = resource
        self.resource_id = str(resource_id)


class InvalidRecurrence(AlertPipelineError):
    """Recurrence pattern cannot produce a next occurrence"""

    def __init__(self, message: str = "Invalid recurrence pattern", interval: Optional[int] = None):
        super().__init__(message, error_code="INVALID_RECURRENCE")
        self.interval = interval


class DeliveryError(AlertPipelineError):
    """Notification gateway is unusable (misconfiguration, not a per-recipient failure)"""

    def __init__(self, message: str = "Delivery gateway error", channel: Optional[str] = None):
        super().__init__(message, error_code="DELIVERY_ERROR")
        self.channel = channel
