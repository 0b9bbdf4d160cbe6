"""
Shared exceptions for the alert pipeline.

Defines custom exception classes for different error scenarios.
"""

from .pipeline_exceptions import *
from .data_exceptions import *

__all__ = [
    'AlertPipelineError',
    'PersistenceError',
    'NotFoundError',
    'InvalidRecurrence',
    'DeliveryError',
    'DataValidationError',
]
