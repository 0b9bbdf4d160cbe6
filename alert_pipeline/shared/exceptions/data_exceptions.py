"""
Data-related exception classes.

Handles validation errors raised while turning stored documents into typed models.
"""

from typing import List, Optional

from .pipeline_exceptions import AlertPipelineError


class DataValidationError(AlertPipelineError):
    """Stored document does not match its schema"""

    def __init__(
        self,
        message: str = "Data validation failed",
        validation_errors: Optional[List[str]] = None,
        document_id: Optional[str] = None
    ):
        super().__init__(message, error_code="DATA_VALIDATION_ERROR")
        self.validation_errors = validation_errors or []
        self.document_id = document_id
