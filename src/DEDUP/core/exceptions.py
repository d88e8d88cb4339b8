"""
Custom exceptions for the identifier deduplication service.

This module defines a hierarchy of domain-specific exceptions so that every
pipeline stage fails in a way the upload API can classify and map to a
response status.

Module Input:
    - Error conditions from extraction, store, writer and output components
    - Optional error details as dictionaries (stage, batch index, attempts)

Module Output:
    - Structured exception objects with message and details
    - Consistent error interface for catch blocks
"""
from typing import Optional, Any


class DedupServiceError(Exception):
    """
    Base exception for all deduplication service errors.

    Attributes:
        message (str): Human-readable error description
        details (dict[str, Any]): Optional structured error details
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        """
        Initialize exception with message and optional details.

        Args:
            message (str): Human-readable error description
            details (Optional[dict[str, Any]]): Additional structured error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(DedupServiceError):
    """
    Raised when configuration is invalid or missing.

    Common scenarios:
        - Unknown store backend
        - Missing DynamoDB table name
        - Batch sizes above the store's per-request limits
    """
    pass


class UploadValidationError(DedupServiceError):
    """
    Raised when an uploaded file is rejected before any store interaction.

    Subclasses identify the exact input problem so the API can answer with a
    distinct status for each one.
    """
    pass


class UnsupportedFileTypeError(UploadValidationError):
    """Raised when the upload extension is not CSV or Excel."""
    pass


class FileTooLargeError(UploadValidationError):
    """Raised when the upload exceeds the configured size limit."""
    pass


class FileParseError(UploadValidationError):
    """
    Raised when an accepted file cannot be turned into rows.

    Common scenarios:
        - Corrupt or password-protected workbook
        - Binary content uploaded with a .csv extension
        - Missing Excel engine for the detected format
    """
    pass


class StoreError(DedupServiceError):
    """
    Raised when the known-identifier store rejects a request.

    Errors of this exact type are fatal: the batch is not retried.

    Common scenarios:
        - Table not found
        - Access denied
        - Validation errors on key schema
    """
    pass


class RetryableStoreError(StoreError):
    """
    Raised when the store reports a transient fault.

    Covers throttling, provisioned throughput exhaustion, unprocessed
    keys/items and dropped connections. Callers retry the whole batch after a
    fixed delay, up to a bounded number of attempts.
    """
    pass


class ExistenceCheckError(DedupServiceError):
    """
    Raised when the existence lookup stage cannot produce a complete answer.

    A failed lookup must abort the pipeline; treating it as "not present"
    would persist duplicates.
    """
    pass


class PersistenceError(DedupServiceError):
    """
    Raised when new identifiers cannot be durably written.

    Batches committed before the failure stay in the store.
    """
    pass


class OutputBuildError(DedupServiceError):
    """
    Raised when a result file cannot be serialized or written to disk.

    Common scenarios:
        - Upload directory not writable
        - Disk full
        - Sheet row limit exceeded for Excel output
    """
    pass
