"""
Ingestion Exception Classes
Error taxonomy for the business registry ingestion pipeline

Run-level errors (source missing, store unusable) are raised.
Record-level failures are counted by the pipeline stages and never escalate.
Lookup failures are not exceptions at all: they are LookupStatus values on
the EnrichmentResult returned by the registry client.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Error category for taxonomy"""
    SOURCE = "source"       # Raw file missing or unreadable
    RECORD = "record"       # Single record could not be parsed
    STORE = "store"         # Persistence failures
    UNKNOWN = "unknown"


class ErrorCode(str, Enum):
    """Standardized error codes"""
    # Source errors (1xxx)
    SOURCE_UNAVAILABLE = "ING1001"
    MALFORMED_SOURCE = "ING1002"

    # Record errors (2xxx)
    RECORD_MALFORMED = "ING2001"

    # Store errors (3xxx)
    STORE_CONFLICT = "ING3001"
    STORE_WRITE_FAILED = "ING3002"
    STORE_UNAVAILABLE = "ING3003"

    UNKNOWN_ERROR = "ING0001"


class IngestionError(Exception):
    """Base exception for ingestion errors"""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    retryable: bool = False

    def __init__(self, message: str, key: Optional[str] = None):
        self.message = message
        self.key = key
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/API response"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "key": self.key,
        }


class SourceUnavailableError(IngestionError):
    """Raised when the raw source file could not be obtained at all"""

    category = ErrorCategory.SOURCE
    code = ErrorCode.SOURCE_UNAVAILABLE
    retryable = True

    def __init__(self, message: str = "Source file unavailable", source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class MalformedSourceError(IngestionError):
    """Header missing, required columns missing, or an error page instead of data"""

    category = ErrorCategory.SOURCE
    code = ErrorCode.MALFORMED_SOURCE


class RecordMalformedError(IngestionError):
    """A single line/row could not be turned into a candidate record"""

    category = ErrorCategory.RECORD
    code = ErrorCode.RECORD_MALFORMED

    def __init__(self, message: str, key: Optional[str] = None, row_number: Optional[int] = None):
        super().__init__(message, key=key)
        self.row_number = row_number


class ConflictKind(str, Enum):
    """Why the store rejected a write"""
    DUPLICATE_KEY = "duplicate_key"
    VERSION_CONFLICT = "version_conflict"


class StoreConflictError(IngestionError):
    """
    Raised when the store rejects a write because the key already exists or
    the optimistic version token no longer matches.
    This error should NOT be retried.
    """

    category = ErrorCategory.STORE
    code = ErrorCode.STORE_CONFLICT

    def __init__(self, message: str, kind: ConflictKind, key: Optional[str] = None):
        super().__init__(message, key=key)
        self.kind = kind

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["kind"] = self.kind.value
        return result


class StoreWriteError(IngestionError):
    """Any other persistence failure for a single write"""

    category = ErrorCategory.STORE
    code = ErrorCode.STORE_WRITE_FAILED
    retryable = True


class StoreUnavailableError(IngestionError):
    """The store handle is unusable; aborts the run"""

    category = ErrorCategory.STORE
    code = ErrorCode.STORE_UNAVAILABLE
    retryable = True
