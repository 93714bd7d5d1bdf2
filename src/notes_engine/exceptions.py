"""Custom exceptions for the notes engine.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every failure in the engine is
per-operation and recoverable by retrying the user action.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_NOT_PINNABLE = 1002
    NOTE_ALREADY_EXISTS = 1003
    NOTE_NOT_DELETABLE = 1004

    # Authorization errors (2xxx)
    UNAUTHORIZED = 2001
    ADMIN_LOGIN_REQUIRED = 2002
    ADMIN_DISABLED = 2003

    # Remote store errors (4xxx)
    REMOTE_CALL_FAILED = 4001

    # Local storage errors (45xx)
    LOCAL_STORAGE_READ_FAILED = 4501
    LOCAL_STORAGE_WRITE_FAILED = 4502

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_SLUG = 7002
    INVALID_FIELD = 7003
    EDITOR_CLOSED = 7004


class NotesError(Exception):
    """Base exception for all notes engine errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class RemoteCallError(NotesError):
    """Raised when a call to the note store fails.

    This is the generic failure of the store boundary. Callers surface it
    as a notification and keep their optimistic local state.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        slug: Optional[str] = None,
        code: ErrorCode = ErrorCode.REMOTE_CALL_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if slug:
            details["slug"] = slug
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.slug = slug
        self.original_error = original_error


class NoteNotFoundError(RemoteCallError):
    """Raised when a note cannot be found in the store."""

    def __init__(self, slug: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note '{slug}' not found",
            slug=slug,
            code=ErrorCode.NOTE_NOT_FOUND,
        )


class UnauthorizedError(RemoteCallError):
    """Raised when a mutation targets a note the caller does not own."""

    def __init__(
        self,
        message: str = "Note not found or unauthorized",
        slug: Optional[str] = None,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
    ):
        super().__init__(message, operation=operation, slug=slug, code=code)


class DuplicateSlugError(RemoteCallError):
    """Raised when a create or re-slug would break slug uniqueness."""

    def __init__(self, slug: str):
        super().__init__(
            "A note with this slug already exists",
            slug=slug,
            code=ErrorCode.NOTE_ALREADY_EXISTS,
        )


class ValidationError(NotesError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(NotesError):
    """Raised when durable client-local storage cannot be read or written."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.LOCAL_STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if key:
            details["key"] = key
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.key = key
        self.path = path
        self.original_error = original_error

