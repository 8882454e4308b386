"""Custom exceptions for the Groundwave Zettelkasten cache.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_ID_INVALID = 1002
    DATE_INVALID = 1003

    # Remote storage errors (4xxx)
    REMOTE_FETCH_FAILED = 4001
    REMOTE_LIST_FAILED = 4002
    REMOTE_TIMEOUT = 4003
    REMOTE_CANCELLED = 4004

    # Rendering errors (5xxx)
    RENDER_FAILED = 5001

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Cache build errors (8xxx)
    BUILD_FAILED = 8001


class ZettelkastenError(Exception):
    """Base exception for all Zettelkasten cache errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BUILD_FAILED,
        details: Optional[Dict[str, Any]] = None
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
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(ZettelkastenError):
    """Raised when no note in the current listing carries the requested ID."""

    def __init__(
        self,
        note_id: str,
        message: Optional[str] = None,
        scanned: Optional[int] = None
    ):
        details: Dict[str, Any] = {"note_id": note_id}
        if scanned is not None:
            details["scanned"] = scanned
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details=details
        )
        self.note_id = note_id
        self.scanned = scanned


class InvalidNoteIDError(ZettelkastenError):
    """Raised when a note ID is not a textual RFC 4122 UUID."""

    def __init__(self, value: Any):
        super().__init__(
            "Invalid note ID format",
            code=ErrorCode.NOTE_ID_INVALID,
            details={"value": str(value)[:100]}  # Truncate for safety
        )
        self.value = value


class InvalidDateError(ZettelkastenError):
    """Raised when a journal date is not a real YYYY-MM-DD day."""

    def __init__(self, value: Any):
        super().__init__(
            "Invalid journal date, expected YYYY-MM-DD",
            code=ErrorCode.DATE_INVALID,
            details={"value": str(value)[:100]}
        )
        self.value = value


class RemoteFetchError(ZettelkastenError):
    """Raised when a WebDAV request fails.

    Attributes:
        url: The requested URL
        status: HTTP status code, if the server answered
        original_error: Transport-level cause, if the request never completed
        transient: True for timeouts, cancellations and transport failures
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status: Optional[int] = None,
        code: ErrorCode = ErrorCode.REMOTE_FETCH_FAILED,
        original_error: Optional[Exception] = None,
        transient: bool = False
    ):
        details: Dict[str, Any] = {}
        if url:
            # Don't expose full URLs in error messages
            details["path_hint"] = url.rstrip("/").split("/")[-1] or url
        if status is not None:
            details["status"] = status
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.url = url
        self.status = status
        self.original_error = original_error
        self.transient = transient


class RenderError(ZettelkastenError):
    """Raised when Org content cannot be converted to HTML."""

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if filename:
            details["filename"] = filename
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.RENDER_FAILED, details=details)
        self.filename = filename
        self.original_error = original_error


class ConfigurationError(ZettelkastenError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class BuildError(ZettelkastenError):
    """Raised when a cache build fails at the directory-listing stage.

    Attributes:
        index: Name of the index (or indexes) that could not be built
        original_error: The underlying listing failure
    """

    def __init__(
        self,
        message: str,
        index: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if index:
            details["index"] = index
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.BUILD_FAILED, details=details)
        self.index = index
        self.original_error = original_error
