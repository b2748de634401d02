"""
Structured error handling for itinerary reconciliation and live verification.

This module provides error types with standardized codes, messages,
and recovery suggestions that API clients can parse and act upon.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError


class ErrorCode(str, Enum):
    """
    Standardized error codes.

    These codes allow callers to programmatically handle different
    error types without parsing error messages.
    """

    # Input validation errors
    INVALID_AIRPORT = "INVALID_AIRPORT"
    INVALID_DATE = "INVALID_DATE"
    INVALID_ITINERARY = "INVALID_ITINERARY"
    INVALID_SELECTION = "INVALID_SELECTION"

    # Live search errors
    LIVE_SEARCH_HTTP_ERROR = "LIVE_SEARCH_HTTP_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    PARSE_ERROR = "PARSE_ERROR"

    # Directory errors
    DIRECTORY_UNAVAILABLE = "DIRECTORY_UNAVAILABLE"

    # System errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class VerificationError(BaseModel):
    """
    Structured error response.

    Provides machine-readable error information with human-friendly
    descriptions and actionable recovery suggestions.
    """

    code: ErrorCode = Field(
        description="Machine-readable error code"
    )
    message: str = Field(
        description="Human-readable error message"
    )
    details: Optional[dict] = Field(
        default=None,
        description="Additional error context (e.g., program, route span)"
    )
    recoverable: bool = Field(
        default=True,
        description="Whether the error can be recovered from with different input or a retry"
    )
    suggested_action: Optional[str] = Field(
        default=None,
        description="Suggested action to resolve the error"
    )

    @classmethod
    def from_exception(cls, e: Exception) -> "VerificationError":
        """
        Convert an exception to a structured VerificationError.

        Exceptions raised by this package carry their own error; anything
        else is classified from its message.
        """
        if isinstance(e, ReconcilerException):
            return e.error

        if isinstance(e, ValidationError):
            return cls.from_validation_error(e)

        error_str = str(e).lower()

        if isinstance(e, (TimeoutError, asyncio.TimeoutError)) or "timeout" in error_str or "timed out" in error_str:
            return cls(
                code=ErrorCode.TIMEOUT,
                message="Live search timed out",
                suggested_action="Retry the verification",
            )

        if any(x in error_str for x in ["connection", "network", "dns", "socket"]):
            return cls(
                code=ErrorCode.NETWORK_ERROR,
                message="Network connection error",
                suggested_action="Check connectivity to the live-search backend and retry",
            )

        if "parse" in error_str or "malformed" in error_str or "json" in error_str:
            return cls(
                code=ErrorCode.PARSE_ERROR,
                message="Failed to parse live-search response",
                suggested_action="Retry later; the backend returned an unexpected payload",
            )

        if "status" in error_str or "http" in error_str:
            status_match = re.search(r'(\d{3})', str(e))
            status_code = status_match.group(1) if status_match else "unknown"
            return cls(
                code=ErrorCode.LIVE_SEARCH_HTTP_ERROR,
                message=f"HTTP error {status_code}",
                details={"status_code": status_code},
                suggested_action="Retry the verification",
            )

        return cls(
            code=ErrorCode.UNKNOWN_ERROR,
            message=str(e),
            recoverable=False,
            details={"exception_type": type(e).__name__},
        )

    @classmethod
    def from_validation_error(cls, e: ValidationError) -> "VerificationError":
        """Classify a rejected request model by its offending fields."""
        errors = e.errors(include_url=False)
        fields = [str(loc) for err in errors for loc in err.get("loc", ())]

        if any(f in ("from", "to", "from_iata", "to_iata") for f in fields):
            code = ErrorCode.INVALID_AIRPORT
        elif any(f in ("depart", "date") for f in fields):
            code = ErrorCode.INVALID_DATE
        else:
            code = ErrorCode.INVALID_SELECTION

        first = errors[0] if errors else {}
        return cls(
            code=code,
            message=first.get("msg", str(e)),
            details={"fields": fields},
            recoverable=True,
            suggested_action="Correct the request and try again",
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
        }


class ReconcilerException(Exception):
    """
    Exception with structured error information.

    Attributes:
        error: The VerificationError with structured information
    """

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, error: VerificationError):
        self.error = error
        super().__init__(error.message)

    def to_dict(self) -> dict:
        """Get the error as a dictionary."""
        return self.error.to_dict()

    @classmethod
    def from_code(
        cls,
        code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
        **kwargs: Any
    ) -> "ReconcilerException":
        """Create an exception from an error code, defaulting to the class code."""
        code = code or cls.default_code
        default_messages = {
            ErrorCode.INVALID_AIRPORT: "Invalid airport code provided",
            ErrorCode.INVALID_DATE: "Invalid date format or value",
            ErrorCode.INVALID_ITINERARY: "Itinerary is malformed",
            ErrorCode.INVALID_SELECTION: "Program selection is incomplete or invalid",
            ErrorCode.LIVE_SEARCH_HTTP_ERROR: "Live search returned an error status",
            ErrorCode.NETWORK_ERROR: "Network connection error",
            ErrorCode.TIMEOUT: "Live search timed out",
            ErrorCode.PARSE_ERROR: "Failed to parse live-search response",
            ErrorCode.DIRECTORY_UNAVAILABLE: "Airport/airline directory unavailable",
            ErrorCode.UNKNOWN_ERROR: "An unknown error occurred",
        }

        error = VerificationError(
            code=code,
            message=message or default_messages.get(code, str(code)),
            **kwargs
        )
        return cls(error)


class LiveSearchError(ReconcilerException):
    """Base class for failures of a single live-search call."""
    default_code = ErrorCode.UNKNOWN_ERROR


class LiveSearchHTTPError(LiveSearchError):
    """The live-search backend answered with a non-2xx status."""
    default_code = ErrorCode.LIVE_SEARCH_HTTP_ERROR

    @property
    def status_code(self) -> Optional[int]:
        details = self.error.details or {}
        return details.get("status_code")


class LiveSearchNetworkError(LiveSearchError):
    """The live-search call never produced a response."""
    default_code = ErrorCode.NETWORK_ERROR


class LiveSearchParseError(LiveSearchError):
    """The live-search backend answered 2xx with an unusable body."""
    default_code = ErrorCode.PARSE_ERROR


class VerificationRejected(ReconcilerException):
    """A verification request failed validation and was not started."""
    default_code = ErrorCode.INVALID_SELECTION


class InvalidRequestError(ReconcilerException):
    """An itinerary, airport or date in a request could not be parsed."""
    default_code = ErrorCode.INVALID_ITINERARY


class DirectoryError(ReconcilerException):
    """The airport/airline directory could not be read."""
    default_code = ErrorCode.DIRECTORY_UNAVAILABLE


# Convenience functions for creating common errors
def http_status_error(program: str, span: str, depart: str, status_code: int) -> LiveSearchHTTPError:
    """Create an error for a non-2xx live-search response."""
    return LiveSearchHTTPError.from_code(
        message=f"{program.upper()} {span} {depart}: HTTP {status_code}",
        details={"program": program, "span": span, "depart": depart, "status_code": status_code},
        suggested_action="Retry the verification later",
    )


def rejected_selection(reason: str, **details: Any) -> VerificationRejected:
    """Create an error for an invalid verification request."""
    return VerificationRejected.from_code(
        message=reason,
        details=details or None,
        suggested_action="Select a recommended program for every verifiable segment group",
    )


__all__ = [
    "ErrorCode",
    "VerificationError",
    "ReconcilerException",
    "LiveSearchError",
    "LiveSearchHTTPError",
    "LiveSearchNetworkError",
    "LiveSearchParseError",
    "VerificationRejected",
    "InvalidRequestError",
    "DirectoryError",
    # Convenience functions
    "http_status_error",
    "rejected_selection",
]
