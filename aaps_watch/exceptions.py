"""
Custom exceptions for the AAPS watch companion.

This module provides structured error handling with clear error codes
and user-friendly messages for better debugging.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Sample Errors (1xxx)
    SAMPLE_INVALID = "SAMPLE_1001"
    BUFFER_UNKNOWN_KIND = "SAMPLE_1002"

    # Configuration Errors (2xxx)
    CONFIG_INVALID = "CONFIG_2001"
    CONFIG_FILE_MISSING = "CONFIG_2002"

    # Transport Errors (3xxx)
    MAILBOX_READ_FAILED = "MAILBOX_3001"
    COMMAND_SEND_FAILED = "COMMAND_3002"

    # Dialog Errors (4xxx)
    FLOW_INVALID_TRANSITION = "FLOW_4001"


class AapsWatchError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        self.original_error = original_error
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        """Returns the complete error message with code and details."""
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.original_error:
            parts.append(f"Caused by: {type(self.original_error).__name__}: {self.original_error}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidSampleError(AapsWatchError):
    """Raised when an inbound sample cannot be parsed (e.g. missing ``ts``)."""

    def __init__(
        self,
        message: str = "Invalid sample",
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.SAMPLE_INVALID,
            details=details,
            original_error=original_error,
        )


class UnknownSampleKindError(AapsWatchError):
    """Raised when a buffer is requested for a kind that does not exist."""

    def __init__(self, kind: str):
        super().__init__(
            message=f"Unknown sample kind '{kind}'",
            error_code=ErrorCode.BUFFER_UNKNOWN_KIND,
            details="Expected one of: glucose, treatments, basals",
        )
        self.kind = kind


class ConfigurationError(AapsWatchError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        error_code: ErrorCode = ErrorCode.CONFIG_INVALID,
        details: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            original_error=original_error,
        )


class MailboxReadError(AapsWatchError):
    """Raised when a mailbox file exists but cannot be read or decoded."""

    def __init__(
        self,
        file_name: str,
        message: str = "Failed to read mailbox file",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.MAILBOX_READ_FAILED,
            details=f"File: {file_name}",
            original_error=original_error,
        )
        self.file_name = file_name


class CommandSendError(AapsWatchError):
    """Raised when a command cannot be delivered to the phone bridge."""

    def __init__(
        self,
        command_type: str,
        message: str = "Failed to send command to phone",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.COMMAND_SEND_FAILED,
            details=f"Command: {command_type}",
            original_error=original_error,
        )
        self.command_type = command_type


class InvalidTransitionError(AapsWatchError):
    """Raised when a dialog event is not accepted in the current state."""

    def __init__(self, state: str, event: str):
        super().__init__(
            message="Event not accepted in current dialog state",
            error_code=ErrorCode.FLOW_INVALID_TRANSITION,
            details=f"State: {state}, event: {event}",
        )
        self.state = state
        self.event = event
