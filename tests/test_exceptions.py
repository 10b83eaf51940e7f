"""Tests for aaps_watch/exceptions.py module."""

from aaps_watch.exceptions import (
    AapsWatchError,
    CommandSendError,
    ConfigurationError,
    ErrorCode,
    InvalidSampleError,
    InvalidTransitionError,
    MailboxReadError,
    UnknownSampleKindError,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_sample_error_codes(self):
        """Test sample error codes are defined."""
        assert ErrorCode.SAMPLE_INVALID.value == "SAMPLE_1001"
        assert ErrorCode.BUFFER_UNKNOWN_KIND.value == "SAMPLE_1002"

    def test_transport_error_codes(self):
        """Test mailbox and command error codes are defined."""
        assert ErrorCode.MAILBOX_READ_FAILED.value == "MAILBOX_3001"
        assert ErrorCode.COMMAND_SEND_FAILED.value == "COMMAND_3002"


class TestAapsWatchError:
    """Tests for base AapsWatchError exception."""

    def test_basic_creation(self):
        """Test basic error creation."""
        error = AapsWatchError(message="Test error", error_code=ErrorCode.CONFIG_INVALID)
        assert error.message == "Test error"
        assert error.full_message == "[CONFIG_2001] Test error"
        assert str(error) == error.full_message

    def test_full_message_with_cause(self):
        """Test full message includes details and the original error."""
        error = AapsWatchError(
            message="Test error",
            error_code=ErrorCode.CONFIG_INVALID,
            details="Additional info",
            original_error=ValueError("bad"),
        )
        assert "Details: Additional info" in error.full_message
        assert "Caused by: ValueError: bad" in error.full_message

    def test_to_dict(self):
        """Test conversion to an API response body."""
        error = AapsWatchError(message="Test", error_code=ErrorCode.CONFIG_INVALID, details="More")
        assert error.to_dict() == {"error": "CONFIG_2001", "message": "Test", "details": "More"}


class TestSpecificExceptions:
    """Tests for specific exception types."""

    def test_invalid_sample(self):
        """Test InvalidSampleError defaults."""
        error = InvalidSampleError(details="{'sgv': 1}")
        assert error.error_code == ErrorCode.SAMPLE_INVALID
        assert isinstance(error, AapsWatchError)

    def test_unknown_kind(self):
        """Test UnknownSampleKindError keeps the kind."""
        error = UnknownSampleKindError("steps")
        assert error.kind == "steps"
        assert "steps" in error.message

    def test_configuration_error_code(self):
        """Test ConfigurationError accepts a specific code."""
        error = ConfigurationError(message="Missing", error_code=ErrorCode.CONFIG_FILE_MISSING)
        assert error.error_code == ErrorCode.CONFIG_FILE_MISSING

    def test_mailbox_read_error(self):
        """Test MailboxReadError names the file."""
        error = MailboxReadError("aaps.history.bg", original_error=OSError("busy"))
        assert error.file_name == "aaps.history.bg"
        assert error.details == "File: aaps.history.bg"
        assert "OSError" in error.full_message

    def test_command_send_error(self):
        """Test CommandSendError names the command."""
        error = CommandSendError("RequestInitialData")
        assert error.command_type == "RequestInitialData"
        assert error.error_code == ErrorCode.COMMAND_SEND_FAILED

    def test_invalid_transition(self):
        """Test InvalidTransitionError keeps state and event."""
        error = InvalidTransitionError("idle", "ok")
        assert error.state == "idle"
        assert error.event == "ok"
        assert error.details == "State: idle, event: ok"
