"""
Unit tests for error message formatting and the exception hierarchy.
"""

from appwrite_transfer.client.exceptions import (
    APIError,
    ConnectivityError,
    MigrationFailedError,
    RateLimitError,
    StructuralError,
    TransferError,
    UnsupportedProviderError,
)
from appwrite_transfer.migration.errors import (
    collect_error_messages,
    format_structural_error,
    format_transfer_error,
)


def raised(exc: Exception) -> Exception:
    """Return ``exc`` with a traceback attached."""
    try:
        raise exc
    except Exception as e:
        return e


class TestFormatTransferError:
    """Tests for per-resource messages."""

    def test_fetch_without_cause(self):
        error = TransferError("user", "u1", "not readable")

        assert format_transfer_error(error, "fetch") == (
            "Error occurred while fetching 'user:u1' from source with message: 'not readable'"
        )

    def test_push_without_cause(self):
        error = TransferError("bucket", "b1", "quota")

        assert format_transfer_error(error, "push") == (
            "Error occurred while pushing 'bucket:b1' to destination with message: 'quota'"
        )

    def test_cause_adds_message_file_and_line(self):
        cause = raised(ValueError("bad row"))
        error = TransferError("document", "d1", "bad row", cause)

        message = format_transfer_error(error, "fetch")

        assert " Message: bad row" in message
        assert " File: " in message
        assert __file__ in message
        assert " Line: " in message

    def test_cause_without_traceback(self):
        error = TransferError("file", "f1", "gone", KeyError("f1"))

        message = format_transfer_error(error, "fetch")

        assert message.endswith(" Message: 'f1'")


class TestCollectErrorMessages:
    def test_source_errors_come_first(self):
        messages = collect_error_messages(
            [TransferError("user", "u1", "a")],
            [TransferError("user", "u2", "b"), TransferError("team", "t1", "c")],
        )

        assert [m.split("'")[1] for m in messages] == ["user:u1", "user:u2", "team:t1"]

    def test_empty(self):
        assert collect_error_messages([], []) == []


class TestStructuralErrors:
    def test_message_is_the_exception_text(self):
        assert format_structural_error(UnsupportedProviderError("parse")) == (
            "Invalid source type 'parse'"
        )

    def test_empty_message_falls_back_to_type(self):
        assert format_structural_error(RuntimeError()) == "RuntimeError"

    def test_hierarchy(self):
        assert issubclass(ConnectivityError, StructuralError)
        assert UnsupportedProviderError("x", "destination").kind == "destination"


class TestAPIErrors:
    def test_status_code_in_message(self):
        assert str(APIError("nope", status_code=403)) == "[403] nope"

    def test_rate_limit_keeps_retry_after(self):
        assert RateLimitError("slow down", 429, retry_after=7).retry_after == 7

    def test_migration_failed_keeps_errors(self):
        error = MigrationFailedError("m1", ["one", "two"])

        assert error.migration_id == "m1"
        assert error.errors == ["one", "two"]
