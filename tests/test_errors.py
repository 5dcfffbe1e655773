"""Tests for error classification and reporting."""

import logging

import requests

from loadmaster_sync.api.errors import LoadMasterError
from loadmaster_sync.utils.errors import (
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    PermanentRemoteError,
    SyncError,
    TransientNetworkError,
)


class TestHandleException:
    """Tests for ErrorHandler.handle_exception."""

    def test_rejected_credentials(self):
        error = ErrorHandler().handle_exception(LoadMasterError(401, "Authorization required"))

        assert isinstance(error, PermanentRemoteError)
        assert error.category == ErrorCategory.CREDENTIAL
        assert error.context.remote_code == 401
        assert error.suggestions

    def test_unmapped_code(self):
        error = ErrorHandler().handle_exception(LoadMasterError(418, "Teapot"))

        assert error.category == ErrorCategory.REMOTE
        assert error.message == "Appliance error (418): Teapot"

    def test_connection_error_is_transient(self):
        error = ErrorHandler().handle_exception(requests.exceptions.ConnectionError("reset"))

        assert isinstance(error, TransientNetworkError)
        assert error.category == ErrorCategory.NETWORK

    def test_sync_error_passes_through(self):
        original = PermanentRemoteError("gone")

        assert ErrorHandler().handle_exception(original) is original

    def test_anything_else_is_unknown(self):
        cause = ValueError("odd")

        error = ErrorHandler().handle_exception(cause, ErrorContext(operation="read"))

        assert error.category == ErrorCategory.UNKNOWN
        assert error.cause is cause
        assert error.context.operation == "read"


class TestReporting:
    """Tests for user messages and error logging."""

    def test_user_message_lists_context(self):
        error = SyncError(
            "Appliance rejected the parameters: Invalid port",
            context=ErrorContext(resource_id="1/2", resource_kind="real_server", remote_code=422),
            suggestions=["Check the port"],
        )

        message = error.to_user_message()

        assert message.splitlines()[0] == "ERROR: Appliance rejected the parameters: Invalid port"
        assert "   Kind: real_server" in message
        assert "   Appliance code: 422" in message
        assert "Operation" not in message
        assert "   1. Check the port" in message

    def test_log_fields_skip_unset_context(self):
        error = SyncError("boom", context=ErrorContext(resource_id="web", additional_info={"a": 1}))

        assert error.log_fields() == {"resource_id": "web"}
        assert error.to_dict()["context"]["additional_info"] == {"a": 1}

    def test_log_error_attaches_fields(self, caplog):
        error = ErrorHandler().handle_exception(
            LoadMasterError(422, "Invalid port"),
            ErrorContext(resource_id="1/2", resource_kind="real_server"),
        )

        with caplog.at_level(logging.DEBUG):
            ErrorHandler().log_error(error)

        [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert record.resource_kind == "real_server"
        assert record.remote_code == 422
        assert "Invalid port" in record.getMessage()
