"""Utility modules for logging, retries and error handling."""

from loadmaster_sync.utils.retry import (
    RetryStrategy,
    RetryExhaustedError,
    RetryCancelledError,
    is_transient_error,
)
from loadmaster_sync.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    SyncError,
    ConfigurationError,
    TransientNetworkError,
    PermanentRemoteError,
    NotFoundDrift,
    UnsupportedOperationError,
    ParseError,
    EncodingError,
    ActionError,
    ReconcileError,
    CreateError,
    ReadError,
    UpdateError,
    DeleteError,
    ImportStateError,
    ErrorHandler,
    error_handler
)
from loadmaster_sync.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # Retry
    'RetryStrategy',
    'RetryExhaustedError',
    'RetryCancelledError',
    'is_transient_error',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'SyncError',
    'ConfigurationError',
    'TransientNetworkError',
    'PermanentRemoteError',
    'NotFoundDrift',
    'UnsupportedOperationError',
    'ParseError',
    'EncodingError',
    'ActionError',
    'ReconcileError',
    'CreateError',
    'ReadError',
    'UpdateError',
    'DeleteError',
    'ImportStateError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
