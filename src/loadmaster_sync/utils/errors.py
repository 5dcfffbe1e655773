"""Error handling framework for reconciliation operations."""

import logging
from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import asdict, dataclass

import requests

from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during reconciliation."""
    CONFIGURATION = "configuration"
    NETWORK = "network"
    REMOTE = "remote"
    DRIFT = "drift"
    UNSUPPORTED = "unsupported"
    PARSE = "parse"
    ENCODING = "encoding"
    CREDENTIAL = "credential"
    CANCELLED = "cancelled"
    STATE = "state"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Run cannot continue
    ERROR = "error"  # Resource failed but the run can continue
    WARNING = "warning"
    INFO = "info"


SEVERITY_LEVELS = {
    ErrorSeverity.CRITICAL: logging.ERROR,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.INFO: logging.INFO,
}


@dataclass
class ErrorContext:
    """Context information for an error."""
    resource_id: Optional[str] = None
    resource_kind: Optional[str] = None
    operation: Optional[str] = None
    remote_code: Optional[int] = None
    additional_info: Optional[Dict[str, Any]] = None


class SyncError(Exception):
    """Base exception for reconciliation errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize reconciliation error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Render the error, its context and suggested fixes for the console."""
        lines = [f"{self.severity.value.upper()}: {self.message}"]

        labels = (
            ('Kind', self.context.resource_kind),
            ('Resource', self.context.resource_id),
            ('Operation', self.context.operation),
            ('Appliance code', self.context.remote_code),
            ('Cause', self.cause),
        )
        lines.extend(f"   {label}: {value}" for label, value in labels if value is not None)

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {i}. {s}" for i, s in enumerate(self.suggestions, 1))

        return "\n".join(lines)

    def log_fields(self) -> Dict[str, Any]:
        """Context fields worth attaching to a structured log record."""
        fields = asdict(self.context)
        fields.pop('additional_info')
        return {key: value for key, value in fields.items() if value is not None}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, written to the debug log."""
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': asdict(self.context),
            'cause': repr(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class ConfigurationError(SyncError):
    """Error in configuration file or settings."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class TransientNetworkError(SyncError):
    """A failure expected to resolve itself on retry."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.NETWORK)
        super().__init__(message, severity=ErrorSeverity.ERROR, **kwargs)


class PermanentRemoteError(SyncError):
    """The appliance rejected a command; retrying will not help."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.REMOTE)
        super().__init__(message, severity=ErrorSeverity.ERROR, **kwargs)


class NotFoundDrift(SyncError):
    """The remote entity no longer exists."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DRIFT,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )


class UnsupportedOperationError(SyncError):
    """Update attempted on a replace-only resource kind."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.UNSUPPORTED,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class ParseError(SyncError):
    """Malformed externally supplied identifier."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PARSE,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class EncodingError(SyncError):
    """Payload looks like base64 but cannot be decoded."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.ENCODING,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class ActionError(SyncError):
    """Failure of an imperative action such as a service restart."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.REMOTE)
        super().__init__(message, severity=ErrorSeverity.ERROR, **kwargs)


class ReconcileError(SyncError):
    """Failure of one reconciler operation.

    The category is inherited from the classified cause so callers can
    tell a drifted entity from an exhausted retry loop.
    """

    operation = 'reconcile'

    def __init__(self, message: str, cause: Optional[Exception] = None, **kwargs):
        if isinstance(cause, SyncError):
            kwargs.setdefault('category', cause.category)
            kwargs.setdefault('suggestions', list(cause.suggestions))
        super().__init__(message, cause=cause, **kwargs)


class CreateError(ReconcileError):
    operation = 'create'


class ReadError(ReconcileError):
    operation = 'read'


class UpdateError(ReconcileError):
    operation = 'update'


class DeleteError(ReconcileError):
    operation = 'delete'


class ImportStateError(ReconcileError):
    operation = 'import'


class ErrorHandler:
    """Classifies raw client errors into the reconciliation taxonomy."""

    # Appliance response codes and their categories/suggestions
    REMOTE_ERROR_MAPPING = {
        401: {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Appliance rejected the credentials',
            'suggestions': [
                'Check the configured API key or username/password',
                'Verify the API user has the "API" permission enabled',
            ]
        },
        403: {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Operation not permitted for this API user',
            'suggestions': [
                'Grant the API user permission for this command',
                'Check whether the API is enabled on the appliance',
            ]
        },
        404: {
            'category': ErrorCategory.REMOTE,
            'message': 'Entity or command not found',
            'suggestions': [
                'Verify the identifier exists on the appliance',
                'Check if the entity was removed manually',
            ]
        },
        422: {
            'category': ErrorCategory.REMOTE,
            'message': 'Appliance rejected the parameters',
            'suggestions': [
                'Review the message for the offending parameter',
                'Check that referenced services and rules exist',
            ]
        },
        500: {
            'category': ErrorCategory.REMOTE,
            'message': 'Appliance internal error',
            'suggestions': [
                'Check the appliance system log',
                'Retry once the appliance is healthy',
            ]
        },
    }

    def __init__(self):
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> SyncError:
        """Handle an exception and convert it to a SyncError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            SyncError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, SyncError):
            return error

        if isinstance(error, LoadMasterError):
            return self._handle_remote_error(error, context)

        if isinstance(error, (TransportError, requests.exceptions.RequestException,
                              ConnectionError, TimeoutError)):
            return self._handle_network_error(error, context)

        return SyncError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_remote_error(
        self,
        error: LoadMasterError,
        context: ErrorContext
    ) -> PermanentRemoteError:
        context.remote_code = error.code
        error_info = self.REMOTE_ERROR_MAPPING.get(error.code)

        if error_info:
            return PermanentRemoteError(
                message=f"{error_info['message']}: {error.message}",
                category=error_info['category'],
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        return PermanentRemoteError(
            message=f"Appliance error ({error.code}): {error.message}",
            context=context,
            cause=error,
            suggestions=['Check the LoadMaster API documentation for this response']
        )

    def _handle_network_error(
        self,
        error: Exception,
        context: ErrorContext
    ) -> TransientNetworkError:
        return TransientNetworkError(
            message=f'Network error: {str(error)}',
            context=context,
            cause=error,
            suggestions=[
                'Check connectivity to the appliance management interface',
                'Verify the configured host and port',
                'Retry the operation (automatic retry enabled)',
            ]
        )

    def log_error(self, error: SyncError):
        """Log ``error`` at a level matching its severity.

        Context fields travel as structured record attributes, so the JSON log
        can be filtered by resource or appliance code.
        """
        level = SEVERITY_LEVELS.get(error.severity, logging.INFO)

        with LogContext(self.logger, **error.log_fields()):
            self.logger.log(level, error.to_user_message())
            self.logger.debug(f"Error details: {error.to_dict()}")


error_handler = ErrorHandler()
