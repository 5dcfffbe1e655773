"""Imperative actions that are not part of resource reconciliation."""

import threading
from typing import Optional

from loadmaster_sync.addressing import FlatIdentifier, parse_index
from loadmaster_sync.api.client import LoadMasterAPI
from loadmaster_sync.utils.errors import ActionError, ErrorContext, error_handler
from loadmaster_sync.utils.logging import LogContext, get_logger
from loadmaster_sync.utils.retry import RetryStrategy

logger = get_logger(__name__)


class VirtualServiceRestarter:
    """Restarts a virtual service by disabling and re-enabling it."""

    def __init__(
        self,
        client: LoadMasterAPI,
        retry: Optional[RetryStrategy] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        self.client = client
        self.retry = retry or RetryStrategy()
        self.cancel_event = cancel_event

    def restart(self, vs_id: str) -> bool:
        """Restart the virtual service with the given index.

        A disabled service is left alone.

        Args:
            vs_id: Index of the virtual service

        Returns:
            True if the service was restarted, False if it was skipped

        Raises:
            ParseError: vs_id is not a numeric index
            ActionError: Any remote step failed
        """
        index = FlatIdentifier(str(parse_index(vs_id))).resolve()

        with LogContext(logger, resource_kind='virtual_service', resource_id=index,
                        operation='restart'):
            try:
                service = self._call(lambda: self.client.show_virtual_service(index))
                if not service.enable:
                    logger.warning(
                        f"Virtual service {index} is currently disabled. Restart action skipped."
                    )
                    return False

                self._call(lambda: self.client.modify_virtual_service(index, {'Enable': False}))
                self._call(lambda: self.client.modify_virtual_service(index, {'Enable': True}))
            except Exception as e:
                context = ErrorContext(resource_id=index, resource_kind='virtual_service',
                                       operation='restart')
                classified = error_handler.handle_exception(e, context)
                raise ActionError(
                    f"Could not restart virtual service with id {index}: {classified.message}",
                    category=classified.category,
                    context=context,
                    cause=classified,
                    suggestions=classified.suggestions,
                ) from e

            logger.info(f"Restarted virtual service {index}")
            return True

    def _call(self, operation):
        return self.retry.execute(operation, cancel_event=self.cancel_event)
