"""Base reconciler interface and shared CRUD plumbing."""

import threading
from abc import ABC, abstractmethod
from typing import Annotated, Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError

from loadmaster_sync.api.client import LoadMasterAPI, Params
from loadmaster_sync.drift import DriftDetector, NotFoundSignature
from loadmaster_sync.state.models import RecordedState
from loadmaster_sync.utils.errors import (
    ConfigurationError,
    CreateError,
    DeleteError,
    ErrorContext,
    ImportStateError,
    NotFoundDrift,
    ParseError,
    PermanentRemoteError,
    ReadError,
    ReconcileError,
    UnsupportedOperationError,
    UpdateError,
    error_handler,
)
from loadmaster_sync.utils.logging import LogContext, get_logger
from loadmaster_sync.utils.retry import RetryStrategy

T = TypeVar('T')


def _index_as_string(value: Any) -> Any:
    return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


# Appliance index supplied as int or str, kept as str
IndexStr = Annotated[str, BeforeValidator(_index_as_string)]


class DesiredConfig(BaseModel):
    """Caller-declared attributes of one resource instance.

    Attributes are tri-state. A field the caller never supplied is absent
    from ``model_fields_set`` and is left for the appliance to fill in; a
    field supplied as ``None`` is sent as an empty value; anything else is
    sent as given.
    """

    model_config = ConfigDict(extra='forbid')

    def is_set(self, attribute: str) -> bool:
        return attribute in self.model_fields_set

    def set_attributes(self) -> Dict[str, Any]:
        """Only the attributes the caller actually supplied."""
        return {name: getattr(self, name) for name in self.model_fields_set}


DesiredInput = Union[DesiredConfig, Mapping[str, Any]]


def select_last(entries: Sequence[T], what: str) -> T:
    """Return the authoritative entry of a remote collection.

    The appliance sorts the newest or most specific match last.

    Raises:
        PermanentRemoteError: The collection is empty
    """
    if not entries:
        raise PermanentRemoteError(f"Appliance returned no {what} entries")
    return entries[-1]


def _same_value(recorded: Any, desired: Any) -> bool:
    if desired is None:
        return recorded in (None, '')
    if isinstance(desired, bool) or isinstance(recorded, bool):
        return recorded == desired
    if isinstance(desired, (int, float)) and isinstance(recorded, str):
        return recorded.strip() == str(desired)
    if isinstance(recorded, (int, float)) and isinstance(desired, str):
        return str(recorded) == desired.strip()
    return recorded == desired


class ResourceReconciler(ABC):
    """CRUD controller for one resource kind.

    Subclasses declare the kind's desired model, its remote parameter
    names and its not-found signatures, and implement the remote calls.
    This class routes every call through the retry strategy, classifies
    failures and wraps them in the operation's error type.
    """

    kind: str = ''
    desired_model: Type[DesiredConfig] = DesiredConfig
    replace_only: bool = False
    not_found_signatures: Tuple[NotFoundSignature, ...] = ()

    # Desired attribute name -> remote parameter name
    parameters: Dict[str, str] = {}

    # Attributes whose change requires delete + create
    immutable_attributes: Tuple[str, ...] = ()

    def __init__(
        self,
        client: LoadMasterAPI,
        retry: Optional[RetryStrategy] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """Initialize reconciler.

        Args:
            client: Appliance API collaborator used for every remote call
            retry: Private retry strategy for this reconciler
            cancel_event: When set, pending retries are abandoned
        """
        self.client = client
        self.retry = retry or RetryStrategy()
        self.cancel_event = cancel_event
        self.drift = DriftDetector(self.not_found_signatures)
        self.logger = get_logger(f"{__name__}.{self.kind}")

    # Public operations

    def create(self, desired: DesiredInput) -> RecordedState:
        """Create the remote entity and record what the appliance reports.

        Raises:
            ConfigurationError: The desired attributes are invalid
            CreateError: The remote create failed
        """
        desired = self.coerce(desired)
        label = self.describe(desired)
        with LogContext(self.logger, resource_kind=self.kind, resource_id=label, operation='create'):
            self.logger.debug(f"Creating {self.kind} {label}")
            try:
                state = self._create(desired)
            except Exception as e:
                raise self._wrap(CreateError, e, label)
            self.logger.info(f"Created {self.kind} {state.identifier}")
            return state

    def read(self, state: RecordedState) -> Optional[RecordedState]:
        """Re-read the remote entity.

        Returns:
            Fresh recorded state, or None if the entity no longer exists

        Raises:
            ReadError: Any failure other than a recognized not-found
        """
        with LogContext(self.logger, resource_kind=self.kind, resource_id=state.identifier,
                        operation='read'):
            try:
                return self._read(state.identifier, state)
            except Exception as e:
                if self.drift.is_absent(e):
                    self.logger.info(f"{self.kind} {state.identifier} no longer exists remotely")
                    return None
                raise self._wrap(ReadError, e, state.identifier)

    def update(self, state: RecordedState, desired: DesiredInput) -> RecordedState:
        """Apply mutable attribute changes in place.

        Raises:
            UnsupportedOperationError: The kind is replace-only
            UpdateError: The remote modify failed
        """
        if self.replace_only:
            raise UnsupportedOperationError(
                f"{self.kind} cannot be updated in place; it must be replaced",
                context=ErrorContext(resource_id=state.identifier, resource_kind=self.kind,
                                     operation='update'),
                suggestions=['Delete and re-create the resource to change it'],
            )

        desired = self.coerce(desired)
        with LogContext(self.logger, resource_kind=self.kind, resource_id=state.identifier,
                        operation='update'):
            try:
                new_state = self._update(state, desired)
            except Exception as e:
                raise self._wrap(UpdateError, e, state.identifier)
            self.logger.info(f"Updated {self.kind} {state.identifier}")
            return new_state

    def delete(self, state: RecordedState) -> None:
        """Delete the remote entity.

        Raises:
            DeleteError: Always on failure, including when the entity is already gone
        """
        with LogContext(self.logger, resource_kind=self.kind, resource_id=state.identifier,
                        operation='delete'):
            try:
                self._delete(state)
            except Exception as e:
                cause: Exception = e
                if self.drift.is_absent(e):
                    cause = NotFoundDrift(
                        f"{self.kind} {state.identifier} does not exist: {e}",
                        cause=e,
                        suggestions=['Run refresh to drop the stale record'],
                    )
                raise self._wrap(DeleteError, cause, state.identifier)
            self.logger.info(f"Deleted {self.kind} {state.identifier}")

    def import_state(self, external_id: str) -> RecordedState:
        """Seed recorded state from an identifier of an existing entity.

        Raises:
            ParseError: The identifier is malformed
            ImportStateError: The lookup failed, including not-found
        """
        identifier = self.parse_import_id(external_id)
        with LogContext(self.logger, resource_kind=self.kind, resource_id=identifier,
                        operation='import'):
            try:
                state = self._read(identifier, None)
            except Exception as e:
                raise self._wrap(ImportStateError, e, identifier)
            self.logger.info(f"Imported {self.kind} {state.identifier}")
            return state

    # Planning helpers

    def coerce(self, desired: DesiredInput) -> DesiredConfig:
        """Validate raw attributes into the kind's desired model."""
        if isinstance(desired, self.desired_model):
            return desired
        if isinstance(desired, BaseModel):
            desired = desired.model_dump(exclude_unset=True)
        try:
            return self.desired_model.model_validate(dict(desired))
        except ValidationError as e:
            problems = '; '.join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(
                f"Invalid {self.kind} attributes: {problems}",
                context=ErrorContext(resource_kind=self.kind),
                cause=e,
            )

    def changed_attributes(self, state: RecordedState, desired: DesiredInput) -> List[str]:
        """Attributes the caller set that differ from the recorded values."""
        desired = self.coerce(desired)
        return sorted(
            name for name, value in desired.set_attributes().items()
            if not _same_value(state.get(name), value)
        )

    def requires_replacement(self, state: RecordedState, desired: DesiredInput) -> bool:
        """True if reaching ``desired`` needs delete + create rather than update."""
        changed = self.changed_attributes(state, desired)
        if not changed:
            return False
        if self.replace_only:
            return True
        return any(name in self.immutable_attributes for name in changed)

    def describe(self, desired: DesiredConfig) -> str:
        """Human label for a not-yet-created instance."""
        return self.kind

    # Subclass hooks

    @abstractmethod
    def _create(self, desired: DesiredConfig) -> RecordedState:
        """Issue the remote create and map the response."""
        pass

    @abstractmethod
    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        """Look the entity up by its exposed identifier.

        ``state`` is the prior record on Read and None on Import.
        """
        pass

    def _update(self, state: RecordedState, desired: DesiredConfig) -> RecordedState:
        raise UnsupportedOperationError(f"{self.kind} cannot be updated in place")

    @abstractmethod
    def _delete(self, state: RecordedState) -> None:
        pass

    @abstractmethod
    def parse_import_id(self, external_id: str) -> str:
        """Validate an import identifier and return its canonical form.

        Raises:
            ParseError: The identifier is malformed
        """
        pass

    # Shared plumbing

    def call(self, operation: Callable[[], T]) -> T:
        """Invoke one remote call under this reconciler's retry strategy."""
        return self.retry.execute(operation, cancel_event=self.cancel_event)

    def request_params(self, desired: DesiredConfig) -> Params:
        """Map desired attributes to remote parameters, omitting unknowns."""
        params: Params = {}
        for attribute, remote_name in self.parameters.items():
            if not desired.is_set(attribute):
                continue
            value = getattr(desired, attribute)
            params[remote_name] = '' if value is None else value
        return params

    def record(self, identifier: str, attributes: Dict[str, Any]) -> RecordedState:
        """Build a fresh recorded state; never merged with a prior one."""
        return RecordedState(kind=self.kind, identifier=identifier, attributes=attributes)

    def _wrap(self, error_cls: Type[ReconcileError], error: Exception, identifier: str) -> Exception:
        if isinstance(error, (ParseError, UnsupportedOperationError, ConfigurationError, error_cls)):
            return error

        context = ErrorContext(
            resource_id=identifier,
            resource_kind=self.kind,
            operation=error_cls.operation,
        )
        classified = error_handler.handle_exception(error, context)
        wrapped = error_cls(
            f"Unable to {error_cls.operation} {self.kind} {identifier}: {classified.message}",
            cause=classified,
            context=context,
        )
        wrapped.__cause__ = error
        return wrapped


class ReconcilerRegistry:
    """Maps resource kind names to reconciler instances."""

    def __init__(self):
        self._reconcilers: Dict[str, ResourceReconciler] = {}

    def register(self, reconciler: ResourceReconciler) -> None:
        if not reconciler.kind:
            raise ValueError(f"{type(reconciler).__name__} does not declare a kind")
        if reconciler.kind in self._reconcilers:
            raise ValueError(f"Reconciler for {reconciler.kind} already registered")
        self._reconcilers[reconciler.kind] = reconciler

    def get(self, kind: str) -> ResourceReconciler:
        """Get the reconciler for a kind.

        Raises:
            KeyError: No reconciler is registered for the kind
        """
        try:
            return self._reconcilers[kind]
        except KeyError:
            raise KeyError(f"Unknown resource kind: {kind}") from None

    def kinds(self) -> List[str]:
        return list(self._reconcilers)

    def __contains__(self, kind: str) -> bool:
        return kind in self._reconcilers

    def __iter__(self) -> Iterator[ResourceReconciler]:
        return iter(self._reconcilers.values())

    def __len__(self) -> int:
        return len(self._reconcilers)
