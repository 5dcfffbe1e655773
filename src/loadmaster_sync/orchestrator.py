"""Synchronizer that drives declared resources through their reconcilers."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from loadmaster_sync.config.models import ResourceDeclaration
from loadmaster_sync.reconcilers.base import ReconcilerRegistry, ResourceReconciler
from loadmaster_sync.state.manager import StateError, StateManager
from loadmaster_sync.state.models import RecordedState, StateFile
from loadmaster_sync.utils.errors import ConfigurationError, ErrorContext, SyncError, error_handler
from loadmaster_sync.utils.logging import get_logger

logger = get_logger(__name__)

# ${<resource name>.<attribute>}
REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_-]*)\.([A-Za-z_][A-Za-z0-9_]*)\}")


class ChangeType(Enum):
    """What happened to a resource during a run."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    REFRESH = "refresh"
    DRIFTED = "drifted"
    NO_CHANGE = "no_change"


class ExecutionStatus(Enum):
    """Status of execution."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ResourceResult:
    """Result of reconciling a single resource."""

    name: str
    kind: str
    change: ChangeType
    status: ExecutionStatus
    identifier: Optional[str] = None
    error: Optional[SyncError] = None

    def is_success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def is_failed(self) -> bool:
        return self.status == ExecutionStatus.FAILED


@dataclass
class SyncReport:
    """Outcome of one apply, refresh or destroy run."""

    operation: str
    results: List[ResourceResult] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0  # seconds

    def add(self, result: ResourceResult) -> None:
        self.results.append(result)

    def failed(self) -> List[ResourceResult]:
        return [r for r in self.results if r.is_failed()]

    def has_failures(self) -> bool:
        return any(r.is_failed() for r in self.results)

    def count(self, change: ChangeType) -> int:
        """Number of successful results of the given change type."""
        return sum(1 for r in self.results if r.change == change and r.is_success())

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results:
            if result.is_success():
                counts[result.change.value] = counts.get(result.change.value, 0) + 1
        counts['failed'] = len(self.failed())
        return counts


class Synchronizer:
    """Brings the appliance in line with a list of resource declarations.

    Declarations are processed in order, so a parent must be declared
    before the resources that reference it. Recorded state is saved after
    every successful change.
    """

    def __init__(
        self,
        registry: ReconcilerRegistry,
        state_manager: StateManager,
        host: str = '',
        stop_on_error: bool = True
    ):
        """Initialize synchronizer.

        Args:
            registry: Reconcilers by kind
            state_manager: Store for recorded state
            host: Appliance host written into a new state file
            stop_on_error: Stop at the first failed resource
        """
        self.registry = registry
        self.state_manager = state_manager
        self.host = host
        self.stop_on_error = stop_on_error

    def apply(self, declarations: Sequence[ResourceDeclaration], prune: bool = True) -> SyncReport:
        """Create, update or replace every declared resource.

        Args:
            declarations: Resources in dependency order
            prune: Delete recorded resources that are no longer declared

        Returns:
            SyncReport
        """
        report = self._start('apply')
        state = self._state()

        for declaration in declarations:
            result = self._apply_one(declaration, state)
            report.add(result)
            if result.is_failed() and self.stop_on_error:
                break

        if prune and not report.has_failures():
            declared = {d.name for d in declarations}
            orphans = [(name, rec) for name, rec in state.items() if name not in declared]
            for name, recorded in reversed(orphans):
                result = self._delete_one(name, recorded)
                report.add(result)
                if result.is_failed() and self.stop_on_error:
                    break

        return self._finish(report)

    def refresh(self) -> SyncReport:
        """Re-read every recorded resource and drop those that disappeared."""
        report = self._start('refresh')
        state = self._state()

        for name, recorded in state.items():
            try:
                reconciler = self._reconciler(recorded.kind)
                fresh = reconciler.read(recorded)
            except SyncError as e:
                report.add(self._failure(name, recorded.kind, ChangeType.REFRESH, e,
                                         recorded.identifier))
                if self.stop_on_error:
                    break
                continue

            if fresh is None:
                self.state_manager.remove(name)
                report.add(ResourceResult(name, recorded.kind, ChangeType.DRIFTED,
                                          ExecutionStatus.SUCCESS, recorded.identifier))
                continue

            self.state_manager.put(name, fresh)
            change = ChangeType.NO_CHANGE if fresh.same_attributes(recorded) else ChangeType.REFRESH
            report.add(ResourceResult(name, recorded.kind, change, ExecutionStatus.SUCCESS,
                                      fresh.identifier))

        return self._finish(report)

    def destroy(self) -> SyncReport:
        """Delete every recorded resource, children before parents."""
        report = self._start('destroy')
        state = self._state()

        for name, recorded in reversed(state.items()):
            result = self._delete_one(name, recorded)
            report.add(result)
            if result.is_failed() and self.stop_on_error:
                break

        return self._finish(report)

    def import_resource(self, name: str, kind: str, external_id: str) -> RecordedState:
        """Record an existing remote entity under a declared name.

        Raises:
            ConfigurationError: The name or the entity is already recorded, or the
                kind is unknown
            ParseError: The identifier is malformed
            ImportStateError: The lookup failed
        """
        state = self._state()
        if state.has(name):
            raise ConfigurationError(
                f"Resource {name} is already recorded",
                suggestions=['Choose another name or remove the existing record first'],
            )

        reconciler = self._reconciler(kind)
        recorded = reconciler.import_state(external_id)

        existing = state.find_by_identifier(kind, recorded.identifier)
        if existing is not None:
            raise ConfigurationError(
                f"{kind} {recorded.identifier} is already recorded as {existing}",
                suggestions=[f"Rename the declaration to {existing} instead of importing"],
            )

        self.state_manager.put(name, recorded)
        return recorded

    def resolve_references(self, attributes: Dict[str, Any], state: StateFile) -> Dict[str, Any]:
        """Substitute ``${name.attribute}`` with values from recorded state.

        A value consisting of a single reference takes the referenced value
        as-is; references embedded in longer strings are interpolated.

        Raises:
            ConfigurationError: A referenced resource or attribute is not recorded
        """
        return {key: self._resolve_value(value, state) for key, value in attributes.items()}

    # Internals

    def _apply_one(self, declaration: ResourceDeclaration, state: StateFile) -> ResourceResult:
        name, kind = declaration.name, declaration.kind
        recorded = state.get(name)

        try:
            reconciler = self._reconciler(kind)
            desired = self.resolve_references(declaration.attributes, state)

            if recorded is not None and recorded.kind != kind:
                self._reconciler(recorded.kind).delete(recorded)
                self.state_manager.remove(name)
                created = reconciler.create(desired)
                self.state_manager.put(name, created)
                return ResourceResult(name, kind, ChangeType.REPLACE, ExecutionStatus.SUCCESS,
                                      created.identifier)

            if recorded is not None:
                current = reconciler.read(recorded)
                if current is None:
                    logger.info(f"{name} disappeared from the appliance; re-creating")
                    self.state_manager.remove(name)
                recorded = current

            if recorded is None:
                created = reconciler.create(desired)
                self.state_manager.put(name, created)
                return ResourceResult(name, kind, ChangeType.CREATE, ExecutionStatus.SUCCESS,
                                      created.identifier)

            changed = reconciler.changed_attributes(recorded, desired)
            if not changed:
                self.state_manager.put(name, recorded)
                return ResourceResult(name, kind, ChangeType.NO_CHANGE, ExecutionStatus.SUCCESS,
                                      recorded.identifier)

            if reconciler.requires_replacement(recorded, desired):
                logger.info(f"{name}: {', '.join(changed)} changed; replacing")
                reconciler.delete(recorded)
                self.state_manager.remove(name)
                created = reconciler.create(desired)
                self.state_manager.put(name, created)
                return ResourceResult(name, kind, ChangeType.REPLACE, ExecutionStatus.SUCCESS,
                                      created.identifier)

            logger.info(f"{name}: updating {', '.join(changed)}")
            updated = reconciler.update(recorded, desired)
            self.state_manager.put(name, updated)
            return ResourceResult(name, kind, ChangeType.UPDATE, ExecutionStatus.SUCCESS,
                                  updated.identifier)

        except SyncError as e:
            identifier = recorded.identifier if recorded is not None else None
            return self._failure(name, kind, ChangeType.UPDATE if recorded else ChangeType.CREATE,
                                 e, identifier)

    def _delete_one(self, name: str, recorded: RecordedState) -> ResourceResult:
        try:
            self._reconciler(recorded.kind).delete(recorded)
        except SyncError as e:
            return self._failure(name, recorded.kind, ChangeType.DELETE, e, recorded.identifier)

        self.state_manager.remove(name)
        return ResourceResult(name, recorded.kind, ChangeType.DELETE, ExecutionStatus.SUCCESS,
                              recorded.identifier)

    def _resolve_value(self, value: Any, state: StateFile) -> Any:
        if isinstance(value, list):
            return [self._resolve_value(item, state) for item in value]
        if not isinstance(value, str):
            return value

        match = REFERENCE_PATTERN.fullmatch(value)
        if match:
            return self._lookup(match.group(1), match.group(2), state)

        return REFERENCE_PATTERN.sub(
            lambda m: str(self._lookup(m.group(1), m.group(2), state)), value
        )

    def _lookup(self, name: str, attribute: str, state: StateFile) -> Any:
        recorded = state.get(name)
        if recorded is None:
            raise ConfigurationError(
                f"Reference to {name}.{attribute}: resource {name} is not recorded",
                suggestions=[f"Declare {name} before the resources that reference it"],
            )
        if attribute == 'identifier':
            return recorded.identifier
        if attribute not in recorded.attributes:
            raise ConfigurationError(
                f"Reference to {name}.{attribute}: {recorded.kind} has no attribute {attribute}"
            )
        return recorded.attributes[attribute]

    def _reconciler(self, kind: str) -> ResourceReconciler:
        try:
            return self.registry.get(kind)
        except KeyError as e:
            raise ConfigurationError(
                str(e.args[0]) if e.args else f"Unknown resource kind: {kind}",
                suggestions=[f"Known kinds: {', '.join(self.registry.kinds())}"],
            )

    def _state(self) -> StateFile:
        try:
            state = self.state_manager.get_state()
        except StateError:
            return self.state_manager.load_or_initialize(self.host)
        self.state_manager.check_host(self.host)
        return state

    def _failure(
        self,
        name: str,
        kind: str,
        change: ChangeType,
        error: SyncError,
        identifier: Optional[str] = None
    ) -> ResourceResult:
        if error.context.resource_kind is None:
            error.context = ErrorContext(
                resource_id=identifier or name,
                resource_kind=kind,
                operation=change.value,
                remote_code=error.context.remote_code,
                additional_info=error.context.additional_info,
            )
        error_handler.log_error(error)
        return ResourceResult(name, kind, change, ExecutionStatus.FAILED, identifier, error)

    def _start(self, operation: str) -> SyncReport:
        logger.info(f"Starting {operation}")
        return SyncReport(operation=operation, start_time=datetime.now())

    def _finish(self, report: SyncReport) -> SyncReport:
        report.end_time = datetime.now()
        report.duration = (report.end_time - report.start_time).total_seconds()
        logger.info(f"Finished {report.operation}: {report.summary()}")
        return report
