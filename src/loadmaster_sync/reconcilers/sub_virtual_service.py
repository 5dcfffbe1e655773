"""Sub virtual service reconciler."""

from typing import Optional

from pydantic import Field

from loadmaster_sync.addressing import ScopedIdentifier, parse_index, parse_scoped
from loadmaster_sync.api.models import VirtualService
from loadmaster_sync.drift import NotFoundSignature
from loadmaster_sync.state.models import RecordedState
from loadmaster_sync.utils.errors import CreateError, PermanentRemoteError

from .base import DesiredConfig, IndexStr, ResourceReconciler, select_last


class SubVirtualServiceConfig(DesiredConfig):
    """Desired attributes of a sub virtual service."""

    virtual_service_id: IndexStr = Field(..., description="Index of the parent virtual service")
    type: Optional[str] = Field(None, description="Service type, e.g. http or gen")
    nickname: Optional[str] = None


class SubVirtualServiceReconciler(ResourceReconciler):
    """Reconciler for sub virtual services nested under a parent service.

    The appliance creates a sub service with defaults and only reports its
    new index in the parent's SubVS list, so creation is an add followed
    by a modify of the newest entry.
    """

    kind = 'sub_virtual_service'
    desired_model = SubVirtualServiceConfig
    not_found_signatures = (NotFoundSignature(message='Unknown VS'),)
    parameters = {
        'type': 'VSType',
        'nickname': 'NickName',
    }
    immutable_attributes = ('virtual_service_id',)

    def describe(self, desired: SubVirtualServiceConfig) -> str:
        return f"{desired.virtual_service_id}/<new>"

    def _create(self, desired: SubVirtualServiceConfig) -> RecordedState:
        parent = self.call(
            lambda: self.client.add_sub_virtual_service(desired.virtual_service_id, {})
        )
        child = str(select_last(parent.sub_vs, 'SubVS').vs_index)
        params = self.request_params(desired)
        try:
            service = self.call(lambda: self.client.modify_sub_virtual_service(child, params))
        except Exception as e:
            # The child exists on the appliance but is not recorded anywhere
            orphan = ScopedIdentifier(parent=desired.virtual_service_id, child=child).to_external()
            error = self._wrap(CreateError, e, orphan)
            error.suggestions.insert(
                0, f"Import {orphan} or delete it on the appliance before retrying"
            )
            raise error
        return self._to_state(service, desired.virtual_service_id)

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        scoped = parse_scoped(identifier)
        service = self.call(lambda: self.client.show_sub_virtual_service(scoped.child))
        return self._to_state(service, scoped.parent)

    def _update(self, state: RecordedState, desired: SubVirtualServiceConfig) -> RecordedState:
        scoped = parse_scoped(state.identifier)
        params = self.request_params(desired)
        service = self.call(lambda: self.client.modify_sub_virtual_service(scoped.child, params))
        return self._to_state(service, scoped.parent)

    def _delete(self, state: RecordedState) -> None:
        scoped = parse_scoped(state.identifier)
        self.call(lambda: self.client.delete_sub_virtual_service(scoped.child))

    def parse_import_id(self, external_id: str) -> str:
        scoped = parse_scoped(external_id)
        parse_index(scoped.parent)
        parse_index(scoped.child)
        return scoped.to_external()

    def _to_state(self, service: VirtualService, parent: str) -> RecordedState:
        if str(service.master_vs_id) != str(parent):
            raise PermanentRemoteError(
                f"Virtual service {service.index} is not a sub service of {parent} "
                f"(parent reported as {service.master_vs_id})"
            )
        identifier = ScopedIdentifier(parent=parent, child=str(service.index))
        return self.record(identifier.to_external(), {
            'id': service.index,
            'virtual_service_id': str(service.master_vs_id),
            'type': service.vs_type,
            'nickname': service.nickname,
        })
