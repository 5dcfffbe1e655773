"""Virtual service reconciler."""

from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from loadmaster_sync.addressing import FlatIdentifier, parse_index
from loadmaster_sync.api.models import VirtualService
from loadmaster_sync.drift import NotFoundSignature
from loadmaster_sync.state.models import RecordedState

from .base import DesiredConfig, ResourceReconciler


class VirtualServiceConfig(DesiredConfig):
    """Desired attributes of a virtual service."""

    address: str = Field(..., description="Listening address on a LoadMaster interface")
    port: str = Field(..., description="Listening port")
    protocol: str = Field("tcp", pattern="^(tcp|udp)$")
    nickname: Optional[str] = None
    enabled: Optional[bool] = None

    @field_validator('port', mode='before')
    @classmethod
    def port_as_string(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


def virtual_service_attributes(service: VirtualService) -> Dict[str, Any]:
    return {
        'id': service.index,
        'address': service.address,
        'port': service.port,
        'protocol': service.protocol,
        'nickname': service.nickname,
        'enabled': service.enable,
    }


class VirtualServiceReconciler(ResourceReconciler):
    """Reconciler for top-level virtual services, addressed by index."""

    kind = 'virtual_service'
    desired_model = VirtualServiceConfig
    not_found_signatures = (NotFoundSignature(message='Unknown VS', code=422),)
    parameters = {
        'nickname': 'NickName',
        'enabled': 'Enable',
    }
    immutable_attributes = ('address', 'port', 'protocol')

    def describe(self, desired: VirtualServiceConfig) -> str:
        return f"{desired.address}:{desired.port}/{desired.protocol}"

    def _create(self, desired: VirtualServiceConfig) -> RecordedState:
        params = self.request_params(desired)
        service = self.call(lambda: self.client.add_virtual_service(
            desired.address, desired.port, desired.protocol, params
        ))
        return self._to_state(service)

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        index = FlatIdentifier(identifier).resolve()
        service = self.call(lambda: self.client.show_virtual_service(index))
        return self._to_state(service)

    def _update(self, state: RecordedState, desired: VirtualServiceConfig) -> RecordedState:
        index = FlatIdentifier(state.identifier).resolve()
        params = self.request_params(desired)
        service = self.call(lambda: self.client.modify_virtual_service(index, params))
        return self._to_state(service)

    def _delete(self, state: RecordedState) -> None:
        index = FlatIdentifier(state.identifier).resolve()
        self.call(lambda: self.client.delete_virtual_service(index))

    def parse_import_id(self, external_id: str) -> str:
        return str(parse_index(external_id))

    def _to_state(self, service: VirtualService) -> RecordedState:
        return self.record(FlatIdentifier(str(service.index)).to_external(),
                           virtual_service_attributes(service))
