"""Real server reconciler."""

from typing import Any, Dict, Optional

from pydantic import Field

from loadmaster_sync.addressing import ScopedIdentifier, parse_index, parse_scoped
from loadmaster_sync.api.models import RealServer, RealServerResponse
from loadmaster_sync.drift import NotFoundSignature
from loadmaster_sync.state.models import RecordedState

from .base import DesiredConfig, IndexStr, ResourceReconciler, select_last


class RealServerConfig(DesiredConfig):
    """Desired attributes of a real server."""

    virtual_service_id: IndexStr = Field(..., description="Index of the owning virtual service")
    address: str = Field(..., description="Server address")
    port: int = Field(..., ge=1, le=65535)
    weight: Optional[int] = Field(None, ge=0)
    forward: Optional[str] = Field(None, pattern="^(nat|route)$")
    enable: Optional[bool] = None
    limit: Optional[int] = Field(None, ge=0)
    critical: Optional[bool] = None
    follow: Optional[int] = Field(None, ge=0)


def real_server_attributes(server: RealServer) -> Dict[str, Any]:
    return {
        'id': server.rs_index,
        'virtual_service_id': str(server.vs_index),
        'address': server.address,
        'port': server.port,
        'weight': server.weight,
        'forward': server.forward,
        'enable': server.enable,
        'limit': server.limit,
        'critical': server.critical,
        'follow': server.follow,
        'dns_name': server.dns_name,
    }


class RealServerReconciler(ResourceReconciler):
    """Reconciler for real servers behind a virtual service.

    Creation addresses the new server by its address, which may match
    several entries; afterwards the server is addressed by exact index.
    """

    kind = 'real_server'
    desired_model = RealServerConfig
    not_found_signatures = (
        NotFoundSignature(message='Unknown VS'),
        NotFoundSignature(message='Unknown RS'),
    )
    parameters = {
        'weight': 'Weight',
        'forward': 'Forward',
        'enable': 'Enable',
        'limit': 'Limit',
        'critical': 'Critical',
        'follow': 'Follow',
    }
    immutable_attributes = ('virtual_service_id', 'address', 'port')

    def describe(self, desired: RealServerConfig) -> str:
        return f"{desired.virtual_service_id}/{desired.address}:{desired.port}"

    def _create(self, desired: RealServerConfig) -> RecordedState:
        vs, rs = ScopedIdentifier(desired.virtual_service_id, desired.address, exact=False).resolve()
        params = self.request_params(desired)
        response = self.call(
            lambda: self.client.add_real_server(vs, rs, str(desired.port), params)
        )
        return self._to_state(response)

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        vs, rs = parse_scoped(identifier).resolve()
        response = self.call(lambda: self.client.show_real_server(vs, rs))
        return self._to_state(response)

    def _update(self, state: RecordedState, desired: RealServerConfig) -> RecordedState:
        vs, rs = parse_scoped(state.identifier).resolve()
        params = self.request_params(desired)
        response = self.call(lambda: self.client.modify_real_server(vs, rs, params))
        return self._to_state(response)

    def _delete(self, state: RecordedState) -> None:
        vs, rs = parse_scoped(state.identifier).resolve()
        self.call(lambda: self.client.delete_real_server(vs, rs))

    def parse_import_id(self, external_id: str) -> str:
        scoped = parse_scoped(external_id)
        parse_index(scoped.parent)
        parse_index(scoped.child)
        return scoped.to_external()

    def _to_state(self, response: RealServerResponse) -> RecordedState:
        server = select_last(response.rs, 'Rs')
        identifier = ScopedIdentifier(parent=str(server.vs_index), child=str(server.rs_index))
        return self.record(identifier.to_external(), real_server_attributes(server))
