"""LoadMaster management API: typed client, envelopes and errors."""

from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.api.models import (
    CommandResponse,
    DataResponse,
    GeneralRule,
    OwaspRule,
    OwaspRuleResponse,
    RealServer,
    RealServerResponse,
    RuleResponse,
    RuleType,
    SubVirtualServiceRef,
    VirtualService,
)
from loadmaster_sync.api.client import LoadMasterAPI, LoadMasterClient

__all__ = [
    'LoadMasterAPI',
    'LoadMasterClient',
    'LoadMasterError',
    'TransportError',
    'CommandResponse',
    'DataResponse',
    'GeneralRule',
    'OwaspRule',
    'OwaspRuleResponse',
    'RealServer',
    'RealServerResponse',
    'RuleResponse',
    'RuleType',
    'SubVirtualServiceRef',
    'VirtualService',
]
