"""Reconcilers mapping declared resources onto LoadMaster API calls."""

import threading
from typing import List, Optional, Type

from loadmaster_sync.api.client import LoadMasterAPI
from loadmaster_sync.utils.retry import RetryStrategy

from .base import DesiredConfig, ReconcilerRegistry, ResourceReconciler, select_last
from .virtual_service import VirtualServiceConfig, VirtualServiceReconciler
from .sub_virtual_service import SubVirtualServiceConfig, SubVirtualServiceReconciler
from .real_server import RealServerConfig, RealServerReconciler
from .rules import (
    AddHeaderRuleReconciler,
    DeleteHeaderRuleReconciler,
    MatchContentRuleReconciler,
    ModifyURLRuleReconciler,
    ReplaceBodyRuleReconciler,
    ReplaceHeaderRuleReconciler,
    RuleReconciler,
)
from .owasp import (
    OwaspCustomDataReconciler,
    OwaspCustomRuleReconciler,
    VirtualServiceOwaspRuleReconciler,
)

RECONCILER_CLASSES: List[Type[ResourceReconciler]] = [
    VirtualServiceReconciler,
    SubVirtualServiceReconciler,
    RealServerReconciler,
    MatchContentRuleReconciler,
    AddHeaderRuleReconciler,
    DeleteHeaderRuleReconciler,
    ReplaceHeaderRuleReconciler,
    ModifyURLRuleReconciler,
    ReplaceBodyRuleReconciler,
    OwaspCustomDataReconciler,
    OwaspCustomRuleReconciler,
    VirtualServiceOwaspRuleReconciler,
]

KINDS = [cls.kind for cls in RECONCILER_CLASSES]


def build_registry(
    client: LoadMasterAPI,
    retry_config=None,
    cancel_event: Optional[threading.Event] = None
) -> ReconcilerRegistry:
    """Build a registry with one reconciler per kind.

    Each reconciler gets its own RetryStrategy so no backoff state is shared.

    Args:
        client: Appliance API collaborator
        retry_config: Optional RetryConfig model
        cancel_event: Optional event aborting pending retries
    """
    registry = ReconcilerRegistry()
    for cls in RECONCILER_CLASSES:
        retry = RetryStrategy.from_config(retry_config) if retry_config else RetryStrategy()
        registry.register(cls(client, retry=retry, cancel_event=cancel_event))
    return registry


__all__ = [
    'DesiredConfig',
    'ReconcilerRegistry',
    'ResourceReconciler',
    'select_last',
    'RuleReconciler',
    'VirtualServiceConfig',
    'VirtualServiceReconciler',
    'SubVirtualServiceConfig',
    'SubVirtualServiceReconciler',
    'RealServerConfig',
    'RealServerReconciler',
    'MatchContentRuleReconciler',
    'AddHeaderRuleReconciler',
    'DeleteHeaderRuleReconciler',
    'ReplaceHeaderRuleReconciler',
    'ModifyURLRuleReconciler',
    'ReplaceBodyRuleReconciler',
    'OwaspCustomDataReconciler',
    'OwaspCustomRuleReconciler',
    'VirtualServiceOwaspRuleReconciler',
    'RECONCILER_CLASSES',
    'KINDS',
    'build_registry',
]
