"""OWASP custom data, custom rule and rule attachment reconcilers.

These entities have no modify command. Their identity is their content,
so any change is a delete followed by a create.
"""

from abc import abstractmethod
from typing import Optional

from pydantic import Field

from loadmaster_sync.addressing import FlatIdentifier, ScopedIdentifier, parse_scoped, strip_extension
from loadmaster_sync.api.models import DataResponse
from loadmaster_sync.content import ContentNormalizer, default_normalizer
from loadmaster_sync.drift import NotFoundSignature
from loadmaster_sync.state.models import RecordedState
from loadmaster_sync.utils.errors import ParseError

from .base import DesiredConfig, IndexStr, ResourceReconciler


class OwaspBlobConfig(DesiredConfig):
    """A named text file uploaded to the WAF engine."""

    filename: str = Field(..., min_length=1)
    data: str = Field(..., description="File content")


class OwaspBlobReconciler(ResourceReconciler):
    """Shared behaviour of the uploaded WAF files.

    Content is written through the normalizer and decoded on the way
    back. The recorded filename keeps whatever the caller supplied.
    """

    desired_model = OwaspBlobConfig
    replace_only = True
    normalizer: ContentNormalizer = default_normalizer

    # Whether lookups drop the file extension
    lookup_strips_extension = True

    def describe(self, desired: OwaspBlobConfig) -> str:
        return desired.filename

    def _create(self, desired: OwaspBlobConfig) -> RecordedState:
        payload = self.normalizer.normalize(desired.data)
        self.call(lambda: self._upload(desired.filename, payload))
        return self.record(FlatIdentifier(desired.filename).to_external(), {
            'filename': desired.filename,
            'data': desired.data,
        })

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        lookup = self._lookup_name(identifier)
        response = self.call(lambda: self._download(lookup))
        content = self.normalizer.denormalize(response.data, strip_terminator=True)
        return self.record(FlatIdentifier(identifier).to_external(), {
            'filename': identifier,
            'data': content,
        })

    def _delete(self, state: RecordedState) -> None:
        name = strip_extension(FlatIdentifier(state.identifier).resolve())
        self.call(lambda: self._remove(name))

    def parse_import_id(self, external_id: str) -> str:
        filename = external_id.strip()
        if not filename:
            raise ParseError("Unable to parse ID '': a filename is required")
        return filename

    def _lookup_name(self, filename: str) -> str:
        if self.lookup_strips_extension:
            return strip_extension(filename)
        return filename

    @abstractmethod
    def _upload(self, filename: str, payload: str):
        pass

    @abstractmethod
    def _download(self, name: str) -> DataResponse:
        pass

    @abstractmethod
    def _remove(self, name: str):
        pass


class OwaspCustomDataReconciler(OwaspBlobReconciler):
    """Custom data files (e.g. lookup tables referenced by rules)."""

    kind = 'owasp_custom_data'
    not_found_signatures = (NotFoundSignature(code=404),)
    lookup_strips_extension = False

    def _upload(self, filename: str, payload: str):
        return self.client.add_owasp_custom_data(filename, payload)

    def _download(self, name: str) -> DataResponse:
        return self.client.show_owasp_custom_data(name)

    def _remove(self, name: str):
        return self.client.delete_owasp_custom_data(name)


class OwaspCustomRuleReconciler(OwaspBlobReconciler):
    """Custom rule files for the WAF engine."""

    kind = 'owasp_custom_rule'
    not_found_signatures = (NotFoundSignature(message='Unknown Rule'),)

    def _upload(self, filename: str, payload: str):
        return self.client.add_owasp_custom_rule(filename, payload)

    def _download(self, name: str) -> DataResponse:
        return self.client.show_owasp_custom_rule(name)

    def _remove(self, name: str):
        return self.client.delete_owasp_custom_rule(name)


class VirtualServiceOwaspRuleConfig(DesiredConfig):
    """Attachment of a custom rule to a virtual service."""

    virtual_service_id: IndexStr = Field(..., description="Index of the virtual service")
    rule: str = Field(..., min_length=1, description="Custom rule name")
    run_first: Optional[bool] = None


class VirtualServiceOwaspRuleReconciler(ResourceReconciler):
    """Attaches a custom WAF rule to a virtual service."""

    kind = 'virtual_service_owasp_rule'
    desired_model = VirtualServiceOwaspRuleConfig
    replace_only = True
    not_found_signatures = (NotFoundSignature(message='Rule not found'),)

    def describe(self, desired: VirtualServiceOwaspRuleConfig) -> str:
        return f"{desired.virtual_service_id}/{desired.rule}"

    def _create(self, desired: VirtualServiceOwaspRuleConfig) -> RecordedState:
        run_first = bool(desired.run_first)
        self.call(lambda: self.client.add_virtual_service_owasp_rule(
            desired.virtual_service_id, desired.rule, run_first
        ))
        identifier = ScopedIdentifier(parent=str(desired.virtual_service_id), child=desired.rule)
        return self.record(identifier.to_external(), {
            'virtual_service_id': str(desired.virtual_service_id),
            'rule': desired.rule,
            'run_first': run_first,
        })

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        scoped = parse_scoped(identifier)
        response = self.call(
            lambda: self.client.show_virtual_service_owasp_rule(scoped.parent, scoped.child)
        )
        return self.record(scoped.to_external(), {
            'virtual_service_id': scoped.parent,
            'rule': scoped.child,
            'run_first': response.rule.run_first.strip().lower() == 'yes',
        })

    def _delete(self, state: RecordedState) -> None:
        scoped = parse_scoped(state.identifier)
        self.call(lambda: self.client.delete_virtual_service_owasp_rule(scoped.parent, scoped.child))

    def parse_import_id(self, external_id: str) -> str:
        return parse_scoped(external_id).to_external()
