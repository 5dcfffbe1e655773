"""Content rule reconcilers.

All six rule kinds share the addrule/showrule/modrule/delrule commands
and differ only in their numeric type, the response collection the
appliance reports them in, and which attributes apply.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import Field

from loadmaster_sync.addressing import FlatIdentifier
from loadmaster_sync.api.models import GeneralRule, RuleResponse, RuleType
from loadmaster_sync.drift import NotFoundSignature
from loadmaster_sync.state.models import RecordedState
from loadmaster_sync.utils.errors import ParseError

from .base import DesiredConfig, ResourceReconciler, select_last

# Desired attribute -> addrule/modrule parameter
RULE_PARAMETERS = {
    'pattern': 'pattern',
    'match_type': 'matchtype',
    'inc_host': 'inchost',
    'no_case': 'nocase',
    'negate': 'negate',
    'inc_query': 'incquery',
    'header': 'header',
    'replacement': 'replacement',
    'set_on_match': 'setonmatch',
    'only_on_flag': 'onlyonflag',
    'only_on_no_flag': 'onlyonnoflag',
    'must_fail': 'mustfail',
}

FLAG_RANGE = dict(ge=0, le=9)


class RuleConfig(DesiredConfig):
    """Attributes every rule kind carries."""

    name: str = Field(..., min_length=1, description="Rule name, its identifier")
    only_on_flag: Optional[int] = Field(None, **FLAG_RANGE)
    only_on_no_flag: Optional[int] = Field(None, **FLAG_RANGE)


class MatchContentRuleConfig(RuleConfig):
    pattern: str
    match_type: Optional[str] = Field(None, pattern="^(regex|prefix|postfix)$")
    inc_host: Optional[bool] = None
    no_case: Optional[bool] = None
    negate: Optional[bool] = None
    inc_query: Optional[bool] = None
    header: Optional[str] = None
    set_on_match: Optional[int] = Field(None, **FLAG_RANGE)
    must_fail: Optional[bool] = None


class AddHeaderRuleConfig(RuleConfig):
    header: str
    replacement: str


class DeleteHeaderRuleConfig(RuleConfig):
    header: str


class ReplaceHeaderRuleConfig(RuleConfig):
    header: str
    pattern: str
    replacement: str


class ModifyURLRuleConfig(RuleConfig):
    pattern: str
    replacement: str


class ReplaceBodyRuleConfig(RuleConfig):
    pattern: str
    replacement: str
    no_case: Optional[bool] = None


class RuleReconciler(ResourceReconciler):
    """Shared behaviour of the content rule kinds, addressed by name."""

    rule_type: int = RuleType.MATCH_CONTENT
    not_found_signatures = (NotFoundSignature(message='Rule not found'),)
    immutable_attributes = ('name',)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.parameters = {
            attribute: RULE_PARAMETERS[attribute]
            for attribute in self.desired_model.model_fields
            if attribute in RULE_PARAMETERS
        }

    @property
    def rule_attributes(self) -> Tuple[str, ...]:
        return tuple(name for name in self.desired_model.model_fields if name != 'name')

    def describe(self, desired: RuleConfig) -> str:
        return desired.name

    def _create(self, desired: RuleConfig) -> RecordedState:
        params = self.request_params(desired)
        response = self.call(lambda: self.client.add_rule(self.rule_type, desired.name, params))
        return self._to_state(response)

    def _read(self, identifier: str, state: Optional[RecordedState]) -> RecordedState:
        name = FlatIdentifier(identifier).resolve()
        response = self.call(lambda: self.client.show_rule(name))
        return self._to_state(response)

    def _update(self, state: RecordedState, desired: RuleConfig) -> RecordedState:
        name = FlatIdentifier(state.identifier).resolve()
        params = self.request_params(desired)
        response = self.call(lambda: self.client.modify_rule(name, params))
        return self._to_state(response)

    def _delete(self, state: RecordedState) -> None:
        name = FlatIdentifier(state.identifier).resolve()
        self.call(lambda: self.client.delete_rule(name))

    def parse_import_id(self, external_id: str) -> str:
        name = external_id.strip()
        if not name:
            raise ParseError("Unable to parse ID '': a rule name is required")
        return name

    def _to_state(self, response: RuleResponse) -> RecordedState:
        rule = select_last(response.rules_of_type(self.rule_type), self.kind)
        return self.record(FlatIdentifier(rule.name).to_external(), self._attributes(rule))

    def _attributes(self, rule: GeneralRule) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {'name': rule.name}
        for attribute in self.rule_attributes:
            attributes[attribute] = getattr(rule, attribute)
        return attributes


class MatchContentRuleReconciler(RuleReconciler):
    kind = 'match_content_rule'
    rule_type = RuleType.MATCH_CONTENT
    desired_model = MatchContentRuleConfig


class AddHeaderRuleReconciler(RuleReconciler):
    kind = 'add_header_rule'
    rule_type = RuleType.ADD_HEADER
    desired_model = AddHeaderRuleConfig


class DeleteHeaderRuleReconciler(RuleReconciler):
    kind = 'delete_header_rule'
    rule_type = RuleType.DELETE_HEADER
    desired_model = DeleteHeaderRuleConfig


class ReplaceHeaderRuleReconciler(RuleReconciler):
    kind = 'replace_header_rule'
    rule_type = RuleType.REPLACE_HEADER
    desired_model = ReplaceHeaderRuleConfig


class ModifyURLRuleReconciler(RuleReconciler):
    kind = 'modify_url_rule'
    rule_type = RuleType.MODIFY_URL
    desired_model = ModifyURLRuleConfig


class ReplaceBodyRuleReconciler(RuleReconciler):
    kind = 'replace_body_rule'
    rule_type = RuleType.REPLACE_BODY
    desired_model = ReplaceBodyRuleConfig
