"""Pydantic models for LoadMaster API response envelopes."""

from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def _coerce_flag(value: Any) -> Any:
    """The appliance reports flags as bools, "Y"/"N" or "yes"/"no"."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('y', 'yes', 'true', '1'):
            return True
        if lowered in ('n', 'no', 'false', '0', ''):
            return False
    return value


Flag = Annotated[bool, BeforeValidator(_coerce_flag)]
OptionalFlag = Annotated[Optional[bool], BeforeValidator(_coerce_flag)]


class ApiModel(BaseModel):
    """Base for all envelopes: tolerant of unknown keys, populated by alias."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class CommandResponse(ApiModel):
    """Bare success envelope returned by delete and attach commands."""

    code: int = Field(200, description="Response code")
    message: str = Field("", description="Response message")
    status: str = Field("ok", description="Response status")


class RealServer(ApiModel):
    """A backend server nested under a virtual service."""

    rs_index: int = Field(..., alias="RsIndex")
    vs_index: int = Field(..., alias="VSIndex")
    address: str = Field(..., alias="Addr")
    port: int = Field(..., alias="Port")
    dns_name: str = Field("", alias="DnsName")
    forward: str = Field("nat", alias="Forward")
    weight: int = Field(1000, alias="Weight")
    limit: int = Field(0, alias="Limit")
    follow: int = Field(0, alias="Follow")
    enable: Flag = Field(True, alias="Enable")
    critical: Flag = Field(False, alias="Critical")


class SubVirtualServiceRef(ApiModel):
    """Summary entry in a parent service's SubVS collection."""

    vs_index: int = Field(..., alias="VSIndex")
    name: str = Field("", alias="Name")


class VirtualService(ApiModel):
    """A virtual service or sub virtual service."""

    index: int = Field(..., alias="Index")
    address: str = Field("", alias="VSAddress")
    port: str = Field("", alias="VSPort")
    protocol: str = Field("tcp", alias="Protocol")
    nickname: str = Field("", alias="NickName")
    enable: Flag = Field(True, alias="Enable")
    vs_type: str = Field("", alias="VSType")
    master_vs_id: int = Field(0, alias="MasterVSID")
    sub_vs: List[SubVirtualServiceRef] = Field(default_factory=list, alias="SubVS")
    real_servers: List[RealServer] = Field(default_factory=list, alias="Rs")

    @field_validator('port', mode='before')
    @classmethod
    def port_as_string(cls, v: Any) -> str:
        return str(v)


class RealServerResponse(ApiModel):
    """Envelope of addrs/showrs/modrs: the matching servers."""

    rs: List[RealServer] = Field(default_factory=list, alias="Rs")


class GeneralRule(ApiModel):
    """Union of the fields any content rule kind reports."""

    name: str = Field(..., alias="Name")
    pattern: Optional[str] = Field(None, alias="Pattern")
    header: Optional[str] = Field(None, alias="Header")
    replacement: Optional[str] = Field(None, alias="Replacement")
    match_type: Optional[str] = Field(None, alias="MatchType")
    inc_host: OptionalFlag = Field(None, alias="IncHost")
    no_case: OptionalFlag = Field(None, alias="NoCase")
    negate: OptionalFlag = Field(None, alias="Negate")
    inc_query: OptionalFlag = Field(None, alias="IncQuery")
    must_fail: OptionalFlag = Field(None, alias="MustFail")
    case_independent: OptionalFlag = Field(None, alias="CaseIndependent")
    set_on_match: Optional[int] = Field(None, alias="SetOnMatch")
    only_on_flag: Optional[int] = Field(None, alias="OnlyOnFlag")
    only_on_no_flag: Optional[int] = Field(None, alias="OnlyOnNoFlag")


class RuleType:
    """Numeric rule types understood by addrule."""

    MATCH_CONTENT = 0
    ADD_HEADER = 1
    DELETE_HEADER = 2
    REPLACE_HEADER = 3
    MODIFY_URL = 4
    REPLACE_BODY = 5


# Response collection key per rule type
RULE_COLLECTIONS: Dict[int, str] = {
    RuleType.MATCH_CONTENT: "MatchContentRules",
    RuleType.ADD_HEADER: "AddHeaderRules",
    RuleType.DELETE_HEADER: "DeleteHeaderRules",
    RuleType.REPLACE_HEADER: "ReplaceHeaderRules",
    RuleType.MODIFY_URL: "ModifyURLRules",
    RuleType.REPLACE_BODY: "ReplaceBodyRules",
}


class RuleResponse(ApiModel):
    """Envelope of addrule/showrule/modrule, one list per rule type."""

    match_content_rules: List[GeneralRule] = Field(default_factory=list, alias="MatchContentRules")
    add_header_rules: List[GeneralRule] = Field(default_factory=list, alias="AddHeaderRules")
    delete_header_rules: List[GeneralRule] = Field(default_factory=list, alias="DeleteHeaderRules")
    replace_header_rules: List[GeneralRule] = Field(default_factory=list, alias="ReplaceHeaderRules")
    modify_url_rules: List[GeneralRule] = Field(default_factory=list, alias="ModifyURLRules")
    replace_body_rules: List[GeneralRule] = Field(default_factory=list, alias="ReplaceBodyRules")

    def rules_of_type(self, rule_type: int) -> List[GeneralRule]:
        """Return the collection holding rules of the given type."""
        alias = RULE_COLLECTIONS[rule_type]
        for name, field in type(self).model_fields.items():
            if field.alias == alias:
                return getattr(self, name)
        raise KeyError(rule_type)


class DataResponse(ApiModel):
    """Envelope of the OWASP custom data/rule download commands."""

    data: str = Field("", alias="Data")


class OwaspRule(ApiModel):
    """A custom rule attached to a virtual service."""

    name: str = Field(..., alias="Name")
    run_first: str = Field("no", alias="RunFirst")


class OwaspRuleResponse(ApiModel):
    """Envelope of the attached-rule lookup."""

    rule: OwaspRule = Field(..., alias="Rule")
