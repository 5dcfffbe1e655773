"""LoadMaster management API client and session handling."""

from typing import Any, Dict, Optional, Protocol

import requests

from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.api.models import (
    CommandResponse,
    DataResponse,
    OwaspRuleResponse,
    RealServerResponse,
    RuleResponse,
    VirtualService,
)
from loadmaster_sync.utils.logging import get_logger

logger = get_logger(__name__)

Params = Dict[str, Any]


class LoadMasterAPI(Protocol):
    """Typed call surface the reconcilers depend on.

    Every call either returns a response envelope or raises
    ``LoadMasterError`` (rejected command) or ``TransportError`` (the
    exchange itself failed).
    """

    def add_virtual_service(self, address: str, port: str, protocol: str, params: Params) -> VirtualService: ...
    def show_virtual_service(self, index: str) -> VirtualService: ...
    def modify_virtual_service(self, index: str, params: Params) -> VirtualService: ...
    def delete_virtual_service(self, index: str) -> CommandResponse: ...

    def add_sub_virtual_service(self, parent: str, params: Params) -> VirtualService: ...
    def show_sub_virtual_service(self, index: str) -> VirtualService: ...
    def modify_sub_virtual_service(self, index: str, params: Params) -> VirtualService: ...
    def delete_sub_virtual_service(self, index: str) -> CommandResponse: ...

    def add_real_server(self, vs: str, rs: str, port: str, params: Params) -> RealServerResponse: ...
    def show_real_server(self, vs: str, rs: str) -> RealServerResponse: ...
    def modify_real_server(self, vs: str, rs: str, params: Params) -> RealServerResponse: ...
    def delete_real_server(self, vs: str, rs: str) -> CommandResponse: ...

    def add_rule(self, rule_type: int, name: str, params: Params) -> RuleResponse: ...
    def show_rule(self, name: str) -> RuleResponse: ...
    def modify_rule(self, name: str, params: Params) -> RuleResponse: ...
    def delete_rule(self, name: str) -> CommandResponse: ...

    def add_owasp_custom_data(self, filename: str, data: str) -> CommandResponse: ...
    def show_owasp_custom_data(self, filename: str) -> DataResponse: ...
    def delete_owasp_custom_data(self, filename: str) -> CommandResponse: ...

    def add_owasp_custom_rule(self, filename: str, data: str) -> CommandResponse: ...
    def show_owasp_custom_rule(self, filename: str) -> DataResponse: ...
    def delete_owasp_custom_rule(self, filename: str) -> CommandResponse: ...

    def add_virtual_service_owasp_rule(self, vs: str, rule: str, run_first: bool) -> CommandResponse: ...
    def show_virtual_service_owasp_rule(self, vs: str, rule: str) -> OwaspRuleResponse: ...
    def delete_virtual_service_owasp_rule(self, vs: str, rule: str) -> CommandResponse: ...


def _serialize(value: Any) -> Any:
    """Flags travel as Y/N on the wire."""
    if isinstance(value, bool):
        return 'Y' if value else 'N'
    return value


class LoadMasterClient:
    """Synchronous LoadMaster client speaking the JSON ``accessv2`` API."""

    ENDPOINT = "accessv2"

    def __init__(
        self,
        host: str,
        api_key: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """Initialize the client.

        Args:
            host: Address (and optional port) of the management interface
            api_key: API key; takes precedence over username/password
            username: API user name
            password: API user password
            verify_ssl: Verify the appliance TLS certificate
            timeout: Per-request timeout in seconds
            session: Pre-built requests session (mainly for tests)
        """
        if not api_key and not (username and password):
            raise ValueError("Either api_key or username and password are required")

        base = host if host.startswith(("http://", "https://")) else f"https://{host}"
        self.base_url = base.rstrip("/")
        self.api_key = api_key
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'LoadMasterClient':
        """Build a client from a ProviderConfig model."""
        return cls(
            host=config.host,
            api_key=config.api_key,
            username=config.username,
            password=config.password,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
        )

    def _auth(self) -> Params:
        if self.api_key:
            return {"apikey": self.api_key}
        return {"apiuser": self.username, "apipass": self.password}

    def _request(self, command: str, **params: Any) -> Dict[str, Any]:
        """Send one command and return the decoded success envelope.

        Raises:
            TransportError: Connection dropped, timed out or body truncated
            LoadMasterError: The appliance rejected the command
        """
        payload = {"cmd": command, **self._auth()}
        payload.update({key: _serialize(value) for key, value in params.items() if value is not None})

        logger.debug(f"LoadMaster command {command}: {sorted(params)}")

        try:
            response = self.session.post(
                f"{self.base_url}/{self.ENDPOINT}",
                json=payload,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except (requests.exceptions.ConnectionError,
                requests.exceptions.ChunkedEncodingError,
                requests.exceptions.Timeout) as e:
            raise TransportError(f"{command}: {e}", cause=e) from e

        try:
            body = response.json()
        except ValueError as e:
            if not response.content:
                raise TransportError(f"{command}: unexpected EOF in response", cause=e) from e
            if response.status_code < 400:
                raise TransportError(f"{command}: truncated response: {e}", cause=e) from e
            raise LoadMasterError(response.status_code, response.text[:200], command) from e

        code = int(body.get("code", response.status_code))
        if body.get("status") == "fail" or code >= 400:
            raise LoadMasterError(code, body.get("message", ""), command)

        return body

    # Virtual services

    def add_virtual_service(self, address: str, port: str, protocol: str, params: Params) -> VirtualService:
        return VirtualService.model_validate(
            self._request("addvs", vs=address, port=port, prot=protocol, **params)
        )

    def show_virtual_service(self, index: str) -> VirtualService:
        return VirtualService.model_validate(self._request("showvs", vs=index))

    def modify_virtual_service(self, index: str, params: Params) -> VirtualService:
        return VirtualService.model_validate(self._request("modvs", vs=index, **params))

    def delete_virtual_service(self, index: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delvs", vs=index))

    # Sub virtual services

    def add_sub_virtual_service(self, parent: str, params: Params) -> VirtualService:
        return VirtualService.model_validate(
            self._request("modvs", vs=parent, createsubvs="", **params)
        )

    def show_sub_virtual_service(self, index: str) -> VirtualService:
        return VirtualService.model_validate(self._request("showvs", vs=index))

    def modify_sub_virtual_service(self, index: str, params: Params) -> VirtualService:
        return VirtualService.model_validate(self._request("modvs", vs=index, **params))

    def delete_sub_virtual_service(self, index: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delvs", vs=index))

    # Real servers

    def add_real_server(self, vs: str, rs: str, port: str, params: Params) -> RealServerResponse:
        return RealServerResponse.model_validate(
            self._request("addrs", vs=vs, rs=rs, rsport=port, **params)
        )

    def show_real_server(self, vs: str, rs: str) -> RealServerResponse:
        return RealServerResponse.model_validate(self._request("showrs", vs=vs, rs=rs))

    def modify_real_server(self, vs: str, rs: str, params: Params) -> RealServerResponse:
        return RealServerResponse.model_validate(self._request("modrs", vs=vs, rs=rs, **params))

    def delete_real_server(self, vs: str, rs: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delrs", vs=vs, rs=rs))

    # Content rules

    def add_rule(self, rule_type: int, name: str, params: Params) -> RuleResponse:
        return RuleResponse.model_validate(
            self._request("addrule", type=str(rule_type), name=name, **params)
        )

    def show_rule(self, name: str) -> RuleResponse:
        return RuleResponse.model_validate(self._request("showrule", name=name))

    def modify_rule(self, name: str, params: Params) -> RuleResponse:
        return RuleResponse.model_validate(self._request("modrule", name=name, **params))

    def delete_rule(self, name: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delrule", name=name))

    # OWASP custom data and rules

    def add_owasp_custom_data(self, filename: str, data: str) -> CommandResponse:
        return CommandResponse.model_validate(
            self._request("addowaspcustomdata", filename=filename, data=data)
        )

    def show_owasp_custom_data(self, filename: str) -> DataResponse:
        return DataResponse.model_validate(self._request("downloadowaspcustomdata", filename=filename))

    def delete_owasp_custom_data(self, filename: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delowaspcustomdata", filename=filename))

    def add_owasp_custom_rule(self, filename: str, data: str) -> CommandResponse:
        return CommandResponse.model_validate(
            self._request("addowaspcustomrule", filename=filename, data=data)
        )

    def show_owasp_custom_rule(self, filename: str) -> DataResponse:
        return DataResponse.model_validate(self._request("downloadowaspcustomrule", filename=filename))

    def delete_owasp_custom_rule(self, filename: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("delowaspcustomrule", filename=filename))

    # Rule attachments

    def add_virtual_service_owasp_rule(self, vs: str, rule: str, run_first: bool) -> CommandResponse:
        return CommandResponse.model_validate(
            self._request("vsaddwafrule", vs=vs, rule=rule, runfirst=run_first)
        )

    def show_virtual_service_owasp_rule(self, vs: str, rule: str) -> OwaspRuleResponse:
        return OwaspRuleResponse.model_validate(self._request("vsshowwafrule", vs=vs, rule=rule))

    def delete_virtual_service_owasp_rule(self, vs: str, rule: str) -> CommandResponse:
        return CommandResponse.model_validate(self._request("vsremovewafrule", vs=vs, rule=rule))
