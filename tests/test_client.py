"""Tests for the LoadMaster API client."""

from unittest.mock import Mock

import pytest
import requests

from loadmaster_sync.api.client import LoadMasterClient
from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.config.models import ProviderConfig
from loadmaster_sync.utils.retry import RetryStrategy, is_transient_error


def make_response(body=None, status_code=200, content=b"{}"):
    response = Mock()
    response.status_code = status_code
    response.content = content
    response.text = content.decode("utf-8", errors="replace")
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return LoadMasterClient("lm.example.com", api_key="secret", session=session)


class TestLoadMasterClient:
    """Tests for LoadMasterClient."""

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            LoadMasterClient("lm.example.com")

    def test_base_url(self, session):
        """Test https is assumed when no scheme is given."""
        assert LoadMasterClient("lm:8443", api_key="k", session=session).base_url == \
            "https://lm:8443"
        assert LoadMasterClient("http://lm/", api_key="k", session=session).base_url == \
            "http://lm"

    def test_from_config(self):
        config = ProviderConfig(host="lm", username="bal", password="pw", verify_ssl=False,
                                timeout=5)

        client = LoadMasterClient.from_config(config)

        assert client.username == "bal"
        assert client.verify_ssl is False
        assert client.timeout == 5

    def test_request_payload(self, client, session):
        """Test command, credentials and parameters are posted as JSON."""
        session.post.return_value = make_response({
            "code": 200, "status": "ok", "Index": 4, "VSAddress": "10.0.0.1", "VSPort": 443,
            "Protocol": "tcp", "Enable": "Y",
        })

        service = client.add_virtual_service("10.0.0.1", "443", "tcp",
                                             {"NickName": "web", "Enable": True})

        url = session.post.call_args[0][0]
        payload = session.post.call_args[1]["json"]
        assert url == "https://lm.example.com/accessv2"
        assert payload == {"cmd": "addvs", "apikey": "secret", "vs": "10.0.0.1", "port": "443",
                           "prot": "tcp", "NickName": "web", "Enable": "Y"}
        assert service.index == 4
        assert service.port == "443"
        assert service.enable is True

    def test_user_password_auth(self, session):
        client = LoadMasterClient("lm", username="bal", password="pw", session=session)
        session.post.return_value = make_response({"code": 200, "status": "ok"})

        client.delete_rule("r1")

        payload = session.post.call_args[1]["json"]
        assert payload["apiuser"] == "bal"
        assert payload["apipass"] == "pw"
        assert "apikey" not in payload

    def test_rejection_raises(self, client, session):
        session.post.return_value = make_response(
            {"code": 422, "status": "fail", "message": "Unknown VS"}, status_code=422
        )

        with pytest.raises(LoadMasterError) as exc_info:
            client.show_virtual_service("9")

        assert exc_info.value.code == 422
        assert exc_info.value.message == "Unknown VS"
        assert exc_info.value.command == "showvs"

    def test_fail_status_with_ok_code(self, client, session):
        session.post.return_value = make_response(
            {"code": 200, "status": "fail", "message": "Rule not found"}
        )

        with pytest.raises(LoadMasterError, match="Rule not found"):
            client.show_rule("r1")

    def test_connection_error(self, client, session):
        session.post.side_effect = requests.exceptions.ConnectionError("Connection reset by peer")

        with pytest.raises(TransportError) as exc_info:
            client.show_rule("r1")

        assert isinstance(exc_info.value.cause, requests.exceptions.ConnectionError)

    def test_empty_body_is_transport_error(self, client, session):
        """Test a truncated response is reported as EOF."""
        session.post.return_value = make_response(None, content=b"")

        with pytest.raises(TransportError, match="EOF"):
            client.show_rule("r1")

    def test_non_json_body(self, client, session):
        session.post.return_value = make_response(None, status_code=500,
                                                  content=b"<html>Internal error</html>")

        with pytest.raises(LoadMasterError) as exc_info:
            client.show_rule("r1")

        assert exc_info.value.code == 500

    def test_cut_off_body_is_retried(self, client, session):
        """Test a success response cut off mid-body is transient and retried."""
        partial = b'{"code": 200, "Index": 1, "VSAdd'
        complete = {"code": 200, "Index": 1, "VSAddress": "10.0.0.10", "VSPort": "443"}
        session.post.side_effect = [make_response(None, content=partial),
                                    make_response(complete)]

        with pytest.raises(TransportError, match="truncated response") as exc_info:
            client.show_virtual_service("1")
        assert is_transient_error(exc_info.value)

        session.post.side_effect = [make_response(None, content=partial),
                                    make_response(complete)]
        strategy = RetryStrategy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)

        service = strategy.execute(lambda: client.show_virtual_service("1"))

        assert service.index == 1
        assert session.post.call_count == 3

    def test_rule_response(self, client, session):
        session.post.return_value = make_response({
            "code": 200, "status": "ok",
            "MatchContentRules": [{"Name": "api", "Pattern": "^/api", "NoCase": "Y",
                                   "OnlyOnFlag": 0}],
        })

        response = client.show_rule("api")

        rule = response.rules_of_type(0)[0]
        assert rule.name == "api"
        assert rule.no_case is True
        assert response.rules_of_type(1) == []

    def test_owasp_attachment(self, client, session):
        session.post.return_value = make_response({"code": 200, "status": "ok"})

        client.add_virtual_service_owasp_rule("3", "block", False)

        payload = session.post.call_args[1]["json"]
        assert payload["cmd"] == "vsaddwafrule"
        assert payload["runfirst"] == "N"
