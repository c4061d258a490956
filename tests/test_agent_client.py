"""
Tests for the signed request issuer. httpx.MockTransport stands in for the agent runtime;
static botocore credentials make signing deterministic enough to inspect.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from botocore.credentials import Credentials

from chatbridge.core.config import AgentEndpoint
from chatbridge.core.errors import TransportError
from chatbridge.services.agent_client import AgentClient, AgentRequest

CREDENTIALS = Credentials("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")
ENDPOINT = AgentEndpoint(agent_id="AGENT123", agent_alias_id="ALIAS456", region="ca-central-1")
SESSION_URL = (
    "https://bedrock-agent-runtime.ca-central-1.amazonaws.com"
    "/agents/AGENT123/agentAliases/ALIAS456/sessions/sess-1/text"
)


def _client(handler) -> AgentClient:
    return AgentClient(ENDPOINT, credentials=CREDENTIALS, transport=httpx.MockTransport(handler))


def test_send_posts_signed_json_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"raw-body")

    raw = _client(handler).send("What is up?", "sess-1", end_session=True)

    assert raw == b"raw-body"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == SESSION_URL
    assert json.loads(request.content) == {"inputText": "What is up?", "enableTrace": True, "endSession": True}
    assert request.headers["content-type"] == "application/json"
    assert request.headers["accept"] == "application/json"
    auth = request.headers["authorization"]
    assert auth.startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
    assert "/ca-central-1/bedrock/aws4_request" in auth
    assert "x-amz-date" in request.headers


def test_non_2xx_raises_transport_error() -> None:
    client = _client(lambda request: httpx.Response(403, text="AccessDeniedException"))
    with pytest.raises(TransportError) as exc_info:
        client.send("hi", "sess-1")
    assert exc_info.value.status_code == 403
    assert "403" in exc_info.value.message
    assert "AccessDeniedException" in exc_info.value.message


def test_network_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as exc_info:
        _client(handler).send("hi", "sess-1")
    assert exc_info.value.status_code is None
    assert "connection refused" in exc_info.value.message


def test_missing_credentials_raise_transport_error() -> None:
    client = AgentClient(ENDPOINT, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with patch("chatbridge.services.agent_client.boto3.Session") as session_cls:
        session_cls.return_value.get_credentials.return_value = None
        with pytest.raises(TransportError):
            client.send("hi", "sess-1")


def test_ask_decodes_the_body(chunk_frame) -> None:
    client = _client(lambda request: httpx.Response(200, content=chunk_frame("Hello")))
    result = client.ask(AgentRequest(session_id="sess-1", question="Say hello"))
    assert result.answer == "Hello"
    assert result.trace


def test_session_id_is_path_quoted() -> None:
    assert ENDPOINT.session_url("a/b c").endswith("/sessions/a%2Fb%20c/text")


@pytest.mark.parametrize(
    "endpoint, missing",
    [
        (AgentEndpoint(agent_id="", agent_alias_id="ALIAS456", region="ca-central-1"), "BEDROCK_AGENT_ID"),
        (AgentEndpoint(agent_id="AGENT123", agent_alias_id="", region="ca-central-1"), "BEDROCK_AGENT_ALIAS_ID"),
    ],
)
def test_unconfigured_agent_is_not_called(endpoint, missing) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = AgentClient(endpoint, credentials=CREDENTIALS, transport=httpx.MockTransport(handler))
    with pytest.raises(TransportError) as exc_info:
        client.send("hi", "sess-1")
    assert exc_info.value.message == f"{missing} is not configured"
    assert seen == []
