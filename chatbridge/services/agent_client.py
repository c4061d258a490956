"""
Signed request issuer for the Bedrock Agent runtime.

Responsibility: build the InvokeAgent text request, SigV4-sign it with botocore, send
it with httpx, and hand the buffered body to the event-stream decoder. No retries:
any failure is terminal for the call and surfaces as TransportError.
"""

import json
import logging
from dataclasses import dataclass

import boto3
import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from botocore.exceptions import BotoCoreError

from chatbridge.core.config import AGENT_API_TIMEOUT, AgentEndpoint, default_endpoint
from chatbridge.core.errors import TransportError
from chatbridge.services.eventstream import DecodedResult, decode_response

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "content-type": "application/json",
    "accept": "application/json",
}


@dataclass(frozen=True)
class AgentRequest:
    """One question for one agent session."""

    session_id: str
    question: str
    end_session: bool = False

    def to_payload(self) -> dict:
        return {
            "inputText": self.question,
            "enableTrace": True,
            "endSession": self.end_session,
        }


class AgentClient:
    """Sends signed InvokeAgent calls; credentials come from the default boto3 chain unless given."""

    def __init__(
        self,
        endpoint: AgentEndpoint | None = None,
        credentials: Credentials | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = AGENT_API_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint or default_endpoint()
        self._credentials = credentials
        self._transport = transport
        self._timeout = timeout

    def _check_endpoint(self) -> None:
        if not self.endpoint.agent_id:
            raise TransportError("BEDROCK_AGENT_ID is not configured")
        if not self.endpoint.agent_alias_id:
            raise TransportError("BEDROCK_AGENT_ALIAS_ID is not configured")

    def _resolve_credentials(self) -> Credentials:
        if self._credentials is not None:
            return self._credentials
        try:
            credentials = boto3.Session().get_credentials()
        except BotoCoreError as e:
            raise TransportError(f"Could not resolve AWS credentials: {e}") from e
        if credentials is None:
            raise TransportError("No AWS credentials found for signing the agent request")
        return credentials

    def sign(self, url: str, body: str) -> dict[str, str]:
        """Return request headers including the SigV4 Authorization header."""
        aws_request = AWSRequest(method="POST", url=url, data=body, headers=dict(REQUEST_HEADERS))
        SigV4Auth(self._resolve_credentials(), self.endpoint.service, self.endpoint.region).add_auth(aws_request)
        return dict(aws_request.headers.items())

    def send(self, question: str, session_id: str, end_session: bool = False) -> bytes:
        """POST the question and return the raw event-stream body. Raises TransportError."""
        self._check_endpoint()
        request = AgentRequest(session_id=session_id, question=question, end_session=end_session)
        url = self.endpoint.session_url(request.session_id)
        body = json.dumps(request.to_payload())
        headers = self.sign(url, body)
        logger.info("[agent_client:send] IN  session_id=%s end_session=%s question_len=%d", session_id[:16], end_session, len(question))
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.HTTPError as e:
            logger.warning("[agent_client:send] request failed: %s", e)
            raise TransportError(f"Agent request failed: {e}") from e
        if not response.is_success:
            logger.warning("[agent_client:send] agent error %s: %s", response.status_code, response.text[:200])
            raise TransportError(
                f"Agent request failed with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.info("[agent_client:send] OUT status=%s body_len=%d", response.status_code, len(response.content))
        return response.content

    def ask(self, request: AgentRequest) -> DecodedResult:
        """Send and decode; the decoder itself never raises."""
        raw = self.send(request.question, request.session_id, request.end_session)
        return decode_response(raw)
