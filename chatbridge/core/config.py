"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. The agent endpoint (agent id, alias id, region) is read here once and
handed to the request issuer as an AgentEndpoint, so callers and tests can inject
their own.
"""

import os
from dataclasses import dataclass
from urllib.parse import quote

from dotenv import load_dotenv

load_dotenv()

# Bedrock Agent identity (from env)
BEDROCK_AGENT_ID: str = os.getenv("BEDROCK_AGENT_ID", "").strip()
BEDROCK_AGENT_ALIAS_ID: str = os.getenv("BEDROCK_AGENT_ALIAS_ID", "").strip()
AWS_REGION: str = os.getenv("AWS_REGION", "ca-central-1").strip() or "ca-central-1"

# SigV4 service name used when signing bedrock-agent-runtime calls
AGENT_SIGNING_SERVICE: str = os.getenv("AGENT_SIGNING_SERVICE", "bedrock").strip() or "bedrock"

# Outbound HTTP timeout (seconds)
AGENT_API_TIMEOUT: float = float(os.getenv("AGENT_API_TIMEOUT", "60.0"))

# Local chat history (SQLite, relative to project root unless absolute)
HISTORY_DB_PATH: str = os.getenv("HISTORY_DB_PATH", "data/chat_history.db").strip() or "data/chat_history.db"

# Backend base URL, used by the Streamlit UI only
API_BASE: str = os.environ.get("API_BASE", "http://localhost:8000")

AGENT_RUNTIME_URL: str = "https://bedrock-agent-runtime.{region}.amazonaws.com"


@dataclass(frozen=True)
class AgentEndpoint:
    """Where and how to reach one Bedrock Agent alias."""

    agent_id: str
    agent_alias_id: str
    region: str
    service: str = AGENT_SIGNING_SERVICE

    def session_url(self, session_id: str) -> str:
        """Text invocation URL for a session; session_id is path-quoted."""
        base = AGENT_RUNTIME_URL.format(region=self.region)
        return (
            f"{base}/agents/{self.agent_id}/agentAliases/{self.agent_alias_id}"
            f"/sessions/{quote(session_id, safe='')}/text"
        )


def default_endpoint() -> AgentEndpoint:
    """Endpoint built from the environment."""
    return AgentEndpoint(
        agent_id=BEDROCK_AGENT_ID,
        agent_alias_id=BEDROCK_AGENT_ALIAS_ID,
        region=AWS_REGION,
        service=AGENT_SIGNING_SERVICE,
    )
