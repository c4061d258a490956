"""
Lambda-style request handler: validate the event, call the agent, wrap the outcome.

Responsibility: Bridge the inbound event dict and the AgentClient. Envelope shapes:
200 {"response": trace, "trace_data": answer}, 400/500 {"error": message}.
"""

import json
import logging
from typing import Any

from chatbridge.core.errors import ValidationError
from chatbridge.services.agent_client import AgentClient, AgentRequest

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("sessionId", "question")


def parse_end_session(value: Any) -> bool:
    """Only boolean True or the exact string "true" end the session."""
    return value is True or value == "true"


def build_request(event: dict[str, Any]) -> AgentRequest:
    """Validate an inbound event. Raises ValidationError."""
    if not isinstance(event, dict):
        raise ValidationError("event", "Request body must be a JSON object")
    for name in REQUIRED_FIELDS:
        value = event.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(name)
    return AgentRequest(
        session_id=event["sessionId"],
        question=event["question"],
        end_session=parse_end_session(event.get("endSession")),
    )


def envelope(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(payload)}


def lambda_handler(event: dict[str, Any], context: Any = None, client: AgentClient | None = None) -> dict[str, Any]:
    try:
        request = build_request(event)
    except ValidationError as e:
        logger.info("[handler:lambda_handler] rejected: %s", e.message)
        return envelope(400, {"error": e.message})

    logger.info("Session: %s asked question: %s", request.session_id, request.question)
    try:
        result = (client or AgentClient()).ask(request)
    except Exception as e:
        logger.exception("[handler:lambda_handler] agent call failed")
        return envelope(500, {"error": str(e)})

    logger.info("[handler:lambda_handler] OUT answer_len=%d", len(result.answer))
    return envelope(200, {"response": result.trace_text, "trace_data": result.answer})
