"""
Unit tests for lambda_handler: validation, endSession parsing, status envelopes.
"""

import json
from unittest.mock import MagicMock

import pytest

from chatbridge.api.handlers import build_request, lambda_handler, parse_end_session
from chatbridge.core.errors import TransportError, ValidationError
from chatbridge.services.eventstream import DecodedResult


@pytest.fixture
def agent() -> MagicMock:
    client = MagicMock()
    client.ask.return_value = DecodedResult(trace=["Decoded response: ...", "frame 0: bytes"], answer="Hello")
    return client


def _event(**overrides) -> dict:
    event = {"sessionId": "sess-1", "question": "Say hello"}
    event.update(overrides)
    return event


class TestParseEndSession:
    @pytest.mark.parametrize(
        "value, expected",
        [(True, True), ("true", True), (False, False), ("false", False), (None, False), ("TRUE", False), (1, False), ("yes", False)],
    )
    def test_only_exact_true(self, value, expected) -> None:
        assert parse_end_session(value) is expected


class TestBuildRequest:
    def test_valid_event(self) -> None:
        request = build_request(_event(endSession="true"))
        assert request.session_id == "sess-1"
        assert request.question == "Say hello"
        assert request.end_session is True

    def test_omitted_end_session_is_false(self) -> None:
        assert build_request(_event()).end_session is False

    @pytest.mark.parametrize("missing", ["sessionId", "question"])
    def test_missing_field(self, missing) -> None:
        event = _event()
        del event[missing]
        with pytest.raises(ValidationError) as exc_info:
            build_request(event)
        assert exc_info.value.field == missing

    def test_blank_question_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            build_request(_event(question="   "))

    def test_non_dict_event_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            build_request(["not", "a", "dict"])


class TestLambdaHandler:
    def test_success_envelope(self, agent) -> None:
        result = lambda_handler(_event(), None, client=agent)
        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body == {"response": "Decoded response: ...\nframe 0: bytes", "trace_data": "Hello"}

    @pytest.mark.parametrize("value, expected", [("true", True), (True, True), ("false", False)])
    def test_end_session_is_forwarded(self, agent, value, expected) -> None:
        lambda_handler(_event(endSession=value), None, client=agent)
        request = agent.ask.call_args[0][0]
        assert request.end_session is expected

    def test_missing_question_returns_400(self, agent) -> None:
        result = lambda_handler({"sessionId": "sess-1"}, None, client=agent)
        assert result["statusCode"] == 400
        assert json.loads(result["body"]) == {"error": "Missing required field 'question'"}
        agent.ask.assert_not_called()

    def test_transport_error_returns_500(self, agent) -> None:
        agent.ask.side_effect = TransportError("Agent request failed with status 403: denied", status_code=403)
        result = lambda_handler(_event(), None, client=agent)
        assert result["statusCode"] == 500
        assert json.loads(result["body"]) == {"error": "Agent request failed with status 403: denied"}

    def test_unexpected_error_returns_500(self, agent) -> None:
        agent.ask.side_effect = RuntimeError("boom")
        result = lambda_handler(_event(), None, client=agent)
        assert result["statusCode"] == 500
        assert json.loads(result["body"]) == {"error": "boom"}
