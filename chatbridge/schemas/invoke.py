"""Schemas for the invoke-agent endpoint (documentation of the envelope bodies)."""

from pydantic import BaseModel, Field


class InvokeAgentResponse(BaseModel):
    """Body of a 200 envelope. Field names are what the chat UI reads."""

    response: str = Field(..., description="Decoder trace, one step per line.")
    trace_data: str = Field(..., description="Final answer text shown to the user.")


class ErrorResponse(BaseModel):
    """Body of a 400/500 envelope."""

    error: str = Field(..., description="Raw error message.")

    model_config = {
        "json_schema_extra": {
            "examples": [{"error": "Missing required field 'question'"}]
        }
    }
