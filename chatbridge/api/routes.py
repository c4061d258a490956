"""
API route aggregator: register endpoints and delegate to handlers.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from chatbridge.api.handlers import lambda_handler
from chatbridge.schemas.invoke import ErrorResponse, InvokeAgentResponse
from chatbridge.services.agent_client import AgentClient

logger = logging.getLogger(__name__)
router = APIRouter()


def get_agent_client() -> AgentClient:
    return AgentClient()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Bedrock agent bridge running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Agent ---

@router.post(
    "/api/invoke-agent",
    tags=["agent"],
    summary="Ask the Bedrock agent a question",
    description="Body: { sessionId, question, endSession }. 200 returns { response: trace, trace_data: answer }; 400 on missing fields, 500 on agent failure.",
    responses={200: {"model": InvokeAgentResponse}, 400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def invoke_agent(request: Request, client: AgentClient = Depends(get_agent_client)) -> JSONResponse:
    try:
        event = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    logger.info("[api:invoke_agent] IN  session_id=%s", event.get("sessionId") if isinstance(event, dict) else None)
    result = await run_in_threadpool(lambda_handler, event, {}, client)
    return JSONResponse(json.loads(result["body"]), status_code=result["statusCode"])
