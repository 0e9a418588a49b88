"""
FSM HTTP API

Generic request/response platform adapter. Each call builds a
BufferedEmitter, drives the engine and returns whatever the states
emitted, so any webhook-style integration can sit in front of it.

Endpoints:
- POST /fsm/{platform}/step     Process direct input from a traverser
- POST /fsm/{platform}/trigger  Push a traverser toward a state out of band
- GET  /fsm/metrics             Prometheus metrics for the engine
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field
from prometheus_client import CONTENT_TYPE_LATEST

from .emitters import BufferedEmitter
from .engine import FSMEngine
from .exceptions import FSMError, TraverserNotFoundError, UnknownStateError
from .metrics import get_metrics_text

logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class StepRequest(BaseModel):
    """Request body for a step."""
    uuid: str = Field(..., min_length=1, description="Traverser identifier")
    input: Any = Field(None, description="Raw input handed to the input transformer")


class StepResponse(BaseModel):
    """Response model for a step."""
    uuid: str
    state: str
    created: bool
    intent: Optional[str] = None
    messages: List[Any]


class TriggerRequest(BaseModel):
    """Request body for a trigger."""
    uuid: str = Field(..., min_length=1, description="Traverser identifier")
    target: str = Field(..., min_length=1, description="Slug of the target state")
    payload: Any = Field(None, description="Stored under the transition info key when applied")


class TriggerResponse(BaseModel):
    """Response model for a trigger."""
    uuid: str
    applied: bool
    reason: str
    state: str
    messages: List[Any]


def _http_error(error: FSMError) -> HTTPException:
    if isinstance(error, TraverserNotFoundError):
        status_code, detail = 404, error.message
    elif isinstance(error, UnknownStateError):
        status_code, detail = 422, error.message
    else:
        status_code, detail = 500, f"{error.operation or 'engine'} failed"

    # Detail may carry the raw traverser id; log only the error context
    logger.warning(
        f"FSM request failed with {status_code}: {type(error).__name__} "
        f"(operation={error.operation}, state={error.slug})"
    )
    return HTTPException(status_code=status_code, detail=detail)


# ============================================================================
# API Endpoints
# ============================================================================

def create_fsm_router(engine: FSMEngine) -> APIRouter:
    """
    Build a router bound to one engine.

    Usage:
        app = FastAPI()
        app.include_router(create_fsm_router(engine))
    """
    router = APIRouter(prefix="/fsm", tags=["fsm"])

    @router.post("/{platform}/step", response_model=StepResponse)
    async def step(platform: str, request: StepRequest):
        emitter = BufferedEmitter()
        try:
            result = await engine.step(platform, request.uuid, request.input, emitter)
        except FSMError as e:
            raise _http_error(e) from e

        return StepResponse(
            uuid=result.uuid,
            state=result.to_state,
            created=result.created,
            intent=result.intent,
            messages=emitter.drain(),
        )

    @router.post("/{platform}/trigger", response_model=TriggerResponse)
    async def trigger(platform: str, request: TriggerRequest):
        emitter = BufferedEmitter()
        try:
            result = await engine.trigger_state(
                platform, request.uuid, request.target, request.payload, emitter
            )
        except FSMError as e:
            raise _http_error(e) from e

        return TriggerResponse(
            uuid=result.uuid,
            applied=result.applied,
            reason=result.reason,
            state=result.current_state,
            messages=emitter.drain(),
        )

    @router.get("/metrics")
    async def metrics():
        return Response(content=get_metrics_text(), media_type=CONTENT_TYPE_LATEST)

    return router
