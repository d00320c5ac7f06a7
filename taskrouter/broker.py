"""HTTP broker exposing classification, planning and dispatch."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from taskrouter.classifier import classify
from taskrouter.dispatcher import dispatch, plan_request
from taskrouter.errors import RoutingError
from taskrouter.handlers import bind_http_handlers
from taskrouter.policies import PolicyId
from taskrouter.registry import get_registry
from taskrouter.schemas import (
    Classification,
    ErrorResponse,
    ExecutionPlan,
    ExecutionResult,
    HandlerDescriptor,
    HealthResponse,
    RouteRequest,
)

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="TaskRouter Broker",
    description="Routes requests to specialist handlers in dependency order",
    version="0.1.0",
)


def _rejection(error: RoutingError) -> JSONResponse:
    detail = error.to_detail()
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            detail=detail.message,
            error_code=detail.kind.value,
            candidates=detail.candidates,
        ).model_dump(),
    )


# --- HTTP Endpoints ---


@app.post("/classify", response_model=Classification)
async def classify_request(request: RouteRequest) -> Classification:
    """Classify request text into domain tags."""
    return classify(request.text, get_registry())


@app.post("/plan", response_model=ExecutionPlan, responses={422: {"model": ErrorResponse}})
async def plan(request: RouteRequest):
    """Build an ExecutionPlan for an external executor.

    Args:
        request: RouteRequest with text and optional handler override

    Returns:
        ExecutionPlan, or 422 ErrorResponse when the request cannot be routed
    """
    logger.info(f"Received plan request: handler={request.handler}")
    try:
        return plan_request(request, get_registry())
    except RoutingError as e:
        return _rejection(e)


@app.post("/dispatch", response_model=ExecutionResult)
def dispatch_request(request: RouteRequest, policy_id: PolicyId = PolicyId.DEFAULT) -> ExecutionResult:
    """Route a request and execute it against HTTP-bound handlers.

    Runs in the threadpool since handler calls block.
    """
    registry = get_registry()
    result = dispatch(
        request,
        handlers=bind_http_handlers(registry),
        registry=registry,
        policy=policy_id,
    )
    logger.info(f"Completed dispatch: status={result.status.value}")
    return result


@app.get("/handlers", response_model=list[HandlerDescriptor])
async def handlers() -> list[HandlerDescriptor]:
    """List registered handlers."""
    return list(get_registry())


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check broker status."""
    registry = get_registry()
    return HealthResponse(
        broker="healthy",
        handlers=len(registry),
        bound_handlers=len(bind_http_handlers(registry)),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            detail=str(exc),
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )
