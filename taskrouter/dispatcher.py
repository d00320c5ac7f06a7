"""Request-level entry points: classify, plan and execute one request."""

from __future__ import annotations

import logging
from typing import Mapping

from taskrouter.classifier import classify
from taskrouter.coordinator import Coordinator, Handler
from taskrouter.errors import RoutingError
from taskrouter.policies import Policy, PolicyId
from taskrouter.registry import HandlerRegistry, get_registry
from taskrouter.router import route
from taskrouter.schemas import ExecutionPlan, ExecutionResult, ExecutionStatus, RouteRequest

logger = logging.getLogger(__name__)


def plan_request(
    request: RouteRequest,
    registry: HandlerRegistry | None = None,
) -> ExecutionPlan:
    """Classify and route a request.

    Raises:
        RoutingError: Unroutable, ambiguous, or unknown override
    """
    registry = registry or get_registry()
    classification = classify(request.text, registry)
    return route(classification, registry, override=request.handler)


def dispatch(
    request: RouteRequest,
    handlers: Mapping[str, Handler],
    registry: HandlerRegistry | None = None,
    policy: Policy | PolicyId | str = PolicyId.DEFAULT,
) -> ExecutionResult:
    """Route and execute a request, never raising routing errors.

    Routing errors come back as a rejected ExecutionResult carrying the
    structured error; task failures and timeouts come back per task.

    Args:
        request: Request text, optional handler override and timeout
        handlers: Callables keyed by handler name
        registry: Handler registry (defaults to the process-wide one)
        policy: Execution policy for the coordinator

    Returns:
        ExecutionResult
    """
    try:
        plan = plan_request(request, registry)
    except RoutingError as e:
        logger.info(f"Request rejected: {e}")
        return ExecutionResult(status=ExecutionStatus.REJECTED, errors=[e.to_detail()])

    coordinator = Coordinator(handlers, policy=policy, timeout=request.timeout_seconds)
    result = coordinator.execute(plan)
    logger.info(f"Request finished: status={result.status.value}, tasks={len(result.tasks)}")
    return result
