"""Tests for request-level planning and dispatch."""

import pytest

from taskrouter.dispatcher import dispatch, plan_request
from taskrouter.errors import UnroutableRequest
from taskrouter.schemas import (
    ErrorKind,
    ExecutionStatus,
    HandlerOutcome,
    RouteRequest,
    TaskStatus,
)


class TestPlanRequest:
    """Test classify + route in one call."""

    def test_example_plan(self, stack_registry):
        """schema + polaris without graphql plans [db, ui]."""
        plan = plan_request(RouteRequest(text="schema for a polaris page"), stack_registry)
        assert plan.handlers == ["db", "ui"]

    def test_unroutable_raises(self, stack_registry):
        """plan_request propagates routing errors."""
        with pytest.raises(UnroutableRequest):
            plan_request(RouteRequest(text="nothing relevant"), stack_registry)


class TestDispatch:
    """Test the structured request boundary."""

    def test_unroutable_returned_not_raised(self, stack_registry):
        """No match yields a rejected result."""
        result = dispatch(RouteRequest(text="nothing relevant"), {}, stack_registry)
        assert result.status == ExecutionStatus.REJECTED
        assert result.tasks == []
        assert result.errors[0].kind == ErrorKind.UNROUTABLE_REQUEST

    def test_ambiguous_returned_with_candidates(self, forms_registry):
        """Ambiguity is reported with its candidates."""
        result = dispatch(RouteRequest(text="a form"), {}, forms_registry)
        assert result.status == ExecutionStatus.REJECTED
        assert result.errors[0].kind == ErrorKind.AMBIGUOUS_ROUTE
        assert result.errors[0].candidates == ["contact-forms", "checkout-forms"]

    def test_unknown_override_returned(self, stack_registry):
        """Unknown overrides are rejected."""
        result = dispatch(RouteRequest(text="prisma", handler="ghost"), {}, stack_registry)
        assert result.errors[0].kind == ErrorKind.UNKNOWN_HANDLER

    def test_executes_plan(self, stack_registry, ok_handler):
        """Routable requests are executed in order."""
        handlers = {name: ok_handler(name) for name in ("db", "api", "ui")}
        result = dispatch(
            RouteRequest(text="graphql on prisma for a polaris page"),
            handlers,
            stack_registry,
        )
        assert result.status == ExecutionStatus.COMPLETED
        assert [t.handler for t in result.tasks] == ["db", "api", "ui"]

    def test_partial_result_on_failure(self, stack_registry, ok_handler):
        """Failures still return every task's status."""
        handlers = {
            "db": ok_handler("db"),
            "api": lambda p: HandlerOutcome(success=False, error="scope missing"),
            "ui": ok_handler("ui"),
        }
        result = dispatch(
            RouteRequest(text="graphql on prisma for a polaris page"),
            handlers,
            stack_registry,
            policy="sequential",
        )
        assert result.status == ExecutionStatus.PARTIAL
        statuses = {t.handler: t.status for t in result.tasks}
        assert statuses == {
            "db": TaskStatus.COMPLETED,
            "api": TaskStatus.FAILED,
            "ui": TaskStatus.SKIPPED,
        }
