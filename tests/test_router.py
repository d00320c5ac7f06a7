"""Tests for routing classifications into execution plans."""

import pytest

from taskrouter.classifier import classify
from taskrouter.errors import AmbiguousRoute, UnknownHandler, UnroutableRequest
from taskrouter.registry import HandlerRegistry
from taskrouter.router import route
from taskrouter.schemas import Classification, ErrorKind, HandlerDescriptor, TaskStatus


class TestRoute:
    """Test plan construction."""

    def test_empty_classification_unroutable(self, stack_registry):
        """Nothing matched -> UnroutableRequest."""
        with pytest.raises(UnroutableRequest) as exc_info:
            route(classify("hello", stack_registry), stack_registry)
        assert exc_info.value.kind == ErrorKind.UNROUTABLE_REQUEST

    def test_single_domain_single_task(self, stack_registry):
        """One domain with one handler -> one task."""
        plan = route(classify("add a webhook", stack_registry), stack_registry)
        assert plan.handlers == ["api"]
        task = plan.tasks[0]
        assert task.status == TaskStatus.PENDING
        assert task.depends_on == ()
        assert task.payload.tags == ["api"]
        assert task.payload.matched_keywords == ["webhook"]

    def test_dependency_precedes_dependent(self, stack_registry):
        """API depends on data: data runs first regardless of text order."""
        plan = route(classify("graphql resolver over a new prisma model", stack_registry), stack_registry)
        assert plan.handlers == ["db", "api"]
        assert plan.tasks[1].depends_on == (plan.tasks[0].task_id,)

    def test_full_stack_order(self, stack_registry):
        """UI -> API -> DB in text becomes DB, API, UI."""
        text = "polaris layout for a metafield stored via a prisma migration"
        plan = route(classify(text, stack_registry), stack_registry)
        assert plan.handlers == ["db", "api", "ui"]

    def test_unselected_dependency_ignored(self, stack_registry):
        """schema + polaris without graphql gives [db, ui]."""
        plan = route(classify("new schema and a polaris page", stack_registry), stack_registry)
        assert plan.handlers == ["db", "ui"]
        ui_task = plan.tasks[1]
        assert ui_task.depends_on == ()

    def test_ui_only_request_does_not_force_database(self, stack_registry):
        """A UI-only request yields only the UI task."""
        plan = route(classify("center the s-button", stack_registry), stack_registry)
        assert plan.handlers == ["ui"]

    def test_independent_tasks_keep_classification_order(self):
        """Ties in the topological sort follow classification order."""
        registry = HandlerRegistry([
            HandlerDescriptor(name="theme", tags=["theme"], keywords=["liquid"]),
            HandlerDescriptor(name="docs", tags=["docs"], keywords=["readme"]),
        ])
        plan = route(classify("update readme and liquid", registry), registry)
        assert plan.handlers == ["docs", "theme"]
        plan = route(classify("update liquid and readme", registry), registry)
        assert plan.handlers == ["theme", "docs"]

    def test_route_is_idempotent(self, stack_registry):
        """Routing the same classification twice gives identical ordering."""
        classification = classify("polaris, graphql and prisma", stack_registry)
        first = route(classification, stack_registry)
        second = route(classification, stack_registry)
        assert first == second
        assert [t.task_id for t in first.tasks] == [t.task_id for t in second.tasks]

    def test_handler_serving_two_tags_appears_once(self):
        """A handler selected for two domains produces one task."""
        registry = HandlerRegistry([
            HandlerDescriptor(name="fullstack", tags=["api", "ui"], keywords=["graphql", "polaris"]),
        ])
        plan = route(classify("graphql and polaris", registry), registry)
        assert plan.handlers == ["fullstack"]
        assert plan.tasks[0].tags == ("api", "ui")


class TestAmbiguity:
    """Test tie-break handling across the router."""

    def test_more_specific_handler_selected(self, forms_registry):
        """The handler with more matched keywords wins."""
        plan = route(classify("checkout address form", forms_registry), forms_registry)
        assert plan.handlers == ["checkout-forms"]

    def test_equal_specificity_raises(self, forms_registry):
        """Equal specificity surfaces the candidates."""
        with pytest.raises(AmbiguousRoute) as exc_info:
            route(classify("a form", forms_registry), forms_registry)
        assert exc_info.value.tag == "forms"
        assert exc_info.value.candidates == ["contact-forms", "checkout-forms"]
        detail = exc_info.value.to_detail()
        assert detail.kind == ErrorKind.AMBIGUOUS_ROUTE
        assert detail.candidates == ["contact-forms", "checkout-forms"]

    def test_override_resolves_ambiguity(self, forms_registry):
        """An override picks the handler for the tied domain."""
        plan = route(classify("a form", forms_registry), forms_registry, override="contact-forms")
        assert plan.handlers == ["contact-forms"]
        assert plan.override == "contact-forms"


class TestOverride:
    """Test explicit handler pre-selection."""

    def test_override_bypasses_empty_classification(self, stack_registry):
        """An override routes even when nothing matched."""
        plan = route(Classification(text="do the thing"), stack_registry, override="ui")
        assert plan.handlers == ["ui"]
        assert plan.tasks[0].payload.text == "do the thing"
        assert plan.tasks[0].payload.matched_keywords == []

    def test_override_joins_other_domains(self, stack_registry):
        """An override is ordered with the other selected handlers."""
        plan = route(classify("prisma schema", stack_registry), stack_registry, override="api")
        assert plan.handlers == ["db", "api"]

    def test_unknown_override(self, stack_registry):
        """Unknown handler names are rejected."""
        with pytest.raises(UnknownHandler):
            route(classify("prisma", stack_registry), stack_registry, override="nope")

    def test_override_drops_unrelated_tied_domain(self, forms_registry):
        """A tie in a domain the override doesn't serve is dropped, not raised."""
        registry = HandlerRegistry([
            *forms_registry,
            HandlerDescriptor(name="theme", tags=["theme"], keywords=["liquid"]),
        ])
        classification = classify("liquid form", registry)
        assert classification.tags == ["theme", "forms"]

        plan = route(classification, registry, override="theme")

        assert plan.handlers == ["theme"]
        assert plan.tasks[0].tags == ("theme",)

    def test_tied_domain_without_override_still_raises(self, forms_registry):
        """The same request without an override stays ambiguous."""
        registry = HandlerRegistry([
            *forms_registry,
            HandlerDescriptor(name="theme", tags=["theme"], keywords=["liquid"]),
        ])
        with pytest.raises(AmbiguousRoute):
            route(classify("liquid form", registry), registry)
