"""Pytest configuration and fixtures for TaskRouter tests."""

import pytest

from taskrouter.registry import HandlerRegistry, reset_registry
from taskrouter.schemas import HandlerDescriptor, HandlerOutcome


@pytest.fixture(autouse=True)
def fresh_registry(monkeypatch):
    """Isolate the process-wide registry between tests."""
    # Set (not deleted) so monkeypatch restores anything the CLI exports
    monkeypatch.setenv("TASKROUTER_REGISTRY", "")
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def stack_registry() -> HandlerRegistry:
    """Database -> API -> UI registry."""
    return HandlerRegistry([
        HandlerDescriptor(name="db", tags=["data"], keywords=["schema", "prisma", "migration"]),
        HandlerDescriptor(
            name="api",
            tags=["api"],
            dependencies=["data"],
            keywords=["graphql", "metafield", "webhook"],
        ),
        HandlerDescriptor(
            name="ui",
            tags=["ui"],
            dependencies=["api"],
            keywords=["polaris", "s-button", "layout"],
        ),
    ])


@pytest.fixture
def forms_registry() -> HandlerRegistry:
    """Two specialists competing for the same 'forms' domain."""
    return HandlerRegistry([
        HandlerDescriptor(
            name="contact-forms",
            tags=["forms"],
            keywords=["form", "contact", "newsletter"],
        ),
        HandlerDescriptor(
            name="checkout-forms",
            tags=["forms"],
            keywords=["form", "checkout", "address"],
        ),
    ])


@pytest.fixture
def ok_handler():
    """Handler factory returning a successful outcome tagged with its name."""

    def make(name: str):
        def handler(payload):
            return HandlerOutcome(success=True, output=f"{name} done")

        return handler

    return make


@pytest.fixture
def failing_handler():
    def handler(payload):
        return HandlerOutcome(success=False, error="boom")

    return handler


@pytest.fixture
def registry_file(tmp_path):
    """Write a registry JSON file and return its path."""
    import json

    def write(handlers: list[dict]):
        path = tmp_path / "handlers.json"
        path.write_text(json.dumps({"handlers": handlers}))
        return path

    return write
