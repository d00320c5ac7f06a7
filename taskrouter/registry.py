"""Handler registry: static specialist descriptors validated at startup."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Iterator

from pydantic import ValidationError

from taskrouter.errors import (
    CyclicDependency,
    DuplicateHandler,
    RegistryError,
    UnresolvedDependency,
)
from taskrouter.schemas import HandlerDescriptor

logger = logging.getLogger(__name__)

REGISTRY_ENV_VAR = "TASKROUTER_REGISTRY"


# Default specialists for Shopify theme / app / Polaris work
DEFAULT_HANDLERS: list[HandlerDescriptor] = [
    HandlerDescriptor(
        name="theme-developer",
        tags=["theme"],
        keywords=[
            "liquid",
            "section",
            "snippet",
            "theme",
            "storefront",
            "online store 2.0",
            "theme check",
            "dawn",
        ],
        description="Liquid sections, snippets, templates and theme settings",
    ),
    HandlerDescriptor(
        name="database-architect",
        tags=["data"],
        keywords=[
            "prisma",
            "schema",
            "migration",
            "database",
            "sqlite",
            "postgres",
            "session storage",
        ],
        description="Prisma schema design and data migrations",
    ),
    HandlerDescriptor(
        name="app-developer",
        tags=["api"],
        dependencies=["data"],
        keywords=[
            "graphql",
            "metafield",
            "metaobject",
            "admin api",
            "webhook",
            "mutation",
            "loader",
        ],
        description="Remix routes, Admin GraphQL API calls and webhooks",
    ),
    HandlerDescriptor(
        name="polaris-ui",
        tags=["ui"],
        dependencies=["api"],
        keywords=[
            "polaris",
            "s-button",
            "s-page",
            "s-section",
            "layout",
            "app bridge",
            "index table",
        ],
        description="Polaris web components and app page layout",
    ),
]


class HandlerRegistry:
    """Immutable, validated set of HandlerDescriptors.

    Validation happens once, at construction:
    - handler names are unique
    - every dependency tag is served by at least one handler
    - the handler dependency graph is acyclic
    """

    def __init__(self, handlers: Iterable[HandlerDescriptor]):
        self._handlers: dict[str, HandlerDescriptor] = {}
        for handler in handlers:
            if handler.name in self._handlers:
                raise DuplicateHandler(f"Duplicate handler name: {handler.name}")
            self._handlers[handler.name] = handler

        self._by_tag: dict[str, list[HandlerDescriptor]] = {}
        for handler in self._handlers.values():
            for tag in handler.tags:
                self._by_tag.setdefault(tag, []).append(handler)

        self._check_dependencies()
        self._check_cycles()
        logger.info(
            f"Registry loaded: {len(self._handlers)} handlers, {len(self._by_tag)} domains"
        )

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[HandlerDescriptor]:
        return iter(self._handlers.values())

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    @property
    def tags(self) -> list[str]:
        """Domain tags in registration order."""
        return list(self._by_tag)

    def get(self, name: str) -> HandlerDescriptor | None:
        return self._handlers.get(name)

    def handlers_for(self, tag: str) -> list[HandlerDescriptor]:
        """Handlers serving a tag, in registration order."""
        return list(self._by_tag.get(tag, []))

    def keywords_for(self, tag: str) -> list[str]:
        """Union of keywords of every handler serving a tag."""
        keywords: list[str] = []
        for handler in self._by_tag.get(tag, []):
            for keyword in handler.keywords:
                if keyword not in keywords:
                    keywords.append(keyword)
        return keywords

    def upstream_of(self, handler: HandlerDescriptor) -> list[HandlerDescriptor]:
        """Registered handlers serving any of the handler's dependency tags."""
        upstream: list[HandlerDescriptor] = []
        for tag in handler.dependencies:
            for candidate in self._by_tag.get(tag, []):
                if candidate not in upstream:
                    upstream.append(candidate)
        return upstream

    def _check_dependencies(self) -> None:
        for handler in self._handlers.values():
            for tag in handler.dependencies:
                if tag not in self._by_tag:
                    raise UnresolvedDependency(handler.name, tag)

    def _check_cycles(self) -> None:
        """Depth-first search for a back edge in the handler graph."""
        visiting: list[str] = []
        done: set[str] = set()

        def visit(handler: HandlerDescriptor) -> None:
            if handler.name in done:
                return
            if handler.name in visiting:
                start = visiting.index(handler.name)
                raise CyclicDependency(visiting[start:] + [handler.name])
            visiting.append(handler.name)
            for upstream in self.upstream_of(handler):
                visit(upstream)
            visiting.pop()
            done.add(handler.name)

        for handler in self._handlers.values():
            visit(handler)

    def to_dict(self) -> dict[str, Any]:
        return {"handlers": [h.model_dump(mode="json") for h in self._handlers.values()]}


def load_registry(path: Path | str) -> HandlerRegistry:
    """Build a registry from a JSON file of the form {"handlers": [...]}.

    Args:
        path: Path to the registry file

    Returns:
        Validated HandlerRegistry

    Raises:
        RegistryError: If the file is unreadable, malformed or inconsistent
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise RegistryError(f"Cannot read registry {path}: {e}") from e

    entries = data.get("handlers") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise RegistryError(f"Registry {path} must contain a 'handlers' list")

    try:
        handlers = [HandlerDescriptor.model_validate(entry) for entry in entries]
    except ValidationError as e:
        raise RegistryError(f"Invalid handler in {path}: {e}") from e

    logger.info(f"Loading registry from {path}")
    return HandlerRegistry(handlers)


# Global registry instance, read-only after startup
_registry_instance: HandlerRegistry | None = None


def get_registry(path: Path | str | None = None) -> HandlerRegistry:
    """Get or create the process-wide registry.

    Args:
        path: Optional registry file. An explicit path replaces any existing
            instance; otherwise $TASKROUTER_REGISTRY, then DEFAULT_HANDLERS

    Returns:
        HandlerRegistry instance
    """
    global _registry_instance
    if path is not None:
        _registry_instance = load_registry(path)
    elif _registry_instance is None:
        source = os.environ.get(REGISTRY_ENV_VAR)
        if source:
            _registry_instance = load_registry(source)
        else:
            _registry_instance = HandlerRegistry(DEFAULT_HANDLERS)
    return _registry_instance


def reset_registry() -> None:
    """Drop the process-wide registry so the next get_registry() reloads it."""
    global _registry_instance
    _registry_instance = None
