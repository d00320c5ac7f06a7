"""Router: turns a Classification into a dependency-ordered ExecutionPlan."""

from __future__ import annotations

import heapq
import logging

from taskrouter.classifier import select_handler
from taskrouter.errors import AmbiguousRoute, CyclicDependency, UnknownHandler, UnroutableRequest
from taskrouter.registry import HandlerRegistry, get_registry
from taskrouter.schemas import (
    Classification,
    ExecutionPlan,
    HandlerDescriptor,
    Task,
    TaskPayload,
)

logger = logging.getLogger(__name__)


def _select_handlers(
    classification: Classification,
    registry: HandlerRegistry,
    override: HandlerDescriptor | None,
) -> dict[str, list[str]]:
    """Pick one handler per classified tag.

    Returns:
        Mapping of handler name to the tags it was selected for, ordered by
        the first tag's position in the classification
    """
    selected: dict[str, list[str]] = {}

    for match in classification.matches:
        if override is not None and override.serves(match.tag):
            name = override.name
        else:
            name, tied = select_handler(match)
            if name is None:
                if override is not None:
                    # Tied domains the override doesn't serve are dropped
                    logger.info(f"Dropping ambiguous domain '{match.tag}' under override {override.name}")
                    continue
                raise AmbiguousRoute(match.tag, tied)
        selected.setdefault(name, []).append(match.tag)

    if override is not None and override.name not in selected:
        # Override bypasses classification: it runs even if its tags weren't matched
        selected[override.name] = list(override.tags)

    return selected


def _task_id(index: int, handler: str) -> str:
    return f"task-{index}-{handler}"


def route(
    classification: Classification,
    registry: HandlerRegistry | None = None,
    override: str | None = None,
) -> ExecutionPlan:
    """Build an ExecutionPlan for a classified request.

    Handlers are reduced to one per domain tag, then topologically sorted by
    their declared dependency tags. A dependency on a tag whose handler was not
    selected for this request is ignored. Among tasks that are ready at the same
    time, the one whose first tag appears earlier in the classification runs first.

    Args:
        classification: Output of classify()
        registry: Handler registry (defaults to the process-wide one)
        override: Optional handler name pre-selected by the caller

    Returns:
        ExecutionPlan with tasks in dependency order

    Raises:
        UnroutableRequest: Classification is empty and no override was given
        AmbiguousRoute: A tag has equally specific candidate handlers and no
            override was given
        UnknownHandler: The override names no registered handler
    """
    registry = registry or get_registry()

    override_handler = None
    if override is not None:
        override_handler = registry.get(override)
        if override_handler is None:
            raise UnknownHandler(override)

    if classification.is_empty and override_handler is None:
        raise UnroutableRequest()

    selected = _select_handlers(classification, registry, override_handler)
    order = {name: i for i, name in enumerate(selected)}

    # Edges restricted to handlers selected for this request
    upstream: dict[str, list[str]] = {}
    for name in selected:
        handler = registry.get(name)
        upstream[name] = [
            dep.name
            for dep in registry.upstream_of(handler)
            if dep.name in selected and dep.name != name
        ]

    indegree = {name: len(deps) for name, deps in upstream.items()}
    downstream: dict[str, list[str]] = {name: [] for name in selected}
    for name, deps in upstream.items():
        for dep in deps:
            downstream[dep].append(name)

    ready = [(order[name], name) for name, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    sorted_names: list[str] = []
    while ready:
        _, name = heapq.heappop(ready)
        sorted_names.append(name)
        for child in downstream[name]:
            indegree[child] -= 1
            if indegree[child] == 0:
                heapq.heappush(ready, (order[child], child))

    if len(sorted_names) != len(selected):
        # Registry validation rejects cycles; reaching this means the registry was bypassed
        raise CyclicDependency([n for n in selected if n not in sorted_names])

    task_ids = {name: _task_id(i, name) for i, name in enumerate(sorted_names, 1)}
    tasks = []
    for name in sorted_names:
        tags = selected[name]
        keywords: list[str] = []
        for tag in tags:
            match = classification.get(tag)
            if match is None:
                continue
            for keyword in match.matched_keywords:
                if keyword not in keywords:
                    keywords.append(keyword)
        tasks.append(
            Task(
                task_id=task_ids[name],
                handler=name,
                tags=tuple(tags),
                depends_on=tuple(task_ids[dep] for dep in upstream[name]),
                payload=TaskPayload(
                    text=classification.text,
                    tags=list(tags),
                    matched_keywords=keywords,
                ),
            )
        )

    plan = ExecutionPlan(text=classification.text, tasks=tuple(tasks), override=override)
    logger.info(f"Routed request to {plan.handlers}")
    return plan
