"""Exceptions raised by the registry, router and coordinator."""

from __future__ import annotations

from taskrouter.schemas import ErrorDetail, ErrorKind


class TaskRouterError(Exception):
    """Base class for all TaskRouter errors."""

    kind: ErrorKind | None = None

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(kind=self.kind or ErrorKind.TASK_FAILURE, message=str(self))


# --- Registry (startup) ---


class RegistryError(TaskRouterError):
    """Raised when the handler registry is misconfigured."""


class DuplicateHandler(RegistryError):
    kind = ErrorKind.DUPLICATE_HANDLER


class UnresolvedDependency(RegistryError):
    """A handler depends on a tag no registered handler serves."""

    kind = ErrorKind.UNRESOLVED_DEPENDENCY

    def __init__(self, handler: str, tag: str):
        self.handler = handler
        self.tag = tag
        super().__init__(f"Handler '{handler}' depends on unserved tag '{tag}'")


class CyclicDependency(RegistryError):
    """Handler dependencies form a cycle."""

    kind = ErrorKind.CYCLIC_DEPENDENCY

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic handler dependency: {' -> '.join(cycle)}")


# --- Routing (request time) ---


class RoutingError(TaskRouterError):
    """Raised when a request cannot be turned into a plan."""


class UnroutableRequest(RoutingError):
    kind = ErrorKind.UNROUTABLE_REQUEST

    def __init__(self, message: str = "No domain matched the request"):
        super().__init__(message)


class AmbiguousRoute(RoutingError):
    """Several equally specific handlers serve one domain."""

    kind = ErrorKind.AMBIGUOUS_ROUTE

    def __init__(self, tag: str, candidates: list[str]):
        self.tag = tag
        self.candidates = candidates
        super().__init__(
            f"Ambiguous route for domain '{tag}': {', '.join(candidates)}"
        )

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(kind=self.kind, message=str(self), candidates=list(self.candidates))


class UnknownHandler(RoutingError):
    kind = ErrorKind.UNKNOWN_HANDLER

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown handler: {name}")


# --- Execution ---


class InvalidTransition(TaskRouterError):
    """Raised on an illegal task status change."""

    def __init__(self, task_id: str, current: str, new: str):
        super().__init__(f"Task {task_id}: illegal transition {current} -> {new}")
