"""Pydantic schemas for TaskRouter requests, plans and results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    """Task execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.SKIPPED})


class ExecutionStatus(str, Enum):
    """Aggregate status of one request."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    REJECTED = "rejected"


class ErrorKind(str, Enum):
    """Structured error kinds reported to callers."""

    UNROUTABLE_REQUEST = "unroutable_request"
    AMBIGUOUS_ROUTE = "ambiguous_route"
    UNKNOWN_HANDLER = "unknown_handler"
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    UNRESOLVED_DEPENDENCY = "unresolved_dependency"
    DUPLICATE_HANDLER = "duplicate_handler"
    TASK_FAILURE = "task_failure"
    TIMEOUT = "timeout"


# --- Registry ---


class HandlerDescriptor(BaseModel):
    """A registered specialist handler."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[a-z0-9][a-z0-9_-]*$")
    tags: tuple[str, ...] = Field(..., min_length=1, description="Domain tags served")
    dependencies: tuple[str, ...] = Field(
        default=(),
        description="Domain tags that must be satisfied before this handler runs",
    )
    keywords: tuple[str, ...] = Field(default=(), description="Lexical triggers")
    description: str = ""
    endpoint: str | None = Field(default=None, description="URL of a remote handler")

    @field_validator("tags", "dependencies", "keywords", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        seen: list[str] = []
        for item in value or ():
            item = str(item).strip().lower()
            if item and item not in seen:
                seen.append(item)
        return tuple(seen)

    def serves(self, tag: str) -> bool:
        return tag in self.tags


# --- Request / Classification ---


class RouteRequest(BaseModel):
    """Request to route (and optionally execute) a piece of work."""

    text: str = Field(default="", max_length=20000)
    handler: str | None = Field(
        default=None,
        description="Optional handler name that bypasses classification",
    )
    timeout_seconds: float | None = Field(default=None, gt=0)


class HandlerMatch(BaseModel):
    """How well one handler's keywords matched a request."""

    model_config = ConfigDict(frozen=True)

    name: str
    specificity: int = Field(default=0, ge=0)
    matched_keywords: tuple[str, ...] = ()


class DomainMatch(BaseModel):
    """One domain tag matched against the request text."""

    model_config = ConfigDict(frozen=True)

    tag: str
    matched_keywords: tuple[str, ...]
    rank: int = Field(..., ge=0, description="Distinct matched keywords")
    position: int = Field(..., ge=0, description="Offset of first matched keyword")
    candidates: tuple[HandlerMatch, ...] = ()


class Classification(BaseModel):
    """Ordered, unique domain tags matched for a request."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    matches: tuple[DomainMatch, ...] = ()

    @property
    def tags(self) -> list[str]:
        return [m.tag for m in self.matches]

    @property
    def is_empty(self) -> bool:
        return not self.matches

    def get(self, tag: str) -> DomainMatch | None:
        for match in self.matches:
            if match.tag == tag:
                return match
        return None


# --- Plan ---


class TaskPayload(BaseModel):
    """Input handed to a handler: the slice of the request relevant to it."""

    text: str
    tags: list[str]
    matched_keywords: list[str] = Field(default_factory=list)
    upstream: dict[str, Any] = Field(
        default_factory=dict,
        description="Outputs of completed predecessor tasks, keyed by handler name",
    )


class Task(BaseModel):
    """One unit of delegated work inside an ExecutionPlan."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(..., pattern=r"^[a-zA-Z0-9_-]+$")
    handler: str
    tags: tuple[str, ...]
    depends_on: tuple[str, ...] = ()
    payload: TaskPayload
    status: TaskStatus = TaskStatus.PENDING


class ExecutionPlan(BaseModel):
    """Topologically sorted tasks for one request."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    tasks: tuple[Task, ...] = ()
    override: str | None = None

    @property
    def handlers(self) -> list[str]:
        return [t.handler for t in self.tasks]

    def get(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        raise KeyError(task_id)


# --- Results ---


class HandlerOutcome(BaseModel):
    """Success/failure signal returned by an external handler."""

    success: bool
    output: Any = None
    error: str | None = None


class ErrorDetail(BaseModel):
    """Structured error entry."""

    kind: ErrorKind
    message: str
    task_id: str | None = None
    candidates: list[str] = Field(default_factory=list)


class TaskResult(BaseModel):
    """Terminal state of one task."""

    task_id: str
    handler: str
    status: TaskStatus
    output: Any = None
    error: str | None = None
    duration_ms: int | None = None


class ExecutionResult(BaseModel):
    """Aggregated result of routing and executing one request."""

    status: ExecutionStatus
    tasks: list[TaskResult] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    duration_ms: int = 0

    def by_handler(self, name: str) -> TaskResult | None:
        for result in self.tasks:
            if result.handler == name:
                return result
        return None


# --- HTTP ---


class ErrorResponse(BaseModel):
    """Error response for rejected requests."""

    detail: str
    error_code: str | None = None
    candidates: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    broker: Literal["healthy", "unhealthy"] = "healthy"
    handlers: int = 0
    bound_handlers: int = 0
