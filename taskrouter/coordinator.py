"""Coordinator: runs an ExecutionPlan with dependency gating and skip-cascades."""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from taskrouter.errors import InvalidTransition
from taskrouter.policies import Policy, PolicyId, get_max_concurrent_tasks, get_policy
from taskrouter.schemas import (
    TERMINAL_STATUSES,
    ErrorDetail,
    ErrorKind,
    ExecutionPlan,
    ExecutionResult,
    ExecutionStatus,
    HandlerOutcome,
    Task,
    TaskPayload,
    TaskResult,
    TaskStatus,
)

logger = logging.getLogger(__name__)

Handler = Callable[[TaskPayload], Any]

# pending -> failed is only taken on request timeout
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.SKIPPED, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.SKIPPED: frozenset(),
}


@dataclass
class _TaskState:
    """Mutable per-request state of one task."""

    task: Task
    status: TaskStatus = TaskStatus.PENDING
    output: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    started_at: float | None = None
    duration_ms: int | None = None


def _coerce_outcome(value: Any) -> HandlerOutcome:
    if isinstance(value, HandlerOutcome):
        return value
    if isinstance(value, dict):
        try:
            return HandlerOutcome.model_validate(value)
        except ValidationError as e:
            return HandlerOutcome(success=False, error=f"Invalid handler outcome: {e}")
    return HandlerOutcome(
        success=False,
        error=f"Invalid handler outcome type: {type(value).__name__}",
    )


def _invoke(handler: Handler, payload: TaskPayload) -> tuple[HandlerOutcome, int]:
    """Run one handler in a worker thread; exceptions become failed outcomes."""
    start = time.monotonic()
    try:
        outcome = _coerce_outcome(handler(payload))
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Handler raised {type(e).__name__}: {e}")
        outcome = HandlerOutcome(success=False, error=f"{type(e).__name__}: {e}")
    return outcome, int((time.monotonic() - start) * 1000)


class Coordinator:
    """Executes a plan, starting each task only after its predecessors complete.

    Independent tasks share a thread pool bounded by the execution policy.
    Task statuses are only written by the thread calling execute(); workers
    just return handler outcomes.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        policy: Policy | PolicyId | str = PolicyId.DEFAULT,
        timeout: float | None = None,
    ):
        """Initialize the coordinator.

        Args:
            handlers: Callables keyed by handler name
            policy: Execution policy (concurrency limit, default timeout)
            timeout: Request deadline in seconds, overriding the policy's
        """
        self.handlers = dict(handlers)
        self.policy = policy if isinstance(policy, Policy) else get_policy(policy)
        self.timeout = timeout if timeout is not None else self.policy.timeout_seconds
        self._lock = Lock()

    # --- state transitions ---

    def _transition(
        self,
        state: _TaskState,
        new: TaskStatus,
        error: str | None = None,
        error_kind: ErrorKind | None = None,
    ) -> None:
        with self._lock:
            if new not in ALLOWED_TRANSITIONS[state.status]:
                raise InvalidTransition(state.task.task_id, state.status.value, new.value)
            state.status = new
            if error is not None:
                state.error = error
                state.error_kind = error_kind
        logger.debug(f"{state.task.task_id}: -> {new.value}")

    def _skip_blocked(self, states: dict[str, _TaskState]) -> None:
        """Mark pending tasks behind a failed or skipped predecessor as skipped.

        Plan order is topological, so one pass covers transitive dependents.
        """
        for state in states.values():
            if state.status != TaskStatus.PENDING:
                continue
            for dep in state.task.depends_on:
                if states[dep].status in (TaskStatus.FAILED, TaskStatus.SKIPPED):
                    self._transition(
                        state,
                        TaskStatus.SKIPPED,
                        error=f"Skipped: upstream task {dep} did not complete",
                    )
                    break

    def _is_ready(self, state: _TaskState, states: dict[str, _TaskState]) -> bool:
        return state.status == TaskStatus.PENDING and all(
            states[dep].status == TaskStatus.COMPLETED for dep in state.task.depends_on
        )

    def _payload_for(self, state: _TaskState, states: dict[str, _TaskState]) -> TaskPayload:
        upstream = {
            states[dep].task.handler: states[dep].output for dep in state.task.depends_on
        }
        return state.task.payload.model_copy(update={"upstream": upstream})

    def _finish(self, state: _TaskState, outcome: HandlerOutcome, duration_ms: int) -> None:
        state.duration_ms = duration_ms
        if outcome.success:
            state.output = outcome.output
            self._transition(state, TaskStatus.COMPLETED)
            logger.info(f"{state.task.task_id} completed in {duration_ms}ms")
        else:
            state.output = outcome.output
            self._transition(
                state,
                TaskStatus.FAILED,
                error=outcome.error or "Handler reported failure",
                error_kind=ErrorKind.TASK_FAILURE,
            )
            logger.warning(f"{state.task.task_id} failed: {state.error}")

    def _expire(self, states: dict[str, _TaskState]) -> None:
        """Resolve every unfinished task after the request deadline passed."""
        message = f"Request timed out after {self.timeout}s"
        for state in states.values():
            if state.status in TERMINAL_STATUSES:
                continue
            blocked = any(
                states[dep].status in (TaskStatus.FAILED, TaskStatus.SKIPPED)
                for dep in state.task.depends_on
            )
            if state.status == TaskStatus.PENDING and blocked:
                self._transition(
                    state,
                    TaskStatus.SKIPPED,
                    error="Skipped: upstream task did not complete before timeout",
                )
            else:
                if state.started_at is not None:
                    state.duration_ms = int((time.monotonic() - state.started_at) * 1000)
                self._transition(
                    state, TaskStatus.FAILED, error=message, error_kind=ErrorKind.TIMEOUT
                )
        logger.error(message)

    # --- execution ---

    def execute(self, plan: ExecutionPlan) -> ExecutionResult:
        """Run every task in the plan.

        Args:
            plan: ExecutionPlan from route()

        Returns:
            ExecutionResult with one TaskResult per task, in plan order
        """
        start = time.monotonic()
        deadline = start + self.timeout if self.timeout is not None else None
        states = {task.task_id: _TaskState(task=task) for task in plan.tasks}
        max_workers = get_max_concurrent_tasks(self.policy)

        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="taskrouter")
        running: dict[Future, _TaskState] = {}
        try:
            while True:
                if deadline is not None and time.monotonic() >= deadline:
                    # Handlers that already returned keep their outcome
                    for future in [f for f in running if f.done()]:
                        state = running.pop(future)
                        outcome, duration_ms = future.result()
                        self._finish(state, outcome, duration_ms)
                    self._expire(states)
                    break

                self._skip_blocked(states)

                for state in states.values():
                    if len(running) >= max_workers:
                        break
                    if not self._is_ready(state, states):
                        continue
                    handler = self.handlers.get(state.task.handler)
                    self._transition(state, TaskStatus.RUNNING)
                    if handler is None:
                        self._transition(
                            state,
                            TaskStatus.FAILED,
                            error=f"No handler bound for '{state.task.handler}'",
                            error_kind=ErrorKind.TASK_FAILURE,
                        )
                        continue
                    state.started_at = time.monotonic()
                    future = executor.submit(_invoke, handler, self._payload_for(state, states))
                    running[future] = state

                if not running:
                    # Unbound handlers may have failed during this pass
                    self._skip_blocked(states)
                    break

                remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
                done, _ = wait(list(running), timeout=remaining, return_when=FIRST_COMPLETED)
                for future in done:
                    state = running.pop(future)
                    outcome, duration_ms = future.result()
                    self._finish(state, outcome, duration_ms)
        finally:
            # Late results from timed-out handlers are discarded
            executor.shutdown(wait=False, cancel_futures=True)

        return self._build_result(states, start)

    def _build_result(self, states: dict[str, _TaskState], start: float) -> ExecutionResult:
        results = []
        errors = []
        for state in states.values():
            results.append(
                TaskResult(
                    task_id=state.task.task_id,
                    handler=state.task.handler,
                    status=state.status,
                    output=state.output,
                    error=state.error,
                    duration_ms=state.duration_ms,
                )
            )
            if state.status == TaskStatus.FAILED:
                errors.append(
                    ErrorDetail(
                        kind=state.error_kind or ErrorKind.TASK_FAILURE,
                        message=state.error or "Task failed",
                        task_id=state.task.task_id,
                    )
                )

        completed = sum(1 for r in results if r.status == TaskStatus.COMPLETED)
        if completed == len(results):
            status = ExecutionStatus.COMPLETED
        elif completed == 0:
            status = ExecutionStatus.FAILED
        else:
            status = ExecutionStatus.PARTIAL

        return ExecutionResult(
            status=status,
            tasks=results,
            errors=errors,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
