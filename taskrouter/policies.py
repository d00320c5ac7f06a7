"""Execution policy definitions for the coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PolicyId(str, Enum):
    """Available execution policies."""

    DEFAULT = "default"
    SEQUENTIAL = "sequential"
    WIDE = "wide"


class ConcurrencyMode(str, Enum):
    """Concurrency modes for task execution."""

    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True)
class Policy:
    """Execution policy definition."""

    policy_id: PolicyId
    description: str
    concurrency: ConcurrencyMode
    max_concurrent_tasks: int
    timeout_seconds: float | None = None


# Policy definitions
POLICIES: dict[PolicyId, Policy] = {
    PolicyId.DEFAULT: Policy(
        policy_id=PolicyId.DEFAULT,
        description="Independent branches run in parallel",
        concurrency=ConcurrencyMode.PARALLEL,
        max_concurrent_tasks=4,
        timeout_seconds=300.0,
    ),
    PolicyId.SEQUENTIAL: Policy(
        policy_id=PolicyId.SEQUENTIAL,
        description="One task at a time, strictly in plan order",
        concurrency=ConcurrencyMode.SEQUENTIAL,
        max_concurrent_tasks=1,
        timeout_seconds=600.0,
    ),
    PolicyId.WIDE: Policy(
        policy_id=PolicyId.WIDE,
        description="Wide fan-out for plans with many independent handlers",
        concurrency=ConcurrencyMode.PARALLEL,
        max_concurrent_tasks=8,
        timeout_seconds=300.0,
    ),
}


def get_policy(policy_id: PolicyId | str) -> Policy:
    """Get policy by ID."""
    return POLICIES[PolicyId(policy_id)]


def get_concurrency_mode(policy: Policy | PolicyId | str) -> ConcurrencyMode:
    """Get concurrency mode for a policy."""
    if not isinstance(policy, Policy):
        policy = get_policy(policy)
    return policy.concurrency


def get_max_concurrent_tasks(policy: Policy | PolicyId | str) -> int:
    """Get maximum concurrent tasks for a policy."""
    if not isinstance(policy, Policy):
        policy = get_policy(policy)
    if get_concurrency_mode(policy) == ConcurrencyMode.SEQUENTIAL:
        return 1
    return policy.max_concurrent_tasks
