"""Bindings from handler descriptors to callables, including remote HTTP handlers."""

from __future__ import annotations

import logging

import httpx

from taskrouter.registry import HandlerRegistry
from taskrouter.schemas import HandlerOutcome, TaskPayload

logger = logging.getLogger(__name__)

# Timeouts
DEFAULT_HANDLER_TIMEOUT = 60.0  # seconds


class HttpHandler:
    """Invoke a remote specialist by POSTing the task payload as JSON.

    The remote side replies with {"success": bool, "output": ..., "error": ...}.
    Transport errors and non-2xx replies are reported as failed outcomes.
    """

    def __init__(self, name: str, endpoint: str, timeout: float = DEFAULT_HANDLER_TIMEOUT):
        self.name = name
        self.endpoint = endpoint
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"HttpHandler(name={self.name!r}, endpoint={self.endpoint!r})"

    def __call__(self, payload: TaskPayload) -> HandlerOutcome:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    self.endpoint,
                    json={"handler": self.name, **payload.model_dump(mode="json")},
                )
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            logger.error(f"Handler {self.name} timed out: {e}")
            return HandlerOutcome(success=False, error=f"Handler timed out after {self.timeout}s")

        except httpx.HTTPStatusError as e:
            logger.error(f"Handler {self.name} HTTP error: {e}")
            return HandlerOutcome(
                success=False,
                error=f"Handler returned error: {e.response.status_code}",
            )

        except httpx.HTTPError as e:
            logger.error(f"Failed to reach handler {self.name}: {e}")
            return HandlerOutcome(success=False, error=f"Handler unavailable: {e}")

        except ValueError as e:
            return HandlerOutcome(success=False, error=f"Handler returned invalid JSON: {e}")

        if not isinstance(data, dict) or "success" not in data:
            return HandlerOutcome(success=False, error="Handler reply missing 'success'")

        return HandlerOutcome(
            success=bool(data["success"]),
            output=data.get("output"),
            error=data.get("error"),
        )


def bind_http_handlers(
    registry: HandlerRegistry,
    timeout: float = DEFAULT_HANDLER_TIMEOUT,
) -> dict[str, HttpHandler]:
    """Create an HttpHandler for every registered handler with an endpoint."""
    bindings = {}
    for descriptor in registry:
        if descriptor.endpoint:
            bindings[descriptor.name] = HttpHandler(descriptor.name, descriptor.endpoint, timeout)
    logger.debug(f"Bound {len(bindings)} HTTP handlers")
    return bindings
