"""MCP server exposing TaskRouter planning to AI assistants."""

from mcp.server.fastmcp import FastMCP

from taskrouter.dispatcher import plan_request
from taskrouter.errors import RoutingError
from taskrouter.registry import get_registry
from taskrouter.schemas import RouteRequest

mcp = FastMCP("taskrouter")


@mcp.tool()
def route_request(text: str, handler: str | None = None) -> dict:
    """Decide which specialists should handle a request, and in what order.

    Args:
        text: The user's request
        handler: Optional specialist name to pre-select

    Returns:
        The plan with tasks in execution order, or an error entry
        ({"kind", "message", "candidates"}) when the request can't be routed
    """
    try:
        plan = plan_request(RouteRequest(text=text, handler=handler), get_registry())
    except RoutingError as e:
        return e.to_detail().model_dump(mode="json")
    return plan.model_dump(mode="json")


@mcp.tool()
def list_handlers() -> list[dict]:
    """List registered specialists with their domains and dependencies."""
    return [h.model_dump(mode="json") for h in get_registry()]


if __name__ == "__main__":
    mcp.run()
