"""CLI for TaskRouter - classify, plan and dispatch requests."""

from __future__ import annotations

import json
import os
from pathlib import Path

import click

from taskrouter.errors import RegistryError, RoutingError
from taskrouter.registry import REGISTRY_ENV_VAR, HandlerRegistry, get_registry, load_registry


def _registry(ctx: click.Context) -> HandlerRegistry:
    path = ctx.obj.get("registry_path") if ctx.obj else None
    try:
        if path:
            return load_registry(path)
        return get_registry()
    except RegistryError as e:
        raise click.ClickException(str(e)) from e


def _export_registry(ctx: click.Context) -> None:
    """Make --registry visible to servers that read the process-wide registry."""
    path = ctx.obj.get("registry_path") if ctx.obj else None
    if not path:
        return
    try:
        get_registry(path)
    except RegistryError as e:
        raise click.ClickException(str(e)) from e
    # Reloader subprocesses only see the environment
    os.environ[REGISTRY_ENV_VAR] = str(Path(path).resolve())


@click.group()
@click.version_option(version="0.1.0", prog_name="taskrouter")
@click.option(
    "--registry", "-r",
    "registry_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Handler registry JSON file (defaults to $TASKROUTER_REGISTRY or built-ins)",
)
@click.pass_context
def main(ctx: click.Context, registry_path: str | None) -> None:
    """TaskRouter - route requests to specialist handlers.

    Classifies a request by keyword, picks one handler per domain and
    orders them by their declared dependencies.
    """
    ctx.ensure_object(dict)
    ctx.obj["registry_path"] = registry_path


@main.command()
@click.argument("text")
@click.pass_context
def classify(ctx: click.Context, text: str) -> None:
    """Show which domains a request matches.

    \b
    Example:
        taskrouter classify "add a metafield and show it with polaris"
    """
    from taskrouter.classifier import classify as do_classify

    classification = do_classify(text, _registry(ctx))

    if classification.is_empty:
        click.echo("No domain matched.")
        return

    for match in classification.matches:
        keywords = ", ".join(match.matched_keywords)
        click.echo(f"{match.tag} (rank {match.rank}): {keywords}")
        for candidate in match.candidates:
            click.echo(f"    {candidate.name} specificity={candidate.specificity}")


@main.command()
@click.argument("text")
@click.option("--handler", "-h", "override", default=None, help="Pre-select a handler by name")
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
@click.pass_context
def plan(ctx: click.Context, text: str, override: str | None, raw: bool) -> None:
    """Build the ordered task list for a request.

    \b
    Example:
        taskrouter plan "prisma schema for reviews plus a polaris page"
        taskrouter plan "fix the header" --handler theme-developer
    """
    from taskrouter.dispatcher import plan_request
    from taskrouter.schemas import RouteRequest

    try:
        execution_plan = plan_request(RouteRequest(text=text, handler=override), _registry(ctx))
    except RoutingError as e:
        detail = e.to_detail()
        message = f"{detail.kind.value}: {detail.message}"
        if detail.candidates:
            message += "\nUse --handler to pick one of: " + ", ".join(detail.candidates)
        raise click.ClickException(message) from e

    if raw:
        click.echo(json.dumps(execution_plan.model_dump(mode="json"), indent=2))
        return

    for i, task in enumerate(execution_plan.tasks, 1):
        line = f"  {i}. {task.handler} [{', '.join(task.tags)}]"
        if task.depends_on:
            line += f" after {', '.join(task.depends_on)}"
        click.echo(line)


@main.command()
@click.argument("text")
@click.option("--handler", "-h", "override", default=None, help="Pre-select a handler by name")
@click.option(
    "--policy", "-p",
    type=click.Choice(["default", "sequential", "wide"]),
    default="default",
    help="Execution policy",
)
@click.option(
    "--timeout", "-t",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Request timeout in seconds",
)
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
@click.pass_context
def dispatch(
    ctx: click.Context,
    text: str,
    override: str | None,
    policy: str,
    timeout: float | None,
    raw: bool,
) -> None:
    """Route a request and run it against handlers with HTTP endpoints."""
    from taskrouter.dispatcher import dispatch as do_dispatch
    from taskrouter.handlers import bind_http_handlers
    from taskrouter.schemas import ExecutionStatus, RouteRequest

    registry = _registry(ctx)
    result = do_dispatch(
        RouteRequest(text=text, handler=override, timeout_seconds=timeout),
        handlers=bind_http_handlers(registry),
        registry=registry,
        policy=policy,
    )

    if raw:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        click.echo(f"Status: {result.status.value}")
        for task in result.tasks:
            line = f"  {task.handler}: {task.status.value}"
            if task.error:
                line += f" ({task.error})"
            click.echo(line)
        for error in result.errors:
            if error.task_id is None:
                click.echo(f"Error: {error.kind.value}: {error.message}")

    if result.status != ExecutionStatus.COMPLETED:
        ctx.exit(1)


@main.command()
@click.pass_context
def handlers(ctx: click.Context) -> None:
    """List registered handlers."""
    registry = _registry(ctx)

    click.echo("Registered handlers:")
    for descriptor in registry:
        line = f"  - {descriptor.name} [{', '.join(descriptor.tags)}]"
        if descriptor.dependencies:
            line += f" needs {', '.join(descriptor.dependencies)}"
        click.echo(line)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def validate(path: str) -> None:
    """Check a registry file for unresolved or cyclic dependencies.

    \b
    Example:
        taskrouter validate handlers.json
    """
    try:
        registry = load_registry(path)
    except RegistryError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"OK: {len(registry)} handlers, {len(registry.tags)} domains")


@main.command()
@click.option("--port", default=8000, help="Port to run the broker on")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx: click.Context, port: int, host: str, reload: bool) -> None:
    """Start the TaskRouter HTTP broker server."""
    import uvicorn

    _export_registry(ctx)

    click.echo(f"Starting TaskRouter broker on {host}:{port}")
    uvicorn.run(
        "taskrouter.broker:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Run the MCP server so an AI assistant can ask for delegation plans.

    \b
    Configure in .mcp.json:
        {
            "mcpServers": {
                "taskrouter": {
                    "command": "taskrouter",
                    "args": ["mcp"]
                }
            }
        }
    """
    _export_registry(ctx)
    from mcp_taskrouter.server import mcp as mcp_server
    mcp_server.run()


if __name__ == "__main__":
    main()
