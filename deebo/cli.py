"""Command-line interface for the debugging orchestrator."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

from . import settings
from .config.loader import load_config
from .orchestration.models import DebugParams, SessionResponse
from .orchestration.parsing import extract_solution

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="deebo",
    help="Autonomous debugging with a mother agent and parallel scenario agents.",
    add_completion=False,
)

ProfileOption = Annotated[
    str,
    typer.Option("--profile", "-p", help="Configuration profile (default: $DEEBO_PROFILE)"),
]
ConfigOption = Annotated[
    Path,
    typer.Option("--config", help="Profiles YAML file (default: bundled profiles)"),
]


@app.command()
def debug(
    error: Annotated[str, typer.Argument(help="Error message or symptom to investigate")],
    repo: Annotated[
        Path,
        typer.Option("--repo", "-r", help="Repository to investigate"),
    ] = Path("."),
    context: Annotated[
        str,
        typer.Option("--context", help="Extra context: stack traces, recent changes"),
    ] = "",
    language: Annotated[
        str,
        typer.Option("--language", "-l", help="Primary language of the code"),
    ] = "typescript",
    file_path: Annotated[
        str,
        typer.Option("--file", help="File the error points at"),
    ] = "",
    profile: ProfileOption = None,
    config_path: ConfigOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: text or json"),
    ] = "text",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging"),
    ] = False,
):
    """
    Run a debugging session to completion.

    Examples:

        # Investigate in the current repository
        deebo debug "TypeError: cannot read property 'x' of undefined"

        # Point at a file and add context
        deebo debug "race in cache" -r ~/src/app --file src/cache.ts --context "$(git log -3)"

        # Offline run with scripted models
        deebo debug "boom" --profile test --format json
    """
    if output_format not in ("text", "json"):
        typer.echo("Error: Format must be one of: text, json", err=True)
        raise typer.Exit(1)

    settings.configure_logging("DEBUG" if verbose else None)

    try:
        response = asyncio.run(_debug_async(
            error=error,
            repo=repo.expanduser().resolve(),
            context=context,
            language=language,
            file_path=file_path,
            profile=profile,
            config_path=config_path,
        ))
    except KeyboardInterrupt:
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(130)
    except Exception as e:
        logger.exception(f"Debug session crashed: {e}")
        raise typer.Exit(1)

    if output_format == "json":
        typer.echo(response.to_json())
    else:
        typer.echo("\n".join(format_text(response)))

    if response.status.value != "complete":
        raise typer.Exit(1)


def format_text(response: SessionResponse) -> list[str]:
    """Render an envelope for the terminal, showing only the solution body."""
    lines = [
        f"Session: {response.session_id}",
        f"Status:  {response.status.value}",
        f"Message: {response.message}",
    ]
    if response.result:
        lines += ["", extract_solution(response.result) or response.result]
    return lines


async def _debug_async(
    error: str,
    repo: Path,
    context: str,
    language: str,
    file_path: str,
    profile: str | None,
    config_path: Path | None,
):
    """Async implementation of debug."""
    from .config.factory import create_service

    profile_config = load_config(profile, config_path)
    params = DebugParams(
        error=error,
        repo_path=str(repo),
        context=context,
        language=language,
        file_path=file_path,
    )

    async with create_service(profile_config) as service:
        started = await service.start_session(params)
        if started.status.value == "error":
            return started
        typer.echo(f"Started {started.session_id}", err=True)
        try:
            return await service.wait_for_session(started.session_id)
        except asyncio.CancelledError:
            await service.cancel_session(started.session_id)
            raise


@app.command()
def tools(
    repo: Annotated[
        Path,
        typer.Option("--repo", "-r", help="Repository used for placeholder substitution"),
    ] = Path("."),
    profile: ProfileOption = None,
    config_path: ConfigOption = None,
):
    """Show how each registered tool would be launched."""
    from .config.factory import create_tool_registry
    from .tools.registry import ToolConfigurationError

    profile_config = load_config(profile, config_path)
    try:
        registry = create_tool_registry(profile_config)
    except ToolConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    repo_path = str(repo.expanduser().resolve())
    typer.echo(f"Profile: {profile_config.name}\n")
    failed = False
    for name in registry.names:
        typer.echo(f"  {name}")
        try:
            tool = registry.resolve(name, repo_path, profile_config.memory_root)
        except ToolConfigurationError as e:
            typer.echo(f"    Unavailable: {e}")
            failed = True
        else:
            typer.echo(f"    Command: {tool.command} {' '.join(tool.args)}")
            if tool.used_fallback:
                typer.echo("    (fallback launch configuration)")
        typer.echo()

    if failed:
        raise typer.Exit(1)


@app.command()
def profiles(
    config_path: ConfigOption = None,
):
    """List available configuration profiles."""
    import yaml

    from .config.loader import DEFAULT_CONFIG_PATH

    with open(config_path or DEFAULT_CONFIG_PATH) as f:
        data = yaml.safe_load(f)

    typer.echo("Available profiles:\n")
    for name, profile in data.get("profiles", {}).items():
        mother = profile.get("mother", {})
        scenario = profile.get("scenario", {})

        typer.echo(f"  {name}")
        typer.echo(f"    Mother: {mother.get('backend', 'openrouter')} {mother.get('model', '')}")
        typer.echo(f"    Scenario: {scenario.get('backend', 'openrouter')} {scenario.get('model', '')}")
        typer.echo(f"    Tools: {', '.join(profile.get('tools', {}))}")
        typer.echo()


@app.command()
def serve(
    profile: ProfileOption = None,
    config_path: ConfigOption = None,
):
    """Run the MCP server on stdio (start/check/cancel debug sessions)."""
    from .server import run_server

    # stdout carries the MCP protocol
    settings.configure_logging(filename=Path(settings.DEEBO_ROOT) / "logs" / "server.log")
    run_server(load_config(profile, config_path))


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
