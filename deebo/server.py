"""MCP server exposing the session-control operations over stdio."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from .config import ProfileConfig, create_service, load_config
from .orchestration.models import DebugParams
from .service import DebugService

logger = logging.getLogger(__name__)

mcp = FastMCP("deebo")

_service: DebugService | None = None


def get_service() -> DebugService:
    global _service
    if _service is None:
        _service = create_service(load_config())
    return _service


@mcp.tool()
async def start_debug_session(
    error: str,
    repo_path: str,
    context: str = "",
    language: str = "typescript",
    file_path: str = "",
) -> str:
    """Start a debugging session for an error in a repository.

    Returns the session envelope as JSON; poll check_debug_status with the
    session_id for progress and the final result.
    """
    params = DebugParams(
        error=error,
        repo_path=repo_path,
        context=context,
        language=language,
        file_path=file_path,
    )
    response = await get_service().start_session(params)
    return response.to_json()


@mcp.tool()
async def check_debug_status(session_id: str) -> str:
    """Check the status of a debugging session."""
    return get_service().check_status(session_id).to_json()


@mcp.tool()
async def cancel_debug_session(session_id: str) -> str:
    """Cancel a debugging session and terminate all of its agents."""
    response = await get_service().cancel_session(session_id)
    return response.to_json()


def run_server(profile: ProfileConfig | None = None) -> None:
    """Serve over stdio until the client disconnects."""
    global _service
    if profile is not None:
        _service = create_service(profile)
    else:
        get_service()
    logger.info("Starting deebo MCP server on stdio")
    mcp.run()
