"""
MCP Interface Layer exposing the boutique screens and actions as tools.
"""
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from .services.boutique import BoutiqueService, bootstrap
from .utils.config import config
from .utils.health_check import get_system_info
from .utils.json_utils import to_jsonable
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Forever Vivid')
_service: Optional[BoutiqueService] = None


def get_service() -> BoutiqueService:
    """Bootstrap the boutique service on first use."""
    global _service
    if _service is None:
        _service = bootstrap()
    return _service


def set_service(service: Optional[BoutiqueService]) -> None:
    """Replace the process-wide service (closing is left to the caller)."""
    global _service
    _service = service


@mcp.tool()
def session_status() -> Dict[str, Any]:
    """Report whether authentication has resolved and who is signed in.

    Returns:
        Dict with ready, state, identity and persistence_available
    """
    return to_jsonable(get_service().session_status())


@mcp.tool()
def home_feed() -> Dict[str, Any]:
    """List the user's memories, newest first.

    Returns:
        Dict with loading, error, featured card and memories
    """
    return to_jsonable(get_service().home_feed())


@mcp.tool()
def memory_detail(memory_id: str) -> Dict[str, Any]:
    """Show one memory with its display date and available actions.

    Args:
        memory_id: Id of a memory from the home feed

    Raises:
        Exception: If the memory is not in the current feed
    """
    try:
        return to_jsonable(get_service().memory_detail(memory_id))
    except ValueError as e:
        logger.error(f'Memory detail failed: {e}')
        raise Exception(f'Memory detail failed: {e}')


@mcp.tool()
def memory_action(memory_id: str, action: str) -> Dict[str, Any]:
    """Trigger Edit, Add to Project, Share or Export on a memory.

    Args:
        memory_id: Id of the memory
        action: One of 'Edit', 'Add to Project', 'Share', 'Export'
    """
    try:
        return to_jsonable(get_service().memory_action(memory_id, action))
    except ValueError as e:
        logger.error(f'Memory action failed: {e}')
        raise Exception(f'Memory action failed: {e}')


@mcp.tool()
def projects_list(tab: str = 'memoryBooks') -> Dict[str, Any]:
    """List the user's projects in one category.

    Args:
        tab: 'memoryBooks', 'memoryFilms' or 'printedGifts'
    """
    try:
        return to_jsonable(get_service().projects_list(tab))
    except ValueError as e:
        logger.error(f'Projects list failed: {e}')
        raise Exception(f'Projects list failed: {e}')


@mcp.tool()
def add_memory() -> Dict[str, Any]:
    """Upload a placeholder memory to the user's feed.

    Returns:
        Dict with status, document_id and error
    """
    return to_jsonable(get_service().add_memory())


@mcp.tool()
def start_project(project_type: str = 'book') -> Dict[str, Any]:
    """Start a new book, film or gift project.

    Args:
        project_type: 'book', 'film' or 'gift'

    Returns:
        Dict with the mutation result and the tab to show
    """
    try:
        return to_jsonable(get_service().start_project(project_type))
    except ValueError as e:
        logger.error(f'Start project failed: {e}')
        raise Exception(f'Start project failed: {e}')


@mcp.tool()
def health() -> Dict[str, Any]:
    """Report component health and configuration summary."""
    return to_jsonable(get_system_info(get_service()))


def main() -> None:
    service = get_service()
    try:
        if config.mcp.transport == 'stdio':
            mcp.run()
        else:
            mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
    finally:
        service.close()


if __name__ == '__main__':
    main()
