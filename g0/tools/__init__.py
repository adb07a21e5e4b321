""" Tools offered to the language model

The tools are grouped by concern:

- documentation of the Godot Engine (module `docs`)
- web search (module `web_search`)
- project files (modules `files` and `file_discovery`)

`build_tool_registry` assembles the registry of the tools that the
configuration makes available.
"""
# pyright: reportUnusedImport=false
# flake8: noqa

from pathlib import Path

from g0.config.config import ToolSettings
from g0.language_models.tools import ToolRegistry
from g0.utils.logging import LoggerBase, get_logger

from .docs import DocumentationIndex, create_docs_tools
from .file_discovery import FileDiscovery
from .files import create_file_tools
from .web_search import create_web_search_tool

logger: LoggerBase = get_logger(__name__)


def build_tool_registry(
    settings: ToolSettings | None = None,
    *,
    docs_index: DocumentationIndex | None = None,
    discovery: FileDiscovery | None = None,
    logger: LoggerBase = logger,
) -> ToolRegistry:
    """
    Create a registry with the tools available in the configuration.

    Args:
        settings: the tool settings
        docs_index: the documentation index. If not given, it is read
            from `settings.docs_index_path`
        discovery: the file cache of the project. If not given, one
            is created for `settings.project_root`
        logger: a logger object

    Returns:
        The registry. The documentation tools are registered if an
        index with entries is available, the web search if a Serper
        key is configured, and the file tools if a project root is
        configured.
    """
    settings = settings or ToolSettings()
    registry = ToolRegistry(logger=logger)

    if docs_index is None and settings.docs_index_path:
        docs_index = DocumentationIndex.load(
            settings.docs_index_path, logger=logger
        )
    if docs_index is not None and docs_index.entries:
        for tool in create_docs_tools(docs_index):
            registry.register(tool)
    else:
        logger.info("Documentation index not available, docs tools disabled")

    api_key = settings.get_serper_api_key()
    if api_key:
        registry.register(create_web_search_tool(api_key, logger=logger))
    else:
        logger.info("No Serper API key configured, web search disabled")

    root = settings.project_root or (
        str(discovery.root) if discovery is not None else None
    )
    if root:
        if not Path(root).is_dir():
            logger.warning(f"Project root not found: {root}")
        else:
            discovery = discovery or FileDiscovery(
                root, ttl=settings.file_cache_ttl, logger=logger
            )
            for tool in create_file_tools(root, discovery, logger=logger):
                registry.register(tool)

    logger.info(f"Tool registry assembled with {len(registry)} tools")
    return registry
