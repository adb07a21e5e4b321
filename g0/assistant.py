"""
Assembly of the assistant agent from the configuration.

`create_agent` reads the settings (from config.toml and the
environment, unless given), checks the credentials of the language
model provider, creates the backend adapter, assembles the registry of
the available tools, and applies the agent settings.

Example:
    ```python
    import asyncio
    from g0.assistant import create_agent
    from g0.language_models.messages import Message

    agent = create_agent()
    result = asyncio.run(
        agent.arun([Message.user("How do I move a CharacterBody2D?")])
    )
    print(result.final_text)
    ```
"""

from g0.config.config import Settings, check_credentials
from g0.language_models.agent import Agent
from g0.language_models.base import BaseChatModel
from g0.language_models.tools import ToolRegistry
from g0.tools import build_tool_registry
from g0.tools.docs import DocumentationIndex
from g0.tools.file_discovery import FileDiscovery
from g0.utils.logging import LoggerBase, get_logger

logger: LoggerBase = get_logger(__name__)


def create_backend(
    settings: Settings, logger: LoggerBase = logger
) -> BaseChatModel:
    """Create the LangChain adapter of the configured model.

    Raises:
        ConfigurationError: if the credential of the provider is
            missing, or the vendor package is not installed
    """
    # imported here, as the vendor integrations are heavy
    from g0.language_models.langchain.adapter import LangChainChatModel

    check_credentials(settings.model)
    return LangChainChatModel(settings.model, logger=logger)


def create_agent(
    settings: Settings | None = None,
    *,
    model: BaseChatModel | None = None,
    docs_index: DocumentationIndex | None = None,
    discovery: FileDiscovery | None = None,
    logger: LoggerBase = logger,
) -> Agent:
    """
    Create the assistant agent.

    Args:
        settings: the settings. If None, they are read from
            config.toml and from the environment
        model: a backend adapter, replacing the configured model
        docs_index: the documentation index, replacing the one
            configured in the tool settings
        discovery: the file cache of the project
        logger: a logger object

    Returns:
        The agent.

    Raises:
        ConfigurationError: if no backend can be created from the
            settings
    """
    settings = settings or Settings()
    if model is None:
        model = create_backend(settings, logger=logger)

    agent_settings = settings.agent
    if agent_settings.use_agent:
        registry = build_tool_registry(
            settings.tools,
            docs_index=docs_index,
            discovery=discovery,
            logger=logger,
        )
    else:
        logger.info("Agent mode disabled, no tools offered")
        registry = ToolRegistry(logger=logger)

    return Agent(
        model,
        registry,
        max_iterations=agent_settings.max_iterations,
        system_prompt=agent_settings.system_prompt,
        tool_timeout=agent_settings.tool_timeout,
        parallel_tool_calls=agent_settings.parallel_tool_calls,
        use_tools=agent_settings.use_agent,
        name="G0",
        logger=logger,
    )
