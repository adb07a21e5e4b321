"""
Tools are named capabilities that the language model may ask to be
invoked during a conversation. A tool is described by a
`ToolDescriptor`, consisting of

    - a name, unique within a registry
    - a human-readable description of its purpose, shown to the model
    - a pydantic model class describing its arguments. The JSON schema
        of this class is the parameter schema sent to the model, and
        the class validates the arguments the model provides
    - the function implementing the tool, sync or async, called with
        the validated arguments as keyword arguments and returning a
        text

The tools active in a session are collected in a `ToolRegistry`.

**Example**:

    ```python
    from pydantic import BaseModel, Field
    from g0.language_models.tools import ToolRegistry, create_tool

    class SearchArgs(BaseModel):
        query: str = Field(description="The search query")

    async def search_docs(query: str) -> str:
        ...

    registry = ToolRegistry()
    registry.register(
        create_tool(
            search_docs,
            name="search_docs",
            description="Searches the documentation.",
            args_schema=SearchArgs,
        )
    )
    ```

Registering a tool with a name that is already in the registry replaces
the previous registration (last registered wins). Use
`register(..., replace=False)` to obtain a DuplicateToolError instead.
"""

import asyncio
import inspect
import re
from collections.abc import Callable, Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from g0.utils.logging import LoggerBase, get_logger
from .errors import DuplicateToolError, RegistryFrozenError

logger: LoggerBase = get_logger(__name__)

# vendors accept at most 64 characters from this set in tool names
_TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class NoArguments(BaseModel):
    """Argument schema of tools that take no arguments."""

    model_config = ConfigDict(extra='ignore')


class ToolDescriptor(BaseModel):
    """Groups all properties that define a tool"""

    name: str
    description: str
    args_schema: type[BaseModel] = NoArguments
    function: Callable[..., Any]

    model_config = ConfigDict(
        frozen=True, extra='forbid', arbitrary_types_allowed=True
    )

    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, name: str) -> str:
        if not _TOOL_NAME_PATTERN.match(name):
            raise ValueError(
                f"Invalid tool name '{name}': use at most 64 letters, "
                "digits, underscores or hyphens."
            )
        return name

    @property
    def parameters(self) -> dict[str, Any]:
        """The JSON schema of the arguments."""
        schema = self.args_schema.model_json_schema()
        schema.pop('title', None)
        schema.setdefault('properties', {})
        return schema

    def to_openai_tool(self) -> dict[str, Any]:
        """The function-tool description used by OpenAI-compatible
        APIs (and accepted by LangChain's bind_tools)."""
        return {
            'type': "function",
            'function': {
                'name': self.name,
                'description': self.description,
                'parameters': self.parameters,
            },
        }

    def parse_arguments(self, arguments: str) -> dict[str, Any]:
        """Validate the JSON arguments against the schema.

        Raises:
            pydantic.ValidationError: if the arguments do not match
                the schema
        """
        values = self.args_schema.model_validate_json(
            arguments.strip() or "{}"
        )
        return {
            field: getattr(values, field)
            for field in type(values).model_fields
        }

    async def call(self, kwargs: dict[str, Any]) -> str | None:
        """Call the tool function with validated arguments. Exceptions
        of the function propagate."""
        if inspect.iscoroutinefunction(self.function):
            result = await self.function(**kwargs)
        else:
            result = await asyncio.to_thread(self.function, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        if result is None:
            return None
        return str(result)

    async def invoke(self, arguments: str) -> str | None:
        """Validate the JSON arguments and call the tool function.

        Raises:
            pydantic.ValidationError: if the arguments do not match
                the schema
            Exception: whatever the tool function raises
        """
        return await self.call(self.parse_arguments(arguments))


def create_tool(
    function: Callable[..., Any],
    *,
    name: str | None = None,
    description: str | None = None,
    args_schema: type[BaseModel] = NoArguments,
) -> ToolDescriptor:
    """
    Creates a tool descriptor from a function.

    Args:
        function: the function implementing the tool
        name: the name of the tool (defaults to the function name)
        description: the description shown to the model (defaults to
            the first paragraph of the function docstring)
        args_schema: the pydantic model class of the arguments
    """
    if description is None:
        doc = inspect.getdoc(function) or ""
        description = doc.split("\n\n")[0].replace("\n", " ").strip()
    return ToolDescriptor(
        name=name or function.__name__,
        description=description,
        args_schema=args_schema,
        function=function,
    )


class ToolRegistry:
    """An ordered collection of the tools active in a session. The
    order of registration is kept for presentation purposes only.

    While an agent run is using the registry, the registry is frozen
    and registrations raise RegistryFrozenError.
    """

    def __init__(
        self,
        tools: list[ToolDescriptor] | None = None,
        logger: LoggerBase = logger,
    ) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._frozen: int = 0
        self.logger = logger
        for descriptor in tools or []:
            self.register(descriptor)

    def register(
        self, descriptor: ToolDescriptor, *, replace: bool = True
    ) -> None:
        """Add a tool to the registry.

        Args:
            descriptor: the tool
            replace: if True (the default), a tool registered with
                the same name is replaced; otherwise DuplicateToolError
                is raised
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register '{descriptor.name}' while the "
                "registry is in use"
            )
        if descriptor.name in self._tools:
            if not replace:
                raise DuplicateToolError(
                    f"Tool '{descriptor.name}' is already registered"
                )
            self.logger.warning(
                f"Tool '{descriptor.name}' registered twice, "
                "replacing the previous registration"
            )
            # keep dictionary order consistent with 'last registered'
            del self._tools[descriptor.name]
        self._tools[descriptor.name] = descriptor

    def unregister(self, name: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot remove '{name}' while the registry is in use"
            )
        self._tools.pop(name, None)

    def resolve(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def list(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def describe(self) -> str:
        """Return a formatted description of all tools for prompt
        injection."""
        return "\n".join(
            f"- {tool.name}: {tool.description}"
            for tool in self._tools.values()
        )

    # Freezing is counted, so that concurrent runs sharing the
    # registry each hold it read-only until they end.
    def freeze(self) -> None:
        self._frozen += 1

    def unfreeze(self) -> None:
        if self._frozen > 0:
            self._frozen -= 1

    @property
    def frozen(self) -> bool:
        return self._frozen > 0

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(list(self._tools.values()))
