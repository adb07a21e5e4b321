"""
Generic data structures for language model interactions.

A conversation is an ordered list of `Message` objects. Messages are
frozen: once a message has been appended to a conversation it is not
modified. Tool calls requested by the model travel in the assistant
message as `ToolCallRequest` objects; the result of each call is
returned to the model in a message with role 'tool' that carries the
id of the originating call.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MessageRole = Literal['system', 'user', 'assistant', 'tool']


class ToolCallRequest(BaseModel):
    """Represents a tool call requested by the model."""

    id: str
    name: str
    arguments: str = Field(
        default="{}",
        description="The arguments of the call as a JSON text",
    )

    model_config = ConfigDict(frozen=True, extra='forbid')

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the JSON arguments. An empty text is read as an empty
        object.

        Raises:
            ValueError: if the text is not valid JSON or not a JSON
                object
        """
        text = self.arguments.strip()
        if not text:
            return {}
        value = json.loads(text)  # json.JSONDecodeError is a ValueError
        if not isinstance(value, dict):
            raise ValueError(
                f"Arguments of tool '{self.name}' must be a JSON object"
            )
        return value  # type: ignore


class Message(BaseModel):
    """Represents a message in a chat conversation."""

    role: MessageRole
    content: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    tool_call_id: str | None = Field(
        default=None,
        description="ID of the tool call this message responds to",
    )

    model_config = ConfigDict(frozen=True, extra='forbid')

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> 'Message':
        return cls(role='system', content=content)

    @classmethod
    def user(cls, content: str) -> 'Message':
        return cls(role='user', content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: list[ToolCallRequest] | None = None,
    ) -> 'Message':
        return cls(
            role='assistant',
            content=content,
            tool_calls=tool_calls or [],
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> 'Message':
        return cls(
            role='tool', content=content, tool_call_id=tool_call_id
        )
