"""
Abstract base class for language model backends.

A backend adapter wraps the API of one language model vendor behind a
uniform interface. The agent loop only depends on this interface:

    - `achat` obtains the complete next message
    - `astream` yields the next message incrementally, as a sequence
        of `StreamFragment` objects terminated by a `MessageFragment`
        with the complete message
    - `metadata` describes the backend

Adapters for vendors that do not support streaming only need to
implement `chat` (or `achat`): the default `astream` replays the full
text of the response as a single fragment, so that callers need not
know which mode is active.

Adapters are responsible for producing one well-formed
`ToolCallRequest` per logical tool call, whatever the vendor wire
format, and for raising a `BackendError` (or subclass) on network,
authentication, or response errors. A model that declines to answer
returns a normal, possibly empty, assistant message.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
import asyncio

from pydantic import BaseModel, ConfigDict

from .messages import Message
from .streaming import MessageFragment, StreamFragment, TextFragment
from .tools import ToolDescriptor


class ModelMetadata(BaseModel):
    """Describes a backend adapter."""

    provider: str
    model: str
    supports_streaming: bool = False

    model_config = ConfigDict(frozen=True)


class BaseChatModel(ABC):
    """Abstract base class for chat models."""

    @property
    def metadata(self) -> ModelMetadata:
        return ModelMetadata(
            provider=self.__class__.__name__, model="unknown"
        )

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        """
        Get the next message from the model synchronously.

        Args:
            messages: The conversation history.
            tools: Optional list of tools the model can call.

        Returns:
            The model's response (which may contain text content or
            tool calls).

        Raises:
            BackendError: if the backend fails
        """
        pass

    async def achat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        """
        Get the next message from the model asynchronously.

        Default implementation delegates to the synchronous chat method
        in a thread pool.
        """
        return await asyncio.to_thread(self.chat, messages, tools)

    async def astream(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> AsyncIterator[StreamFragment]:
        """
        Stream the model's response asynchronously.

        Default implementation yields the full response content at
        once, followed by the complete message.
        """
        response = await self.achat(messages, tools)
        if response.content:
            yield TextFragment(response.content)
        yield MessageFragment(response)

    def get_name(self) -> str:
        meta = self.metadata
        return f"{meta.provider}/{meta.model}"
