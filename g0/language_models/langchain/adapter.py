"""
LangChain adapter implementation.

`LangChainChatModel` wraps a LangChain chat model behind the
`BaseChatModel` interface of the package. The wrapped model is either
given directly, or created from a `LanguageModelSettings` object by the
memoizing model factory.

Tools are offered to the model through `bind_tools`, using the
OpenAI function format that all LangChain integrations accept. When
streaming, the tool calls arrive as `tool_call_chunks` of the
`AIMessageChunk` objects; they are forwarded as `ToolCallFragment`
objects, and the stream ends with a `MessageFragment` holding the
assembled assistant message.

Exceptions raised by the vendor libraries are wrapped in `BackendError`
subclasses. The vendor libraries are not imported here: the exceptions
are classified by name, as the vendors use the same naming for the
same failures (AuthenticationError, APIConnectionError, ...).
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from langchain_core.language_models.chat_models import (
    BaseChatModel as LCBaseChatModel,
)
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from g0.config.config import LanguageModelSettings
from g0.utils.logging import LoggerBase, get_logger
from ..base import BaseChatModel, ModelMetadata
from ..errors import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    BackendResponseError,
    ConfigurationError,
)
from ..messages import Message, ToolCallRequest
from ..streaming import (
    MessageFragment,
    StreamFragment,
    TextFragment,
    ToolCallAccumulator,
    ToolCallFragment,
)
from ..tools import ToolDescriptor
from .models import create_model_from_settings

logger: LoggerBase = get_logger(__name__)

_AUTH_ERRORS = ("Authentication", "PermissionDenied", "Unauthorized")
_CONNECTION_ERRORS = ("Connection", "Connect", "Timeout", "Network")


def wrap_backend_error(error: Exception) -> BackendError:
    """Convert a vendor exception into a BackendError."""
    if isinstance(error, BackendError):
        return error
    name = type(error).__name__
    message = f"{name}: {error}"
    if any(token in name for token in _AUTH_ERRORS):
        return BackendAuthError(message)
    if isinstance(error, (ConnectionError, TimeoutError)) or any(
        token in name for token in _CONNECTION_ERRORS
    ):
        return BackendConnectionError(message)
    return BackendError(message)


def _content_text(content: Any) -> str:
    """The text of a LangChain message content, which is either a
    string or a list of content blocks."""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get('type') == 'text':
            parts.append(str(block.get('text', "")))
    return "".join(parts)


def _call_args(call: ToolCallRequest) -> dict[str, Any]:
    try:
        return call.parse_arguments()
    except ValueError:
        return {}


def convert_messages(messages: list[Message]) -> list[BaseMessage]:
    """Convert messages to LangChain messages."""
    lc_messages: list[BaseMessage] = []
    for msg in messages:
        match msg.role:
            case 'system':
                lc_messages.append(SystemMessage(content=msg.content))
            case 'user':
                lc_messages.append(HumanMessage(content=msg.content))
            case 'assistant':
                lc_messages.append(
                    AIMessage(
                        content=msg.content,
                        tool_calls=[
                            {
                                'name': call.name,
                                'args': _call_args(call),
                                'id': call.id,
                                'type': 'tool_call',
                            }
                            for call in msg.tool_calls
                        ],
                    )
                )
            case 'tool':
                lc_messages.append(
                    ToolMessage(
                        content=msg.content,
                        tool_call_id=msg.tool_call_id or "",
                    )
                )
    return lc_messages


def convert_response(response: BaseMessage) -> Message:
    """Convert a LangChain response to an assistant message."""
    tool_calls: list[ToolCallRequest] = []
    for index, call in enumerate(getattr(response, 'tool_calls', [])):
        tool_calls.append(
            ToolCallRequest(
                id=call.get('id') or f"call_{index + 1}",
                name=call['name'],
                arguments=json.dumps(call.get('args') or {}),
            )
        )
    return Message.assistant(_content_text(response.content), tool_calls)


def chunk_fragments(chunk: BaseMessage) -> list[StreamFragment]:
    """The fragments carried by a streamed message chunk."""
    fragments: list[StreamFragment] = []
    text = _content_text(chunk.content)
    if text:
        fragments.append(TextFragment(text))
    if isinstance(chunk, AIMessageChunk):
        for position, call in enumerate(chunk.tool_call_chunks):
            index = call.get('index')
            fragments.append(
                ToolCallFragment(
                    index=position if index is None else index,
                    id=call.get('id'),
                    name=call.get('name'),
                    arguments_delta=call.get('args'),
                )
            )
    return fragments


class LangChainChatModel(BaseChatModel):
    """Adapter for LangChain chat models.

    Args:
        settings: the settings of the model, used to create the
            LangChain model if `model` is not given
        model: a LangChain chat model
        logger: a logger object
    """

    def __init__(
        self,
        settings: LanguageModelSettings | None = None,
        *,
        model: LCBaseChatModel | None = None,
        logger: LoggerBase = logger,
    ) -> None:
        if settings is None and model is None:
            raise ConfigurationError(
                "LangChainChatModel requires settings or a model"
            )
        self.settings = settings
        self.logger = logger
        if model is None:
            assert settings is not None
            try:
                model = create_model_from_settings(settings)
            except ImportError as e:
                raise ConfigurationError(str(e)) from e
        self.model: LCBaseChatModel = model

    @property
    def metadata(self) -> ModelMetadata:
        if self.settings is not None:
            return ModelMetadata(
                provider=self.settings.get_model_source(),
                model=self.settings.get_model_name(),
                supports_streaming=True,
            )
        return ModelMetadata(
            provider="LangChain",
            model=self.model.get_name(),
            supports_streaming=True,
        )

    def _bind(self, tools: list[ToolDescriptor] | None) -> Any:
        if not tools:
            return self.model
        try:
            return self.model.bind_tools(
                [tool.to_openai_tool() for tool in tools]
            )
        except NotImplementedError:
            self.logger.warning(
                f"{self.model.get_name()} does not support tool "
                "calling, tools not offered"
            )
            return self.model

    def chat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        runnable = self._bind(tools)
        try:
            response = runnable.invoke(convert_messages(messages))
        except Exception as e:
            raise wrap_backend_error(e) from e
        return self._check_response(response)

    async def achat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        runnable = self._bind(tools)
        try:
            response = await runnable.ainvoke(convert_messages(messages))
        except Exception as e:
            raise wrap_backend_error(e) from e
        return self._check_response(response)

    def _check_response(self, response: Any) -> Message:
        if not isinstance(response, BaseMessage):
            raise BackendResponseError(
                f"Unexpected response type: {type(response).__name__}"
            )
        return convert_response(response)

    async def astream(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> AsyncIterator[StreamFragment]:
        runnable = self._bind(tools)
        stream = runnable.astream(convert_messages(messages))
        text: list[str] = []
        calls = ToolCallAccumulator()
        while True:
            try:
                chunk = await anext(stream)
            except StopAsyncIteration:
                break
            except Exception as e:
                raise wrap_backend_error(e) from e
            for fragment in chunk_fragments(chunk):
                match fragment:
                    case TextFragment():
                        text.append(fragment.text)
                    case ToolCallFragment():
                        calls.feed(fragment)
                yield fragment
        yield MessageFragment(
            Message.assistant("".join(text), calls.finalize())
        )
