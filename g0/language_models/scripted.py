"""
A backend adapter that replays scripted responses.

The scripted model does not call any vendor. Each call consumes the
next `ScriptedRound` of the script, which specifies the text of the
response, the tool calls it requests, or an exception to raise. The
model records the messages it receives, so that tests may check what
the backend saw at each round.

Example:
    ```python
    from g0.language_models.scripted import ScriptedChatModel, ScriptedRound

    model = ScriptedChatModel([
        ScriptedRound(tool_calls=[("search_docs", {'query': "Node2D"})]),
        ScriptedRound(text="Node2D is the base 2D node."),
    ])
    ```
"""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .base import BaseChatModel, ModelMetadata
from .errors import BackendResponseError
from .messages import Message, ToolCallRequest
from .streaming import (
    MessageFragment,
    StreamFragment,
    TextFragment,
    ToolCallFragment,
)
from .tools import ToolDescriptor

# A tool call may be scripted as (name, arguments) or as a request
ScriptedCall = tuple[str, dict[str, Any] | str] | ToolCallRequest


@dataclass
class ScriptedRound:
    """One response of the scripted model."""

    text: str = ""
    tool_calls: list[ScriptedCall] = field(default_factory=list)
    error: Exception | None = None


class ScriptedChatModel(BaseChatModel):
    """Replays a list of scripted rounds.

    Args:
        rounds: the responses, in order
        repeat_last: when the script is exhausted, repeat the last
            round instead of raising a BackendResponseError
        streaming: stream text in chunks of `chunk_size` characters and
            tool calls as partial fragments. If False, the default
            non-streaming behaviour of the base class is used
        chunk_size: size of the streamed text chunks
        delay: pause before each fragment, in seconds
    """

    def __init__(
        self,
        rounds: Sequence[ScriptedRound | str],
        *,
        repeat_last: bool = False,
        streaming: bool = True,
        chunk_size: int = 4,
        delay: float = 0.0,
        name: str = "scripted",
    ) -> None:
        self.rounds: list[ScriptedRound] = [
            ScriptedRound(text=r) if isinstance(r, str) else r
            for r in rounds
        ]
        self.repeat_last = repeat_last
        self.streaming = streaming
        self.chunk_size = max(1, chunk_size)
        self.delay = delay
        self.name = name
        self.calls: list[list[Message]] = []
        self.tools_offered: list[list[str]] = []
        self._position = 0

    @classmethod
    def repeating(
        cls, step: ScriptedRound, **kwargs: Any
    ) -> 'ScriptedChatModel':
        """A model that gives the same response forever."""
        return cls([step], repeat_last=True, **kwargs)

    @property
    def metadata(self) -> ModelMetadata:
        return ModelMetadata(
            provider="Debug",
            model=self.name,
            supports_streaming=self.streaming,
        )

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _next_round(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None,
    ) -> ScriptedRound:
        self.calls.append(list(messages))
        self.tools_offered.append([t.name for t in tools or []])
        if self._position < len(self.rounds):
            step = self.rounds[self._position]
            self._position += 1
        elif self.repeat_last and self.rounds:
            step = self.rounds[-1]
        else:
            raise BackendResponseError(
                f"Scripted model exhausted after {len(self.rounds)} rounds"
            )
        if step.error is not None:
            raise step.error
        return step

    def _tool_calls(self, step: ScriptedRound) -> list[ToolCallRequest]:
        calls: list[ToolCallRequest] = []
        for index, call in enumerate(step.tool_calls):
            if isinstance(call, ToolCallRequest):
                calls.append(call)
                continue
            name, arguments = call
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            calls.append(
                ToolCallRequest(
                    id=f"call_{self.call_count}_{index + 1}",
                    name=name,
                    arguments=arguments,
                )
            )
        return calls

    def chat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        step = self._next_round(messages, tools)
        return Message.assistant(step.text, self._tool_calls(step))

    async def achat(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> Message:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.chat(messages, tools)

    async def astream(
        self,
        messages: list[Message],
        tools: list[ToolDescriptor] | None = None,
    ) -> AsyncIterator[StreamFragment]:
        if not self.streaming:
            async for fragment in super().astream(messages, tools):
                yield fragment
            return

        step = self._next_round(messages, tools)
        text = step.text
        for start in range(0, len(text), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield TextFragment(text[start : start + self.chunk_size])

        # tool calls are streamed as partial JSON, as most vendors do
        calls = self._tool_calls(step)
        for index, call in enumerate(calls):
            if self.delay:
                await asyncio.sleep(self.delay)
            half = len(call.arguments) // 2
            yield ToolCallFragment(
                index=index,
                id=call.id,
                name=call.name,
                arguments_delta=call.arguments[:half],
            )
            yield ToolCallFragment(
                index=index, arguments_delta=call.arguments[half:]
            )
        yield MessageFragment(Message.assistant(text, calls))
