"""
Streaming primitives for backend responses.

Backend adapters yield `StreamFragment` objects: text fragments,
tool-call fragments (possibly partial, to be assembled by index), and
a terminating message fragment with the complete assistant message.
The `StreamAggregator` consumes the fragments of one backend call,
republishes text as soon as it arrives, and assembles the complete
message that the agent loop uses to detect tool calls.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

from .messages import Message, ToolCallRequest


@dataclass
class TextFragment:
    """A piece of prose text."""

    text: str


@dataclass
class ToolCallFragment:
    """A fragment of a tool call. Vendors that stream partial JSON
    send several fragments with the same index; the first usually
    carries the id and the name."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class MessageFragment:
    """The complete assistant message, terminating a stream."""

    message: Message


StreamFragment = TextFragment | ToolCallFragment | MessageFragment


@dataclass
class _PendingCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments."""

    def __init__(self) -> None:
        self._pending: dict[int, _PendingCall] = {}

    def feed(self, fragment: ToolCallFragment) -> None:
        if fragment.index not in self._pending:
            self._pending[fragment.index] = _PendingCall()
        call = self._pending[fragment.index]
        if fragment.id:
            call.id = fragment.id
        if fragment.name:
            call.name = fragment.name
        if fragment.arguments_delta:
            call.arguments += fragment.arguments_delta

    def __len__(self) -> int:
        return len(self._pending)

    def finalize(self) -> list[ToolCallRequest]:
        """Return completed tool calls in index order. Calls without
        a name cannot be dispatched and are dropped; calls without id
        receive a generated one."""
        calls: list[ToolCallRequest] = []
        for position, index in enumerate(sorted(self._pending)):
            pending = self._pending[index]
            if not pending.name:
                continue
            calls.append(
                ToolCallRequest(
                    id=pending.id or f"call_{position + 1}",
                    name=pending.name,
                    arguments=pending.arguments or "{}",
                )
            )
        return calls


TextCallback = Callable[[str], Awaitable[None]]


@dataclass
class StreamAggregator:
    """Consumes the fragments of a single backend call.

    Text is passed to `on_text` as soon as it is received. The buffer
    is private to one call: create a new aggregator for each round.
    """

    on_text: TextCallback | None = None
    buffer: list[str] = field(default_factory=list)
    accumulator: ToolCallAccumulator = field(
        default_factory=ToolCallAccumulator
    )
    final_message: Message | None = None

    @property
    def text(self) -> str:
        return "".join(self.buffer)

    async def add(self, fragment: StreamFragment) -> None:
        match fragment:
            case TextFragment(text=text):
                if not text:
                    return
                self.buffer.append(text)
                if self.on_text is not None:
                    await self.on_text(text)
            case ToolCallFragment():
                self.accumulator.feed(fragment)
            case MessageFragment(message=message):
                self.final_message = message
                # adapters that do not stream text only send the
                # complete message
                if not self.buffer and message.content:
                    self.buffer.append(message.content)
                    if self.on_text is not None:
                        await self.on_text(message.content)

    async def consume(
        self, fragments: AsyncIterator[StreamFragment]
    ) -> Message:
        """Consume a whole stream and return the assembled message."""
        async for fragment in fragments:
            await self.add(fragment)
        return self.message()

    def message(self) -> Message:
        """The assembled assistant message: the streamed prose and the
        tool calls. If the adapter supplied the complete message, its
        tool calls take precedence over the accumulated fragments."""
        if self.final_message is not None and self.final_message.tool_calls:
            tool_calls = list(self.final_message.tool_calls)
        else:
            tool_calls = self.accumulator.finalize()
        return Message.assistant(self.text, tool_calls)
