"""
Agent abstraction that combines a model, a system prompt, and tools.

The agent drives the tool execution loop. Each round (iteration) of a
run sends the conversation and the tool descriptors to the model,
streams the response text to the observer, and inspects the complete
response for tool calls:

    - if the response contains no tool calls, its text is the final
        answer and the run completes
    - otherwise the response is appended to the conversation, every
        tool call is executed by the dispatcher, each result is
        appended as a 'tool' message carrying the id of its call, and
        a new round starts

The number of rounds is bounded by `max_iterations`. When the bound is
reached the run completes with the text of the last round, even if the
model keeps requesting tools (the run result is then marked as
truncated). The tool calls of the last round are executed before the
bound is checked, so the conversation never ends with unanswered calls.

A run ends in one of three states:

    - completed: a Done event is emitted
    - failed: the backend raised an error. A single Error event is
        emitted, and the error is reported in the run result
    - cancelled: the cancellation token fired. No Done and no Error
        event is emitted; text already streamed is not retracted

Example:
    ```python
    agent = Agent(model, registry, max_iterations=10)
    result = await agent.arun(
        [Message.user("What is Node2D?")],
        on_event=print,
    )
    print(result.final_text)
    ```
"""

import asyncio
import inspect
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from g0.utils.logging import LoggerBase, get_logger
from .base import BaseChatModel
from .cancellation import CancellationToken, RunCancelled
from .dispatcher import ToolDispatcher, ToolResult
from .errors import AgentBusyError, BackendError, ConfigurationError
from .events import (
    Done,
    Error,
    EventCallback,
    IterationStarted,
    StreamEvent,
    TextDelta,
    Thinking,
    ToolCallCompleted,
    ToolCallStarted,
)
from .messages import Message, ToolCallRequest
from .streaming import StreamAggregator, StreamFragment
from .tools import ToolDescriptor, ToolRegistry

logger: LoggerBase = get_logger(__name__)


class AgentState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AgentRunResult(BaseModel):
    """The outcome of a run.

    Attributes:
        status: completed, cancelled or failed
        final_text: the text of the final answer (for truncated runs,
            the text of the last round, possibly empty)
        iterations: the number of rounds started
        messages: the conversation at the end of the run, including
            the messages appended by the agent
        error: the error message of failed runs
        truncated: the run was stopped by the iteration bound
    """

    status: AgentState
    final_text: str = ""
    iterations: int = 0
    messages: list[Message]
    error: str | None = None
    truncated: bool = False

    model_config = ConfigDict(frozen=True)


@dataclass
class LoopState:
    """Transient state of a run, owned by the agent."""

    max_iterations: int
    messages: list[Message]
    iteration: int = 0
    accumulated_text: str = ""
    truncated: bool = False
    offered_tools: list[ToolDescriptor] = field(default_factory=list)


async def _next_fragment(
    stream: AsyncIterator[StreamFragment],
) -> StreamFragment | None:
    try:
        return await anext(stream)
    except StopAsyncIteration:
        return None


class Agent:
    """
    An agent wraps a language model with a system prompt and tools.

    Args:
        model: the backend adapter
        tools: the registry of the tools offered to the model
        max_iterations: the maximum number of rounds of a run
        system_prompt: prepended to conversations that do not start
            with a system message
        tool_timeout: timeout of a single tool call, in seconds
        parallel_tool_calls: execute the tool calls of a round
            concurrently. The results are appended in call order
        use_tools: if False, tools are not offered and the model is
            called once per run
        name: a name for the agent
        logger: a logger object
    """

    def __init__(
        self,
        model: BaseChatModel | None,
        tools: ToolRegistry | None = None,
        *,
        max_iterations: int = 50,
        system_prompt: str | None = None,
        tool_timeout: float | None = None,
        parallel_tool_calls: bool = False,
        use_tools: bool = True,
        name: str | None = None,
        logger: LoggerBase = logger,
    ):
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        self.model = model
        self.tools = tools if tools is not None else ToolRegistry()
        self.max_iterations = max_iterations
        self.system_prompt = system_prompt
        self.tool_timeout = tool_timeout
        self.parallel_tool_calls = parallel_tool_calls
        self.use_tools = use_tools
        self.name = name
        self.logger = logger
        self.history: list[Message] = []
        self.last_result: AgentRunResult | None = None
        self._state: AgentState = AgentState.IDLE

    def get_name(self) -> str:
        """Return the name of the agent."""
        return self.name or "Agent"

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == AgentState.RUNNING

    def _prepare_messages(self, messages: list[Message]) -> list[Message]:
        prepared = list(messages)
        if self.system_prompt and not (
            prepared and prepared[0].role == 'system'
        ):
            prepared.insert(0, Message.system(self.system_prompt))
        return prepared

    def _offered_tools(self) -> list[ToolDescriptor]:
        if not self.use_tools:
            return []
        return self.tools.list()

    async def arun(
        self,
        messages: list[Message],
        *,
        on_event: EventCallback | None = None,
        cancel_token: CancellationToken | None = None,
        raise_on_error: bool = False,
    ) -> AgentRunResult:
        """
        Run the tool loop on a conversation.

        The list given as argument is not modified: the conversation
        at the end of the run is in the result.

        Args:
            messages: the conversation
            on_event: a function or coroutine function receiving the
                events of the run
            cancel_token: fire this token to stop the run
            raise_on_error: raise backend errors instead of reporting
                them in the result

        Returns:
            The run result.

        Raises:
            ConfigurationError: if no model is configured
            AgentBusyError: if the agent is already running
            BackendError: if raise_on_error is set and the backend
                fails
        """
        if self.model is None:
            raise ConfigurationError("No language model configured")
        if self.is_running:
            raise AgentBusyError(f"{self.get_name()} is already running")

        token = cancel_token or CancellationToken()

        async def emit(event: StreamEvent) -> None:
            if on_event is None:
                return
            outcome = on_event(event)
            if inspect.isawaitable(outcome):
                await outcome

        state = LoopState(
            max_iterations=self.max_iterations,
            messages=self._prepare_messages(messages),
            offered_tools=self._offered_tools(),
        )
        dispatcher = ToolDispatcher(
            self.tools,
            timeout=self.tool_timeout,
            cancel_token=token,
            logger=self.logger,
        )

        self._state = AgentState.RUNNING
        self.tools.freeze()
        try:
            await self._loop(state, dispatcher, emit, token)
        except RunCancelled:
            self.logger.info(
                f"Run cancelled at iteration {state.iteration}"
            )
            self._state = AgentState.CANCELLED
            result = AgentRunResult(
                status=AgentState.CANCELLED,
                final_text=state.accumulated_text,
                iterations=state.iteration,
                messages=state.messages,
            )
        except BackendError as e:
            self.logger.error(f"Agent processing failed: {e}")
            self._state = AgentState.FAILED
            if raise_on_error:
                raise
            await emit(Error(message=str(e)))
            result = AgentRunResult(
                status=AgentState.FAILED,
                final_text=state.accumulated_text,
                iterations=state.iteration,
                messages=state.messages,
                error=str(e),
            )
        except asyncio.CancelledError:
            # the task running the agent was cancelled
            self._state = AgentState.CANCELLED
            raise
        except BaseException:
            self._state = AgentState.FAILED
            raise
        else:
            self._state = AgentState.COMPLETED
            self.logger.info(
                f"Response complete ({len(state.accumulated_text)} chars, "
                f"{state.iteration} iteration(s))"
            )
            await emit(Done(full_text=state.accumulated_text))
            result = AgentRunResult(
                status=AgentState.COMPLETED,
                final_text=state.accumulated_text,
                iterations=state.iteration,
                messages=state.messages,
                truncated=state.truncated,
            )
        finally:
            self.tools.unfreeze()

        self.last_result = result
        return result

    async def _loop(
        self,
        state: LoopState,
        dispatcher: ToolDispatcher,
        emit: EventCallback,
        token: CancellationToken,
    ) -> None:
        while True:
            token.raise_if_cancelled()
            state.iteration += 1
            self.logger.info(
                f"Iteration {state.iteration} of {state.max_iterations}"
            )
            await emit(
                IterationStarted(
                    index=state.iteration, max=state.max_iterations
                )
            )

            response = await self._stream_round(state, emit, token)
            state.accumulated_text = response.content

            tool_calls = response.tool_calls
            if tool_calls and not state.offered_tools:
                self.logger.warning(
                    "Model requested tools that were not offered, "
                    "ignoring the calls"
                )
                response = Message.assistant(response.content)
                tool_calls = []

            state.messages.append(response)
            if not tool_calls:
                return

            self.logger.info(
                f"Processing {len(tool_calls)} tool call(s), "
                f"iteration {state.iteration}"
            )
            if response.content:
                await emit(Thinking(text=response.content))

            await self._run_tools(
                state, tool_calls, dispatcher, emit, token
            )

            if state.iteration >= state.max_iterations:
                self.logger.warning(
                    f"Maximum number of iterations ({state.max_iterations})"
                    " reached, stopping the tool loop"
                )
                state.truncated = True
                return

    async def _stream_round(
        self,
        state: LoopState,
        emit: EventCallback,
        token: CancellationToken,
    ) -> Message:
        """Stream one backend call, republishing the text as it
        arrives, and return the assembled message."""

        async def on_text(text: str) -> None:
            await emit(TextDelta(text=text))

        assert self.model is not None
        aggregator = StreamAggregator(on_text=on_text)
        stream = self.model.astream(
            list(state.messages), state.offered_tools or None
        )
        try:
            while True:
                try:
                    fragment = await token.guard(_next_fragment(stream))
                except (RunCancelled, BackendError):
                    raise
                except Exception as e:
                    raise BackendError(
                        f"{type(e).__name__}: {e}"
                    ) from e
                if fragment is None:
                    break
                await aggregator.add(fragment)
        finally:
            aclose = getattr(stream, 'aclose', None)
            if aclose is not None:
                await aclose()
        return aggregator.message()

    async def _run_tools(
        self,
        state: LoopState,
        tool_calls: list[ToolCallRequest],
        dispatcher: ToolDispatcher,
        emit: EventCallback,
        token: CancellationToken,
    ) -> None:
        if self.parallel_tool_calls and len(tool_calls) > 1:
            for call in tool_calls:
                await emit(self._started_event(call))
            results = await token.guard(
                dispatcher.execute_all(tool_calls, parallel=True)
            )
            for call, result in zip(tool_calls, results):
                await self._complete_call(state, call, result, emit)
            return

        for call in tool_calls:
            token.raise_if_cancelled()
            await emit(self._started_event(call))
            result = await token.guard(dispatcher.execute(call))
            await self._complete_call(state, call, result, emit)

    @staticmethod
    def _started_event(call: ToolCallRequest) -> ToolCallStarted:
        return ToolCallStarted(
            call_id=call.id, name=call.name, arguments=call.arguments
        )

    async def _complete_call(
        self,
        state: LoopState,
        call: ToolCallRequest,
        result: ToolResult,
        emit: EventCallback,
    ) -> None:
        await emit(
            ToolCallCompleted(
                call_id=call.id,
                name=call.name,
                result=result.text,
                is_error=result.is_error,
            )
        )
        state.messages.append(Message.tool(result.text, call.id))

    async def astream_events(
        self,
        messages: list[Message],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the tool loop and yield its events. The run result is
        available in `last_result` when the iteration is over.

        Leaving the iteration early cancels the run.
        """
        token = cancel_token or CancellationToken()
        queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()

        async def put(event: StreamEvent) -> None:
            await queue.put(event)

        task = asyncio.create_task(
            self.arun(messages, on_event=put, cancel_token=token)
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (event := await queue.get()) is not None:
                yield event
            # propagates configuration errors
            await task
        finally:
            if not task.done():
                token.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def achat(
        self,
        text: str,
        *,
        on_event: EventCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AgentRunResult:
        """
        Stateful interaction: append a user message to the history of
        the agent, run the loop, and keep the resulting conversation
        as the new history.
        """
        result = await self.arun(
            self.history + [Message.user(text)],
            on_event=on_event,
            cancel_token=cancel_token,
        )
        messages = list(result.messages)
        if (
            self.system_prompt
            and messages
            and messages[0].role == 'system'
            and not (self.history and self.history[0].role == 'system')
        ):
            messages = messages[1:]
        self.history = messages
        return result

    def invoke(self, input_text: str) -> str:
        """
        Synchronous invocation of the agent on a single user message.

        Args:
            input_text: the user message

        Returns:
            The agent's response text.

        Raises:
            BackendError: if the backend fails
        """
        result = asyncio.run(
            self.arun([Message.user(input_text)], raise_on_error=True)
        )
        return result.final_text
