"""
Events published by the agent loop while it runs.

Observers (a chat panel, a logger, a test) receive the events in the
order in which the steps of the run take place:

    IterationStarted -> TextDelta* -> Thinking? ->
        (ToolCallStarted -> ToolCallCompleted)* -> IterationStarted ...
    ... -> Done | Error

A cancelled run emits neither Done nor Error. The events are purely
informational, and do not affect the state of the run.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class IterationStarted(_Event):
    """A new round of the loop starts (index counts from 1)."""

    kind: Literal['iteration_started'] = 'iteration_started'
    index: int
    max: int


class TextDelta(_Event):
    """A piece of text streamed from the model."""

    kind: Literal['text_delta'] = 'text_delta'
    text: str


class Thinking(_Event):
    """The text of a round that also requested tools. This text is
    intermediate reasoning, not the final answer."""

    kind: Literal['thinking'] = 'thinking'
    text: str


class ToolCallStarted(_Event):
    kind: Literal['tool_call_started'] = 'tool_call_started'
    call_id: str
    name: str
    arguments: str


class ToolCallCompleted(_Event):
    kind: Literal['tool_call_completed'] = 'tool_call_completed'
    call_id: str
    name: str
    result: str
    is_error: bool = False


class Error(_Event):
    """The run failed. No Done event follows."""

    kind: Literal['error'] = 'error'
    message: str


class Done(_Event):
    """The run completed with the given final text."""

    kind: Literal['done'] = 'done'
    full_text: str


StreamEvent = Annotated[
    IterationStarted
    | TextDelta
    | Thinking
    | ToolCallStarted
    | ToolCallCompleted
    | Error
    | Done,
    Field(discriminator='kind'),
]

# Observers may be plain functions or coroutine functions
EventCallback = Callable[[StreamEvent], Awaitable[None] | None]
