"""
Execution of the tool calls requested by the model.

The dispatcher never raises because of a tool: unknown tools, invalid
arguments, exceptions, timeouts and cancellation of a single call are
all converted into an error-flagged `ToolResult`, which the agent loop
hands back to the model like any other result. The only exception
that leaves `execute` is the cancellation of the run itself.
"""

import asyncio

from pydantic import BaseModel, ConfigDict, ValidationError

from g0.utils.logging import LoggerBase, get_logger
from .cancellation import CancellationToken
from .messages import ToolCallRequest
from .tools import ToolRegistry

logger: LoggerBase = get_logger(__name__)

NO_RESULT_TEXT = "Tool executed successfully but returned no result."


class ToolResult(BaseModel):
    """The text returned to the model for a tool call."""

    text: str
    is_error: bool = False

    model_config = ConfigDict(frozen=True)


def _format_validation_error(error: ValidationError) -> str:
    parts: list[str] = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err['loc'])
        if location:
            parts.append(f"{location}: {err['msg']}")
        else:
            parts.append(err['msg'])
    return "; ".join(parts)


class ToolDispatcher:
    """Resolves tool calls against a registry and invokes them in
    isolation.

    Args:
        registry: the tools available to the model
        timeout: timeout for a single call, in seconds (None: no
            timeout)
        cancel_token: the cancellation token of the run. If the token
            has fired, the cancellation of a call propagates instead of
            being converted into a result
        logger: a logger object
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        logger: LoggerBase = logger,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self.cancel_token = cancel_token
        self.logger = logger

    def _run_cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled

    async def execute(self, call: ToolCallRequest) -> ToolResult:
        descriptor = self.registry.resolve(call.name)
        if descriptor is None:
            self.logger.warning(f"Unknown tool requested: {call.name}")
            return ToolResult(
                text=f"Error: Unknown tool '{call.name}'", is_error=True
            )

        try:
            kwargs = descriptor.parse_arguments(call.arguments)
        except ValidationError as e:
            return ToolResult(
                text=f"Error: Invalid arguments for tool '{call.name}': "
                + _format_validation_error(e),
                is_error=True,
            )

        self.logger.info(f"Executing tool: {call.name}")
        deadline = asyncio.timeout(self.timeout)
        try:
            async with deadline:
                result = await descriptor.call(kwargs)
        except TimeoutError as e:
            if not deadline.expired():
                # raised by the tool itself
                return self._failure(call, e)
            self.logger.warning(
                f"Tool '{call.name}' timed out after {self.timeout} seconds"
            )
            return ToolResult(
                text=f"Error: Tool '{call.name}' timed out after "
                f"{self.timeout:g} seconds",
                is_error=True,
            )
        except asyncio.CancelledError:
            if self._run_cancelled():
                raise
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # the task executing the dispatcher is being cancelled
                raise
            self.logger.warning(f"Tool '{call.name}' was cancelled")
            return ToolResult(
                text=f"Error: Tool '{call.name}' was cancelled",
                is_error=True,
            )
        except Exception as e:
            return self._failure(call, e)

        if result is None:
            return ToolResult(text=NO_RESULT_TEXT)
        return ToolResult(text=result)

    def _failure(self, call: ToolCallRequest, error: Exception) -> ToolResult:
        self.logger.error(f"Tool execution failed: {call.name}: {error}")
        return ToolResult(text=f"Error executing tool: {error}", is_error=True)

    async def execute_all(
        self, calls: list[ToolCallRequest], *, parallel: bool = False
    ) -> list[ToolResult]:
        """Execute the calls of a round. The results are returned in
        the order of the calls, also when executed concurrently."""
        if not parallel:
            return [await self.execute(call) for call in calls]
        return list(
            await asyncio.gather(*(self.execute(call) for call in calls))
        )
