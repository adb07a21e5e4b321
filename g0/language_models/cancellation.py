"""
Cancellation signal shared by all the steps of an agent run.
"""

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar('T')


class RunCancelled(Exception):
    """Raised inside the agent loop when the run's token fires."""


class CancellationToken:
    """A one-shot signal that the caller fires to stop a run.

    The token may be cancelled from any coroutine running in the same
    event loop (for example, a 'stop' button handler), or from another
    thread through `loop.call_soon_threadsafe(token.cancel)`.

    Example:
        ```python
        token = CancellationToken()
        task = asyncio.create_task(agent.arun(messages, cancel_token=token))
        ...
        token.cancel()
        result = await task  # result.status == AgentState.CANCELLED
        ```
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it if the token fires first.

        The abandoned task is cancelled, so that asyncio.CancelledError
        is raised at its current suspension point.

        Raises:
            RunCancelled: if the token fired before the awaitable
                completed
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            # the task running the loop was itself cancelled
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        # let the abandoned work unwind; its outcome is discarded
        await asyncio.gather(work, return_exceptions=True)
        raise RunCancelled()
