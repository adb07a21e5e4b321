"""Test the agent tool loop"""

import asyncio
import unittest

from pydantic import BaseModel

from g0.language_models.agent import Agent, AgentRunResult, AgentState
from g0.language_models.cancellation import CancellationToken
from g0.language_models.errors import (
    AgentBusyError,
    BackendConnectionError,
    BackendError,
    ConfigurationError,
)
from g0.language_models.events import (
    Done,
    Error,
    IterationStarted,
    StreamEvent,
    TextDelta,
    Thinking,
    ToolCallCompleted,
    ToolCallStarted,
)
from g0.language_models.messages import Message
from g0.language_models.scripted import ScriptedChatModel, ScriptedRound
from g0.language_models.tools import ToolRegistry, create_tool
from g0.utils.logging import LoglistLogger


class QueryArgs(BaseModel):
    query: str


class PathArgs(BaseModel):
    file_path: str


def search_docs(query: str) -> str:
    if query == "Node2D":
        return "Node2D: a 2D game object."
    return "nothing found"


def read_file(file_path: str) -> str:
    raise FileNotFoundError(f"No such file: {file_path}")


def make_registry() -> ToolRegistry:
    return ToolRegistry(
        [
            create_tool(search_docs, args_schema=QueryArgs),
            create_tool(read_file, args_schema=PathArgs),
        ],
        logger=LoglistLogger(),
    )


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> list:
        return [e for e in self.events if isinstance(e, kind)]


class TestAgentScenarios(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.logger = LoglistLogger()

    async def test_tool_round_then_answer(self):
        model = ScriptedChatModel(
            [
                ScriptedRound(tool_calls=[("search_docs", {'query': "Node2D"})]),
                ScriptedRound(text="Node2D is the base of 2D nodes."),
            ]
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        recorder = EventRecorder()
        result = await agent.arun(
            [Message.user("What is Node2D?")], on_event=recorder
        )

        self.assertEqual(result.status, AgentState.COMPLETED)
        self.assertEqual(result.iterations, 2)
        self.assertEqual(result.final_text, "Node2D is the base of 2D nodes.")
        self.assertFalse(result.truncated)
        tool_messages = [m for m in result.messages if m.role == 'tool']
        self.assertEqual(len(tool_messages), 1)
        self.assertEqual(tool_messages[0].content, "Node2D: a 2D game object.")

        # the tool result answers the call of the previous assistant message
        assistant = result.messages[-3]
        self.assertEqual(assistant.role, 'assistant')
        self.assertEqual(
            tool_messages[0].tool_call_id, assistant.tool_calls[0].id
        )
        self.assertEqual(result.messages[-1].role, 'assistant')

        done = recorder.of_type(Done)
        self.assertEqual(len(done), 1)
        self.assertEqual(done[0].full_text, result.final_text)
        self.assertIsInstance(recorder.events[-1], Done)
        self.assertEqual(
            [e.index for e in recorder.of_type(IterationStarted)], [1, 2]
        )

    async def test_always_calling_backend_is_bounded(self):
        model = ScriptedChatModel.repeating(
            ScriptedRound(
                text="Searching.",
                tool_calls=[("search_docs", {'query': "x"})],
            )
        )
        agent = Agent(
            model, make_registry(), max_iterations=3, logger=self.logger
        )
        recorder = EventRecorder()
        result = await agent.arun([Message.user("loop")], on_event=recorder)

        self.assertEqual(result.status, AgentState.COMPLETED)
        self.assertTrue(result.truncated)
        self.assertEqual(result.iterations, 3)
        self.assertEqual(model.call_count, 3)
        self.assertEqual(result.final_text, "Searching.")
        self.assertIsNone(result.error)
        self.assertEqual(len(recorder.of_type(Done)), 1)
        self.assertEqual(recorder.of_type(Error), [])
        # every call of the last round was answered
        self.assertEqual(result.messages[-1].role, 'tool')
        self.assertGreater(self.logger.count_logs(level=1), 0)

    async def test_tool_error_is_returned_to_model(self):
        model = ScriptedChatModel(
            [
                ScriptedRound(
                    tool_calls=[("read_file", {'file_path': "missing.txt"})]
                ),
                ScriptedRound(text="The file does not exist."),
            ]
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        recorder = EventRecorder()
        result = await agent.arun([Message.user("read it")], on_event=recorder)

        self.assertEqual(result.status, AgentState.COMPLETED)
        tool_message = [m for m in result.messages if m.role == 'tool'][0]
        self.assertTrue(tool_message.content.startswith("Error"))
        self.assertIn("missing.txt", tool_message.content)
        # the backend saw the error text verbatim on the next round
        second_input = model.calls[1]
        self.assertEqual(second_input[-1].content, tool_message.content)
        completed = recorder.of_type(ToolCallCompleted)
        self.assertTrue(completed[0].is_error)


class TestAgentProperties(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.logger = LoglistLogger()

    async def test_empty_registry_single_iteration(self):
        model = ScriptedChatModel.repeating(
            ScriptedRound(text="hi", tool_calls=[("search_docs", {})])
        )
        agent = Agent(model, ToolRegistry(), max_iterations=10, logger=self.logger)
        result = await agent.arun([Message.user("hello")])
        self.assertEqual(result.status, AgentState.COMPLETED)
        self.assertEqual(result.iterations, 1)
        self.assertEqual(model.tools_offered, [[]])
        self.assertFalse(result.messages[-1].tool_calls)

    async def test_use_tools_false(self):
        model = ScriptedChatModel(["plain answer"])
        agent = Agent(
            model, make_registry(), use_tools=False, logger=self.logger
        )
        result = await agent.arun([Message.user("hello")])
        self.assertEqual(result.final_text, "plain answer")
        self.assertEqual(model.tools_offered, [[]])

    async def test_tools_offered(self):
        model = ScriptedChatModel(["ok"])
        agent = Agent(model, make_registry(), logger=self.logger)
        await agent.arun([Message.user("hello")])
        self.assertEqual(model.tools_offered, [["search_docs", "read_file"]])

    async def test_n_calls_in_order(self):
        calls = [
            ("search_docs", {'query': "Node2D"}),
            ("bogus_tool", {}),
            ("search_docs", {'query': "Sprite2D"}),
        ]
        model = ScriptedChatModel(
            [ScriptedRound(text="Looking up.", tool_calls=calls), "done"]
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        recorder = EventRecorder()
        result = await agent.arun([Message.user("q")], on_event=recorder)

        tool_events = [
            e
            for e in recorder.events
            if isinstance(e, (ToolCallStarted, ToolCallCompleted))
        ]
        self.assertEqual(len(tool_events), 6)
        for i in range(3):
            started, completed = tool_events[2 * i], tool_events[2 * i + 1]
            self.assertIsInstance(started, ToolCallStarted)
            self.assertIsInstance(completed, ToolCallCompleted)
            self.assertEqual(started.call_id, completed.call_id)

        assistant = [m for m in result.messages if m.has_tool_calls][0]
        tool_messages = [m for m in result.messages if m.role == 'tool']
        self.assertEqual(
            [m.tool_call_id for m in tool_messages],
            [c.id for c in assistant.tool_calls],
        )
        self.assertIn("bogus_tool", tool_messages[1].content)
        self.assertTrue(tool_messages[1].content.startswith("Error"))
        self.assertEqual(
            [e.text for e in recorder.of_type(Thinking)], ["Looking up."]
        )

    async def test_parallel_calls_keep_order(self):
        async def slow_first(query: str) -> str:
            await asyncio.sleep(0.05 if query == "a" else 0)
            return f"result {query}"

        registry = ToolRegistry(
            [create_tool(slow_first, name="lookup", args_schema=QueryArgs)]
        )
        model = ScriptedChatModel(
            [
                ScriptedRound(
                    tool_calls=[
                        ("lookup", {'query': "a"}),
                        ("lookup", {'query': "b"}),
                    ]
                ),
                "done",
            ]
        )
        agent = Agent(
            model, registry, parallel_tool_calls=True, logger=self.logger
        )
        result = await agent.arun([Message.user("q")])
        tool_messages = [m for m in result.messages if m.role == 'tool']
        self.assertEqual(
            [m.content for m in tool_messages], ["result a", "result b"]
        )

    async def test_text_streamed_before_completion(self):
        model = ScriptedChatModel(["Hello world, this is G0."], chunk_size=5)
        agent = Agent(model, make_registry(), logger=self.logger)
        recorder = EventRecorder()
        result = await agent.arun([Message.user("hi")], on_event=recorder)
        deltas = recorder.of_type(TextDelta)
        self.assertGreater(len(deltas), 1)
        self.assertEqual("".join(d.text for d in deltas), result.final_text)

    async def test_async_callback(self):
        received: list[StreamEvent] = []

        async def on_event(event: StreamEvent) -> None:
            received.append(event)

        agent = Agent(ScriptedChatModel(["ok"]), logger=self.logger)
        await agent.arun([Message.user("hi")], on_event=on_event)
        self.assertIsInstance(received[-1], Done)

    async def test_system_prompt(self):
        model = ScriptedChatModel(["ok", "ok"])
        agent = Agent(model, system_prompt="Be brief.", logger=self.logger)
        await agent.arun([Message.user("hi")])
        self.assertEqual(model.calls[0][0], Message.system("Be brief."))
        # an existing system message is kept
        await agent.arun([Message.system("Custom."), Message.user("hi")])
        self.assertEqual(model.calls[1][0].content, "Custom.")
        self.assertEqual(
            len([m for m in model.calls[1] if m.role == 'system']), 1
        )

    async def test_input_not_modified(self):
        messages = [Message.user("hi")]
        agent = Agent(ScriptedChatModel(["ok"]), logger=self.logger)
        result = await agent.arun(messages)
        self.assertEqual(len(messages), 1)
        self.assertEqual(len(result.messages), 2)

    async def test_registry_frozen_during_run(self):
        registry = make_registry()
        observed: list[bool] = []

        def on_event(event: StreamEvent) -> None:
            observed.append(registry.frozen)

        agent = Agent(ScriptedChatModel(["ok"]), registry, logger=self.logger)
        await agent.arun([Message.user("hi")], on_event=on_event)
        self.assertTrue(all(observed))
        self.assertFalse(registry.frozen)


class TestAgentFailures(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.logger = LoglistLogger()

    async def test_backend_error(self):
        model = ScriptedChatModel(
            [ScriptedRound(error=BackendConnectionError("unreachable"))]
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        recorder = EventRecorder()
        result = await agent.arun([Message.user("hi")], on_event=recorder)

        self.assertEqual(result.status, AgentState.FAILED)
        self.assertEqual(agent.state, AgentState.FAILED)
        self.assertEqual(result.error, "unreachable")
        self.assertEqual(len(recorder.of_type(Error)), 1)
        self.assertEqual(recorder.of_type(Done), [])
        self.assertGreater(self.logger.count_logs(level=2), 0)

    async def test_unexpected_backend_exception_wrapped(self):
        model = ScriptedChatModel([ScriptedRound(error=KeyError("choices"))])
        agent = Agent(model, logger=self.logger)
        result = await agent.arun([Message.user("hi")])
        self.assertEqual(result.status, AgentState.FAILED)
        assert result.error is not None
        self.assertIn("KeyError", result.error)

    async def test_raise_on_error(self):
        model = ScriptedChatModel([ScriptedRound(error=BackendError("bad"))])
        agent = Agent(model, logger=self.logger)
        with self.assertRaises(BackendError):
            await agent.arun([Message.user("hi")], raise_on_error=True)

    async def test_failure_after_tool_round(self):
        model = ScriptedChatModel(
            [ScriptedRound(tool_calls=[("search_docs", {'query': "a"})])]
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        result = await agent.arun([Message.user("hi")])
        self.assertEqual(result.status, AgentState.FAILED)
        self.assertEqual(result.iterations, 2)
        self.assertEqual(result.messages[-1].role, 'tool')

    async def test_no_model(self):
        agent = Agent(None, logger=self.logger)
        with self.assertRaises(ConfigurationError):
            await agent.arun([Message.user("hi")])

    def test_invalid_max_iterations(self):
        with self.assertRaises(ConfigurationError):
            Agent(ScriptedChatModel([]), max_iterations=0)

    async def test_busy(self):
        model = ScriptedChatModel(["slow answer"], delay=0.05)
        agent = Agent(model, logger=self.logger)
        task = asyncio.create_task(agent.arun([Message.user("one")]))
        await asyncio.sleep(0.01)
        self.assertTrue(agent.is_running)
        with self.assertRaises(AgentBusyError):
            await agent.arun([Message.user("two")])
        result = await task
        self.assertEqual(result.status, AgentState.COMPLETED)
        self.assertFalse(agent.is_running)


class TestAgentCancellation(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.logger = LoglistLogger()

    async def test_cancel_during_streaming(self):
        model = ScriptedChatModel.repeating(
            ScriptedRound(text="a long answer " * 20), delay=0.01
        )
        agent = Agent(model, make_registry(), logger=self.logger)
        token = CancellationToken()
        recorder = EventRecorder()

        def on_event(event: StreamEvent) -> None:
            recorder(event)
            if isinstance(event, TextDelta):
                token.cancel()

        result = await agent.arun(
            [Message.user("hi")], on_event=on_event, cancel_token=token
        )
        self.assertEqual(result.status, AgentState.CANCELLED)
        self.assertEqual(recorder.of_type(Done), [])
        self.assertEqual(recorder.of_type(Error), [])
        self.assertEqual(model.call_count, 1)
        self.assertEqual(agent.state, AgentState.CANCELLED)

    async def test_cancel_during_tool(self):
        tool_started = asyncio.Event()
        tool_finished: list[bool] = []

        async def slow_tool(query: str) -> str:
            tool_started.set()
            await asyncio.sleep(10)
            tool_finished.append(True)
            return "late"

        registry = ToolRegistry(
            [create_tool(slow_tool, name="slow", args_schema=QueryArgs)]
        )
        model = ScriptedChatModel(
            [
                ScriptedRound(
                    tool_calls=[("slow", {'query': "a"}), ("slow", {'query': "b"})]
                ),
                "never",
            ]
        )
        agent = Agent(model, registry, logger=self.logger)
        token = CancellationToken()
        recorder = EventRecorder()
        task = asyncio.create_task(
            agent.arun(
                [Message.user("hi")], on_event=recorder, cancel_token=token
            )
        )
        await asyncio.wait_for(tool_started.wait(), 5)
        token.cancel()
        result = await asyncio.wait_for(task, 5)

        self.assertEqual(result.status, AgentState.CANCELLED)
        self.assertEqual(model.call_count, 1)
        self.assertEqual(tool_finished, [])
        self.assertEqual(len(recorder.of_type(ToolCallStarted)), 1)
        self.assertEqual(recorder.of_type(Done), [])

    async def test_cancelled_before_start(self):
        model = ScriptedChatModel(["never"])
        agent = Agent(model, logger=self.logger)
        token = CancellationToken()
        token.cancel()
        result = await agent.arun([Message.user("hi")], cancel_token=token)
        self.assertEqual(result.status, AgentState.CANCELLED)
        self.assertEqual(model.call_count, 0)
        self.assertEqual(result.iterations, 0)


class TestAgentInterfaces(unittest.IsolatedAsyncioTestCase):

    async def test_astream_events(self):
        model = ScriptedChatModel(
            [
                ScriptedRound(tool_calls=[("search_docs", {'query': "Node2D"})]),
                "answer",
            ]
        )
        agent = Agent(model, make_registry(), logger=LoglistLogger())
        kinds = [
            event.kind
            async for event in agent.astream_events([Message.user("q")])
        ]
        self.assertEqual(kinds[0], 'iteration_started')
        self.assertEqual(kinds[-1], 'done')
        self.assertIn('tool_call_started', kinds)
        assert agent.last_result is not None
        self.assertEqual(agent.last_result.final_text, "answer")

    async def test_astream_events_early_exit_cancels(self):
        model = ScriptedChatModel.repeating(
            ScriptedRound(text="word " * 50), delay=0.01
        )
        agent = Agent(model, logger=LoglistLogger())
        stream = agent.astream_events([Message.user("q")])
        async for event in stream:
            if isinstance(event, TextDelta):
                break
        await stream.aclose()
        assert agent.last_result is not None
        self.assertEqual(agent.last_result.status, AgentState.CANCELLED)
        self.assertFalse(agent.is_running)

    async def test_achat_keeps_history(self):
        model = ScriptedChatModel(["first", "second"])
        agent = Agent(model, system_prompt="sys", logger=LoglistLogger())
        await agent.achat("one")
        result = await agent.achat("two")
        self.assertIsInstance(result, AgentRunResult)
        self.assertEqual(
            [m.role for m in agent.history],
            ['user', 'assistant', 'user', 'assistant'],
        )
        # the system prompt is sent, but not stored in the history
        self.assertEqual(model.calls[1][0].role, 'system')
        self.assertEqual(model.calls[1][1].content, "one")


class TestAgentInvoke(unittest.TestCase):

    def test_invoke(self):
        agent = Agent(ScriptedChatModel(["sync answer"]), logger=LoglistLogger())
        self.assertEqual(agent.invoke("hi"), "sync answer")
        self.assertEqual(agent.get_name(), "Agent")

    def test_invoke_raises_backend_error(self):
        model = ScriptedChatModel([ScriptedRound(error=BackendError("down"))])
        agent = Agent(model, logger=LoglistLogger())
        with self.assertRaises(BackendError):
            agent.invoke("hi")


if __name__ == "__main__":
    unittest.main()
