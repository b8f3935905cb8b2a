import asyncio
import json
import unittest
from unittest.mock import AsyncMock, MagicMock

from agent.dispatcher import ToolDispatcher
from agent.errors import AgentError, TransportError
from agent.executor import RestrictedExecutor
from agent.models import ModelResponse, ToolCall, ToolCallFunction, ToolResult
from agent.service import ABORTED_TOOL_CALL, ChatAgent


def tool_call(call_id, name, **arguments):
    return ToolCall(id=call_id, function=ToolCallFunction(name=name, arguments=json.dumps(arguments)))


def answer(text):
    return ModelResponse(content=text)


class FakeGateway:
    """Plays back scripted responses and records every history it was sent."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def complete(self, messages, tools, timeout=None):
        self.calls.append(json.loads(json.dumps(messages)))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_agent(responses, dispatcher=None, **kwargs):
    if dispatcher is None:
        interpreter = MagicMock()
        interpreter.execute = AsyncMock()
        dispatcher = ToolDispatcher(search_client=MagicMock(), proxy_client=MagicMock(),
                                    executor=RestrictedExecutor(timeout=1.0), interpreter=interpreter)
    kwargs.setdefault("max_steps", 10)
    return ChatAgent(gateway=FakeGateway(responses), dispatcher=dispatcher,
                     system_prompt="sys", **kwargs)


class TestChatAgent(unittest.IsolatedAsyncioTestCase):
    async def test_answer_without_tools_is_one_round_trip(self):
        agent = make_agent([answer("hello")])
        result = await agent.run_turn("hi")

        self.assertEqual(result.status, "done")
        self.assertEqual(result.content, "hello")
        self.assertEqual(result.steps, 1)
        self.assertEqual(len(agent.gateway.calls), 1)
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user", "assistant"])

    async def test_finished_conversation_makes_no_calls(self):
        agent = make_agent([answer("hello")])
        await agent.run_turn("hi")
        events = [event async for event in agent.run()]
        self.assertEqual(events, [])
        self.assertEqual(len(agent.gateway.calls), 1)

    async def test_tool_results_paired_in_order(self):
        calls = [
            tool_call("c1", "generate_code", language="sql", description="users table"),
            tool_call("c2", "execute_sandbox_a", code="return 6*7"),
            tool_call("c3", "no_such_tool"),
            tool_call("c4", "execute_sandbox_a", code="raise ValueError('bad')"),
        ]
        agent = make_agent([ModelResponse(content="working", tool_calls=calls), answer("done")])
        result = await agent.run_turn("go")

        self.assertEqual(result.content, "done")
        messages = agent.messages
        self.assertEqual([m["role"] for m in messages],
                         ["system", "user", "assistant", "tool", "tool", "tool", "tool", "assistant"])
        self.assertEqual(messages[2]["content"], "working")
        tool_messages = messages[3:7]
        self.assertEqual([m["tool_call_id"] for m in tool_messages], ["c1", "c2", "c3", "c4"])

        results = [ToolResult.model_validate_json(m["content"]) for m in tool_messages]
        self.assertEqual([r.ok for r in results], [True, True, False, False])
        self.assertEqual(results[1].value["value"], 42)
        self.assertEqual(results[2].error, "unknown tool: no_such_tool")
        self.assertIn("ValueError: bad", results[3].error)

        # the second model call saw every result
        self.assertEqual(len(agent.gateway.calls[1]), 7)

    async def test_assistant_message_precedes_tool_results_in_events(self):
        calls = [tool_call("c1", "execute_sandbox_a", code="log('step')\nreturn 1")]
        agent = make_agent([ModelResponse(tool_calls=calls), answer("ok")])
        agent.add_message("user", "go")
        events = [event async for event in agent.run()]

        self.assertEqual([e["type"] for e in events], ["tool_call", "log", "tool_result", "message", "final"])
        self.assertEqual(events[1]["content"], "step")
        self.assertEqual(events[2]["id"], "c1")
        self.assertIsNone(agent.messages[2]["content"])

    async def test_bad_arguments_do_not_end_turn(self):
        bad = ToolCall(id="c1", function=ToolCallFunction(name="search", arguments="{not json"))
        agent = make_agent([ModelResponse(tool_calls=[bad]), answer("sorry")])
        result = await agent.run_turn("go")

        self.assertEqual(result.status, "done")
        content = json.loads(agent.messages[3]["content"])
        self.assertEqual(content["error_type"], "ArgumentError")

    async def test_transport_error_on_first_call(self):
        agent = make_agent([TransportError("HTTP 500: down")])
        with self.assertRaises(TransportError):
            await agent.run_turn("hi")
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user"])
        self.assertFalse(agent.running)

        # retry after the failure resubmits the same history
        agent.gateway.responses.append(answer("back"))
        events = [event async for event in agent.run()]
        self.assertEqual(events[-1], {"type": "final", "content": "back"})

    async def test_transport_error_after_tools(self):
        calls = [tool_call("c1", "execute_sandbox_a", code="return 1")]
        agent = make_agent([ModelResponse(tool_calls=calls), TransportError("timeout")])
        with self.assertRaises(TransportError):
            await agent.run_turn("go")
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user", "assistant", "tool"])
        self.assertEqual(agent.conversation.pending_tool_calls(), [])

    async def test_step_cap(self):
        looping = [ModelResponse(tool_calls=[tool_call(f"c{i}", "execute_sandbox_a", code="return 0")])
                   for i in range(5)]
        agent = make_agent(looping, max_steps=3)
        result = await agent.run_turn("go")

        self.assertEqual(result.status, "budget_exceeded")
        self.assertEqual(result.steps, 3)
        self.assertEqual(len(agent.gateway.calls), 3)
        self.assertEqual(agent.conversation.pending_tool_calls(), [])

    async def test_deadline(self):
        now = [0.0]

        def clock():
            return now[0]

        class SlowGateway(FakeGateway):
            async def complete(self, messages, tools, timeout=None):
                now[0] += 6.0
                return await super().complete(messages, tools, timeout)

        looping = [ModelResponse(tool_calls=[tool_call(f"c{i}", "execute_sandbox_a", code="return 0")])
                   for i in range(5)]
        agent = ChatAgent(gateway=SlowGateway(looping), dispatcher=make_agent([]).dispatcher,
                          system_prompt="sys", max_steps=10, deadline=10.0, clock=clock)
        result = await agent.run_turn("go")

        self.assertEqual(result.status, "budget_exceeded")
        self.assertEqual(len(agent.gateway.calls), 2)

    async def test_cancel_during_tool_dispatch(self):
        holder = {}

        class CancellingDispatcher:
            enabled = {"search"}

            async def dispatch(self, name, raw_arguments, on_log=None):
                holder["agent"].cancel()
                return ToolResult(ok=True, value="late")

        calls = [tool_call("c1", "search", query="a"), tool_call("c2", "search", query="b")]
        agent = make_agent([ModelResponse(tool_calls=calls), answer("unused")],
                           dispatcher=CancellingDispatcher())
        holder["agent"] = agent
        result = await agent.run_turn("go")

        self.assertEqual(result.status, "aborted")
        self.assertEqual(len(agent.gateway.calls), 1)
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user", "assistant"])

        # next input first closes the dangling calls
        agent.add_message("user", "again")
        roles = [m["role"] for m in agent.messages]
        self.assertEqual(roles, ["system", "user", "assistant", "tool", "tool", "user"])
        self.assertEqual(json.loads(agent.messages[3]["content"])["error"], ABORTED_TOOL_CALL)

    async def test_task_cancellation_leaves_store_consistent(self):
        started = asyncio.Event()

        class HangingGateway(FakeGateway):
            async def complete(self, messages, tools, timeout=None):
                started.set()
                await asyncio.sleep(60)

        agent = ChatAgent(gateway=HangingGateway([]), dispatcher=make_agent([]).dispatcher,
                          system_prompt="sys")
        task = asyncio.create_task(agent.run_turn("hi"))
        await started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertFalse(agent.running)
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user"])

    async def test_submit_holds_the_conversation(self):
        agent = make_agent([answer("hello")])
        agent.submit("hi")
        self.assertTrue(agent.running)
        with self.assertRaises(AgentError):
            agent.submit("again")
        with self.assertRaises(AgentError):
            agent.reset()

        events = [event async for event in agent.run()]
        self.assertEqual(events[-1], {"type": "final", "content": "hello"})
        self.assertFalse(agent.running)
        self.assertEqual([m["role"] for m in agent.messages], ["system", "user", "assistant"])

    async def test_cancel_releases_an_unstarted_turn(self):
        agent = make_agent([])
        agent.submit("hi")
        agent.cancel()
        self.assertFalse(agent.running)

    async def test_reset(self):
        agent = make_agent([answer("hello")])
        await agent.run_turn("hi")
        agent.reset()
        self.assertEqual(agent.messages, [{"role": "system", "content": "sys"}])


if __name__ == '__main__':
    unittest.main()
