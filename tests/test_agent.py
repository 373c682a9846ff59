"""Tests for the tool-calling agent loop."""

import pytest

from conftest import EchoTool, FakeLanguageModel, function_call
from toolflow.agent.loop import Agent, build_messages
from toolflow.tools.plugins import PluginRegistry
from toolflow.tools.registry import ToolRegistry


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry(PluginRegistry())
    registry.add(EchoTool(name="Upper", prefix="U:"))
    registry.add(EchoTool(name="Lower", prefix="l:"))
    return registry


class TestBuildMessages:
    def test_system_history_and_user(self):
        messages = build_messages("be brief", [{"role": "assistant", "content": "hi"}], "q")
        assert [m["role"] for m in messages] == ["system", "assistant", "user"]
        assert build_messages(None, [], "q") == [{"role": "user", "content": "q"}]


class TestAgent:
    @pytest.mark.asyncio
    async def test_function_call_then_answer(self, registry):
        llm = FakeLanguageModel([function_call("Upper", '{"input": "x"}'), "done"])
        agent = Agent(registry, llm)

        result = await agent.run_async("shout x", system="sys")

        assert result.reply == "done"
        assert [(s.tool, s.arguments, s.output) for s in result.steps] == [("Upper", {"input": "x"}, "U:x")]
        assert registry.get("Upper").calls == 1

        first, second = llm.requests
        assert [f.name for f in first["functions"]] == ["Lower", "Upper"]
        tool_message = second["messages"][-1]
        assert tool_message == {"role": "tool", "name": "Upper", "content": "U:x"}
        assert second["messages"][-2]["tool_calls"][0]["function"]["name"] == "Upper"

    def test_answer_without_tools(self, registry):
        llm = FakeLanguageModel(["plain answer"])
        result = Agent(registry, llm).run("hello")
        assert result.reply == "plain answer"
        assert result.steps == []
        assert len(llm.requests) == 1

    def test_tool_errors_are_fed_back(self, registry):
        llm = FakeLanguageModel([function_call("Missing", "{}"), function_call("Upper", "{}"), "gave up"])
        result = Agent(registry, llm).run("q")
        assert result.reply == "gave up"
        assert result.steps[0].output.startswith("ERROR: Unknown tool")
        assert result.steps[1].output.startswith("ERROR:")

    def test_stops_after_max_steps(self, registry):
        call = function_call("Upper", '{"input": "a"}')
        llm = FakeLanguageModel([call, call, "final"])
        result = Agent(registry, llm, max_steps=2).run("loop forever")

        assert len(result.steps) == 2
        assert result.reply == "final"
        assert len(llm.requests) == 3
        assert llm.requests[-1]["functions"] == []

    def test_no_final_answer_is_an_error(self, registry):
        llm = FakeLanguageModel([function_call("Upper", '{"input": "a"}')])
        result = Agent(registry, llm, max_steps=1).run("q")
        assert result.reply.startswith("ERROR:")

    def test_tool_names_limit_offered_and_callable_tools(self, registry):
        llm = FakeLanguageModel([function_call("Lower", '{"input": "A"}'), "ok"])
        result = Agent(registry, llm, tool_names=["Upper"]).run("q")

        assert [f.name for f in llm.requests[0]["functions"]] == ["Upper"]
        assert result.steps[0].output.startswith("ERROR: Tool not allowed")
        assert registry.get("Lower").calls == 0
