"""Tests for map/reduce fan-out."""

import asyncio
import random

import pytest

from conftest import EchoTool
from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.mapreduce import CombineTool, MapReduceTool
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


class SlowUpper(FunctionTool):
    """Upper-cases ``word`` after a random delay, tracking peak concurrency."""

    def __init__(self) -> None:
        super().__init__("SlowUpper")
        self.active = 0
        self.peak = 0
        self.calls = 0

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [
                ParameterDescriptor(name="word", type=TypeDescriptor.string()),
                ParameterDescriptor(name="suffix", type=TypeDescriptor.string()),
            ],
        )

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(random.uniform(0.0, 0.02))
        self.active -= 1
        return ToolResult(success=True, output=f"{context['word'].upper()}{context['suffix']}")


class TestMapReduce:
    @pytest.mark.asyncio
    async def test_outputs_keep_input_order(self):
        mapper = SlowUpper()
        tool = MapReduceTool(mapper, max_workers=4)
        words = [f"w{i}" for i in range(20)]
        ctx = ExecutionContext({"word": words, "suffix": ["!"] * 20})

        output = await tool.execute_async(ctx)

        assert output == "\n".join(f"W{i}!" for i in range(20))
        assert ctx["SlowUpper"] == [f"W{i}!" for i in range(20)]
        assert mapper.calls == 20
        assert mapper.peak <= 4

    @pytest.mark.asyncio
    async def test_mismatched_lengths_fail_before_any_mapper_call(self):
        mapper = SlowUpper()
        tool = MapReduceTool(mapper)
        ctx = ExecutionContext({"word": ["a", "b"], "suffix": ["!"]})

        output = await tool.execute_async(ctx)

        assert output == "ERROR: Failed to execute Tool: MapReduce"
        assert mapper.calls == 0

    @pytest.mark.asyncio
    async def test_non_array_parameter_fails(self):
        mapper = EchoTool()
        tool = MapReduceTool(mapper)
        ctx = ExecutionContext({"input": "not a list"})
        # a string is coerced by validation only when it holds a JSON array
        assert (await tool.execute_async(ctx)).startswith("ERROR:")
        assert mapper.calls == 0

    @pytest.mark.asyncio
    async def test_json_array_text_is_accepted(self):
        mapper = EchoTool(prefix="-")
        tool = MapReduceTool(mapper, CombineTool(separator="|"))
        ctx = ExecutionContext({"input": '["a", "b"]'})
        assert await tool.execute_async(ctx) == "-a|-b"

    @pytest.mark.asyncio
    async def test_custom_reducer_receives_outputs(self):
        mapper = EchoTool(prefix="<", name="Wrap")
        reducer = EchoTool(name="Reduce", parameter="parts", prefix="joined:")
        tool = MapReduceTool.with_mapper_reducer(mapper, reducer)
        ctx = ExecutionContext({"input": ["a", "b"]})

        output = await tool.execute_async(ctx)

        assert output == 'joined:["<a", "<b"]'
        assert ctx["Wrap"] == ["<a", "<b"]

    @pytest.mark.asyncio
    async def test_empty_arrays_reduce_to_empty_text(self):
        tool = MapReduceTool(EchoTool())
        assert await tool.execute_async(ExecutionContext({"input": []})) == ""

    def test_descriptor_wraps_mapper_parameters_in_arrays(self):
        tool = MapReduceTool(SlowUpper())
        types = {p.name: p.type.to_schema() for p in tool.descriptor.parameters}
        assert types == {
            "word": {"type": "array", "items": {"type": "string"}},
            "suffix": {"type": "array", "items": {"type": "string"}},
        }


class TestCombineTool:
    def test_joins_with_newline(self):
        ctx = ExecutionContext({"input": ["a", 1, {"k": "v"}]})
        assert CombineTool.create().execute(ctx) == 'a\n1\n{"k": "v"}'
