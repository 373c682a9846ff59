"""Tests for the FunctionTool envelope: validation, coercion and error text."""

from dataclasses import dataclass

import pytest

from conftest import EchoTool
from toolflow.errors import ParameterValidationFailed, error_text, is_error
from toolflow.tools.base import FunctionTool, ToolResult, convert, is_enumerable, to_json_string
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


class TypedTool(FunctionTool):
    def __init__(self) -> None:
        super().__init__("Typed")
        self.seen: dict = {}

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [
                ParameterDescriptor(name="count", type=TypeDescriptor.integer()),
                ParameterDescriptor(name="ratio", type=TypeDescriptor.number(), required=False),
                ParameterDescriptor(name="flag", type=TypeDescriptor.boolean(), required=False),
                ParameterDescriptor(name="items", type=TypeDescriptor.array_of(TypeDescriptor.integer()), required=False),
                ParameterDescriptor(name="mode", type=TypeDescriptor.enum_of(["fast", "slow"]), required=False),
            ],
        )

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        self.seen = context.to_dict()
        return ToolResult(success=True, output={"count": context["count"]})


@dataclass
class Point:
    x: int
    y: int


class TestToJsonString:
    def test_scalars_and_none(self):
        assert to_json_string(None) == ""
        assert to_json_string("abc") == "abc"
        assert to_json_string(3) == "3"
        assert to_json_string(True) == "True"

    def test_structures_are_json(self):
        assert to_json_string({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert to_json_string(Point(1, 2)) == '{"x": 1, "y": 2}'
        assert to_json_string("中文") == "中文"


class TestConvert:
    def test_scalars(self):
        assert convert("42", TypeDescriptor.integer()) == 42
        assert convert("0.5", TypeDescriptor.number()) == 0.5
        assert convert("TRUE", TypeDescriptor.boolean()) is True
        assert convert("text", TypeDescriptor.string()) == "text"

    def test_structures_decode_json(self):
        assert convert("[1, 2]", TypeDescriptor.array_of(TypeDescriptor.integer())) == [1, 2]
        assert convert('{"a": 1}', TypeDescriptor.object()) == {"a": 1}

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            convert("nope", TypeDescriptor.integer())
        with pytest.raises(ValueError):
            convert("maybe", TypeDescriptor.boolean())

    def test_is_enumerable_excludes_text_and_mappings(self):
        assert is_enumerable([1])
        assert is_enumerable((1,))
        assert not is_enumerable("abc")
        assert not is_enumerable({"a": 1})


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_required_never_runs_core(self):
        tool = EchoTool()
        ctx = ExecutionContext()
        output = await tool.execute_async(ctx)
        assert output == "ERROR: Failed to execute Tool: Echo"
        assert tool.calls == 0
        assert "Echo" not in ctx

    @pytest.mark.asyncio
    async def test_text_values_are_coerced(self):
        tool = TypedTool()
        ctx = ExecutionContext({"count": "7", "ratio": "1.5", "flag": "false", "items": ["1", "2"], "mode": "fast"})
        output = await tool.execute_async(ctx)
        assert output == '{"count": 7}'
        assert tool.seen["count"] == 7
        assert tool.seen["ratio"] == 1.5
        assert tool.seen["flag"] is False
        assert tool.seen["items"] == [1, 2]

    @pytest.mark.asyncio
    async def test_missing_optional_becomes_none(self):
        tool = TypedTool()
        ctx = ExecutionContext({"count": 1})
        await tool.execute_async(ctx)
        assert ctx.try_get("ratio") == (None, True)
        assert ctx.try_get("items") == (None, True)

    @pytest.mark.asyncio
    async def test_bad_value_is_a_validation_failure(self):
        tool = TypedTool()
        assert is_error(await tool.execute_async(ExecutionContext({"count": "seven"})))
        assert is_error(await tool.execute_async(ExecutionContext({"count": 1, "mode": "medium"})))
        assert tool.seen == {}

    def test_validate_parameters_raises_typed_error(self):
        tool = TypedTool()
        with pytest.raises(ParameterValidationFailed) as exc:
            tool.validate_parameters(ExecutionContext(), tool.descriptor.parameters)
        assert exc.value.parameter == "count"

    def test_non_string_values_reach_string_parameters_as_text(self):
        tool = EchoTool(prefix="> ")
        ctx = ExecutionContext({"input": {"k": 1}})
        assert tool.execute(ctx) == '> {"k": 1}'


class TestEnvelope:
    def test_success_records_output_under_name(self):
        tool = EchoTool(name="First", prefix="A:")
        ctx = ExecutionContext({"input": "x"})
        assert tool.execute(ctx) == "A:x"
        assert ctx["First"] == "A:x"

    def test_exceptions_become_error_text(self):
        tool = EchoTool(fail=True)
        ctx = ExecutionContext({"input": "x"})
        assert tool.execute(ctx) == error_text("Echo")
        assert "Echo" not in ctx

    def test_with_name_resets_descriptor(self):
        tool = EchoTool()
        assert tool.descriptor.name == "Echo"
        tool.with_name("Renamed").with_description("Other")
        assert tool.descriptor.name == "Renamed"
        assert tool.descriptor.description == "Other"

    def test_default_description(self):
        class Bare(TypedTool):
            def __init__(self):
                FunctionTool.__init__(self)

        tool = Bare()
        assert tool.name == "Bare"
        assert tool.description == "Executes a tool: Bare"


class TestDescriptors:
    def test_duplicate_parameter_names_rejected(self):
        with pytest.raises(ValueError):
            FunctionDescriptor("f", "", [ParameterDescriptor("a"), ParameterDescriptor("a")])

    def test_function_schema(self):
        schema = TypedTool().descriptor.to_schema()
        assert schema["parameters"]["required"] == ["count"]
        assert schema["parameters"]["properties"]["items"] == {"type": "array", "items": {"type": "integer"}}
        assert schema["parameters"]["properties"]["mode"] == {"type": "string", "enum": ["fast", "slow"]}
