"""Tests for prompt rendering, model queries and data extraction."""

import json

import pytest

from conftest import FakeLanguageModel, function_call
from toolflow.llm.dashscope_client import FunctionCall
from toolflow.tools.context import ExecutionContext
from toolflow.tools.extract import DataExtractor, parse_json_object
from toolflow.tools.prompt import PromptTool, QueryTool, render, template_variables


class TestTemplates:
    def test_variables_are_unique_roots(self):
        assert template_variables("{{$a}} {{ $b.c }} {{$a.d}}") == ["a", "b"]

    def test_render_walks_nested_values(self):
        ctx = {"Input": '{"query": "cats", "tags": ["x", "y"]}', "n": 3}
        text = render("Q={{$Input.query}} T={{$Input.tags.1}} N={{$n}} M={{$missing}}", ctx)
        assert text == "Q=cats T=y N=3 M="


class TestPromptTool:
    def test_descriptor_lists_variables(self):
        tool = PromptTool.with_template("Hello {{$name}}")
        assert tool.descriptor.input_parameters == ["name"]

    def test_renders_into_context(self):
        tool = PromptTool("Hello {{$name}}", name="Greeting")
        ctx = ExecutionContext({"name": "Ada"})
        assert tool.execute(ctx) == "Hello Ada"
        assert ctx["Greeting"] == "Hello Ada"
        assert tool.format_message(ctx) == {"role": "user", "content": "Hello Ada"}


class TestQueryTool:
    @pytest.mark.asyncio
    async def test_sends_rendered_prompt(self):
        llm = FakeLanguageModel(["Paris"])
        tool = QueryTool("Capital of {{$country}}?").with_language_model(llm).with_temperature(0.1)

        output = await tool.execute_async(ExecutionContext({"country": "France"}))

        assert output == "Paris"
        assert llm.requests[0]["messages"] == [{"role": "user", "content": "Capital of France?"}]
        assert llm.requests[0]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_empty_answer_is_an_error(self):
        tool = QueryTool("{{$q}}", llm=FakeLanguageModel([""]))
        assert (await tool.execute_async(ExecutionContext({"q": "x"}))).startswith("ERROR:")

    def test_from_prompt_tool(self):
        tool = QueryTool.with_prompt_template(PromptTool("{{$a}}", role="system"))
        assert tool.prompt.role == "system"
        assert tool.descriptor.input_parameters == ["a"]


class TestParseJsonObject:
    def test_fenced_and_embedded(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
        assert parse_json_object('Sure: {"a": 2} done') == {"a": 2}
        assert parse_json_object("[1, 2]") is None
        assert parse_json_object("nothing") is None


class TestDataExtractor:
    @pytest.mark.asyncio
    async def test_function_call_answer(self):
        llm = FakeLanguageModel([function_call("extract_data", '{"city": "Oslo", "year": 1999}')])
        tool = DataExtractor({"city": "City mentioned", "year": "Year mentioned"}, llm=llm)

        output = await tool.execute_async(ExecutionContext({"input": "Oslo, 1999"}))

        assert json.loads(output) == {"city": "Oslo", "year": "1999"}
        fn = llm.requests[0]["functions"][0]
        assert fn.name == "extract_data"
        assert fn.input_parameters == ["city", "year"]

    @pytest.mark.asyncio
    async def test_plain_json_answer_and_missing_fields(self):
        llm = FakeLanguageModel(['{"city": "Rome"}'])
        tool = DataExtractor({"city": "City", "country": "Country"}).with_language_model(llm)
        output = await tool.execute_async(ExecutionContext({"input": "Rome"}))
        assert json.loads(output) == {"city": "Rome", "country": ""}

    @pytest.mark.asyncio
    async def test_no_data_is_an_error(self):
        tool = DataExtractor({"city": "City"}, llm=FakeLanguageModel(["no idea"]))
        assert (await tool.execute_async(ExecutionContext({"input": "?"}))).startswith("ERROR:")

    def test_needs_fields(self):
        with pytest.raises(ValueError):
            DataExtractor({})


class TestFunctionCall:
    def test_bad_arguments_parse_to_empty(self):
        assert FunctionCall("f", "not json").parsed_arguments() == {}
        assert FunctionCall("f", '{"x": 1}').parsed_arguments() == {"x": 1}
