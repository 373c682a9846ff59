from __future__ import annotations

import re
from typing import Any, Iterable

import pytest

from toolflow.llm.dashscope_client import FunctionCall, LLMResponse
from toolflow.rag.embed import register_transformer
from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


VOCAB = ("cat", "dog", "fish", "bird", "car", "train", "plane", "boat")


class FakeEmbedder:
    """Counts vocabulary words, one dimension per word."""

    vector_length = len(VOCAB)

    def __init__(self) -> None:
        self.calls: list[str] = []

    def transform(self, text: str) -> list[float]:
        self.calls.append(text)
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(v)) for v in VOCAB]


register_transformer(FakeEmbedder)


class FakeLanguageModel:
    """Returns scripted responses in order and records every request."""

    def __init__(self, responses: Iterable[LLMResponse | str] = ()) -> None:
        self.responses = [LLMResponse(response=r) if isinstance(r, str) else r for r in responses]
        self.requests: list[dict[str, Any]] = []

    def generate(self, messages, temperature=0.7, functions=None) -> LLMResponse:
        self.requests.append({"messages": list(messages), "temperature": temperature, "functions": list(functions or [])})
        if not self.responses:
            return LLMResponse()
        return self.responses.pop(0)


class EchoTool(FunctionTool):
    """Returns a fixed prefix plus its ``input`` and counts its invocations."""

    def __init__(self, name: str = "Echo", prefix: str = "", parameter: str = "input", fail: bool = False) -> None:
        super().__init__(name, "Echoes its input")
        self.prefix = prefix
        self.parameter = parameter
        self.fail = fail
        self.calls = 0

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name, self.description, [ParameterDescriptor(name=self.parameter, type=TypeDescriptor.string())]
        )

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        self.calls += 1
        if self.fail:
            raise RuntimeError("boom")
        return ToolResult(success=True, output=f"{self.prefix}{context[self.parameter]}")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def llm() -> FakeLanguageModel:
    return FakeLanguageModel()


def function_call(name: str, arguments: str) -> LLMResponse:
    return LLMResponse(function_call=FunctionCall(name=name, arguments=arguments))
