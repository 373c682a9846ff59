from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping
from typing import Any

from toolflow.llm.dashscope_client import LanguageModel, default_language_model
from toolflow.tools.base import FunctionTool, ToolResult, is_json_string, to_json_string
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


# {{ $name }} or {{$name.field.0}}
_VARIABLE = re.compile(r"\{\{\s*\$([A-Za-z_]\w*(?:\.\w+)*)\s*\}\}")


def template_variables(template: str) -> list[str]:
    names: list[str] = []
    for m in _VARIABLE.finditer(template):
        root = m.group(1).split(".", 1)[0]
        if root not in names:
            names.append(root)
    return names


def _lookup(value: Any, path: list[str]) -> Any:
    for seg in path:
        if isinstance(value, str) and is_json_string(value):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return ""
        if isinstance(value, Mapping):
            value = value.get(seg, "")
        elif isinstance(value, list) and seg.isdigit() and int(seg) < len(value):
            value = value[int(seg)]
        else:
            value = getattr(value, seg, "")
    return value


def render(template: str, context: Mapping[str, Any]) -> str:
    def _sub(m: re.Match) -> str:
        root, *rest = m.group(1).split(".")
        return to_json_string(_lookup(context.get(root), rest))

    return _VARIABLE.sub(_sub, template)


class PromptTool(FunctionTool):
    """Renders a ``{{$variable}}`` template from the context."""

    def __init__(self, template: str, role: str = "user", name: str = "PromptTool", description: str = "") -> None:
        super().__init__(name, description or "Renders a prompt template with variables from the context.")
        self.template = template
        self.role = role

    @staticmethod
    def with_template(template: str, role: str = "user") -> "PromptTool":
        return PromptTool(template, role)

    def _get_descriptor(self) -> FunctionDescriptor:
        parameters = [
            ParameterDescriptor(name=v, description=f"Value for template variable '{v}'", type=TypeDescriptor.string())
            for v in template_variables(self.template)
        ]
        return FunctionDescriptor(self.name, self.description, parameters)

    def format_message(self, context: Mapping[str, Any]) -> dict[str, str]:
        return {"role": self.role, "content": render(self.template, context)}

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        return ToolResult(success=True, output=render(self.template, context))


class QueryTool(FunctionTool):
    """Renders a prompt and sends it to a language model."""

    def __init__(
        self,
        template: str,
        llm: LanguageModel | None = None,
        temperature: float = 0.7,
        role: str = "user",
        name: str = "QueryTool",
        description: str = "",
    ) -> None:
        super().__init__(name, description or "Asks the language model the rendered prompt and returns its answer.")
        self.prompt = PromptTool(template, role)
        self.llm = llm
        self.temperature = temperature

    @staticmethod
    def with_prompt_template(template: str | PromptTool) -> "QueryTool":
        if isinstance(template, PromptTool):
            return QueryTool(template.template, role=template.role)
        return QueryTool(template)

    def with_language_model(self, llm: LanguageModel) -> "QueryTool":
        self.llm = llm
        return self

    def with_temperature(self, temperature: float) -> "QueryTool":
        self.temperature = temperature
        return self

    def _get_descriptor(self) -> FunctionDescriptor:
        inner = self.prompt.descriptor
        return FunctionDescriptor(self.name, self.description, inner.parameters)

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        if self.llm is None:
            self.llm = default_language_model()
        message = self.prompt.format_message(context)
        response = await asyncio.to_thread(self.llm.generate, [message], self.temperature)
        return ToolResult(success=bool(response.response), output=response.response)
