from __future__ import annotations

import asyncio
import json
import re
from typing import Any

from toolflow.llm.dashscope_client import LanguageModel, default_language_model
from toolflow.tools.base import FunctionTool, ToolResult, to_json_string
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


def parse_json_object(text: str) -> dict[str, Any] | None:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z0-9]*\n?", "", text)
        text = re.sub(r"\n?```$", "", text)
        text = text.strip()
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        snippet = text[start : end + 1]
        try:
            data = json.loads(snippet)
            return data if isinstance(data, dict) else None
        except json.JSONDecodeError:
            return None
    return None


class DataExtractor(FunctionTool):
    """Asks the language model to pull named fields out of an input text.

    ``parameters`` maps each output field to the question that describes it.
    The fields are offered to the model as one callable function; a plain
    JSON answer is accepted too.
    """

    def __init__(
        self,
        parameters: dict[str, str],
        llm: LanguageModel | None = None,
        temperature: float = 0.0,
        name: str = "DataExtractor",
        description: str = "",
    ) -> None:
        super().__init__(name, description or "Extracts structured data fields from the input text.")
        if not parameters:
            raise ValueError("DataExtractor needs at least one field")
        self.fields = dict(parameters)
        self.llm = llm
        self.temperature = temperature

    def with_language_model(self, llm: LanguageModel) -> "DataExtractor":
        self.llm = llm
        return self

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [ParameterDescriptor(name="input", description="Text to extract data from", type=TypeDescriptor.string())],
        )

    def extraction_function(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            "extract_data",
            "Saves the values extracted from the text. Use an empty string when a value is not present.",
            [ParameterDescriptor(name=k, description=v, type=TypeDescriptor.string()) for k, v in self.fields.items()],
        )

    def _messages(self, text: str) -> list[dict[str, str]]:
        fields = "\n".join(f"- {k}: {v}" for k, v in self.fields.items())
        system = (
            "You extract data from documents. Read the text and fill in every field.\n"
            "Reply with the extract_data function, or with a single JSON object keyed by field name.\n"
            f"Fields:\n{fields}"
        )
        return [{"role": "system", "content": system}, {"role": "user", "content": text}]

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        if self.llm is None:
            self.llm = default_language_model()
        text = str(context.get("input") or "")
        response = await asyncio.to_thread(
            self.llm.generate, self._messages(text), self.temperature, [self.extraction_function()]
        )
        if response.function_call is not None:
            data = response.function_call.parsed_arguments()
        else:
            data = parse_json_object(response.response) or {}

        if not data:
            return ToolResult(success=False)
        return ToolResult(success=True, output={k: to_json_string(data.get(k, "")) for k in self.fields})
