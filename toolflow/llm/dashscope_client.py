from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from toolflow.tools.types import FunctionDescriptor


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        try:
            data = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}


@dataclass(frozen=True)
class LLMResponse:
    response: str = ""
    function_call: FunctionCall | None = None


class LanguageModel(Protocol):
    def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        functions: Iterable[FunctionDescriptor] | None = None,
    ) -> LLMResponse:
        ...


@dataclass(frozen=True)
class DashScopeChatClient:
    api_key: str
    model: str = "qwen-turbo"

    def _call(self, **kwargs: Any) -> Any:
        try:
            import dashscope
        except Exception as e:  # pragma: no cover
            raise RuntimeError("dashscope is not installed. Run: pip install -e .") from e

        dashscope.api_key = self.api_key
        resp: Any = dashscope.Generation.call(result_format="message", **kwargs)

        if not getattr(resp, "output", None) or not getattr(resp.output, "choices", None):
            raise RuntimeError(f"Unexpected DashScope response: {resp}")
        return resp

    def chat(
        self,
        *,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
    ) -> str:
        resp = self._call(model=model or self.model, messages=messages, temperature=temperature)

        choice = resp.output.choices[0]
        message = getattr(choice, "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise RuntimeError(f"Unexpected DashScope message content: {resp}")

        return content.strip()

    def generate(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        functions: Iterable[FunctionDescriptor] | None = None,
    ) -> LLMResponse:
        functions = list(functions or [])
        if not functions:
            return LLMResponse(response=self.chat(messages=messages, temperature=temperature))

        tools = [{"type": "function", "function": f.to_schema()} for f in functions]
        resp = self._call(model=self.model, messages=messages, temperature=temperature, tools=tools)
        message = resp.output.choices[0].message
        tool_calls = message.get("tool_calls") if isinstance(message, dict) else getattr(message, "tool_calls", None)
        if tool_calls:
            fn = tool_calls[0].get("function", {})
            return LLMResponse(function_call=FunctionCall(name=str(fn.get("name", "")), arguments=fn.get("arguments") or "{}"))

        content = message.get("content") if isinstance(message, dict) else getattr(message, "content", "")
        return LLMResponse(response=str(content or "").strip())


def default_language_model() -> DashScopeChatClient:
    from toolflow.config import load_settings

    settings = load_settings()
    if not settings.api_key:
        raise RuntimeError("Missing DASHSCOPE_API_KEY (set it in env or .env).")
    return DashScopeChatClient(api_key=settings.api_key, model=settings.chat_model)
