from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from toolflow.errors import ERROR_MARKER
from toolflow.llm.dashscope_client import LanguageModel, default_language_model
from toolflow.tools.registry import ToolRegistry
from toolflow.tools.types import FunctionDescriptor
from toolflow.trace.logger import get_logger, truncate


logger = get_logger("toolflow.agent")


@dataclass(frozen=True)
class AgentStep:
    tool: str
    arguments: dict[str, Any]
    output: str


@dataclass
class AgentResult:
    reply: str
    steps: list[AgentStep] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)


def build_messages(system: str | None, history: Iterable[dict[str, Any]], message: str) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.extend(history)
    messages.append({"role": "user", "content": message})
    return messages


class Agent:
    """Tool-calling conversation over the tools of a registry.

    Every model turn either answers or asks for one registry tool. Tool
    output goes back into the conversation as a ``tool`` message and the
    model is asked again, up to ``max_steps`` tool calls. After that the
    model answers once more without tools.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        llm: LanguageModel | None = None,
        max_steps: int = 5,
        temperature: float = 0.7,
        tool_names: Iterable[str] | None = None,
    ) -> None:
        self.registry = registry
        self.llm = llm or default_language_model()
        self.max_steps = max(1, int(max_steps))
        self.temperature = temperature
        self.tool_names = set(tool_names) if tool_names is not None else None

    def functions(self) -> list[FunctionDescriptor]:
        return [d for d in self.registry.descriptors() if self.tool_names is None or d.name in self.tool_names]

    async def run_async(
        self, message: str, system: str | None = None, history: Iterable[dict[str, Any]] = ()
    ) -> AgentResult:
        messages = build_messages(system, history, message)
        steps: list[AgentStep] = []
        functions = self.functions()

        while len(steps) < self.max_steps:
            response = await asyncio.to_thread(self.llm.generate, messages, self.temperature, functions)
            call = response.function_call
            if call is None:
                return AgentResult(reply=response.response, steps=steps, messages=messages)

            arguments = call.parsed_arguments()
            if self.tool_names is not None and call.name not in self.tool_names:
                output = f"{ERROR_MARKER} Tool not allowed: {call.name}"
            else:
                output = await self.registry.execute_async(call.name, arguments)
            logger.info("Agent step %d: tool=%s output=%s", len(steps) + 1, call.name, truncate(output, 200))

            messages.append(
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(arguments, ensure_ascii=False)},
                        }
                    ],
                }
            )
            messages.append({"role": "tool", "name": call.name, "content": output})
            steps.append(AgentStep(tool=call.name, arguments=arguments, output=output))

        logger.warning("Agent reached max_steps=%d, asking for a final answer", self.max_steps)
        response = await asyncio.to_thread(self.llm.generate, messages, self.temperature, None)
        reply = response.response
        if not reply:
            reply = f"{ERROR_MARKER} No answer after {self.max_steps} tool calls"
        return AgentResult(reply=reply, steps=steps, messages=messages)

    def run(self, message: str, system: str | None = None, history: Iterable[dict[str, Any]] = ()) -> AgentResult:
        return asyncio.run(self.run_async(message, system, history))
