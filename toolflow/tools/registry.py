from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

from toolflow.errors import ERROR_MARKER
from toolflow.tools.base import FunctionTool
from toolflow.tools.builder import GraphBuilder, default_registry
from toolflow.tools.context import ExecutionContext
from toolflow.tools.mapreduce import MapReduceTool
from toolflow.tools.pipeline import Pipeline
from toolflow.tools.plugins import PluginRegistry
from toolflow.tools.types import FunctionDescriptor
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.tools.registry")


def _unknown(name: str) -> str:
    return f"{ERROR_MARKER} Unknown tool: {name}"


class ToolRegistry:
    """Named tools available to callers, plus the context of each tool's last run."""

    def __init__(self, plugins: PluginRegistry | None = None) -> None:
        self.plugins = plugins or default_registry()
        self.builder = GraphBuilder(self.plugins)
        self._tools: dict[str, FunctionTool] = {}
        self._last_context: dict[str, ExecutionContext] = {}

    def add(self, tool: FunctionTool) -> FunctionTool:
        if tool.name in self._tools:
            logger.info("Replacing tool: %s", tool.name)
        self._tools[tool.name] = tool
        return tool

    def get(self, name: str) -> FunctionTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def descriptors(self) -> list[FunctionDescriptor]:
        return [self._tools[n].descriptor for n in self.names()]

    def create_tool(self, recipe: Mapping[str, Any] | str) -> FunctionTool | None:
        tool = self.builder.build(recipe)
        if tool is None:
            return None
        return self.add(tool)

    def create_pipeline(self, name: str, description: str, tool_names: list[str]) -> FunctionTool | None:
        tools = [self._tools.get(n) for n in tool_names]
        missing = [n for n, t in zip(tool_names, tools) if t is None]
        if missing or not tools:
            logger.error("Cannot create pipeline %s, unknown tools: %s", name, missing)
            return None
        return self.add(Pipeline(tools, name=name, description=description))

    def create_map_reduce(self, name: str, description: str, mapper: str, reducer: str | None = None) -> FunctionTool | None:
        mapper_tool = self._tools.get(mapper)
        reducer_tool = self._tools.get(reducer) if reducer else None
        if mapper_tool is None or (reducer and reducer_tool is None):
            logger.error("Cannot create map/reduce %s, unknown mapper or reducer: %s, %s", name, mapper, reducer)
            return None
        return self.add(MapReduceTool(mapper_tool, reducer_tool, name=name, description=description))

    async def execute_async(self, name: str, context: Mapping[str, Any] | str | None = None) -> str:
        tool = self._tools.get(name)
        if tool is None:
            return _unknown(name)
        if isinstance(context, str):
            try:
                context = json.loads(context) if context.strip() else {}
            except json.JSONDecodeError as e:
                return f"{ERROR_MARKER} Invalid context JSON: {e}"
            if not isinstance(context, Mapping):
                return f"{ERROR_MARKER} Context must be a JSON object"

        ctx = ExecutionContext(context or {})
        self._last_context[name] = ctx
        return await tool.execute_async(ctx)

    def execute(self, name: str, context: Mapping[str, Any] | str | None = None) -> str:
        return asyncio.run(self.execute_async(name, context))

    def get_execution_result(self, name: str) -> Any:
        ctx = self._last_context.get(name)
        if ctx is None:
            return _unknown(name) if name not in self._tools else None
        value, _found = ctx.try_get_result(name)
        return value

    def last_context(self, name: str) -> ExecutionContext | None:
        return self._last_context.get(name)
