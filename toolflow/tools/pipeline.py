from __future__ import annotations

from typing import Iterable

from toolflow.errors import is_error
from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor


class Pipeline(FunctionTool):
    """Runs tools one after another over the same context.

    A child's ``ERROR:`` output is not special-cased: it is recorded like any
    other value and the next tool still runs. Detecting failures is up to a
    downstream tool or the caller.
    """

    def __init__(self, tools: Iterable[FunctionTool], name: str = "Pipeline", description: str = "") -> None:
        super().__init__(name, description or None)
        self.tools = list(tools)
        if not self.tools:
            raise ValueError("Pipeline needs at least one tool")

    @staticmethod
    def with_tools(tools: Iterable[FunctionTool]) -> "Pipeline":
        return Pipeline(tools)

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(self.name, self.description, self.tools[0].descriptor.parameters)

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        output = ""
        for tool in self.tools:
            output = await tool.execute_async(context)
            # failed children record nothing themselves, keep their text visible downstream
            if is_error(output):
                context.record_result(tool.name, output)
        return ToolResult(success=True, output=output)
