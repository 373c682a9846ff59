from __future__ import annotations

import asyncio
import os
from typing import Any

from toolflow.errors import CoreExecutionFailed, is_error
from toolflow.tools.base import FunctionTool, ToolResult, is_enumerable, to_json_string
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


class CombineTool(FunctionTool):
    def __init__(self, name: str = "CombineTool", description: str = "", separator: str = "\n") -> None:
        super().__init__(name, description or "Combines a list of texts by joining them with a separator.")
        self.separator = separator

    @staticmethod
    def create() -> "CombineTool":
        return CombineTool()

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [
                ParameterDescriptor(
                    name="input",
                    description="List of texts to combine",
                    type=TypeDescriptor.array_of(TypeDescriptor.string()),
                )
            ],
        )

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        items = context.get("input") or []
        return ToolResult(success=True, output=self.separator.join(to_json_string(x) for x in items))


class MapReduceTool(FunctionTool):
    """Fans a mapper out over parallel arrays, then reduces the outputs.

    Every parameter the mapper declares must hold an array in the context and
    all arrays must have the same length; element ``i`` of each array forms
    the input of mapper call ``i``. Mapper calls run concurrently and the
    combiner receives their outputs in input order.
    """

    def __init__(
        self,
        mapper: FunctionTool,
        reducer: FunctionTool | None = None,
        name: str = "MapReduce",
        description: str = "",
        max_workers: int = 0,
    ) -> None:
        super().__init__(name, description or None)
        self.mapper = mapper
        self.reducer = reducer or CombineTool()
        self.max_workers = max_workers if max_workers > 0 else (os.cpu_count() or 1)

    @staticmethod
    def with_mapper_reducer(mapper: FunctionTool, reducer: FunctionTool | None = None) -> "MapReduceTool":
        return MapReduceTool(mapper, reducer)

    def _get_descriptor(self) -> FunctionDescriptor:
        parameters = [
            ParameterDescriptor(
                name=p.name,
                description=p.description,
                type=TypeDescriptor.array_of(p.type),
                required=p.required,
            )
            for p in self.mapper.descriptor.parameters
        ]
        return FunctionDescriptor(self.name, self.description, parameters)

    def _collect_arrays(self, context: ExecutionContext) -> tuple[dict[str, list[Any]], int]:
        arrays: dict[str, list[Any]] = {}
        for p in self.mapper.descriptor.parameters:
            value = context.get(p.name)
            if value is None and not p.required:
                continue
            if not is_enumerable(value):
                raise CoreExecutionFailed(self.name, f"parameter '{p.name}' must be an array")
            arrays[p.name] = list(value)

        lengths = {name: len(values) for name, values in arrays.items()}
        if len(set(lengths.values())) > 1:
            raise CoreExecutionFailed(self.name, f"array lengths differ: {lengths}")
        return arrays, next(iter(lengths.values()), 0)

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        arrays, count = self._collect_arrays(context)
        shared = {k: v for k, v in context.items() if k not in arrays}
        semaphore = asyncio.Semaphore(self.max_workers)

        async def run_item(i: int) -> str:
            item_context = ExecutionContext(shared)
            for key, values in arrays.items():
                item_context[key] = values[i]
            async with semaphore:
                return await self.mapper.execute_async(item_context)

        outputs = list(await asyncio.gather(*(run_item(i) for i in range(count))))
        context.record_result(self.mapper.name, outputs)

        reducer_params = self.reducer.descriptor.parameters
        if reducer_params:
            context[reducer_params[0].name] = outputs
        output = await self.reducer.execute_async(context)
        return ToolResult(success=not is_error(output), output=output)
