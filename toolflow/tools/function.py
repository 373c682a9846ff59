from __future__ import annotations

import asyncio
import collections.abc as abc
import enum
import inspect
import re
import typing
from typing import Any, Callable, Literal, get_args, get_origin

from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


_SCALARS: dict[Any, TypeDescriptor] = {
    str: TypeDescriptor.string(),
    int: TypeDescriptor.integer(),
    float: TypeDescriptor.number(),
    bool: TypeDescriptor.boolean(),
}


def type_from_annotation(annotation: Any) -> TypeDescriptor:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return TypeDescriptor.string()
    if annotation in _SCALARS:
        return _SCALARS[annotation]
    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        return TypeDescriptor.enum_of(str(m.value) for m in annotation)

    origin = get_origin(annotation)
    args = [a for a in get_args(annotation) if a is not type(None)]
    if origin is Literal:
        return TypeDescriptor.enum_of(str(a) for a in get_args(annotation))
    if origin in (list, tuple, set, frozenset, abc.Sequence, abc.Iterable) or annotation in (list, tuple, set):
        return TypeDescriptor.array_of(type_from_annotation(args[0]) if args else TypeDescriptor.string())
    if origin in (dict, abc.Mapping) or annotation is dict:
        return TypeDescriptor.object()
    if args and len(args) == 1:
        # Optional[X] / X | None
        return type_from_annotation(args[0])
    return TypeDescriptor.string()


# Google style "Args:" entries: "    name (type): text" or "    name: text"
_ARG_LINE = re.compile(r"^\s+(\w+)\s*(?:\([^)]*\))?\s*:\s*(.+)$")


def _param_docs(doc: str) -> dict[str, str]:
    out: dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped in ("Args:", "Arguments:", "Parameters:"):
            in_args = True
            continue
        if in_args:
            if stripped.endswith(":") and not line.startswith((" ", "\t")):
                break
            m = _ARG_LINE.match(line)
            if m:
                out[m.group(1)] = m.group(2).strip()
    return out


def describe_callable(func: Callable[..., Any], name: str | None = None, description: str | None = None) -> FunctionDescriptor:
    doc = inspect.getdoc(func) or ""
    docs = _param_docs(doc)
    try:
        hints = typing.get_type_hints(func)
    except Exception:
        hints = {}

    parameters = []
    for p in inspect.signature(func).parameters.values():
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        parameters.append(
            ParameterDescriptor(
                name=p.name,
                description=docs.get(p.name, ""),
                type=type_from_annotation(hints.get(p.name, p.annotation)),
                required=p.default is inspect.Parameter.empty,
            )
        )
    summary = doc.split("\n\n", 1)[0].strip() if doc else ""
    return FunctionDescriptor(
        name or getattr(func, "__name__", "function"),
        description or summary or f"Executes a tool: {name or getattr(func, '__name__', 'function')}",
        parameters,
    )


class FunctionToolAdapter(FunctionTool):
    """Exposes a plain Python callable as a tool.

    Parameters come from the callable's signature; blocking callables run in a
    worker thread, coroutine functions are awaited.
    """

    def __init__(self, func: Callable[..., Any], name: str | None = None, description: str | None = None) -> None:
        doc = inspect.getdoc(func) or ""
        super().__init__(
            name or getattr(func, "__name__", None),
            description or doc.split("\n\n", 1)[0].strip() or None,
        )
        self.func = func

    def _get_descriptor(self) -> FunctionDescriptor:
        return describe_callable(self.func, self.name, self.description)

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        kwargs = {p.name: context.get(p.name) for p in self.descriptor.parameters}
        for p in self.descriptor.parameters:
            if not p.required and kwargs[p.name] is None:
                kwargs.pop(p.name)
        if inspect.iscoroutinefunction(self.func):
            output = await self.func(**kwargs)
        else:
            output = await asyncio.to_thread(self.func, **kwargs)
        return ToolResult(success=True, output=output)
