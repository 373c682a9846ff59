from __future__ import annotations

import inspect
import json
import types
import typing
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from toolflow.errors import GraphResolutionFailed
from toolflow.tools.base import FunctionTool
from toolflow.tools.plugins import PluginRegistry
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.tools.builder")

BUILTIN_MODULE = "toolflow"


@dataclass(frozen=True)
class LiteralValue:
    value: Any


@dataclass(frozen=True)
class ToolRef:
    definition: "ToolDefinition"


@dataclass(frozen=True)
class ToolRefList:
    definitions: tuple["ToolDefinition", ...]


ParamValue = Union[LiteralValue, ToolRef, ToolRefList]


@dataclass(frozen=True)
class ToolDefinition:
    module: str
    classname: str = ""
    method: str = ""
    parameters: dict[str, ParamValue] = field(default_factory=dict)


def parse_value(value: Any) -> ParamValue:
    if isinstance(value, Mapping):
        definition = parse_definition(value)
        return ToolRef(definition) if definition is not None else LiteralValue(value)
    if isinstance(value, (list, tuple)) and value and all(isinstance(x, Mapping) for x in value):
        definitions = [parse_definition(x) for x in value]
        if all(d is not None for d in definitions):
            return ToolRefList(tuple(definitions))
    return LiteralValue(value)


def parse_definition(document: Mapping[str, Any] | str) -> ToolDefinition | None:
    """Parse a recipe document into a ToolDefinition tree, or None if it is not one."""
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            logger.error("Tool definition is not valid JSON: %s", e)
            return None
    if not isinstance(document, Mapping):
        return None

    module = document.get("module")
    parameters = document.get("parameters") or {}
    if not isinstance(module, str) or not module.strip() or not isinstance(parameters, Mapping):
        return None

    return ToolDefinition(
        module=module.strip(),
        classname=str(document.get("classname") or ""),
        method=str(document.get("method") or ""),
        parameters={str(k): parse_value(v) for k, v in parameters.items()},
    )


class _Unresolved:
    pass


_UNRESOLVED = _Unresolved()


def _type_hints(ctor: Callable[..., Any]) -> dict[str, Any]:
    target = ctor.__init__ if inspect.isclass(ctor) else ctor
    try:
        return typing.get_type_hints(target)
    except Exception:
        return {}


def _tool_kind(annotation: Any) -> str | None:
    """``"tool"`` or ``"tools"`` when the annotation asks for a FunctionTool or a collection of them."""
    if inspect.isclass(annotation):
        return "tool" if issubclass(annotation, FunctionTool) else None
    origin = typing.get_origin(annotation)
    args = [a for a in typing.get_args(annotation) if a is not type(None)]
    if origin is Union or origin is types.UnionType:
        kinds = {_tool_kind(a) for a in args}
        return kinds.pop() if len(kinds) == 1 else None
    if inspect.isclass(origin) and issubclass(origin, Iterable) and len(args) == 1:
        return "tools" if _tool_kind(args[0]) == "tool" else None
    return None


def _accepts(kind: str | None, value: Any) -> bool:
    if kind == "tool":
        return isinstance(value, FunctionTool)
    if kind == "tools":
        return isinstance(value, (list, tuple)) and all(isinstance(v, FunctionTool) for v in value)
    return True


class GraphBuilder:
    """Turns tool definitions into live tool graphs.

    A definition naming a registered tool type is built through the first of
    its constructors whose arguments can all be filled from the definition's
    parameters or from defaults. Any other definition is looked up as a
    plugin function. Resolution failures give ``None`` rather than raising.
    """

    def __init__(self, registry: PluginRegistry) -> None:
        self.registry = registry

    def build(self, document: Mapping[str, Any] | str) -> FunctionTool | None:
        definition = parse_definition(document)
        if definition is None:
            logger.error("%s", GraphResolutionFailed("document is not a tool definition"))
            return None
        return self.resolve(definition)

    def resolve(self, definition: ToolDefinition) -> FunctionTool | None:
        cls = self.registry.tool_type(definition.module, definition.classname)
        if cls is not None:
            tool = self._construct(cls, definition)
        else:
            try:
                tool = self.registry.create(definition.module, definition.classname, definition.method)
            except Exception as e:
                logger.warning("Plugin factory for %s failed: %s", definition.method or definition.classname, e)
                tool = None
            if tool is not None:
                self._apply_naming(tool, definition)

        if tool is None:
            logger.warning(
                "%s",
                GraphResolutionFailed(
                    f"no tool for module={definition.module!r} classname={definition.classname!r} method={definition.method!r}"
                ),
            )
        return tool

    def _construct(self, cls: type[FunctionTool], definition: ToolDefinition) -> FunctionTool | None:
        values = {name: self._resolve_value(value) for name, value in definition.parameters.items()}
        for ctor in cls.constructors():
            kwargs = self._bind(ctor, values)
            if kwargs is None:
                continue
            try:
                return ctor(**kwargs)
            except Exception as e:
                logger.warning("Constructor %s of %s rejected its arguments: %s", getattr(ctor, "__name__", ctor), cls.__name__, e)
        return None

    def _bind(self, ctor: Callable[..., FunctionTool], values: Mapping[str, Any]) -> dict[str, Any] | None:
        hints = _type_hints(ctor)
        kwargs: dict[str, Any] = {}
        for p in inspect.signature(ctor).parameters.values():
            if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            has_default = p.default is not inspect.Parameter.empty
            if p.name in values:
                value = values[p.name]
                if value is not _UNRESOLVED and _accepts(_tool_kind(hints.get(p.name)), value):
                    kwargs[p.name] = value
                    continue
            if not has_default:
                return None
        return kwargs

    def _resolve_value(self, value: ParamValue) -> Any:
        if isinstance(value, ToolRef):
            tool = self.resolve(value.definition)
            return tool if tool is not None else _UNRESOLVED
        if isinstance(value, ToolRefList):
            tools = [self.resolve(d) for d in value.definitions]
            return [t for t in tools if t is not None]
        return value.value

    @staticmethod
    def _apply_naming(tool: FunctionTool, definition: ToolDefinition) -> None:
        name = definition.parameters.get("name")
        description = definition.parameters.get("description")
        if isinstance(name, LiteralValue) and name.value:
            tool.with_name(str(name.value))
        if isinstance(description, LiteralValue) and description.value:
            tool.with_description(str(description.value))


def register_builtins(registry: PluginRegistry) -> PluginRegistry:
    from toolflow.tools.extract import DataExtractor
    from toolflow.tools.http import HttpTool, get_text_content_from_webpage, get_text_from_html
    from toolflow.tools.mapreduce import CombineTool, MapReduceTool
    from toolflow.tools.pipeline import Pipeline
    from toolflow.tools.process import ProcessExecutor
    from toolflow.tools.prompt import PromptTool, QueryTool
    from toolflow.tools.search import SemanticSearch

    for cls in (Pipeline, MapReduceTool, CombineTool, PromptTool, QueryTool, SemanticSearch, DataExtractor, HttpTool, ProcessExecutor):
        registry.register_tool_type(BUILTIN_MODULE, cls)
    registry.register_tool_type(BUILTIN_MODULE, MapReduceTool, classname="MapReduce")
    registry.register_function(BUILTIN_MODULE, get_text_from_html, classname="WebContentExtractor")
    registry.register_function(BUILTIN_MODULE, get_text_content_from_webpage, classname="WebContentExtractor")
    return registry


_default_registry: PluginRegistry | None = None


def default_registry() -> PluginRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = register_builtins(PluginRegistry())
    return _default_registry


def create_tool(document: Mapping[str, Any] | str, registry: PluginRegistry | None = None) -> FunctionTool | None:
    return GraphBuilder(registry or default_registry()).build(document)
