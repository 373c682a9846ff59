from __future__ import annotations

import asyncio
import dataclasses
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from toolflow.errors import CoreExecutionFailed, ParameterValidationFailed, error_text
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor
from toolflow.trace.logger import get_logger, truncate


logger = get_logger("toolflow.tools")


@dataclass
class ToolResult:
    success: bool = False
    output: Any = None


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    return str(obj)


def to_json_string(obj: Any) -> str:
    if obj is None:
        return ""
    if isinstance(obj, (str, bool, int, float)):
        return str(obj)
    return json.dumps(obj, ensure_ascii=False, default=_json_default)


def is_json_string(text: str) -> bool:
    if not text or not text.strip():
        return False
    text = text.strip()
    return (text.startswith("{") and text.endswith("}")) or (
        text.startswith("[") and text.endswith("]")
    )


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"not an integer: {value!r}")
        return int(value)
    return int(str(value).strip())


def _parse_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    return float(value) if not isinstance(value, str) else float(value.strip())


_ITEM_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "string": to_json_string,
    "number": _parse_float,
    "integer": _parse_int,
    "boolean": _parse_bool,
}


def convert(data: str, type_: TypeDescriptor) -> Any:
    """Convert text to ``type_`` by parsing scalars or JSON-decoding structures.

    Raises ``ValueError`` when the text cannot be converted.
    """
    kind = type_.type
    if kind == "string":
        return data
    if kind in ("number", "integer", "boolean"):
        return _ITEM_CONVERTERS[kind](data)
    if kind in ("array", "object"):
        return json.loads(data)
    raise ValueError(f"unsupported type: {kind}")


def is_enumerable(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))


class FunctionTool(ABC):
    """Base class of every executable unit in a tool graph.

    Subclasses describe their inputs in ``_get_descriptor`` and implement
    ``_execute_core``. ``execute_async`` wraps the core in the common
    envelope: validate inputs, run, record the output under ``name``.
    Failures never escape as exceptions, they come back as ``ERROR:`` text.
    """

    def __init__(self, name: str | None = None, description: str | None = None) -> None:
        self.name = name or type(self).__name__
        self.description = description or f"Executes a tool: {self.name}"
        self._descriptor: FunctionDescriptor | None = None

    @classmethod
    def constructors(cls) -> list[Callable[..., "FunctionTool"]]:
        return [cls]

    def with_name(self, name: str) -> "FunctionTool":
        self.name = name
        self._descriptor = None
        return self

    def with_description(self, description: str) -> "FunctionTool":
        if description:
            self.description = description
            self._descriptor = None
        return self

    @property
    def descriptor(self) -> FunctionDescriptor:
        if self._descriptor is None:
            self._descriptor = self._get_descriptor()
        return self._descriptor

    @abstractmethod
    def _get_descriptor(self) -> FunctionDescriptor:
        ...

    @abstractmethod
    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        ...

    async def execute_async(self, context: ExecutionContext) -> str:
        success = False
        output: Any = None
        try:
            self.validate_parameters(context, self.descriptor.parameters)
            logger.info("Started executing tool: %s", self.name)
            result = await self._execute_core(context)
            success, output = result.success, result.output
            if not success:
                raise CoreExecutionFailed(self.name, "reported failure")
        except ParameterValidationFailed as e:
            logger.error("Parameter validation for tool: %s has failed! %s", self.name, e)
            return error_text(self.name)
        except Exception as e:
            logger.exception("Tool %s failed: %s", self.name, e)
            return error_text(self.name)

        context.record_result(self.name, output)
        text = to_json_string(output)
        logger.info("%s", truncate(text))
        return text

    def execute(self, context: ExecutionContext) -> str:
        return asyncio.run(self.execute_async(context))

    def validate_parameters(
        self, context: ExecutionContext, parameters: Iterable[ParameterDescriptor]
    ) -> None:
        for parameter in parameters:
            data, found = context.try_get(parameter.name)
            if not found:
                if parameter.required:
                    raise ParameterValidationFailed(self.name, parameter.name, "is required")
                context[parameter.name] = None
                continue

            ptype = parameter.type
            try:
                if ptype.type == "string":
                    value = to_json_string(data)
                    if ptype.enum and value not in ptype.enum:
                        raise ValueError(f"{value!r} is not one of {list(ptype.enum)}")
                    context[parameter.name] = value
                elif data is not None and ptype.type == "array" and is_enumerable(data):
                    item_type = ptype.item_type.type if ptype.item_type else ""
                    converter = _ITEM_CONVERTERS.get(item_type)
                    if converter is not None:
                        context[parameter.name] = [converter(x) for x in data]
                elif isinstance(data, str):
                    context[parameter.name] = convert(data, ptype)
            except (ValueError, TypeError) as e:
                raise ParameterValidationFailed(self.name, parameter.name, str(e)) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
