from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable


SCALAR_TYPES = ("string", "number", "integer", "boolean")


@dataclass(frozen=True)
class TypeDescriptor:
    type: str
    item_type: "TypeDescriptor | None" = None
    enum: tuple[str, ...] = ()

    @staticmethod
    def string() -> "TypeDescriptor":
        return TypeDescriptor("string")

    @staticmethod
    def number() -> "TypeDescriptor":
        return TypeDescriptor("number")

    @staticmethod
    def integer() -> "TypeDescriptor":
        return TypeDescriptor("integer")

    @staticmethod
    def boolean() -> "TypeDescriptor":
        return TypeDescriptor("boolean")

    @staticmethod
    def object() -> "TypeDescriptor":
        return TypeDescriptor("object")

    @staticmethod
    def array_of(item_type: "TypeDescriptor") -> "TypeDescriptor":
        return TypeDescriptor("array", item_type=item_type)

    @staticmethod
    def enum_of(values: Iterable[str]) -> "TypeDescriptor":
        return TypeDescriptor("string", enum=tuple(str(v) for v in values))

    @property
    def kind(self) -> str:
        return "enum" if self.enum else self.type

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == "array":
            schema["items"] = (self.item_type or TypeDescriptor.string()).to_schema()
        return schema


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    description: str = ""
    type: TypeDescriptor = field(default_factory=TypeDescriptor.string)
    required: bool = True


@dataclass(frozen=True)
class FunctionDescriptor:
    name: str
    description: str
    parameters: tuple[ParameterDescriptor, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", tuple(self.parameters))
        seen: set[str] = set()
        for p in self.parameters:
            if p.name in seen:
                raise ValueError(f"Duplicate parameter '{p.name}' in function '{self.name}'")
            seen.add(p.name)

    @property
    def input_parameters(self) -> list[str]:
        return [p.name for p in self.parameters]

    def to_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for p in self.parameters:
            prop = p.type.to_schema()
            if p.description:
                prop["description"] = p.description
            properties[p.name] = prop
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": [p.name for p in self.parameters if p.required],
            },
        }
