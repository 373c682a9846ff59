from __future__ import annotations


ERROR_MARKER = "ERROR:"


class ToolflowError(Exception):
    """Base class for toolflow failures."""


class ParameterValidationFailed(ToolflowError):
    """A required input was missing or could not be converted to its declared type."""

    def __init__(self, tool_name: str, parameter: str, reason: str) -> None:
        super().__init__(f"{tool_name}: parameter '{parameter}' {reason}")
        self.tool_name = tool_name
        self.parameter = parameter
        self.reason = reason


class CoreExecutionFailed(ToolflowError):
    """The tool's own logic raised or reported failure."""

    def __init__(self, tool_name: str, detail: str = "") -> None:
        super().__init__(f"{tool_name}: {detail}" if detail else tool_name)
        self.tool_name = tool_name
        self.detail = detail


class GraphResolutionFailed(ToolflowError):
    """No constructor or plugin binding could be satisfied from a tool definition."""


class StoreFormatInvalid(ToolflowError):
    """A vector store artifact could not be read."""


def error_text(tool_name: str) -> str:
    return f"{ERROR_MARKER} Failed to execute Tool: {tool_name}"


def is_error(output: object) -> bool:
    return isinstance(output, str) and output.startswith(ERROR_MARKER)
