from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
import tempfile

from toolflow.errors import ERROR_MARKER, is_error
from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.tools.process")


class ProcessExecutor(FunctionTool):
    """Runs a configured executable and returns its standard output."""

    def __init__(self, exepath: str, workingdirectory: str = "", name: str = "ProcessExecutor", description: str = "") -> None:
        super().__init__(
            name,
            description
            or "Executes a configured process with the given arguments, waits until it completes and returns its standard output as text.",
        )
        self.executable_path = exepath
        self.working_directory = workingdirectory or tempfile.gettempdir()

    @staticmethod
    def create(exe_path: str, working_directory: str = "") -> "ProcessExecutor":
        if not exe_path or not os.path.isfile(exe_path):
            raise ValueError(f"Not a valid executable path: {exe_path}")
        return ProcessExecutor(exe_path, working_directory)

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [
                ParameterDescriptor(
                    name="arguments",
                    description="Full set of arguments to execute the process.",
                    type=TypeDescriptor.string(),
                )
            ],
        )

    def run(self, arguments: str) -> str:
        """Returns standard output, or text starting with ``ERROR:`` on failure."""
        if not os.path.isfile(self.executable_path):
            logger.error("Executable not found: %s", self.executable_path)
            return f"{ERROR_MARKER} executable not found: {self.executable_path}"

        cmd = [self.executable_path, *shlex.split(arguments or "")]
        logger.info("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, cwd=self.working_directory, capture_output=True, text=True)
        except OSError as e:
            logger.exception("Failed to start %s", self.executable_path)
            return f"{ERROR_MARKER} {e}"

        if proc.stderr:
            logger.error("%s", proc.stderr)
            return f"{ERROR_MARKER} {proc.stderr}"
        return proc.stdout

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        output = await asyncio.to_thread(self.run, str(context.get("arguments") or ""))
        return ToolResult(success=not is_error(output), output=output)
