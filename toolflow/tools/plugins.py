from __future__ import annotations

import importlib.util
import inspect
import os
import types
from typing import Any, Callable

from toolflow.tools.base import FunctionTool
from toolflow.tools.function import FunctionToolAdapter
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.tools.plugins")

ToolFactory = Callable[[], FunctionTool]


def _key(name: str | None) -> str:
    return (name or "").strip().lower()


class PluginRegistry:
    """Maps (module id, type name, method name) to tool factories.

    Modules register their exports at startup; graph building only looks
    names up here and never imports code by itself.
    """

    def __init__(self) -> None:
        self._tool_types: dict[tuple[str, str], type[FunctionTool]] = {}
        self._factories: dict[tuple[str, str, str], ToolFactory] = {}

    def register_tool_type(self, module: str, cls: type[FunctionTool], classname: str | None = None) -> None:
        if not (isinstance(cls, type) and issubclass(cls, FunctionTool)):
            raise TypeError(f"{cls!r} is not a FunctionTool type")
        self._tool_types[(module.strip(), _key(classname or cls.__name__))] = cls

    def register(self, module: str, classname: str, method: str, factory: ToolFactory) -> None:
        self._factories[(module.strip(), _key(classname), _key(method))] = factory

    def register_function(
        self, module: str, func: Callable[..., Any], classname: str = "", name: str | None = None
    ) -> None:
        method = name or func.__name__
        self.register(module, classname, method, lambda: FunctionToolAdapter(func, name=method))

    def register_class(self, module: str, cls: type) -> None:
        for method, _ in inspect.getmembers(cls, predicate=inspect.isfunction):
            if method.startswith("_"):
                continue
            self.register(module, cls.__name__, method, self._method_factory(cls, method))

    @staticmethod
    def _method_factory(cls: type, method: str) -> ToolFactory:
        def factory() -> FunctionTool:
            attr = inspect.getattr_static(cls, method)
            bound = getattr(cls, method) if isinstance(attr, staticmethod) else getattr(cls(), method)
            return FunctionToolAdapter(bound, name=method)

        return factory

    def register_module(self, module: types.ModuleType, module_id: str | None = None) -> None:
        module_id = module_id or module.__name__
        for name, obj in vars(module).items():
            if name.startswith("_") or getattr(obj, "__module__", None) != module.__name__:
                continue
            if inspect.isclass(obj):
                if issubclass(obj, FunctionTool):
                    if not inspect.isabstract(obj):
                        self.register_tool_type(module_id, obj)
                else:
                    self.register_class(module_id, obj)
            elif inspect.isfunction(obj):
                self.register_function(module_id, obj)
        logger.info("Registered plugin module: %s", module_id)

    def register_file(self, path: str, data_dir: str = "data", module_id: str | None = None) -> types.ModuleType:
        """Load a Python file and register its exports under ``module_id`` (default: ``path``).

        A path that does not exist is looked up under ``data_dir``.
        """
        full_path = os.path.abspath(path)
        if not os.path.exists(full_path):
            full_path = os.path.abspath(os.path.join(data_dir, path))
        if not os.path.exists(full_path):
            raise FileNotFoundError(f"Plugin module not found: {path}")

        mod_name = "toolflow_plugin_" + os.path.splitext(os.path.basename(full_path))[0].replace("-", "_")
        spec = importlib.util.spec_from_file_location(mod_name, full_path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load plugin module: {full_path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        self.register_module(module, module_id or path)
        return module

    def tool_type(self, module: str, classname: str) -> type[FunctionTool] | None:
        module = (module or "").strip()
        cls = self._tool_types.get((module, _key(classname)))
        if cls is None and "." in (classname or ""):
            cls = self._tool_types.get((module, _key(classname.rsplit(".", 1)[-1])))
        return cls

    def create(self, module: str, classname: str, method: str) -> FunctionTool | None:
        module = (module or "").strip()
        factory = self._factories.get((module, _key(classname), _key(method)))
        if factory is None and "." in (classname or ""):
            factory = self._factories.get((module, _key(classname.rsplit(".", 1)[-1]), _key(method)))
        return factory() if factory is not None else None

    def tool_types(self) -> list[tuple[str, str]]:
        return sorted(self._tool_types)

    def functions(self) -> list[tuple[str, str, str]]:
        return sorted(self._factories)
