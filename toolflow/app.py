from __future__ import annotations

from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from toolflow.agent.loop import Agent
from toolflow.config import load_settings
from toolflow.errors import is_error
from toolflow.llm.dashscope_client import LanguageModel, default_language_model
from toolflow.tools.builder import default_registry
from toolflow.tools.registry import ToolRegistry
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.app")


class ParameterInfo(BaseModel):
    name: str
    description: str = ""
    type: dict[str, Any]
    required: bool = True


class ToolInfo(BaseModel):
    name: str
    description: str
    parameters: list[ParameterInfo] = Field(default_factory=list)


class CreateToolRequest(BaseModel):
    module: str = Field(min_length=1)
    classname: str = ""
    method: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    context: dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(BaseModel):
    tool: str
    output: str
    error: bool = False


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: list[ChatMessage] = Field(default_factory=list)
    system: str | None = None
    tools: list[str] | None = None
    max_steps: int = Field(default=5, ge=1, le=20)


class ChatStep(BaseModel):
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    output: str


class ChatResponse(BaseModel):
    reply: str
    steps: list[ChatStep] = Field(default_factory=list)


def _load_plugins(registry: ToolRegistry) -> None:
    settings = load_settings()
    for path in settings.plugins:
        try:
            registry.plugins.register_file(path, data_dir=settings.data_dir)
        except Exception:
            logger.exception("Failed to load plugin module: %s", path)


def build_registry() -> ToolRegistry:
    registry = ToolRegistry(default_registry())
    _load_plugins(registry)
    return registry


def _tool_info(registry: ToolRegistry, name: str) -> ToolInfo:
    d = registry.get(name).descriptor
    return ToolInfo(
        name=d.name,
        description=d.description,
        parameters=[
            ParameterInfo(name=p.name, description=p.description, type=p.type.to_schema(), required=p.required)
            for p in d.parameters
        ],
    )


app = FastAPI(title="toolflow", version="0.1.0")
registry = build_registry()


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/tools", response_model=list[ToolInfo])
def list_tools() -> list[ToolInfo]:
    return [_tool_info(registry, n) for n in registry.names()]


@app.post("/api/tools", response_model=ToolInfo)
def create_tool(req: CreateToolRequest) -> ToolInfo:
    tool = registry.create_tool(req.model_dump())
    if tool is None:
        raise HTTPException(status_code=400, detail=f"Cannot resolve tool definition for module: {req.module}")
    return _tool_info(registry, tool.name)


@app.post("/api/tools/{name}/execute", response_model=ExecuteResponse)
async def execute_tool(name: str, req: ExecuteRequest) -> ExecuteResponse:
    if registry.get(name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
    output = await registry.execute_async(name, req.context)
    return ExecuteResponse(tool=name, output=output, error=is_error(output))


def language_model() -> LanguageModel:
    return default_language_model()


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest) -> ChatResponse:
    try:
        llm = language_model()
    except RuntimeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    agent = Agent(
        registry, llm, max_steps=req.max_steps, temperature=load_settings().temperature, tool_names=req.tools
    )
    result = await agent.run_async(req.message, req.system, [m.model_dump() for m in req.history])
    return ChatResponse(
        reply=result.reply,
        steps=[ChatStep(tool=s.tool, arguments=s.arguments, output=s.output) for s in result.steps],
    )
