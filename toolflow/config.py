from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


_dotenv_path = Path(__file__).parent.parent / ".env"


def load_env() -> None:
    if _dotenv_path.exists():
        load_dotenv(dotenv_path=_dotenv_path, override=True)
    else:
        # Fallback to CWD-based discovery (e.g., when running from another checkout)
        load_dotenv(override=True)


@dataclass(frozen=True)
class Settings:
    api_key: str
    chat_model: str
    embedding_model: str
    temperature: float
    data_dir: str
    plugins: tuple[str, ...]
    max_workers: int
    http_timeout_s: float
    chunk_size: int
    chunk_overlap: int


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def load_settings() -> Settings:
    load_env()
    plugins_raw = os.getenv("TOOLFLOW_PLUGINS", "").strip()
    return Settings(
        api_key=os.getenv("DASHSCOPE_API_KEY", "").strip(),
        chat_model=os.getenv("QWEN_MODEL", "qwen-turbo").strip() or "qwen-turbo",
        embedding_model=os.getenv("DASHSCOPE_EMBEDDING_MODEL", "text-embedding-v1").strip() or "text-embedding-v1",
        temperature=_float_env("TOOLFLOW_TEMPERATURE", 0.7),
        data_dir=os.getenv("TOOLFLOW_DATA_DIR", "data").strip() or "data",
        plugins=tuple(p.strip() for p in plugins_raw.split(",") if p.strip()),
        max_workers=max(1, _int_env("TOOLFLOW_MAX_WORKERS", os.cpu_count() or 1)),
        http_timeout_s=_float_env("TOOLFLOW_HTTP_TIMEOUT_S", 20.0),
        chunk_size=max(1, _int_env("TOOLFLOW_CHUNK_SIZE", 1000)),
        chunk_overlap=max(0, _int_env("TOOLFLOW_CHUNK_OVERLAP", 100)),
    )
