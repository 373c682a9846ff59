from __future__ import annotations

import logging
import os


def get_logger(name: str = "toolflow") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers and not logging.getLogger("toolflow").handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
        handler.setFormatter(formatter)
        root = logging.getLogger("toolflow")
        root.addHandler(handler)
        root.setLevel(_level_from_env())
    return logger


def _level_from_env() -> int:
    level = os.getenv("TOOLFLOW_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    return getattr(logging, level, logging.INFO)


def truncate(text: str, limit: int = 500) -> str:
    return text if len(text) <= limit else text[:limit]
