from __future__ import annotations

import os
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class TextObject:
    name: str
    text: str
    category: str = "text"

    @staticmethod
    def create(name: str, text: str, category: str = "text") -> "TextObject":
        return TextObject(name=name, text=text, category=category)


def _looks_like_path(source: str) -> bool:
    if not source or len(source) > 1024 or "\n" in source:
        return False
    try:
        return os.path.isfile(source)
    except (OSError, ValueError):
        return False


def extract_text_objects(source: str) -> list[TextObject]:
    """Turn a file path or raw text into text objects ready for splitting."""
    if _looks_like_path(source):
        with open(source, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
        name = os.path.basename(source)
        ext = os.path.splitext(name)[1].lstrip(".").lower() or "text"
        return [TextObject(name=name, text=text, category=ext)]
    return [TextObject(name="context", text=source)]


_WS = re.compile(r"\s")


class TextSplitter:
    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 100) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @staticmethod
    def with_parameters(chunk_size: int, chunk_overlap: int) -> "TextSplitter":
        return TextSplitter(chunk_size, chunk_overlap)

    def split_text(self, text: str) -> list[str]:
        text = text.strip()
        if len(text) <= self.chunk_size:
            return [text] if text else []

        chunks: list[str] = []
        start = 0
        n = len(text)
        while start < n:
            end = min(start + self.chunk_size, n)
            if end < n:
                # prefer to cut on whitespace so words stay whole
                cut = max((m.start() for m in _WS.finditer(text, start + self.chunk_overlap + 1, end)), default=-1)
                if cut > start:
                    end = cut
            chunk = text[start:end].strip()
            if chunk:
                chunks.append(chunk)
            if end >= n:
                break
            next_start = max(end - self.chunk_overlap, start + 1)
            if not text[next_start - 1].isspace():
                ws = _WS.search(text, next_start, end)
                if ws:
                    next_start = ws.end()
            start = next_start
        return chunks

    def split(self, text_object: TextObject) -> list[TextObject]:
        return [
            TextObject(name=text_object.name, text=chunk, category=text_object.category)
            for chunk in self.split_text(text_object.text)
        ]
