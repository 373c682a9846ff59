from __future__ import annotations

import asyncio
import os
import re

import requests
from bs4 import BeautifulSoup

from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor


DEFAULT_HEADERS = {"User-Agent": "Mozilla/5.0", "Accept-Language": "en-US,en;q=0.9"}


def _timeout() -> float:
    try:
        return float(os.getenv("TOOLFLOW_HTTP_TIMEOUT_S", "20"))
    except ValueError:
        return 20.0


def fetch(url: str, timeout_s: float | None = None) -> str:
    resp = requests.get(url, headers=DEFAULT_HEADERS, timeout=timeout_s or _timeout())
    resp.raise_for_status()
    return resp.content.decode(resp.encoding or "utf-8", errors="replace")


def _clean_text(text: str) -> str:
    text = re.sub(r"\s+", " ", text).strip()
    return text


def _split_sentences(text: str) -> list[str]:
    parts = re.split(r"(?<=[。！？!?\.])\s+", text)
    out = [p.strip() for p in parts if p.strip()]
    return out


def _tokenize(text: str) -> list[str]:
    text = text.lower()
    tokens = re.findall(r"[a-z0-9][a-z0-9\-_]{1,30}", text)
    tokens.extend(re.findall(r"[\u4e00-\u9fff]{2,12}", text))
    return tokens


def extract_relevant(text: str, query: str, max_snippets: int = 5) -> list[str]:
    if not query:
        return _split_sentences(text)[:max_snippets]
    q_tokens = set(_tokenize(query))
    scored: list[tuple[int, str]] = []
    for sent in _split_sentences(text):
        if not sent:
            continue
        s_tokens = set(_tokenize(sent))
        score = len(q_tokens & s_tokens)
        if score > 0:
            scored.append((score, sent))
    scored.sort(key=lambda x: x[0], reverse=True)
    return [s for _score, s in scored[:max_snippets]] or _split_sentences(text)[:max_snippets]


def get_text_from_html(html: str) -> str:
    """Extracts readable text from an HTML document.

    Args:
        html: HTML source of the page.
    """
    soup = BeautifulSoup(html, "html.parser")
    main = soup.find("main") or soup.body or soup
    for t in main.find_all(["script", "style", "noscript"]):
        t.decompose()
    return _clean_text(main.get_text(" ", strip=True))


def get_text_content_from_webpage(url: str, query: str = "", max_chars: int = 4000) -> str:
    """Fetches a web page and returns its text, or the snippets most relevant to a query.

    Args:
        url: Address of the page, http or https.
        query: Optional query used to pick relevant sentences.
        max_chars: Maximum number of characters to return.
    """
    text = get_text_from_html(fetch(url))
    if query:
        text = " ".join(extract_relevant(text, query=query))
    if len(text) > max_chars:
        text = text[: max_chars - 1] + "…"
    return text


class HttpTool(FunctionTool):
    def __init__(self, name: str = "HttpTool", description: str = "", timeout_s: float = 0.0) -> None:
        super().__init__(name, description or "Sends an HTTP GET request to the given uri and returns the response body.")
        self.timeout_s = timeout_s

    @staticmethod
    def with_client() -> "HttpTool":
        return HttpTool()

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [ParameterDescriptor(name="uri", description="Absolute http or https address", type=TypeDescriptor.string())],
        )

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        uri = str(context.get("uri") or "").strip()
        if not uri.startswith(("http://", "https://")):
            return ToolResult(success=False)
        body = await asyncio.to_thread(fetch, uri, self.timeout_s or None)
        return ToolResult(success=True, output=body)
