from __future__ import annotations

import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from typing import Callable

from toolflow.rag.splitter import TextObject, TextSplitter, extract_text_objects
from toolflow.rag.store import VectorStore
from toolflow.tools.base import FunctionTool, ToolResult
from toolflow.tools.context import ExecutionContext
from toolflow.tools.types import FunctionDescriptor, ParameterDescriptor, TypeDescriptor
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.tools.search")


@dataclass(frozen=True)
class SearchResult:
    content: str
    reference: str


class SearchTool(FunctionTool):
    """Base for tools answering a ``query``, optionally with extra ``context`` text."""

    def __init__(self, name: str | None = None, description: str | None = None, max_result_count: int = 5) -> None:
        super().__init__(name, description)
        self.count = max_result_count

    def with_max_result_count(self, count: int) -> "SearchTool":
        self.count = max(1, int(count))
        return self

    def _get_descriptor(self) -> FunctionDescriptor:
        return FunctionDescriptor(
            self.name,
            self.description,
            [
                ParameterDescriptor(name="query", description="Search query", type=TypeDescriptor.string()),
                ParameterDescriptor(
                    name="context",
                    description="Optional source text to search in, in addition to the existing index",
                    type=TypeDescriptor.string(),
                    required=False,
                ),
            ],
        )

    @abstractmethod
    async def search_async(self, query: str, context: str) -> list[SearchResult]:
        ...

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        query = str(context.get("query") or "").strip()
        if not query:
            return ToolResult(success=False)
        results = await self.search_async(query, str(context.get("context") or ""))
        return ToolResult(success=True, output=results)


class SemanticSearch(SearchTool):
    """Semantic search over a vector store.

    The store is built lazily by a factory on first use. Non-empty
    ``context`` text is chunked, embedded and added to the store before the
    query runs, so searching also indexes fresh material.
    """

    def __init__(
        self,
        store: VectorStore | None = None,
        factory: Callable[[], VectorStore] | None = None,
        max_result_count: int = 5,
        chunk_size: int = 1000,
        chunk_overlap: int = 100,
        name: str = "SemanticSearch",
        description: str = "",
    ) -> None:
        super().__init__(
            name,
            description
            or "Performs a semantic search for a given query in its database and returns the relevant text chunks along with references.",
            max_result_count,
        )
        if store is None and factory is None:
            raise ValueError("SemanticSearch needs a store or a store factory")
        self.database = store
        self.factory = factory
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._store_lock = asyncio.Lock()

    @classmethod
    def constructors(cls) -> list[Callable[..., "SemanticSearch"]]:
        return [cls.from_database, cls.with_store, cls.from_factory]

    @classmethod
    def with_store(
        cls, store: VectorStore, max_result_count: int = 5, name: str = "SemanticSearch", description: str = ""
    ) -> "SemanticSearch":
        return cls(store=store, max_result_count=max_result_count, name=name, description=description)

    @classmethod
    def from_database(
        cls, dbpath: str, max_result_count: int = 5, name: str = "SemanticSearch", description: str = ""
    ) -> "SemanticSearch":
        return cls(
            factory=lambda: VectorStore.load(dbpath),
            max_result_count=max_result_count,
            name=name,
            description=description,
        )

    @classmethod
    def from_factory(
        cls, factory: Callable[[], VectorStore], chunk_size: int = 1000, chunk_overlap: int = 100
    ) -> "SemanticSearch":
        return cls(factory=factory, chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    async def get_store(self) -> VectorStore:
        if self.database is None:
            async with self._store_lock:
                if self.database is None:
                    self.database = await asyncio.to_thread(self.factory)
        return self.database

    async def search_async(self, query: str, context: str) -> list[SearchResult]:
        store = await self.get_store()
        if context:
            added = await asyncio.to_thread(update_store, store, context, self.chunk_size, self.chunk_overlap)
            logger.info("Indexed %d chunks from context before searching", added)

        matches = await asyncio.to_thread(store.search_text, TextObject.create("query", query), self.count)
        return [
            SearchResult(content=m.attributes.get("Text", ""), reference=m.attributes.get("Name", ""))
            for m in matches
        ]

    async def _execute_core(self, context: ExecutionContext) -> ToolResult:
        result = await super()._execute_core(context)
        context["database"] = self.database
        return result


def update_store(store: VectorStore, source: str, chunk_size: int = 1000, chunk_overlap: int = 100) -> int:
    splitter = TextSplitter.with_parameters(chunk_size, chunk_overlap)
    chunks: list[TextObject] = []
    for txt in extract_text_objects(source):
        chunks.extend(splitter.split(txt))
    return store.add_texts(chunks, keep_text=True)


def create_vector_database(
    sources: list[str],
    transformer,
    out_path: str | None = None,
    chunk_size: int = 1000,
    chunk_overlap: int = 100,
    max_workers: int | None = None,
) -> VectorStore:
    """Build a store from files or raw texts, saving it when ``out_path`` is given."""
    store = VectorStore(transformer, max_workers=max_workers)
    for source in sources:
        update_store(store, source, chunk_size, chunk_overlap)
    if out_path:
        store.save(out_path)
    return store
