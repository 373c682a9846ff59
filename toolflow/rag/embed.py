from __future__ import annotations

import os
from typing import Callable, Protocol, runtime_checkable


DEFAULT_VECTOR_LENGTH = 1536


@runtime_checkable
class VectorTransformer(Protocol):
    vector_length: int

    def transform(self, text: str) -> list[float]:
        ...


_TRANSFORMERS: dict[str, Callable[[], VectorTransformer]] = {}


def transformer_name(transformer: object) -> str:
    cls = type(transformer)
    return f"{cls.__module__}.{cls.__qualname__}"


def register_transformer(cls: type, name: str | None = None) -> type:
    """Make ``cls`` rebuildable by name when a saved vector store is loaded."""
    _TRANSFORMERS[name or f"{cls.__module__}.{cls.__qualname__}"] = cls
    return cls


def create_transformer(name: str) -> VectorTransformer:
    factory = _TRANSFORMERS.get(name)
    if factory is None:
        raise LookupError(f"Unknown vector transformer: {name}")
    return factory()


class DashScopeEmbedder:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        vector_length: int = DEFAULT_VECTOR_LENGTH,
        text_type: str = "document",
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("DASHSCOPE_API_KEY", "").strip()
        self.model = model or os.getenv("DASHSCOPE_EMBEDDING_MODEL", "text-embedding-v1").strip() or "text-embedding-v1"
        self.vector_length = vector_length
        self.text_type = text_type

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        try:
            from dashscope import TextEmbedding
        except Exception as e:  # pragma: no cover
            raise RuntimeError("dashscope not installed. Run: pip install -e .") from e

        resp = TextEmbedding.call(
            model=self.model,
            input=texts,
            api_key=self.api_key,
            text_type=self.text_type,
        )

        if not getattr(resp, "output", None) or "embeddings" not in resp.output:
            raise RuntimeError(f"Unexpected embedding response: {resp}")

        embeddings = resp.output["embeddings"]
        # Expect list like: [{"embedding": [...], "text_index": 0}, ...]
        vectors_by_index: dict[int, list[float]] = {}
        for item in embeddings:
            idx = int(item.get("text_index", -1))
            vec = item.get("embedding")
            if idx < 0 or not isinstance(vec, list):
                continue
            vectors_by_index[idx] = [float(x) for x in vec]

        out: list[list[float]] = []
        for i in range(len(texts)):
            vec = vectors_by_index.get(i)
            if not vec:
                raise RuntimeError(f"Missing embedding for batch index {i}")
            out.append(vec)
        return out

    def transform(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]

    def embed(self, text: str) -> list[float]:
        return self.transform(text)


register_transformer(DashScopeEmbedder)


def default_transformer() -> VectorTransformer:
    return DashScopeEmbedder()
