from __future__ import annotations

import gzip
import io
import math
import struct
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Iterable, Mapping

from toolflow.errors import StoreFormatInvalid
from toolflow.rag.embed import (
    DEFAULT_VECTOR_LENGTH,
    VectorTransformer,
    create_transformer,
    default_transformer,
    transformer_name,
)
from toolflow.rag.splitter import TextObject
from toolflow.trace.logger import get_logger


logger = get_logger("toolflow.rag.store")

HEADER_V1 = "Automation.Classifier.VectorStore v1.0"


def l2_norm(vec: Iterable[float]) -> float:
    return math.sqrt(sum((x * x) for x in vec))


def dot(a: Iterable[float], b: Iterable[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    na, nb = l2_norm(a), l2_norm(b)
    if na == 0.0 or nb == 0.0:
        return 0.0
    return dot(a, b) / (na * nb)


def cosine_distance(a: list[float], b: list[float]) -> float:
    return 1.0 - cosine_similarity(a, b)


# Little-endian ints and doubles; strings are prefixed by their UTF-8 byte
# length as a 7-bit variable-length integer.


def _write_7bit_int(out: BinaryIO, value: int) -> None:
    while value >= 0x80:
        out.write(bytes(((value & 0x7F) | 0x80,)))
        value >>= 7
    out.write(bytes((value,)))


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    data = stream.read(n)
    if len(data) != n:
        raise EOFError(f"expected {n} bytes, got {len(data)}")
    return data


def _read_7bit_int(stream: BinaryIO) -> int:
    result = 0
    for shift in range(0, 35, 7):
        b = _read_exact(stream, 1)[0]
        result |= (b & 0x7F) << shift
        if not b & 0x80:
            return result
    raise ValueError("7-bit encoded int is too long")


def write_string(out: BinaryIO, value: str) -> None:
    data = value.encode("utf-8")
    _write_7bit_int(out, len(data))
    out.write(data)


def read_string(stream: BinaryIO) -> str:
    n = _read_7bit_int(stream)
    return _read_exact(stream, n).decode("utf-8")


def _write_int32(out: BinaryIO, value: int) -> None:
    out.write(struct.pack("<i", value))


def _read_int32(stream: BinaryIO) -> int:
    return struct.unpack("<i", _read_exact(stream, 4))[0]


@dataclass(frozen=True)
class VectorRecord:
    vector: tuple[float, ...]
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class MatchedObject:
    score: float
    attributes: dict[str, str]


class _RecordArena:
    """Append-only record list; appends are serialized, reads take a snapshot."""

    def __init__(self) -> None:
        self._records: list[VectorRecord] = []
        self._lock = threading.Lock()

    def append(self, record: VectorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[VectorRecord]) -> None:
        records = list(records)
        with self._lock:
            self._records.extend(records)

    def snapshot(self) -> list[VectorRecord]:
        n = len(self._records)
        return self._records[:n]

    def __len__(self) -> int:
        return len(self._records)


class VectorStore:
    def __init__(self, transformer: VectorTransformer | None = None, *, max_workers: int | None = None) -> None:
        self.transformer = transformer
        self.max_workers = max_workers
        self._records = _RecordArena()

    @property
    def vector_length(self) -> int:
        if self.transformer is not None:
            return int(self.transformer.vector_length)
        records = self._records.snapshot()
        return len(records[0].vector) if records else 0

    @property
    def records(self) -> list[VectorRecord]:
        return self._records.snapshot()

    def __len__(self) -> int:
        return len(self._records)

    def add(self, vector: Iterable[float], attributes: Mapping[str, Any]) -> None:
        self._records.append(
            VectorRecord(
                vector=tuple(float(x) for x in vector),
                attributes={str(k): str(v) for k, v in attributes.items()},
            )
        )

    def add_texts(self, text_objects: Iterable[TextObject], keep_text: bool = True) -> int:
        """Embed every non-empty text object and append one record per object.

        Embedding runs concurrently; records are appended in input order with
        a 1-based ``Index`` among the non-empty inputs.
        """
        transformer = self._require_transformer()
        valid = [t for t in text_objects if t.text]
        if not valid:
            return 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            vectors = list(pool.map(lambda t: transformer.transform(t.text), valid))

        records = []
        for i, (txt, vec) in enumerate(zip(valid, vectors), start=1):
            attributes = {"Name": txt.name, "Class": txt.category, "Index": str(i)}
            if keep_text:
                attributes["Text"] = txt.text
            records.append(VectorRecord(vector=tuple(float(x) for x in vec), attributes=attributes))
        self._records.extend(records)
        logger.info("Added %d records to vector store (total=%d)", len(records), len(self))
        return len(records)

    def search(self, vector: list[float], result_count: int) -> list[MatchedObject]:
        records = self._records.snapshot()
        result_count = max(0, min(int(result_count), len(records)))
        query = [float(x) for x in vector]
        matches = [
            MatchedObject(score=1.0 - cosine_distance(list(r.vector), query), attributes=r.attributes)
            for r in records
        ]
        # sort is stable, so equal scores keep insertion order
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:result_count]

    def search_text(self, text_object: TextObject | str, result_count: int) -> list[MatchedObject]:
        text = text_object.text if isinstance(text_object, TextObject) else str(text_object)
        return self.search(self._require_transformer().transform(text), result_count)

    def _require_transformer(self) -> VectorTransformer:
        if self.transformer is None:
            raise RuntimeError("Vector store has no vector transformer")
        return self.transformer

    def save(self, path: str) -> None:
        records = self._records.snapshot()
        with open(path, "wb") as f:
            write_string(f, HEADER_V1)
            with gzip.GzipFile(filename="", mode="wb", fileobj=f, mtime=0) as body:
                _write_int32(body, len(records))
                for r in records:
                    _write_int32(body, len(r.vector))
                    body.write(struct.pack(f"<{len(r.vector)}d", *r.vector))

                _write_int32(body, len(records))
                for r in records:
                    _write_int32(body, len(r.attributes))
                    for key, value in r.attributes.items():
                        write_string(body, key)
                        write_string(body, value)

                # transformer class name so the store can rebuild it on load, empty for none
                write_string(body, transformer_name(self.transformer) if self.transformer is not None else "")
        logger.info("Saved vector store: path=%s records=%d", path, len(records))

    @classmethod
    def load(cls, path: str, *, max_workers: int | None = None) -> "VectorStore":
        with open(path, "rb") as f:
            try:
                header = read_string(f)
            except (EOFError, ValueError) as e:
                raise StoreFormatInvalid(f"Invalid vector store file, header is missing: {path}") from e
            if header != HEADER_V1:
                error = f"Invalid vector store file format, header mismatch: {path}"
                logger.error(error)
                raise StoreFormatInvalid(error)

            try:
                with gzip.GzipFile(mode="rb", fileobj=f) as gz:
                    body = io.BytesIO(gz.read())
            except (OSError, EOFError) as e:
                raise StoreFormatInvalid(f"Invalid vector store body: {e}") from e

        try:
            vectors: list[tuple[float, ...]] = []
            vector_length = 0
            for _ in range(_read_int32(body)):
                vector_length = _read_int32(body)
                vectors.append(struct.unpack(f"<{vector_length}d", _read_exact(body, 8 * vector_length)))

            attributes: list[dict[str, str]] = []
            for _ in range(_read_int32(body)):
                attribute: dict[str, str] = {}
                for _ in range(_read_int32(body)):
                    key = read_string(body)
                    attribute[key] = read_string(body)
                attributes.append(attribute)
        except (EOFError, ValueError, struct.error) as e:
            raise StoreFormatInvalid(f"Truncated or corrupt vector store body: {e}") from e

        if len(vectors) != len(attributes):
            raise StoreFormatInvalid(
                f"Vector count {len(vectors)} does not match attribute count {len(attributes)}"
            )

        try:
            name = read_string(body)
            transformer = create_transformer(name) if name else None
        except Exception as e:
            if vector_length != DEFAULT_VECTOR_LENGTH:
                raise StoreFormatInvalid(f"Couldn't rebuild vector transformer: {e}") from e
            logger.warning("Couldn't deserialize vector transformer, creating a default transformer. Exception: %s", e)
            transformer = default_transformer()

        store = cls(transformer, max_workers=max_workers)
        store._records.extend(VectorRecord(vector=v, attributes=a) for v, a in zip(vectors, attributes))
        logger.info("Loaded vector store: path=%s records=%d", path, len(store))
        return store
