"""Shared pytest configuration and fixtures.

Every backend is replaced by an in-memory fake so the whole pipeline and
the chat path run without Redis, Chroma, OpenAI or the network.
"""

from __future__ import annotations

import hashlib
import math
import threading
from collections.abc import Sequence
from typing import Any

import pytest
from langchain_core.embeddings import Embeddings

from tenant_rag.ingestion.embedder import EmbeddingWriter
from tenant_rag.retrieval.base import BulkResult, VectorIndexBase
from tenant_rag.retry import RetryPolicy
from tenant_rag.stores.base import (
    DocumentStoreBase,
    NotifierBase,
    ObjectInfo,
    ObjectStoreBase,
    SecretStoreBase,
)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake stores ─────────────────────────────────────────────────────────


class FakeDocumentStore(DocumentStoreBase):
    """Dict-backed document store keyed by ``(tenant, item_id)``."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.fail_on: set[str] = set()

    def _check(self, item_id: str) -> None:
        for prefix in self.fail_on:
            if item_id.startswith(prefix):
                raise ConnectionError(f"store unavailable for {item_id}")

    def get(self, tenant_id: str, item_id: str) -> dict[str, Any] | None:
        with self._lock:
            item = self.items.get((tenant_id, item_id))
            return dict(item) if item is not None else None

    def put(self, tenant_id: str, item_id: str, item: dict[str, Any]) -> None:
        self._check(item_id)
        with self._lock:
            self.items[(tenant_id, item_id)] = {**item, "id": item_id, "tenantId": tenant_id}

    def update(self, tenant_id: str, item_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        self._check(item_id)
        with self._lock:
            item = {**self.items.get((tenant_id, item_id), {}), **changes, "id": item_id, "tenantId": tenant_id}
            self.items[(tenant_id, item_id)] = item
            return dict(item)

    def query_by_tenant(self, tenant_id: str, *, item_type: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            items = [dict(v) for (t, _), v in self.items.items() if t == tenant_id]
        if item_type is not None:
            items = [i for i in items if i.get("itemType") == item_type]
        return items


class FakeObjectStore(ObjectStoreBase):
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str, dict[str, str]]] = {}
        self._lock = threading.Lock()

    def put(
        self,
        key: str,
        body: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> None:
        data = body.encode("utf-8") if isinstance(body, str) else body
        with self._lock:
            self.objects[key] = (data, content_type, metadata or {})

    def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise KeyError(key)
        return self.objects[key][0]

    def head(self, key: str) -> ObjectInfo | None:
        if key not in self.objects:
            return None
        data, content_type, metadata = self.objects[key]
        return ObjectInfo(key=key, content_type=content_type, size=len(data), metadata=metadata)

    def keys_under(self, prefix: str) -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))


class FakeNotifier(NotifierBase):
    def __init__(self) -> None:
        self.dead_letters: list[dict[str, Any]] = []
        self.completions: list[dict[str, Any]] = []
        self.fail_completion = False
        self._lock = threading.Lock()

    def dead_letter(self, message: dict[str, Any]) -> None:
        with self._lock:
            self.dead_letters.append(message)

    def notify_completion(self, message: dict[str, Any]) -> None:
        if self.fail_completion:
            raise ConnectionError("queue unavailable")
        self.completions.append(message)


class FakeSecretStore(SecretStoreBase):
    def __init__(self, secrets: dict[str, dict[str, Any]] | None = None) -> None:
        self.secrets = secrets or {}

    def get_secret(self, name: str) -> dict[str, Any]:
        return self.secrets[name]


# ── Fake vector index & embeddings ──────────────────────────────────────


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if na == 0 or nb == 0:
        return 1.0
    return 1.0 - dot / (na * nb)


class FakeVectorIndex(VectorIndexBase):
    """In-memory cosine index, one dict per tenant."""

    def __init__(self) -> None:
        self.indexes: dict[str, dict[str, Any]] = {}
        self.dimensions: dict[str, int] = {}
        self.reject_ids: set[str] = set()
        self.upsert_calls = 0
        self._lock = threading.Lock()

    def index_exists(self, tenant_id: str) -> bool:
        return tenant_id in self.indexes

    def create_index(self, tenant_id: str, *, dimension: int) -> None:
        with self._lock:
            self.indexes.setdefault(tenant_id, {})
            self.dimensions[tenant_id] = dimension

    def bulk_upsert(self, tenant_id: str, records: Sequence[Any]) -> BulkResult:
        result = BulkResult()
        with self._lock:
            self.upsert_calls += 1
            for record in records:
                if record.id in self.reject_ids:
                    result.failed.append({"id": record.id, "error": "rejected"})
                    continue
                self.indexes[tenant_id][record.id] = record
                result.indexed += 1
        return result

    def knn_search(self, tenant_id: str, vector: list[float], *, k: int = 5) -> list[dict[str, Any]]:
        records = list(self.indexes.get(tenant_id, {}).values())
        scored = sorted(records, key=lambda r: cosine_distance(vector, r.embedding))[:k]
        return [
            {
                "id": r.id,
                "content": r.text,
                "score": 1.0 / (1.0 + cosine_distance(vector, r.embedding)),
                "metadata": r.index_metadata(),
            }
            for r in scored
        ]

    def health_check(self) -> bool:
        return True


class FakeEmbeddings(Embeddings):
    """Deterministic bag-of-words hashing embedder."""

    def __init__(self, dimension: int = 16) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in text.lower().split():
            digest = hashlib.md5(word.encode()).digest()
            vec[digest[0] % self.dimension] += 1.0
        if not any(vec):
            vec[0] = 1.0
        return vec

    def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        return self._vector(text)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]


# ── Fake Redis (lists, strings, expiry with a controllable clock) ───────


class FakeRedis:
    """Tiny subset of redis-py used by the session memory and stores."""

    def __init__(self) -> None:
        self.now = 0.0
        self._data: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _alive(self, key: str) -> bool:
        deadline = self._expiry.get(key)
        if deadline is not None and self.now >= deadline:
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return key in self._data

    def get(self, key: str) -> str | None:
        return self._data.get(key) if self._alive(key) else None

    def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        self._expiry.pop(key, None)
        return True

    def mget(self, keys: list[str]) -> list[str | None]:
        return [self.get(k) for k in keys]

    def sadd(self, key: str, *members: str) -> int:
        bucket = self._data.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    def smembers(self, key: str) -> set[str]:
        return set(self._data.get(key, set())) if self._alive(key) else set()

    def rpush(self, key: str, *values: str) -> int:
        self._alive(key)
        bucket = self._data.setdefault(key, [])
        bucket.extend(values)
        return len(bucket)

    def lrange(self, key: str, start: int, end: int) -> list[str]:
        if not self._alive(key):
            return []
        items = self._data[key]
        return items[start:] if end == -1 else items[start : end + 1]

    def expire(self, key: str, seconds: int) -> bool:
        if not self._alive(key):
            return False
        self._expiry[key] = self.now + seconds
        return True

    def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        deadline = self._expiry.get(key)
        return -1 if deadline is None else int(deadline - self.now)

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client: FakeRedis) -> None:
        self._client = client
        self._ops: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any) -> FakePipeline:
            self._ops.append((name, args))
            return self

        return queue

    def execute(self) -> list[Any]:
        return [getattr(self._client, name)(*args) for name, args in self._ops]


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def document_store() -> FakeDocumentStore:
    store = FakeDocumentStore()
    store.put("acme", "tenant-config", {"itemType": "tenant-config", "name": "Acme"})
    return store


@pytest.fixture()
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture()
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()




@pytest.fixture()
def secret_store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    """Production retry counts without any waiting."""
    return RetryPolicy(max_retries=3, base_delay=0, backoff_rate=2, max_delay=0)


@pytest.fixture()
def writer(vector_index: FakeVectorIndex, fake_embeddings: FakeEmbeddings) -> EmbeddingWriter:
    return EmbeddingWriter(
        vector_index,
        embeddings_factory=lambda model: fake_embeddings,
        call_delay=0,
        sleep=lambda _: None,
    )
