"""Redis-backed document store and notifier.

Items are stored as JSON strings under ``doc:{tenant}:{item_id}``; a set
``doc-index:{tenant}`` lists the item ids of each tenant so they can be
enumerated without ``SCAN``.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any

import redis

from tenant_rag.config import settings
from tenant_rag.stores.base import DocumentStoreBase, NotifierBase

logger = logging.getLogger(__name__)

DEAD_LETTER_KEY = "queue:dead-letter"
COMPLETION_KEY = "queue:ingestion-complete"


@lru_cache(maxsize=1)
def get_redis_client(url: str = settings.redis_url) -> redis.Redis:
    """Return a shared Redis client that decodes responses to ``str``."""
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )


def _item_key(tenant_id: str, item_id: str) -> str:
    return f"doc:{tenant_id}:{item_id}"


def _index_key(tenant_id: str) -> str:
    return f"doc-index:{tenant_id}"


class RedisDocumentStore(DocumentStoreBase):
    """Tenant-partitioned JSON item store."""

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client if client is not None else get_redis_client()

    def get(self, tenant_id: str, item_id: str) -> dict[str, Any] | None:
        raw = self._client.get(_item_key(tenant_id, item_id))
        return json.loads(raw) if raw else None

    def put(self, tenant_id: str, item_id: str, item: dict[str, Any]) -> None:
        payload = {**item, "id": item_id, "tenantId": tenant_id}
        pipe = self._client.pipeline(transaction=True)
        pipe.set(_item_key(tenant_id, item_id), json.dumps(payload, default=str))
        pipe.sadd(_index_key(tenant_id), item_id)
        pipe.execute()

    def update(self, tenant_id: str, item_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        item = self.get(tenant_id, item_id) or {}
        item.update(changes)
        self.put(tenant_id, item_id, item)
        return {**item, "id": item_id, "tenantId": tenant_id}

    def query_by_tenant(self, tenant_id: str, *, item_type: str | None = None) -> list[dict[str, Any]]:
        ids = sorted(self._client.smembers(_index_key(tenant_id)))
        if not ids:
            return []
        raws = self._client.mget([_item_key(tenant_id, i) for i in ids])
        items = [json.loads(r) for r in raws if r]
        if item_type is not None:
            items = [i for i in items if i.get("itemType") == item_type]
        return items


class RedisNotifier(NotifierBase):
    """Push dead-letter and completion messages onto Redis lists."""

    def __init__(
        self,
        client: redis.Redis | None = None,
        *,
        dead_letter_key: str = DEAD_LETTER_KEY,
        completion_key: str = COMPLETION_KEY,
    ) -> None:
        self._client = client if client is not None else get_redis_client()
        self.dead_letter_key = dead_letter_key
        self.completion_key = completion_key

    def dead_letter(self, message: dict[str, Any]) -> None:
        self._client.rpush(self.dead_letter_key, json.dumps(message, default=str))
        logger.info("Message sent to dead-letter queue %s", self.dead_letter_key)

    def notify_completion(self, message: dict[str, Any]) -> None:
        self._client.rpush(self.completion_key, json.dumps(message, default=str))
