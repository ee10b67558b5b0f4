"""Filesystem-backed object store."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from tenant_rag.config import settings
from tenant_rag.stores.base import ObjectInfo, ObjectStoreBase

logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta.json"


class LocalObjectStore(ObjectStoreBase):
    """Store objects as files under *root*, with a JSON sidecar for metadata.

    Parameters
    ----------
    root:
        Directory holding all objects; created on first write.
    """

    def __init__(self, root: str | Path = settings.object_store_root) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/") or ".." in Path(key).parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self.root / key

    def put(
        self,
        key: str,
        body: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> None:
        path = self._path(key)
        data = body.encode("utf-8") if isinstance(body, str) else body
        sidecar = {"content_type": content_type, "metadata": metadata or {}}
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.with_name(path.name + _META_SUFFIX).write_text(json.dumps(sidecar), encoding="utf-8")
        logger.debug("Stored object %s (%d bytes)", key, len(data))

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise KeyError(key)
        return path.read_bytes()

    def head(self, key: str) -> ObjectInfo | None:
        path = self._path(key)
        if not path.is_file():
            return None
        meta_path = path.with_name(path.name + _META_SUFFIX)
        sidecar = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.is_file() else {}
        return ObjectInfo(
            key=key,
            content_type=sidecar.get("content_type", "application/octet-stream"),
            size=path.stat().st_size,
            metadata=sidecar.get("metadata", {}),
        )
