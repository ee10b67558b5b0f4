"""Abstract capability interfaces for the storage and messaging backends.

Each backend is consumed only through one of these classes so that the
pipeline can run against Redis / the filesystem in production and against
in-memory fakes in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ObjectInfo:
    """Result of an object-store ``head`` call."""

    key: str
    content_type: str
    size: int
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectStoreBase(ABC):
    """Key/value blob storage; keys always start with ``{tenant_id}/``."""

    @abstractmethod
    def put(
        self,
        key: str,
        body: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store *body* under *key*, replacing any existing object."""
        ...

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the object body; raises ``KeyError`` when missing."""
        ...

    @abstractmethod
    def head(self, key: str) -> ObjectInfo | None:
        """Return object metadata, or ``None`` when the key does not exist."""
        ...


class DocumentStoreBase(ABC):
    """Tenant-partitioned item store (metadata, error records, analytics …).

    Items are plain dicts addressed by ``(tenant_id, item_id)``.
    """

    @abstractmethod
    def get(self, tenant_id: str, item_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def put(self, tenant_id: str, item_id: str, item: dict[str, Any]) -> None: ...

    @abstractmethod
    def update(self, tenant_id: str, item_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Merge *changes* into an item (creating it if absent) and return it."""
        ...

    @abstractmethod
    def query_by_tenant(self, tenant_id: str, *, item_type: str | None = None) -> list[dict[str, Any]]:
        """Return all items of *tenant_id*, optionally filtered by ``itemType``."""
        ...


class SecretStoreBase(ABC):
    """Read-only access to tenant-scoped credentials."""

    @abstractmethod
    def get_secret(self, name: str) -> dict[str, Any]:
        """Return the decoded secret; raises ``KeyError`` when missing."""
        ...


class NotifierBase(ABC):
    """Outbound signals: dead-letter queue and completion notices."""

    @abstractmethod
    def dead_letter(self, message: dict[str, Any]) -> None: ...

    @abstractmethod
    def notify_completion(self, message: dict[str, Any]) -> None: ...
