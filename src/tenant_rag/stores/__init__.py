"""
Stores — object, document, secret and notification backends.

Public surface
--------------
- :class:`ObjectStoreBase`, :class:`DocumentStoreBase`,
  :class:`SecretStoreBase`, :class:`NotifierBase` — capability interfaces.
- :class:`LocalObjectStore` — filesystem object store.
- :class:`RedisDocumentStore`, :class:`RedisNotifier` — Redis backends.
- :class:`EnvSecretStore` — secrets from environment variables.
"""

from tenant_rag.stores.base import (
    DocumentStoreBase,
    NotifierBase,
    ObjectInfo,
    ObjectStoreBase,
    SecretStoreBase,
)
from tenant_rag.stores.local import LocalObjectStore
from tenant_rag.stores.redis_store import RedisDocumentStore, RedisNotifier, get_redis_client
from tenant_rag.stores.secrets import EnvSecretStore

__all__ = [
    "DocumentStoreBase",
    "EnvSecretStore",
    "LocalObjectStore",
    "NotifierBase",
    "ObjectInfo",
    "ObjectStoreBase",
    "RedisDocumentStore",
    "RedisNotifier",
    "SecretStoreBase",
    "get_redis_client",
]
