"""Environment-variable secret store."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from typing import Any

from tenant_rag.stores.base import SecretStoreBase

ENV_PREFIX = "RAG_SECRET_"


def secret_env_var(name: str) -> str:
    """Map a secret name such as ``acme/crm-api`` to ``RAG_SECRET_ACME_CRM_API``."""
    return ENV_PREFIX + re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_").upper()


class EnvSecretStore(SecretStoreBase):
    """Read JSON-encoded secrets from environment variables.

    Parameters
    ----------
    environ:
        Mapping to read from; defaults to ``os.environ``.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def get_secret(self, name: str) -> dict[str, Any]:
        raw = self._environ.get(secret_env_var(name))
        if raw is None:
            raise KeyError(name)
        return json.loads(raw)
