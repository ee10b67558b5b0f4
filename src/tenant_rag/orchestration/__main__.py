"""Run an ingestion request from a JSON file.

Usage
-----
    python -m tenant_rag.orchestration request.json

The file holds ``{"tenantId": ..., "dataSources": [...], "config": {...}}``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from tenant_rag.config import settings
from tenant_rag.errors import InputValidationError
from tenant_rag.orchestration.orchestrator import IngestionOrchestrator


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a tenant ingestion pipeline")
    parser.add_argument("request", help="Path to the JSON ingestion request")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with open(args.request, encoding="utf-8") as fh:
        request = json.load(fh)

    orchestrator = IngestionOrchestrator()
    try:
        outcome = orchestrator.start(
            request.get("tenantId"),
            request.get("dataSources"),
            request.get("config"),
        )
    except InputValidationError as exc:
        for message in exc.errors:
            print(f"invalid request: {message}", file=sys.stderr)
        return 2
    finally:
        orchestrator.shutdown()

    print(outcome.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
