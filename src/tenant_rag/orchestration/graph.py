"""LangGraph graph definitions — the ingestion pipeline state machines.

Two graphs are compiled from the nodes in
:mod:`tenant_rag.orchestration.nodes`:

* the **source graph** processes one data source end-to-end and always
  terminates in ``source_succeeded`` or ``source_failed``;
* the **run graph** validates the request, fans the sources out to the
  source graph and then runs the tenant-level steps.

Both graphs read their backends from ``config["configurable"]["services"]``
so they can be tested locally with in-memory fakes.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from langgraph.graph import END, StateGraph

from tenant_rag.orchestration import nodes
from tenant_rag.orchestration.state import RunState, SourceState


@lru_cache(maxsize=1)
def build_source_graph() -> Any:
    """Construct and return the compiled per-source graph.

    Graph topology::

        determine_source_type
          ├─ crawl_website ──┐
          ├─ fetch_from_api ─┼─► extract_text ─► generate_embeddings ─► store_embeddings ─► source_succeeded
          ├─ process_document┘        │                  │                     │
          └─ invalid_source_type      ▼                  ▼                     ▼
                   │            handle_*_error  (one per stage) ───────────► source_failed
                   └────────────────────────────────────────────────────────► source_failed

    Returns
    -------
    CompiledGraph
        A compiled LangGraph workflow ready for ``.invoke()``.
    """
    workflow = StateGraph(SourceState)

    # -- Nodes ---------------------------------------------------------------
    workflow.add_node("determine_source_type", nodes.determine_source_type)
    workflow.add_node("crawl_website", nodes.crawl_website)
    workflow.add_node("fetch_from_api", nodes.fetch_from_api)
    workflow.add_node("process_document", nodes.process_document)
    workflow.add_node("invalid_source_type", nodes.invalid_source_type)
    workflow.add_node("extract_text", nodes.extract_text)
    workflow.add_node("generate_embeddings", nodes.generate_embeddings)
    workflow.add_node("store_embeddings", nodes.store_embeddings)
    workflow.add_node("source_succeeded", nodes.source_succeeded)
    workflow.add_node("source_failed", nodes.source_failed)
    for stage, (_, handler_name) in nodes.STAGE_ERRORS.items():
        workflow.add_node(handler_name, nodes.make_error_handler(stage))
        workflow.add_edge(handler_name, "source_failed")

    # -- Edges ---------------------------------------------------------------
    workflow.set_entry_point("determine_source_type")
    workflow.add_conditional_edges(
        "determine_source_type",
        nodes.route_source_type,
        {
            "crawl_website": "crawl_website",
            "fetch_from_api": "fetch_from_api",
            "process_document": "process_document",
            "invalid_source_type": "invalid_source_type",
        },
    )
    workflow.add_edge("invalid_source_type", "source_failed")

    pipeline = [
        ("crawl_website", "extract_text"),
        ("fetch_from_api", "extract_text"),
        ("process_document", "extract_text"),
        ("extract_text", "generate_embeddings"),
        ("generate_embeddings", "store_embeddings"),
        ("store_embeddings", "source_succeeded"),
    ]
    for stage, next_node in pipeline:
        handler_name = nodes.STAGE_ERRORS[stage][1]
        workflow.add_conditional_edges(
            stage,
            nodes.route_after(next_node),
            {next_node: next_node, handler_name: handler_name},
        )

    workflow.add_edge("source_succeeded", END)
    workflow.add_edge("source_failed", END)

    return workflow.compile()


def build_run_graph() -> Any:
    """Construct and return the compiled run graph.

    Graph topology::

        validate_input ──(errors)──► validation_error ─► [ END ]
              │
              ▼
        process_data_sources          (parallel source graphs, joined)
              ▼
        configure_memory_duration     (recorded on failure, continues)
              ▼
        update_metadata               (recorded on failure, continues)
              ▼
        schedule_next_crawl           (recorded on failure, continues)
              ▼
        analyze_results               (raises AnalysisError)
              ▼
        notify_completion             (raises NotificationError)
              ▼
           [ END ]
    """
    workflow = StateGraph(RunState)

    workflow.add_node("validate_input", nodes.validate_input)
    workflow.add_node("validation_error", nodes.validation_error)
    workflow.add_node("process_data_sources", nodes.process_data_sources)
    workflow.add_node("configure_memory_duration", nodes.configure_memory_duration)
    workflow.add_node("update_metadata", nodes.update_metadata)
    workflow.add_node("schedule_next_crawl", nodes.schedule_next_crawl)
    workflow.add_node("analyze_results", nodes.analyze_results)
    workflow.add_node("notify_completion", nodes.notify_completion)

    workflow.set_entry_point("validate_input")
    workflow.add_conditional_edges(
        "validate_input",
        nodes.route_validation,
        {
            "validation_error": "validation_error",
            "process_data_sources": "process_data_sources",
        },
    )
    workflow.add_edge("validation_error", END)
    workflow.add_edge("process_data_sources", "configure_memory_duration")
    workflow.add_edge("configure_memory_duration", "update_metadata")
    workflow.add_edge("update_metadata", "schedule_next_crawl")
    workflow.add_edge("schedule_next_crawl", "analyze_results")
    workflow.add_edge("analyze_results", "notify_completion")
    workflow.add_edge("notify_completion", END)

    return workflow.compile()
