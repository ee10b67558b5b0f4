"""
Serving — FastAPI application for ingestion runs and chatbot queries.

Run locally with ``uvicorn tenant_rag.serving.app:app``.
"""
