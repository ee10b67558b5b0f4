"""Tenant RAG — multi-tenant ingestion pipeline and retrieval engine."""

__version__ = "0.1.0"
