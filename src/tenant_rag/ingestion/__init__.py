"""
Ingestion — source adapters, normalisation, chunking and embedding.

This package turns a tenant's data sources (websites, APIs, uploaded
documents) into embedded chunks stored in the tenant's vector index.
"""
