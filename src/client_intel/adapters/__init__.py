"""Adapters for files, in-memory fixtures, SQL storage and the external enrichment APIs.

Modules:
    usage_parser    billing CSV parsing and currency conversion
    file_sources    JSON roster/catalog and CSV billing sources with load timeouts
    memory          in-memory sources and overlay store
    repositories    SQLAlchemy overlay store and usage ledger
    search_client   Google Custom Search client (search tier)
    ai_client       OpenAI-compatible chat client (AI tier)
"""
