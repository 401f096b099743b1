"""Probe configuration loaded from environment variables."""

from __future__ import annotations

import os


class Config:
    """Default configuration for the capability probes."""

    # SPARQL client defaults
    SPARQL_TIMEOUT = float(os.getenv("SPARQL_TIMEOUT", "60"))
    # Retries after the first attempt of a query
    SPARQL_RETRIES = int(os.getenv("SPARQL_RETRIES", "1"))
    SPARQL_BACKOFF = float(os.getenv("SPARQL_BACKOFF", "1.0"))

    # Above this many SKOS graphs the URIs are not enumerated and
    # language detection cannot run in batched mode.
    VOCAB_GRAPH_BATCH_THRESHOLD = int(
        os.getenv("VOCAB_GRAPH_BATCH_THRESHOLD", "500"),
    )

    # Graphs per VALUES block in batched language detection
    LANGUAGE_BATCH_SIZE = int(os.getenv("LANGUAGE_BATCH_SIZE", "10"))

    # Enumeration cap when an exact graph COUNT is rejected
    GRAPH_COUNT_LIMIT = int(os.getenv("GRAPH_COUNT_LIMIT", "10000"))

    # Concept scheme URIs kept on a single-shot analysis
    MAX_STORED_SCHEMES = int(os.getenv("MAX_STORED_SCHEMES", "200"))

    # Timeout for the connection test, in seconds
    PING_TIMEOUT = float(os.getenv("PING_TIMEOUT", "10"))


class TestConfig(Config):
    """Configuration overrides for testing."""

    TESTING = True
    SPARQL_TIMEOUT = 5.0
    SPARQL_RETRIES = 0
    SPARQL_BACKOFF = 0.0
    VOCAB_GRAPH_BATCH_THRESHOLD = 3
    LANGUAGE_BATCH_SIZE = 2
    GRAPH_COUNT_LIMIT = 5
    MAX_STORED_SCHEMES = 2
