"""Fixtures for skosprobe tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from skosprobe.models import (
    AnalysisResult,
    DetectedLanguage,
    DuplicateDetection,
    EndpointDescriptor,
    GraphDetection,
    VocabGraphDetection,
)
from skosprobe.probes import ProbeSuite
from skosprobe.query import QueryResult, ResultCell

EN_FR = [
    DetectedLanguage(lang="en", count=100),
    DetectedLanguage(lang="fr", count=50),
]


@pytest.fixture()
def endpoint():
    """A plain endpoint descriptor."""
    return EndpointDescriptor(
        id="test-1",
        name="Test Endpoint",
        url="https://example.org/sparql",
        created_at="2024-01-01T00:00:00Z",
    )


@pytest.fixture()
def make_suite():
    """Build a ProbeSuite of AsyncMocks with the given return values."""

    def _make(
        graphs: GraphDetection | None = None,
        vocab: VocabGraphDetection | None = None,
        duplicates: bool = False,
        languages: list[DetectedLanguage] | None = None,
        analysis: AnalysisResult | None = None,
    ) -> ProbeSuite:
        return ProbeSuite(
            analyze_endpoint=AsyncMock(return_value=analysis or AnalysisResult()),
            detect_graphs=AsyncMock(
                return_value=graphs or GraphDetection(
                    supports_named_graphs=True, graph_count=3, query_method="count",
                ),
            ),
            detect_vocab_graphs=AsyncMock(
                return_value=vocab or VocabGraphDetection(
                    count=2, uris=["http://g1", "http://g2"],
                ),
            ),
            detect_duplicates=AsyncMock(
                return_value=DuplicateDetection(has_duplicates=duplicates),
            ),
            detect_languages=AsyncMock(
                return_value=list(EN_FR) if languages is None else languages,
            ),
        )

    return _make


def query_result(variables: list[str], rows: list[dict[str, str]]) -> QueryResult:
    """QueryResult with literal cells, for patching the query layer."""
    return QueryResult(
        query="",
        endpoint="https://example.org/sparql",
        variables=variables,
        rows=[
            {var: ResultCell(value=value, type="literal") for var, value in row.items()}
            for row in rows
        ],
        row_count=len(rows),
        duration_ms=1,
    )


@pytest.fixture()
def make_result():
    return query_result
