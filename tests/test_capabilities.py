"""Tests for the capability summary."""

from __future__ import annotations

import pytest

from skosprobe.capabilities import (
    CapabilitySummary,
    concept_count_description,
    concept_count_severity,
    concept_count_status,
    format_count,
    graph_support_description,
    graph_support_severity,
    graph_support_status,
    relationships_description,
    relationships_severity,
    relationships_status,
    vocab_graph_description,
    vocab_graph_severity,
    vocab_graph_status,
)
from skosprobe.models import AnalysisResult, RelationshipFlags


@pytest.mark.parametrize(
    ("n", "expected"),
    [(0, "0"), (999, "999"), (1234, "1.234"), (1234567, "1.234.567")],
)
def test_format_count(n, expected):
    assert format_count(n) == expected


def test_graph_support():
    assert graph_support_status(None) == "Unknown"
    assert graph_support_status(AnalysisResult(supports_named_graphs=None)) == "Unknown"
    assert graph_support_status(AnalysisResult(supports_named_graphs=True)) == "Yes"
    assert graph_support_status(AnalysisResult(supports_named_graphs=False)) == "No"

    assert graph_support_severity(None) == "secondary"
    assert graph_support_severity(AnalysisResult(supports_named_graphs=False)) == "info"
    assert graph_support_description(AnalysisResult(supports_named_graphs=True)) == (
        "Endpoint supports named graph queries"
    )


@pytest.mark.parametrize(
    ("count", "status", "severity", "description"),
    [
        (None, "Unknown", "secondary", None),
        (0, "None", "warn", "No graphs contain SKOS concepts or schemes"),
        (1, "1 graph", "success", "1 graph contain SKOS data"),
        (5, "5 graphs", "success", "5 graphs contain SKOS data"),
        (1234, "1.234 graphs", "success", "1.234 graphs contain SKOS data"),
    ],
)
def test_vocab_graphs(count, status, severity, description):
    analysis = AnalysisResult(vocab_graph_count=count)

    assert vocab_graph_status(analysis) == status
    assert vocab_graph_severity(analysis) == severity
    assert vocab_graph_description(analysis) == description


def test_absent_analysis():
    assert vocab_graph_status(None) == "Unknown"
    assert vocab_graph_severity(None) == "secondary"
    assert vocab_graph_description(None) is None


def test_summary_follows_endpoint(endpoint):
    summary = CapabilitySummary(endpoint)
    assert summary.vocab_graph_status == "Unknown"
    assert summary.graph_support_status == "Unknown"

    summary.endpoint = endpoint.with_analysis(
        AnalysisResult(supports_named_graphs=True, vocab_graph_count=2),
    )
    assert summary.vocab_graph_status == "2 graphs"
    assert summary.graph_support_status == "Yes"
    assert summary.as_dict()["vocabGraphSeverity"] == "success"

    summary.endpoint = None
    assert summary.vocab_graph_severity == "secondary"
    assert CapabilitySummary.format_count(10000) == "10.000"


def test_concept_count_derivations():
    analysis = AnalysisResult(total_concepts=1234567)

    assert concept_count_status(analysis) == "1.234.567"
    assert concept_count_severity(analysis) == "success"
    assert concept_count_description(analysis) == "1.234.567 SKOS concepts in endpoint"

    assert concept_count_status(AnalysisResult()) == "Unknown"
    assert concept_count_severity(None) == "secondary"
    assert concept_count_description(None) == "Could not determine concept count"


@pytest.mark.parametrize(
    "relationships, status, severity, description",
    [
        (None, "Unknown", "secondary", None),
        (RelationshipFlags(), "0/7 available", "warn", "No SKOS relationships detected"),
        (
            RelationshipFlags(has_in_scheme=True, has_broader=True, has_narrower=True),
            "3/7 available",
            "success",
            None,
        ),
    ],
)
def test_relationship_derivations(relationships, status, severity, description):
    analysis = AnalysisResult(relationships=relationships)

    assert relationships_status(analysis) == status
    assert relationships_severity(analysis) == severity
    assert relationships_description(analysis) == description


def test_summary_includes_concepts_and_relationships(endpoint):
    analysis = AnalysisResult(total_concepts=42, relationships=RelationshipFlags())
    summary = CapabilitySummary(endpoint.with_analysis(analysis))

    data = summary.as_dict()

    assert data["conceptCountStatus"] == "42"
    assert data["relationshipsStatus"] == "0/7 available"
    assert data["relationshipsDescription"] == "No SKOS relationships detected"
    assert summary.concept_count_severity == "success"
