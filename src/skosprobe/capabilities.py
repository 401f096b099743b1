"""Display values derived from a stored endpoint analysis.

Every function takes the :class:`~skosprobe.models.AnalysisResult` (or
None when the endpoint was never analysed) and returns a label,
severity or sentence for it.  :class:`CapabilitySummary` bundles them
over an endpoint reference and recomputes on every attribute read, so
it always reflects the endpoint currently assigned to it.

Severities are the three display levels ``secondary`` (unknown),
``warn`` and ``success``, plus ``info`` for endpoints without named
graphs.
"""

from __future__ import annotations

from typing import Optional

from skosprobe.models import AnalysisResult, EndpointDescriptor, RelationshipFlags


def format_count(n: int) -> str:
    """Group thousands with a period: ``1234567`` -> ``"1.234.567"``."""
    return f"{n:,}".replace(",", ".")


def _graphs(n: int) -> str:
    return f"{format_count(n)} graph{'' if n == 1 else 's'}"


# -- named graph support -----------------------------------------------


def graph_support_status(analysis: Optional[AnalysisResult]) -> str:
    if analysis is None or analysis.supports_named_graphs is None:
        return "Unknown"
    return "Yes" if analysis.supports_named_graphs else "No"


def graph_support_severity(analysis: Optional[AnalysisResult]) -> str:
    if analysis is None or analysis.supports_named_graphs is None:
        return "secondary"
    return "success" if analysis.supports_named_graphs else "info"


def graph_support_description(analysis: Optional[AnalysisResult]) -> str:
    if analysis is None or analysis.supports_named_graphs is None:
        return "Could not determine if endpoint supports GRAPH queries"
    if analysis.supports_named_graphs:
        return "Endpoint supports named graph queries"
    return "Endpoint does not use named graphs"


# -- SKOS graphs -------------------------------------------------------


def _vocab_count(analysis: Optional[AnalysisResult]) -> Optional[int]:
    return None if analysis is None else analysis.vocab_graph_count


def vocab_graph_status(analysis: Optional[AnalysisResult]) -> str:
    count = _vocab_count(analysis)
    if count is None:
        return "Unknown"
    if count == 0:
        return "None"
    return _graphs(count)


def vocab_graph_severity(analysis: Optional[AnalysisResult]) -> str:
    count = _vocab_count(analysis)
    if count is None:
        return "secondary"
    if count == 0:
        return "warn"
    return "success"


def vocab_graph_description(analysis: Optional[AnalysisResult]) -> Optional[str]:
    count = _vocab_count(analysis)
    if count is None:
        return None
    if count == 0:
        return "No graphs contain SKOS concepts or schemes"
    # "1 graph contain" is the established wording; consumers match on it.
    return f"{_graphs(count)} contain SKOS data"


# -- concepts and relationships -----------------------------------------


def _total_concepts(analysis: Optional[AnalysisResult]) -> Optional[int]:
    return None if analysis is None else analysis.total_concepts


def concept_count_status(analysis: Optional[AnalysisResult]) -> str:
    count = _total_concepts(analysis)
    return "Unknown" if count is None else format_count(count)


def concept_count_severity(analysis: Optional[AnalysisResult]) -> str:
    return "secondary" if _total_concepts(analysis) is None else "success"


def concept_count_description(analysis: Optional[AnalysisResult]) -> str:
    count = _total_concepts(analysis)
    if count is None:
        return "Could not determine concept count"
    return f"{format_count(count)} SKOS concepts in endpoint"


def _relationships(analysis: Optional[AnalysisResult]) -> Optional[RelationshipFlags]:
    return None if analysis is None else analysis.relationships


def relationships_status(analysis: Optional[AnalysisResult]) -> str:
    """``"<n>/7 available"``, counting the relationships found."""
    flags = _relationships(analysis)
    if flags is None:
        return "Unknown"
    return f"{flags.available()}/{len(RelationshipFlags.model_fields)} available"


def relationships_severity(analysis: Optional[AnalysisResult]) -> str:
    flags = _relationships(analysis)
    if flags is None:
        return "secondary"
    return "success" if flags.available() else "warn"


def relationships_description(analysis: Optional[AnalysisResult]) -> Optional[str]:
    # Only the empty case gets a sentence
    flags = _relationships(analysis)
    if flags is not None and not flags.available():
        return "No SKOS relationships detected"
    return None


class CapabilitySummary:
    """Read-only capability view of an endpoint.

    Assign a different descriptor to :attr:`endpoint` (or attach a new
    analysis to it) and the next read reflects the change.
    """

    def __init__(self, endpoint: Optional[EndpointDescriptor] = None) -> None:
        self.endpoint = endpoint

    @property
    def analysis(self) -> Optional[AnalysisResult]:
        return self.endpoint.analysis if self.endpoint is not None else None

    @property
    def graph_support_status(self) -> str:
        return graph_support_status(self.analysis)

    @property
    def graph_support_severity(self) -> str:
        return graph_support_severity(self.analysis)

    @property
    def graph_support_description(self) -> str:
        return graph_support_description(self.analysis)

    @property
    def vocab_graph_status(self) -> str:
        return vocab_graph_status(self.analysis)

    @property
    def vocab_graph_severity(self) -> str:
        return vocab_graph_severity(self.analysis)

    @property
    def vocab_graph_description(self) -> Optional[str]:
        return vocab_graph_description(self.analysis)

    @property
    def concept_count_status(self) -> str:
        return concept_count_status(self.analysis)

    @property
    def concept_count_severity(self) -> str:
        return concept_count_severity(self.analysis)

    @property
    def concept_count_description(self) -> str:
        return concept_count_description(self.analysis)

    @property
    def relationships_status(self) -> str:
        return relationships_status(self.analysis)

    @property
    def relationships_severity(self) -> str:
        return relationships_severity(self.analysis)

    @property
    def relationships_description(self) -> Optional[str]:
        return relationships_description(self.analysis)

    @staticmethod
    def format_count(n: int) -> str:
        return format_count(n)

    def as_dict(self) -> dict[str, Optional[str]]:
        return {
            "graphSupportStatus": self.graph_support_status,
            "graphSupportSeverity": self.graph_support_severity,
            "graphSupportDescription": self.graph_support_description,
            "vocabGraphStatus": self.vocab_graph_status,
            "vocabGraphSeverity": self.vocab_graph_severity,
            "vocabGraphDescription": self.vocab_graph_description,
            "conceptCountStatus": self.concept_count_status,
            "conceptCountSeverity": self.concept_count_severity,
            "conceptCountDescription": self.concept_count_description,
            "relationshipsStatus": self.relationships_status,
            "relationshipsSeverity": self.relationships_severity,
            "relationshipsDescription": self.relationships_description,
        }
